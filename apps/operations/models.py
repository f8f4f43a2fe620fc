from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal
import uuid


class SubscriptionStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    CANCELLED = 'cancelled', 'Cancelled'
    EXPIRED = 'expired', 'Expired'


class SlotStatus(models.TextChoices):
    BOOKED = 'booked', 'Booked'
    CANCELLED = 'cancelled', 'Cancelled'
    COMPLETED = 'completed', 'Completed'


class OrderStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'
    CANCELLED = 'cancelled', 'Cancelled'


class Subscription(models.Model):
    """Purchased package instance tracking used vs. total slots for a student."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        related_name='subscriptions'
    )
    branch = models.ForeignKey(
        'branches.Branch',
        on_delete=models.PROTECT,
        related_name='subscriptions'
    )

    package_name = models.CharField(max_length=200)
    price_final = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    used_slots = models.PositiveIntegerField(default=0)
    total_slots = models.PositiveIntegerField()

    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.ACTIVE
    )
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'subscriptions'
        indexes = [
            models.Index(fields=['student', 'branch', 'status'], name='subscriptio_student_1c2e9a_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.package_name} - {self.used_slots}/{self.total_slots} ({self.status})"

    def cancel(self, *, refund_amount=None, issued_by=None, reason=''):
        """
        Cancel the subscription, optionally issuing a refund.

        Returns the created SubscriptionRefund, or None when no refund
        amount was given.
        """
        if self.status != SubscriptionStatus.ACTIVE:
            raise ValueError(f"Subscription {self.id} is not active")

        self.status = SubscriptionStatus.CANCELLED
        self.cancelled_at = timezone.now()
        self.save(update_fields=['status', 'cancelled_at', 'updated_at'])

        if refund_amount is None:
            return None
        return SubscriptionRefund.objects.create(
            subscription=self,
            amount=refund_amount,
            reason=reason,
            issued_by=issued_by,
        )


class SubscriptionRefund(models.Model):
    """Money returned to the family for a cancelled subscription."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.PROTECT,
        related_name='refunds'
    )
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    reason = models.CharField(max_length=500, blank=True)
    issued_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='issued_refunds'
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'subscription_refunds'
        ordering = ['-created_at']

    def __str__(self):
        return f"Refund {self.amount} for {self.subscription.package_name}"


class Slot(models.Model):
    """Booked child-care time unit (date + timeframe + room)."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        related_name='slots'
    )
    branch = models.ForeignKey(
        'branches.Branch',
        on_delete=models.PROTECT,
        related_name='slots'
    )
    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='slots'
    )

    date = models.DateField()
    start_time = models.TimeField()
    timeframe_name = models.CharField(max_length=100)
    room_name = models.CharField(max_length=100)

    status = models.CharField(
        max_length=20,
        choices=SlotStatus.choices,
        default=SlotStatus.BOOKED
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'slots'
        indexes = [
            models.Index(fields=['student', 'branch', 'status', 'date'], name='slots_student_8e41d2_idx'),
        ]
        ordering = ['date', 'start_time']

    def __str__(self):
        return f"{self.date} {self.timeframe_name} - {self.room_name}"

    def cancel(self):
        """Cancel a booked slot."""
        if self.status != SlotStatus.BOOKED:
            raise ValueError(f"Slot {self.id} is not booked")

        self.status = SlotStatus.CANCELLED
        self.cancelled_at = timezone.now()
        self.save(update_fields=['status', 'cancelled_at', 'updated_at'])


class Order(models.Model):
    """Purchase order placed for a student at a branch."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        related_name='orders'
    )
    branch = models.ForeignKey(
        'branches.Branch',
        on_delete=models.PROTECT,
        related_name='orders'
    )

    item_count = models.PositiveIntegerField(default=1)
    total_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'
        indexes = [
            models.Index(fields=['student', 'branch', 'status'], name='orders_student_f07b3c_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"Order {self.item_count} item(s) - {self.total_amount} ({self.status})"

    def cancel(self):
        """Cancel a pending order."""
        if self.status != OrderStatus.PENDING:
            raise ValueError(f"Order {self.id} is not pending")

        self.status = OrderStatus.CANCELLED
        self.cancelled_at = timezone.now()
        self.save(update_fields=['status', 'cancelled_at', 'updated_at'])
