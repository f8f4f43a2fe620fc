"""
Conflict detection service.

Reads a student's live operational data at a branch and reports what a
transfer would disrupt: active subscriptions, slots booked after the
current moment and pending orders.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from apps.operations.models import (
    Order,
    OrderStatus,
    Slot,
    SlotStatus,
    Subscription,
    SubscriptionStatus,
)

from .refund_estimation import estimate_refund_amount, estimate_subscription_refund


def branch_timezone() -> ZoneInfo:
    """Operating time zone shared by all branches (UTC+7 by default)."""
    return ZoneInfo(settings.BRANCH_TIME_ZONE)


def branch_now(now: Optional[datetime] = None) -> datetime:
    """Current moment expressed in the branch time zone."""
    return timezone.localtime(now or timezone.now(), branch_timezone())


@dataclass(frozen=True)
class SubscriptionConflict:
    id: UUID
    package_name: str
    price_final: Decimal
    used_slots: int
    total_slots: int

    @property
    def estimated_refund(self) -> Decimal:
        return estimate_subscription_refund(self.price_final, self.used_slots, self.total_slots)


@dataclass(frozen=True)
class SlotConflict:
    id: UUID
    timeframe_name: str
    room_name: str
    date: date
    start_time: time


@dataclass(frozen=True)
class OrderConflict:
    id: UUID
    item_count: int
    total_amount: Decimal
    created_date: datetime


@dataclass
class ConflictSnapshot:
    """Operational data at a branch that a transfer would disrupt."""

    student_id: UUID
    branch_id: UUID
    computed_at: datetime
    active_subscriptions: List[SubscriptionConflict] = field(default_factory=list)
    future_slots: List[SlotConflict] = field(default_factory=list)
    pending_orders: List[OrderConflict] = field(default_factory=list)

    @property
    def estimated_refund_amount(self) -> Decimal:
        return estimate_refund_amount(self.active_subscriptions)

    @property
    def is_empty(self) -> bool:
        return not (self.active_subscriptions or self.future_slots or self.pending_orders)

    @property
    def categories(self) -> List[str]:
        """Names of the non-empty conflict categories."""
        populated = []
        if self.active_subscriptions:
            populated.append('subscriptions')
        if self.future_slots:
            populated.append('slots')
        if self.pending_orders:
            populated.append('orders')
        return populated

    def as_dict(self) -> dict:
        return {
            'student_id': self.student_id,
            'branch_id': self.branch_id,
            'computed_at': self.computed_at,
            'active_subscriptions': [
                {
                    'id': sub.id,
                    'package_name': sub.package_name,
                    'price_final': sub.price_final,
                    'used_slots': sub.used_slots,
                    'total_slots': sub.total_slots,
                    'estimated_refund': sub.estimated_refund,
                }
                for sub in self.active_subscriptions
            ],
            'future_slots': [
                {
                    'id': slot.id,
                    'timeframe_name': slot.timeframe_name,
                    'room_name': slot.room_name,
                    'date': slot.date,
                    'start_time': slot.start_time,
                }
                for slot in self.future_slots
            ],
            'pending_orders': [
                {
                    'id': order.id,
                    'item_count': order.item_count,
                    'total_amount': order.total_amount,
                    'created_date': order.created_date,
                }
                for order in self.pending_orders
            ],
            'active_subscriptions_count': len(self.active_subscriptions),
            'future_slots_count': len(self.future_slots),
            'pending_orders_count': len(self.pending_orders),
            'estimated_refund_amount': self.estimated_refund_amount,
            'has_conflicts': not self.is_empty,
        }


def active_subscriptions_query(*, student_id: UUID, branch_id: UUID):
    return Subscription.objects.filter(
        student_id=student_id,
        branch_id=branch_id,
        status=SubscriptionStatus.ACTIVE,
    ).order_by('created_at')


def future_slots_query(*, student_id: UUID, branch_id: UUID, now: Optional[datetime] = None):
    """Booked slots starting strictly after ``now`` in the branch time zone."""
    local_now = branch_now(now)
    today = local_now.date()
    current_time = local_now.time().replace(tzinfo=None)

    return Slot.objects.filter(
        student_id=student_id,
        branch_id=branch_id,
        status=SlotStatus.BOOKED,
    ).filter(
        Q(date__gt=today) | Q(date=today, start_time__gt=current_time)
    ).order_by('date', 'start_time')


def pending_orders_query(*, student_id: UUID, branch_id: UUID):
    return Order.objects.filter(
        student_id=student_id,
        branch_id=branch_id,
        status=OrderStatus.PENDING,
    ).order_by('created_at')


def detect_conflicts(
    *,
    student_id: UUID,
    branch_id: UUID,
    lock: bool = False,
    now: Optional[datetime] = None
) -> ConflictSnapshot:
    """
    Build the conflict snapshot for a student at a branch.

    Args:
        student_id: Student whose data is inspected
        branch_id: Branch relevant at the time of the query
        lock: Lock the returned rows (SELECT FOR UPDATE). Must be called
            inside the transaction that acts on the snapshot.
        now: Reference moment, defaults to the current time

    Returns:
        ConflictSnapshot
    """
    now = now or timezone.now()

    subscriptions = active_subscriptions_query(student_id=student_id, branch_id=branch_id)
    slots = future_slots_query(student_id=student_id, branch_id=branch_id, now=now)
    orders = pending_orders_query(student_id=student_id, branch_id=branch_id)

    if lock:
        subscriptions = subscriptions.select_for_update()
        slots = slots.select_for_update()
        orders = orders.select_for_update()

    with transaction.atomic():
        snapshot = ConflictSnapshot(
            student_id=student_id,
            branch_id=branch_id,
            computed_at=now,
            active_subscriptions=[
                SubscriptionConflict(
                    id=sub.id,
                    package_name=sub.package_name,
                    price_final=sub.price_final,
                    used_slots=sub.used_slots,
                    total_slots=sub.total_slots,
                )
                for sub in subscriptions
            ],
            future_slots=[
                SlotConflict(
                    id=slot.id,
                    timeframe_name=slot.timeframe_name,
                    room_name=slot.room_name,
                    date=slot.date,
                    start_time=slot.start_time,
                )
                for slot in slots
            ],
            pending_orders=[
                OrderConflict(
                    id=order.id,
                    item_count=order.item_count,
                    total_amount=order.total_amount,
                    created_date=order.created_at,
                )
                for order in orders
            ],
        )

    return snapshot
