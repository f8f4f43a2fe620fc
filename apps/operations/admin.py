from django.contrib import admin
from .models import Subscription, SubscriptionRefund, Slot, Order


class SubscriptionRefundInline(admin.TabularInline):
    """Refunds issued for a subscription (created by the transfer workflow)."""
    model = SubscriptionRefund
    extra = 0
    fields = ['amount', 'reason', 'issued_by', 'created_at']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ['package_name', 'student', 'branch', 'price_final', 'used_slots', 'total_slots', 'status']
    list_filter = ['status', 'branch']
    search_fields = ['package_name', 'student__full_name']
    inlines = [SubscriptionRefundInline]


@admin.register(Slot)
class SlotAdmin(admin.ModelAdmin):
    list_display = ['date', 'start_time', 'timeframe_name', 'room_name', 'student', 'branch', 'status']
    list_filter = ['status', 'branch', 'date']
    search_fields = ['student__full_name', 'room_name']
    date_hierarchy = 'date'


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['student', 'branch', 'item_count', 'total_amount', 'status', 'created_at']
    list_filter = ['status', 'branch']
    search_fields = ['student__full_name']
