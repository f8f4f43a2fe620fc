"""
Refund estimation.

The refund for one active subscription is its final price pro-rated by
the slots the student has not used yet:

    refund = price_final * max(0, total_slots - used_slots) / total_slots

The estimated refund of a conflict snapshot is the sum over all active
subscriptions. Amounts are Decimals rounded half-up to two places per
subscription before summing, so the total always equals the sum of the
individually issued refunds.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

CENT = Decimal('0.01')


def estimate_subscription_refund(price_final, used_slots: int, total_slots: int) -> Decimal:
    """
    Pro-rata refund for a single subscription.

    A subscription with no slots (``total_slots <= 0``) refunds nothing,
    and overused subscriptions are floored at zero.
    """
    price = Decimal(price_final)
    if total_slots <= 0 or price <= 0:
        return Decimal('0.00')

    remaining_slots = max(0, total_slots - used_slots)
    refund = price * Decimal(remaining_slots) / Decimal(total_slots)
    return refund.quantize(CENT, rounding=ROUND_HALF_UP)


def estimate_refund_amount(subscriptions: Iterable) -> Decimal:
    """
    Total refund for a collection of subscriptions.

    Accepts anything exposing ``price_final``, ``used_slots`` and
    ``total_slots`` (Subscription models or SubscriptionConflict rows).
    """
    total = Decimal('0.00')
    for subscription in subscriptions:
        total += estimate_subscription_refund(
            subscription.price_final,
            subscription.used_slots,
            subscription.total_slots,
        )
    return total
