"""
Policy evaluation for after-sales claims.

A claim that breaks the active policy is not an error: the ticket is still
created, already Rejected, with the violation text recorded.
"""

from datetime import datetime
from typing import Optional
import logging

from django.utils import timezone

from core.exceptions import PolicyUnavailable
from orders.models import OrderType

from .models import ClaimType, PolicyConfiguration

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
DAYS_PER_MONTH = 30


def load_active_policy(claim_type: str, at: Optional[datetime] = None) -> PolicyConfiguration:
    """
    Return the single active policy for a claim type at the given instant.

    Raises:
        PolicyUnavailable when no active, non-deleted, in-range row exists
    """
    at = at or timezone.now()
    policy = PolicyConfiguration.objects.effective_at(claim_type, at).first()
    if policy is None:
        logger.warning(f"No active {claim_type} policy at {at.isoformat()}")
        raise PolicyUnavailable()
    return policy


def _elapsed_days(delivered_at: datetime, now: datetime) -> float:
    return (now - delivered_at).total_seconds() / SECONDS_PER_DAY


def evaluate_claim(policy: PolicyConfiguration, claim_type: str, order,
                   delivered_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[str]:
    """
    Check a claim against its policy.

    Args:
        policy: Active PolicyConfiguration for the claim type
        claim_type: ClaimType value
        order: The claimed order (its order_type decides refundability)
        delivered_at: Most recent transition into Delivered, or None
        now: Evaluation instant (defaults to timezone.now())

    Returns:
        The violation message, or None when the claim is within policy
    """
    now = now or timezone.now()

    if claim_type == ClaimType.RETURN:
        if delivered_at is None:
            return 'Order delivery date could not be verified.'
        if (policy.return_window_days is not None and
                _elapsed_days(delivered_at, now) > policy.return_window_days):
            return f"Return window of {policy.return_window_days} day(s) has expired."

    elif claim_type == ClaimType.WARRANTY:
        if delivered_at is None:
            return 'Order delivery date could not be verified.'
        if (policy.warranty_months is not None and
                _elapsed_days(delivered_at, now) / DAYS_PER_MONTH > policy.warranty_months):
            return f"Warranty period of {policy.warranty_months} month(s) has expired."

    elif claim_type == ClaimType.REFUND:
        if not policy.refund_allowed:
            return 'Refunds are not allowed under the current policy.'
        if not policy.customized_lens_refundable and order.order_type == OrderType.PRESCRIPTION:
            return 'Customized prescription lenses are non-refundable under the current policy.'

    return None
