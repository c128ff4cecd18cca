"""
Threshold Evaluator for bedwatch

Decides whether a single clinical order has crossed its alert threshold.
Pure function of (order, now); the clock is always injected.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..config import AlertThresholds
from ..models.orders import Order, OrderKind
from .deduplication import normalize_deadline


logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = AlertThresholds()


def threshold_for(kind: OrderKind, thresholds: Optional[AlertThresholds] = None) -> timedelta:
    """Alert lead time for an order variant."""
    thresholds = thresholds or DEFAULT_THRESHOLDS
    if kind == OrderKind.IV:
        return thresholds.iv
    if kind == OrderKind.MED:
        return thresholds.med
    raise ValueError(f"No alert threshold configured for order kind {kind!r}")


def time_remaining(order: Order, now: datetime) -> Optional[timedelta]:
    """Time left until the order's deadline, negative once overdue. None if malformed."""
    if order.malformed:
        return None
    # naive timestamps are UTC
    return normalize_deadline(order.deadline_at) - normalize_deadline(now)


def is_alert_due(order: Order, now: datetime, thresholds: Optional[AlertThresholds] = None) -> bool:
    """
    Check whether an order is alert-worthy at ``now``.

    Args:
        order: IV or medication order
        now: Current time; naive values are read as UTC
        thresholds: Per-variant lead times, defaults to IV 4h / Med 1h

    Returns:
        True when the order is active and its remaining time is at or below
        the variant's threshold. Overdue orders stay alert-worthy.
    """
    if not order.is_active:
        return False

    remaining = time_remaining(order, now)
    if remaining is None:
        logger.warning(
            f"Skipping {order.kind.value} order {order.order_id}: deadline {order.deadline_at!r} is not usable"
        )
        return False

    return remaining <= threshold_for(order.kind, thresholds)


class ThresholdEvaluator:
    """Binds a threshold policy so the scanner can evaluate orders without passing it around."""

    def __init__(self, thresholds: Optional[AlertThresholds] = None):
        self.thresholds = thresholds or DEFAULT_THRESHOLDS
        self.logger = logging.getLogger(__name__)

    def is_alert_due(self, order: Order, now: datetime) -> bool:
        return is_alert_due(order, now, self.thresholds)
