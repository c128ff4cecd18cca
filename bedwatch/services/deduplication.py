"""
Deduplication Index for bedwatch

Derives the set of deadlines that have already been notified. The index is
rebuilt from the full notification list on every scan; other actors may edit
the store between runs, so nothing is cached here.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Set

from ..models.notifications import DedupKey, Notification, NotificationKind
from ..models.orders import Order


logger = logging.getLogger(__name__)


def normalize_deadline(deadline: datetime) -> datetime:
    """UTC form of a deadline so one instant compares equal across offsets."""
    if deadline.tzinfo is None:
        return deadline.replace(tzinfo=timezone.utc)
    return deadline.astimezone(timezone.utc)


def make_dedup_key(kind: NotificationKind, subject_id: str, deadline: datetime) -> DedupKey:
    return DedupKey(kind, subject_id, normalize_deadline(deadline))


def order_dedup_key(order: Order) -> DedupKey:
    """Key an order's current deadline would be notified under."""
    return make_dedup_key(NotificationKind.for_order(order.kind), order.subject_id, order.deadline_at)


def build_already_alerted_set(existing_notifications: Iterable[Notification]) -> Set[DedupKey]:
    """
    Build the set of (kind, subject, deadline) triples already notified.

    Args:
        existing_notifications: Every notification currently in the store

    Returns:
        Set of normalised dedup keys. Notifications without a usable
        deadline echo contribute nothing.
    """
    if existing_notifications is None:
        raise TypeError("existing_notifications must be a collection, not None")

    alerted: Set[DedupKey] = set()
    for notification in existing_notifications:
        key = notification.dedup_key
        if key is None:
            logger.warning(f"Notification {notification.id} has no usable deadline echo; ignored for dedup")
            continue
        alerted.add(make_dedup_key(*key))
    return alerted
