"""
Alert Scanner for bedwatch

Inspects every IV and medication order, decides which have crossed their
alert threshold, and returns one new notification per deadline that has not
been notified yet.

The scanner is a pure, repeatable transform over snapshots the caller
fetched. It never mutates the collections it is given and keeps no memory
between calls, so the caller must persist each batch before the next scan
(see ``AlertScheduler`` for a host loop that guarantees this).
"""

import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Set

from ..config import AlertThresholds
from ..models.notifications import (
    DedupKey, Notification, NotificationKind, NotificationPayload, NotificationStatus,
    ScanInputError
)
from ..models.orders import IVOrder, MedOrder, Order
from .deduplication import build_already_alerted_set, normalize_deadline, order_dedup_key
from .message_composer import MessageComposer
from .monitoring import ScanMetrics, hash_subject_id
from .threshold_evaluator import ThresholdEvaluator, time_remaining


def next_notification_id(existing_notifications: Iterable[Notification]) -> int:
    """First id strictly greater than every id already in use."""
    ids = [n.id for n in existing_notifications if isinstance(n.id, int)]
    return max(ids) + 1 if ids else 1


class AlertScanner:
    """
    Orchestrates threshold evaluation, deduplication and message composition.

    Responsibilities:
    - Rebuild the dedup index from the full notification list on every run
    - Evaluate each order independently; a malformed order is skipped and
      never aborts the batch
    - Assign ids unique across the existing store and the current batch
    - Record scan metrics
    """

    def __init__(
        self,
        thresholds: Optional[AlertThresholds] = None,
        composer: Optional[MessageComposer] = None,
        metrics: Optional[ScanMetrics] = None
    ):
        self.evaluator = ThresholdEvaluator(thresholds)
        self.composer = composer or MessageComposer()
        self.metrics = metrics or ScanMetrics()
        self.logger = logging.getLogger(__name__)

    def scan(
        self,
        iv_orders: Sequence[IVOrder],
        med_orders: Sequence[MedOrder],
        existing_notifications: Sequence[Notification],
        location_map: Mapping[Any, Any],
        now: datetime
    ) -> List[Notification]:
        """
        Produce notifications for newly alert-worthy deadlines.

        Args:
            iv_orders: Current IV fluid orders (active and retired)
            med_orders: Current high-risk medication orders
            existing_notifications: Every notification currently persisted
            location_map: ``location_id -> bed display number``
            now: Current time, injected by the caller; naive values are read as UTC

        Returns:
            Only the newly created notifications, all PENDING

        Raises:
            ScanInputError: if a collection, the location map or ``now`` is missing
        """
        self._validate_inputs(iv_orders, med_orders, existing_notifications, location_map, now)
        now = normalize_deadline(now)
        existing_notifications = list(existing_notifications)

        with self.metrics.scan_duration.time():
            alerted = build_already_alerted_set(existing_notifications)
            next_id = next_notification_id(existing_notifications)
            new_notifications: List[Notification] = []

            for orders in (iv_orders, med_orders):
                for order in orders:
                    notification = self._evaluate_order(
                        order, alerted, location_map, now, next_id + len(new_notifications)
                    )
                    if notification is not None:
                        new_notifications.append(notification)

        self.metrics.scans.inc()
        if new_notifications:
            self.logger.info(f"Scan produced {len(new_notifications)} new notification(s)")
        else:
            self.logger.debug("Scan produced no new notifications")
        return new_notifications

    def _evaluate_order(
        self,
        order: Order,
        alerted: Set[DedupKey],
        location_map: Mapping[Any, Any],
        now: datetime,
        notification_id: int
    ) -> Optional[Notification]:
        kind_label = getattr(getattr(order, "kind", None), "value", "unknown")
        try:
            if not self.evaluator.is_alert_due(order, now):
                if order.is_active and time_remaining(order, now) is None:
                    self.metrics.orders_skipped.labels(kind=kind_label).inc()
                return None

            key = order_dedup_key(order)
            if key in alerted:
                self.metrics.duplicates_suppressed.labels(kind=kind_label).inc()
                return None

            notification = Notification(
                id=notification_id,
                kind=NotificationKind.for_order(order.kind),
                subject_id=order.subject_id,
                location_id=order.location_id,
                created_at=now,
                scheduled_at=now,
                status=NotificationStatus.PENDING,
                payload=NotificationPayload(
                    message=self.composer.compose(order, location_map),
                    deadline_echo=order.deadline_at,
                ),
            )
        except Exception as e:
            self.logger.error(f"Skipping {kind_label} order {getattr(order, 'order_id', None)}: {str(e)}")
            self.metrics.orders_skipped.labels(kind=kind_label).inc()
            return None

        # Two rows for the same deadline in one batch alert once.
        alerted.add(key)
        self.metrics.alerts_generated.labels(kind=kind_label).inc()
        self.logger.info(
            f"Alert {notification.id} ({kind_label}) for patient {hash_subject_id(order.subject_id)}, "
            f"deadline {order.deadline_at.isoformat()}"
        )
        return notification

    def _validate_inputs(self, iv_orders, med_orders, existing_notifications, location_map, now):
        if iv_orders is None or med_orders is None:
            raise ScanInputError("Order collections are required")
        if existing_notifications is None:
            raise ScanInputError("existing_notifications is required")
        if location_map is None:
            raise ScanInputError("location_map is required")
        if not isinstance(now, datetime):
            raise ScanInputError(f"now must be a datetime, got {type(now).__name__}")


def scan(
    iv_orders: Sequence[IVOrder],
    med_orders: Sequence[MedOrder],
    existing_notifications: Sequence[Notification],
    location_map: Mapping[Any, Any],
    now: datetime,
    thresholds: Optional[AlertThresholds] = None
) -> List[Notification]:
    """Run one scan with a throwaway scanner (default composer and metrics)."""
    return AlertScanner(thresholds=thresholds).scan(
        iv_orders, med_orders, existing_notifications, location_map, now
    )
