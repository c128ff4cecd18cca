"""
Notifications for clinical actions recorded by ward staff.

Admissions, discharges and new orders are announced straight away rather than
waiting for a deadline. Their notification kinds are distinct from the
scanner's alert kinds, so announcing a new IV order never suppresses the
alert raised later for its due time.
"""

import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

from ..models.notifications import (
    Notification, NotificationKind, NotificationPayload, NotificationStatus
)
from ..models.orders import Order, OrderKind
from .alert_scanner import next_notification_id
from .message_composer import MessageComposer
from .monitoring import hash_subject_id
from .notification_store import NotificationStore
from .order_source import InMemoryOrderSource
from .scheduler import utc_now


class ClinicalEventNotifier:
    """Creates and persists notifications for admit, discharge and order-start events."""

    def __init__(
        self,
        store: NotificationStore,
        composer: Optional[MessageComposer] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.composer = composer or MessageComposer()
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    async def _create(self, kind: NotificationKind, subject_id: str, location_id: Any,
                      message: str, deadline_echo: Optional[datetime],
                      scheduled_at: Optional[datetime] = None) -> Optional[Notification]:
        now = self.clock()
        existing = await self.store.list_notifications()
        notification = Notification(
            id=next_notification_id(existing),
            kind=kind,
            subject_id=subject_id,
            location_id=location_id,
            created_at=now,
            scheduled_at=scheduled_at or now,
            status=NotificationStatus.PENDING,
            payload=NotificationPayload(message=message, deadline_echo=deadline_echo),
        )
        if not await self.store.append(notification):
            self.logger.info(f"{kind.value} already announced for patient {hash_subject_id(subject_id)}")
            return None
        self.logger.info(f"{kind.value} notification {notification.id} for patient {hash_subject_id(subject_id)}")
        return notification

    async def admit(self, subject_id: str, location_id: int, bed_number: Any) -> Optional[Notification]:
        message = self.composer.compose_admit(subject_id, bed_number)
        return await self._create(NotificationKind.ADMIT, subject_id, location_id, message, self.clock())

    async def discharge(
        self,
        subject_id: str,
        location_id: int,
        bed_number: Any,
        order_source: Optional[InMemoryOrderSource] = None
    ) -> Optional[Notification]:
        """Announce a discharge and soft-retire the bed's active orders."""
        if order_source is not None:
            closed: List[Order] = order_source.close_orders_for_location(location_id)
            self.logger.info(f"Closed {len(closed)} order(s) on location {location_id} at discharge")
        message = self.composer.compose_discharge(subject_id, bed_number)
        return await self._create(NotificationKind.DISCHARGE, subject_id, location_id, message, self.clock())

    async def order_started(self, order: Order,
                            location_map: Optional[Mapping[Any, Any]] = None) -> Optional[Notification]:
        """Announce a new IV or medication order, echoing its deadline."""
        kind = NotificationKind.IV_STARTED if order.kind == OrderKind.IV else NotificationKind.MED_STARTED
        message = self.composer.compose_started(order, location_map)
        return await self._create(
            kind, order.subject_id, order.location_id, message, order.deadline_at,
            scheduled_at=order.started_at
        )
