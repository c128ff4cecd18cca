"""
Delivery dispatch for bedwatch notifications.

The transport (LINE, SMS, pager) belongs to the host. This module defines the
``deliver(message, metadata) -> bool`` seam and the metadata each push carries.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..models.notifications import Notification, NotificationKind
from .message_composer import DEFAULT_LOCALE, MessageLocale, format_date_time
from .monitoring import hash_subject_id


@dataclass(frozen=True)
class DeliveryStyle:
    title: str
    color: str


DELIVERY_STYLES: Dict[NotificationKind, DeliveryStyle] = {
    NotificationKind.IV_ALERT: DeliveryStyle("IV Fluid Alert", "#3b82f6"),
    NotificationKind.MED_ALERT: DeliveryStyle("High-Risk Med Alert", "#ef4444"),
    NotificationKind.ADMIT: DeliveryStyle("Admit Patient", "#10b981"),
    NotificationKind.DISCHARGE: DeliveryStyle("Discharged", "#64748b"),
    NotificationKind.IV_STARTED: DeliveryStyle("New IV Order", "#0ea5e9"),
    NotificationKind.MED_STARTED: DeliveryStyle("New Med Order", "#14b8a6"),
}


def build_delivery_metadata(
    notification: Notification,
    overrides: Optional[Dict[str, Any]] = None,
    locale: MessageLocale = DEFAULT_LOCALE
) -> Dict[str, Any]:
    """
    Metadata sent alongside a notification's message.

    Args:
        notification: Notification being delivered
        overrides: Optional ``title``/``color``/``detail`` replacements
        locale: Clock used to render the deadline in the detail line

    Returns:
        Dictionary with title, color, detail, hn, bed and notification id
    """
    style = DELIVERY_STYLES[notification.kind]
    deadline = format_date_time(notification.payload.deadline_echo, locale)

    if notification.kind in (NotificationKind.MED_ALERT, NotificationKind.MED_STARTED):
        detail = f"Expire: {deadline}"
    elif notification.kind in (NotificationKind.ADMIT, NotificationKind.DISCHARGE):
        detail = "Status: Admitted" if notification.kind == NotificationKind.ADMIT else "Status: Discharged"
    else:
        detail = f"Due: {deadline}"

    metadata = {
        "notification_id": notification.id,
        "title": style.title,
        "color": style.color,
        "detail": detail,
        "hn": notification.subject_id,
        "bed": notification.location_id,
    }
    for key, value in (overrides or {}).items():
        if value:
            metadata[key] = value
    return metadata


@dataclass
class DeliveryAttempt:
    """Record of one delivery attempt."""
    notification_id: int
    attempted_at: datetime
    success: bool
    error_message: Optional[str] = None


class DeliveryDispatcher:
    """Base class for delivery channels."""

    locale: MessageLocale = DEFAULT_LOCALE

    async def deliver(self, message: str, metadata: Dict[str, Any]) -> bool:
        """Send one message. Returns True on success."""
        raise NotImplementedError

    async def dispatch(self, notification: Notification,
                       overrides: Optional[Dict[str, Any]] = None) -> DeliveryAttempt:
        """Deliver a notification, converting channel errors into a failed attempt."""
        metadata = build_delivery_metadata(notification, overrides, self.locale)
        attempted_at = datetime.now(timezone.utc)
        try:
            success = bool(await self.deliver(notification.payload.message, metadata))
            error = None if success else "channel reported failure"
        except Exception as e:
            success = False
            error = str(e)
        return DeliveryAttempt(notification.id, attempted_at, success, error)


class LoggingDispatcher(DeliveryDispatcher):
    """Writes notifications to the log instead of a messaging channel."""

    def __init__(self, locale: Optional[MessageLocale] = None):
        self.locale = locale or DEFAULT_LOCALE
        self.logger = logging.getLogger(__name__)
        self.delivered: List[Dict[str, Any]] = []

    async def deliver(self, message: str, metadata: Dict[str, Any]) -> bool:
        self.logger.info(
            f"[{metadata.get('title')}] notification {metadata.get('notification_id')} "
            f"for patient {hash_subject_id(str(metadata.get('hn')))}: {metadata.get('detail')}"
        )
        self.delivered.append({"message": message, "metadata": metadata})
        return True
