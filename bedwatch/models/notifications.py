"""
Notification Models for the bedwatch alerting core

This module defines notification kinds, the notification lifecycle, the
deduplication key and the exceptions raised by the scanning core.
"""

from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional
from dataclasses import dataclass
from enum import Enum

from .orders import OrderKind, format_timestamp, parse_timestamp


class NotificationKind(Enum):
    """What produced a notification."""
    IV_ALERT = OrderKind.IV.value
    MED_ALERT = OrderKind.MED.value
    ADMIT = "admit"
    DISCHARGE = "discharge"
    IV_STARTED = "iv_started"
    MED_STARTED = "med_started"

    @classmethod
    def for_order(cls, kind: OrderKind) -> 'NotificationKind':
        return cls(kind.value)


class NotificationStatus(Enum):
    """
    Notification lifecycle.

    PENDING -> SENT on acknowledgement. FAILED is only ever set by the
    delivery layer.
    """
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class DedupKey(NamedTuple):
    """One real-world deadline: (kind, subject, deadline)."""
    kind: NotificationKind
    subject_id: str
    deadline: datetime


@dataclass
class NotificationPayload:
    message: str
    deadline_echo: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "target_date": format_timestamp(self.deadline_echo),
        }


@dataclass
class Notification:
    """Notification record as persisted by the host and shown to staff."""
    id: int
    kind: NotificationKind
    subject_id: str
    location_id: int
    created_at: datetime
    status: NotificationStatus
    payload: NotificationPayload
    scheduled_at: Optional[datetime] = None
    triggered_at: Optional[datetime] = None

    @property
    def dedup_key(self) -> Optional[DedupKey]:
        """Key used for deduplication, or None when the payload has no deadline."""
        deadline = self.payload.deadline_echo
        if not isinstance(deadline, datetime):
            return None
        return DedupKey(self.kind, self.subject_id, deadline)

    def is_pending(self) -> bool:
        return self.status == NotificationStatus.PENDING

    def acknowledge(self) -> None:
        """Mark as read by a member of staff. SENT is terminal."""
        if self.status == NotificationStatus.SENT:
            raise NotificationStateError(f"Notification {self.id} already acknowledged")
        self.status = NotificationStatus.SENT

    def mark_failed(self) -> None:
        """Record a delivery failure. Acknowledged notifications stay SENT."""
        if self.status == NotificationStatus.SENT:
            raise NotificationStateError(
                f"Notification {self.id} is acknowledged and cannot be marked failed"
            )
        self.status = NotificationStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "type": self.kind.value,
            "hn": self.subject_id,
            "bed_id": self.location_id,
            "scheduled_at": format_timestamp(self.scheduled_at),
            "triggered_at": format_timestamp(self.triggered_at),
            "payload": self.payload.to_dict(),
            "status": self.status.value,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        payload = data.get("payload") or {}
        return cls(
            id=int(data["id"]),
            kind=NotificationKind(data["type"]),
            subject_id=str(data["hn"]),
            location_id=data.get("bed_id"),
            created_at=parse_timestamp(data.get("created_at")),
            status=NotificationStatus(data.get("status", NotificationStatus.PENDING.value)),
            payload=NotificationPayload(
                message=payload.get("message", ""),
                deadline_echo=parse_timestamp(payload.get("target_date")),
            ),
            scheduled_at=parse_timestamp(data.get("scheduled_at")),
            triggered_at=parse_timestamp(data.get("triggered_at")),
        )


class AlertScanException(Exception):
    """Base exception for the alert scanning core."""
    pass


class ScanInputError(AlertScanException, TypeError):
    """Raised when the scanner is handed a missing collection, map or clock value."""
    pass


class NotificationStateError(AlertScanException):
    """Raised on an illegal notification status transition."""
    pass


class ConfigurationException(AlertScanException):
    """Raised for invalid configuration."""
    pass
