"""
Clinical Order Models for the bedwatch alerting core

Time-bound clinical orders (IV fluids and high-risk medications) share a common
shape: a patient, a bed, a start time and a deadline. Each variant carries a
``kind`` tag used for threshold policy, message templates and deduplication.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union


logger = logging.getLogger(__name__)


class OrderKind(Enum):
    """Order variant tag. Values double as the alert notification kind."""
    IV = "iv_alert"
    MED = "med_alert"


class BedStatus(Enum):
    VACANT = "vacant"
    OCCUPIED = "occupied"


class OrderParseError(ValueError):
    """Raised when a storage row cannot be turned into an order at all."""
    pass


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from storage.

    Accepts datetimes, ISO strings (including a trailing ``Z``) and returns
    None for anything unparseable. Naive values are taken as UTC.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp the way storage rows carry it."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Order(ABC):
    """
    Base shape shared by every time-bound clinical order.

    ``deadline_at`` is the due time for IV fluids and the expiry time for
    medications. Orders with a missing or unparseable timestamp are kept
    (history is never dropped) but flagged ``malformed`` so evaluation can
    skip them.
    """
    kind: ClassVar[OrderKind]
    deadline_field: ClassVar[str]

    subject_id: str
    location_id: int
    started_at: Optional[datetime]
    deadline_at: Optional[datetime]
    is_active: bool = True
    order_id: Optional[int] = None
    notes: Optional[str] = None

    @property
    @abstractmethod
    def label(self) -> str:
        """Display name of what was ordered."""

    @property
    def malformed(self) -> bool:
        return not isinstance(self.deadline_at, datetime) or not self.subject_id

    def close(self) -> None:
        """Soft-retire the order (discharge or explicit closure)."""
        self.is_active = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the storage row shape."""
        return {
            "id": self.order_id,
            "hn": self.subject_id,
            "bed_id": self.location_id,
            "started_at": format_timestamp(self.started_at),
            self.deadline_field: format_timestamp(self.deadline_at),
            "notes": self.notes,
            "is_active": self.is_active,
        }

    @classmethod
    def _common_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise OrderParseError(f"Order row must be a mapping, got {type(data).__name__}")

        subject_id = data.get("hn", data.get("subject_id"))
        location_id = data.get("bed_id", data.get("location_id"))
        deadline_raw = data.get(cls.deadline_field, data.get("deadline_at"))

        started_at = parse_timestamp(data.get("started_at"))
        deadline_at = parse_timestamp(deadline_raw)
        if deadline_at is None:
            logger.warning(
                f"Order row {data.get('id')} has unparseable {cls.deadline_field}: {deadline_raw!r}"
            )

        return {
            "subject_id": str(subject_id) if subject_id is not None else "",
            "location_id": location_id,
            "started_at": started_at,
            "deadline_at": deadline_at,
            "is_active": _parse_bool(data.get("is_active", True)),
            "order_id": data.get("id"),
            "notes": data.get("notes"),
        }


@dataclass
class IVOrder(Order):
    """IV fluid order; the deadline is the bag's due time."""
    kind: ClassVar[OrderKind] = OrderKind.IV
    deadline_field: ClassVar[str] = "due_at"

    fluid_type: str = ""

    @property
    def label(self) -> str:
        return self.fluid_type

    def to_dict(self) -> Dict[str, Any]:
        row = super().to_dict()
        row["fluid_type"] = self.fluid_type
        return row

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IVOrder':
        fields = cls._common_fields(data)
        return cls(fluid_type=data.get("fluid_type") or "", **fields)


@dataclass
class MedOrder(Order):
    """High-risk medication order; the deadline is the expiry time."""
    kind: ClassVar[OrderKind] = OrderKind.MED
    deadline_field: ClassVar[str] = "expire_at"

    med_name: str = ""
    med_code: str = ""

    @property
    def label(self) -> str:
        if self.med_code:
            return f"{self.med_name} ({self.med_code})"
        return self.med_name

    def to_dict(self) -> Dict[str, Any]:
        row = super().to_dict()
        row["med_name"] = self.med_name
        row["med_code"] = self.med_code
        return row

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MedOrder':
        fields = cls._common_fields(data)
        return cls(
            med_name=data.get("med_name") or "",
            med_code=data.get("med_code") or "",
            **fields
        )


AnyOrder = Union[IVOrder, MedOrder]


@dataclass
class Bed:
    id: int
    bed_number: int
    status: BedStatus = BedStatus.VACANT
    current_subject_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bed_number": self.bed_number,
            "status": self.status.value,
            "current_hn": self.current_subject_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Bed':
        return cls(
            id=data["id"],
            bed_number=data["bed_number"],
            status=BedStatus(data.get("status", BedStatus.VACANT.value)),
            current_subject_id=data.get("current_hn") or None,
        )


def bed_number_map(beds: List[Bed]) -> Dict[int, int]:
    """Build the ``location_id -> display number`` lookup used by messages."""
    return {bed.id: bed.bed_number for bed in beds}


def _parse_bool(value: Any) -> bool:
    # Spreadsheet-backed stores hand booleans back as strings.
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)
