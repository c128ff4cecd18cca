"""
Message Composer for bedwatch

Renders the human-readable text carried by each notification. Thai is the
ward's working language and the default; English templates are available for
mixed teams. Timestamps are rendered in a fixed UTC offset so the same order
always produces the same bytes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

from ..models.orders import Order, OrderKind


logger = logging.getLogger(__name__)

MISSING = "-"

# Thai calendar dates count years in the Buddhist Era.
BUDDHIST_ERA_OFFSET = 543

TEMPLATES: Dict[str, Dict[str, str]] = {
    "th": {
        OrderKind.IV.value: (
            "HN {subject} (เตียง {bed}): สารน้ำ {label}\n"
            "เริ่ม: {started}\n"
            "ครบกำหนด: {deadline}\n"
            "กรุณาตรวจสอบ"
        ),
        OrderKind.MED.value: (
            "HN {subject} (เตียง {bed}): ยา {label}\n"
            "เริ่ม: {started}\n"
            "หมดฤทธิ์: {deadline}\n"
            "กรุณาตรวจสอบ"
        ),
        "iv_started": "HN {subject} (เตียง {bed}): เริ่มให้สารน้ำ {label}\nเริ่ม: {started}\nครบกำหนด: {deadline}",
        "med_started": "HN {subject} (เตียง {bed}): เริ่มยา {label}\nเริ่ม: {started}\nหมดฤทธิ์: {deadline}",
        "admit": "HN {subject}: รับผู้ป่วยเข้าเตียง {bed}",
        "discharge": "HN {subject}: จำหน่ายผู้ป่วยออกจากเตียง {bed}",
    },
    "en": {
        OrderKind.IV.value: (
            "HN {subject} (Bed {bed}): IV fluid {label}\n"
            "Started: {started}\n"
            "Due: {deadline}\n"
            "Please check"
        ),
        OrderKind.MED.value: (
            "HN {subject} (Bed {bed}): Medication {label}\n"
            "Started: {started}\n"
            "Expires: {deadline}\n"
            "Please check"
        ),
        "iv_started": "HN {subject} (Bed {bed}): IV fluid {label} started\nStarted: {started}\nDue: {deadline}",
        "med_started": "HN {subject} (Bed {bed}): Medication {label} started\nStarted: {started}\nExpires: {deadline}",
        "admit": "HN {subject}: admitted to bed {bed}",
        "discharge": "HN {subject}: discharged from bed {bed}",
    },
}


@dataclass(frozen=True)
class MessageLocale:
    """Language and display clock used when rendering messages."""
    language: str = "th"
    utc_offset_hours: float = 7.0

    @property
    def tzinfo(self) -> timezone:
        return timezone(timedelta(hours=self.utc_offset_hours))


DEFAULT_LOCALE = MessageLocale()


def format_date_time(value: Optional[datetime], locale: MessageLocale = DEFAULT_LOCALE) -> str:
    """
    Render a timestamp as date and 24-hour time.

    Thai: ``d/m/yyyy HH:MM`` with a Buddhist Era year.
    English: ``dd/mm/yyyy HH:MM``.
    """
    if not isinstance(value, datetime):
        return MISSING

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(locale.tzinfo)

    if locale.language == "th":
        date_part = f"{local.day}/{local.month}/{local.year + BUDDHIST_ERA_OFFSET}"
    else:
        date_part = local.strftime("%d/%m/%Y")
    return f"{date_part} {local.strftime('%H:%M')}"


def resolve_location(location_id: Any, location_map: Optional[Mapping[Any, Any]]) -> Any:
    """Bed display number for ``location_id``; the raw id when it is unknown."""
    if not location_map or location_id is None:
        return location_id if location_id is not None else MISSING

    number = location_map.get(location_id)
    if number is None:
        # maps decoded from JSON carry string keys
        number = location_map.get(str(location_id))
    if number is None:
        logger.debug(f"Unknown location {location_id!r}, echoing raw id")
        return location_id
    return number


def render(template_key: str, subject_id: Any, bed: Any, label: Any = None,
           started_at: Optional[datetime] = None, deadline_at: Optional[datetime] = None,
           locale: MessageLocale = DEFAULT_LOCALE) -> str:
    templates = TEMPLATES.get(locale.language, TEMPLATES["th"])
    return templates[template_key].format(
        subject=subject_id if subject_id else MISSING,
        bed=bed,
        label=label if label else MISSING,
        started=format_date_time(started_at, locale),
        deadline=format_date_time(deadline_at, locale),
    )


def compose_message(order: Order, location_map: Optional[Mapping[Any, Any]] = None,
                    locale: Optional[MessageLocale] = None) -> str:
    """
    Compose the alert message for an IV or medication order.

    Never raises for missing optional data: an unknown bed echoes the raw
    ``location_id`` and missing timestamps render as ``-``.
    """
    locale = locale or DEFAULT_LOCALE
    return render(
        order.kind.value,
        order.subject_id,
        resolve_location(order.location_id, location_map),
        order.label,
        order.started_at,
        order.deadline_at,
        locale,
    )


class MessageComposer:
    """Locale-bound composer shared by the scanner and the event notifier."""

    def __init__(self, locale: Optional[MessageLocale] = None):
        self.locale = locale or DEFAULT_LOCALE

    def compose(self, order: Order, location_map: Optional[Mapping[Any, Any]] = None) -> str:
        return compose_message(order, location_map, self.locale)

    def compose_started(self, order: Order, location_map: Optional[Mapping[Any, Any]] = None) -> str:
        key = "iv_started" if order.kind == OrderKind.IV else "med_started"
        return render(
            key,
            order.subject_id,
            resolve_location(order.location_id, location_map),
            order.label,
            order.started_at,
            order.deadline_at,
            self.locale,
        )

    def compose_admit(self, subject_id: str, bed_number: Any) -> str:
        return render("admit", subject_id, bed_number, locale=self.locale)

    def compose_discharge(self, subject_id: str, bed_number: Any) -> str:
        return render("discharge", subject_id, bed_number, locale=self.locale)
