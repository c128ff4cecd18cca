"""
Unit tests for delivery metadata and dispatchers.
"""

from datetime import datetime, timezone, timedelta

import pytest

from bedwatch.models.notifications import (
    Notification, NotificationKind, NotificationPayload, NotificationStatus
)
from bedwatch.services.delivery import DeliveryDispatcher, LoggingDispatcher, build_delivery_metadata
from bedwatch.services.message_composer import MessageLocale


DEADLINE = datetime(2026, 10, 19, 11, 5, tzinfo=timezone.utc)


def make_notification(kind=NotificationKind.IV_ALERT):
    return Notification(
        id=7,
        kind=kind,
        subject_id="HN-1",
        location_id=5,
        created_at=DEADLINE - timedelta(hours=3),
        status=NotificationStatus.PENDING,
        payload=NotificationPayload(message="message body", deadline_echo=DEADLINE),
    )


class TestDeliveryMetadata:

    def test_iv_alert(self):
        metadata = build_delivery_metadata(make_notification())

        assert metadata == {
            "notification_id": 7,
            "title": "IV Fluid Alert",
            "color": "#3b82f6",
            "detail": "Due: 19/10/2569 18:05",
            "hn": "HN-1",
            "bed": 5,
        }

    def test_med_alert(self):
        metadata = build_delivery_metadata(make_notification(NotificationKind.MED_ALERT))

        assert metadata["title"] == "High-Risk Med Alert"
        assert metadata["detail"].startswith("Expire:")

    def test_discharge(self):
        metadata = build_delivery_metadata(make_notification(NotificationKind.DISCHARGE))
        assert metadata["detail"] == "Status: Discharged"

    def test_overrides_replace_defaults(self):
        metadata = build_delivery_metadata(make_notification(), {"title": "Bag change", "color": None})

        assert metadata["title"] == "Bag change"
        assert metadata["color"] == "#3b82f6"


class TestDispatch:

    @pytest.mark.asyncio
    async def test_logging_dispatcher_records_delivery(self):
        dispatcher = LoggingDispatcher()

        attempt = await dispatcher.dispatch(make_notification())

        assert attempt.success is True
        assert attempt.notification_id == 7
        assert dispatcher.delivered[0]["message"] == "message body"

    @pytest.mark.asyncio
    async def test_detail_line_uses_dispatcher_locale(self):
        dispatcher = LoggingDispatcher(locale=MessageLocale("en", utc_offset_hours=0))

        await dispatcher.dispatch(make_notification())

        assert dispatcher.delivered[0]["metadata"]["detail"] == "Due: 19/10/2026 11:05"

    @pytest.mark.asyncio
    async def test_channel_reporting_failure(self):
        class Refusing(DeliveryDispatcher):
            async def deliver(self, message, metadata):
                return False

        attempt = await Refusing().dispatch(make_notification())

        assert attempt.success is False
        assert attempt.error_message == "channel reported failure"

    @pytest.mark.asyncio
    async def test_channel_exception_becomes_failed_attempt(self):
        class Broken(DeliveryDispatcher):
            async def deliver(self, message, metadata):
                raise TimeoutError("gateway timeout")

        attempt = await Broken().dispatch(make_notification())

        assert attempt.success is False
        assert "gateway timeout" in attempt.error_message
