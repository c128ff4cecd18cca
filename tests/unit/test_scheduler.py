"""
Unit tests for the alert scheduler.

Tests cover:
- Persist-before-dispatch ordering
- In-flight guard skipping overlapping ticks
- Persist and delivery failure handling
- Start/stop lifecycle
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from bedwatch.models.notifications import NotificationStatus
from bedwatch.services.alert_scanner import AlertScanner
from bedwatch.services.delivery import DeliveryDispatcher, LoggingDispatcher
from bedwatch.services.monitoring import ScanMetrics
from bedwatch.services.notification_store import InMemoryNotificationStore
from bedwatch.services.order_source import InMemoryOrderSource
from bedwatch.services.scheduler import AlertScheduler, SchedulerStatus


class RecordingDispatcher(DeliveryDispatcher):

    def __init__(self, store, succeed=True):
        self.store = store
        self.succeed = succeed
        self.persisted_at_delivery = []

    async def deliver(self, message, metadata):
        stored = {n.id for n in await self.store.list_notifications()}
        self.persisted_at_delivery.append(metadata["notification_id"] in stored)
        return self.succeed


@pytest.fixture
def scanner():
    return AlertScanner(metrics=ScanMetrics(CollectorRegistry()))


@pytest.fixture
def source(make_iv, make_med):
    return InMemoryOrderSource(
        iv_orders=[make_iv(subject_id="HN-1", due_in=timedelta(hours=2))],
        med_orders=[make_med(subject_id="HN-2", expire_in=timedelta(minutes=20))],
    )


def make_scheduler(source, store, dispatcher, scanner, now, interval=60.0):
    return AlertScheduler(source, store, dispatcher, scanner=scanner,
                          interval_seconds=interval, clock=lambda: now)


class TestRunTick:

    @pytest.mark.asyncio
    async def test_persists_before_dispatching(self, source, scanner, now):
        store = InMemoryNotificationStore()
        dispatcher = RecordingDispatcher(store)
        scheduler = make_scheduler(source, store, dispatcher, scanner, now)

        result = await scheduler.run_tick()

        assert result.generated == 2
        assert len(result.persisted) == 2
        assert result.delivered == 2
        assert dispatcher.persisted_at_delivery == [True, True]

    @pytest.mark.asyncio
    @pytest.mark.critical_safety
    async def test_second_tick_is_quiet(self, source, scanner, now):
        store = InMemoryNotificationStore()
        scheduler = make_scheduler(source, store, LoggingDispatcher(), scanner, now)

        await scheduler.run_tick()
        second = await scheduler.run_tick()

        assert second.generated == 0
        assert len(await store.list_notifications()) == 2

    @pytest.mark.asyncio
    async def test_failed_persist_is_not_dispatched(self, source, scanner, now):
        store = InMemoryNotificationStore()
        store.append = AsyncMock(side_effect=[ConnectionError("store down"), True])
        dispatcher = LoggingDispatcher()
        scheduler = make_scheduler(source, store, dispatcher, scanner, now)

        result = await scheduler.run_tick()

        assert result.persist_failures == 1
        assert len(result.persisted) == 1
        assert len(dispatcher.delivered) == 1
        assert scanner.metrics.sample("bedwatch_persist_failures_total") == 1.0

    @pytest.mark.asyncio
    async def test_delivery_failure_marks_notification_failed(self, source, scanner, now):
        store = InMemoryNotificationStore()
        scheduler = make_scheduler(source, store, RecordingDispatcher(store, succeed=False), scanner, now)

        result = await scheduler.run_tick()

        assert result.delivery_failures == 2
        statuses = {n.status for n in await store.list_notifications()}
        assert statuses == {NotificationStatus.FAILED}

    @pytest.mark.asyncio
    async def test_failed_delivery_is_still_deduplicated(self, source, scanner, now):
        store = InMemoryNotificationStore()
        scheduler = make_scheduler(source, store, RecordingDispatcher(store, succeed=False), scanner, now)

        await scheduler.run_tick()
        second = await scheduler.run_tick()

        assert second.generated == 0

    @pytest.mark.asyncio
    async def test_dispatcher_exception_counts_as_failure(self, source, scanner, now):
        store = InMemoryNotificationStore()
        dispatcher = LoggingDispatcher()
        dispatcher.deliver = AsyncMock(side_effect=RuntimeError("channel offline"))
        scheduler = make_scheduler(source, store, dispatcher, scanner, now)

        result = await scheduler.run_tick()

        assert result.delivery_failures == 2
        assert result.delivered == 0

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates_and_releases_guard(self, scanner, now):
        source = InMemoryOrderSource()
        source.fetch_iv_orders = AsyncMock(side_effect=ConnectionError("sheet unreachable"))
        scheduler = make_scheduler(source, InMemoryNotificationStore(), LoggingDispatcher(), scanner, now)

        with pytest.raises(ConnectionError):
            await scheduler.run_tick()
        assert scheduler.in_flight is False


class TestInFlightGuard:

    @pytest.mark.asyncio
    @pytest.mark.critical_safety
    async def test_overlapping_tick_is_skipped(self, source, scanner, now):
        store = InMemoryNotificationStore()
        release = asyncio.Event()
        original_append = store.append

        async def slow_append(notification):
            await release.wait()
            return await original_append(notification)

        store.append = slow_append
        scheduler = make_scheduler(source, store, LoggingDispatcher(), scanner, now)

        first = asyncio.create_task(scheduler.run_tick())
        await asyncio.sleep(0)
        skipped = await scheduler.run_tick()
        release.set()
        completed = await first

        assert skipped.skipped is True
        assert completed.skipped is False
        assert len(await store.list_notifications()) == 2
        assert scanner.metrics.sample("bedwatch_ticks_skipped_total") == 1.0


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_runs_first_tick_and_stop_is_clean(self, source, scanner, now):
        store = InMemoryNotificationStore()
        scheduler = make_scheduler(source, store, LoggingDispatcher(), scanner, now, interval=0.01)

        await scheduler.start()
        assert scheduler.status == SchedulerStatus.RUNNING
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert scheduler.status == SchedulerStatus.STOPPED
        assert len(await store.list_notifications()) == 2

    @pytest.mark.asyncio
    async def test_stop_when_not_running_is_noop(self, source, scanner, now):
        scheduler = make_scheduler(source, InMemoryNotificationStore(), LoggingDispatcher(), scanner, now)
        await scheduler.stop()
        assert scheduler.status == SchedulerStatus.STOPPED

    @pytest.mark.asyncio
    @pytest.mark.critical_safety
    async def test_stop_waits_for_slow_tick(self, source, scanner, now):
        store = InMemoryNotificationStore()
        release = asyncio.Event()
        original_append = store.append

        async def slow_append(notification):
            await release.wait()
            return await original_append(notification)

        store.append = slow_append
        dispatcher = LoggingDispatcher()
        scheduler = make_scheduler(source, store, dispatcher, scanner, now, interval=0.01)

        await scheduler.start()
        await asyncio.sleep(0.05)
        stopping = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0.02)

        assert not stopping.done()
        assert scheduler.in_flight is True

        release.set()
        await stopping

        assert scheduler.in_flight is False
        assert scheduler.status == SchedulerStatus.STOPPED
        assert len(dispatcher.delivered) == 2
        assert scanner.metrics.sample("bedwatch_ticks_skipped_total") >= 1.0
