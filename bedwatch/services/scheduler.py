"""
Alert Scheduler for bedwatch

Host-side interval driver around the stateless scanner. Each tick runs:

    fetch orders and notifications -> scan -> persist each -> dispatch each

A tick that is still in flight when the next one is due causes that next
tick to be skipped. Scanning against a snapshot that does not yet contain
the previous tick's notifications would re-alert the same deadlines.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..models.notifications import Notification, NotificationStatus
from .alert_scanner import AlertScanner
from .delivery import DeliveryDispatcher
from .monitoring import ScanMetrics
from .notification_store import NotificationStore
from .order_source import OrderSource


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerStatus(Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class TickResult:
    """Outcome of one scheduler tick."""
    started_at: datetime
    skipped: bool = False
    generated: int = 0
    persisted: List[Notification] = field(default_factory=list)
    duplicates_refused: int = 0
    persist_failures: int = 0
    delivered: int = 0
    delivery_failures: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for monitoring."""
        return {
            "started_at": self.started_at.isoformat(),
            "skipped": self.skipped,
            "generated": self.generated,
            "persisted": [n.id for n in self.persisted],
            "duplicates_refused": self.duplicates_refused,
            "persist_failures": self.persist_failures,
            "delivered": self.delivered,
            "delivery_failures": self.delivery_failures
        }


class AlertScheduler:
    """
    Runs the alert scanner on a fixed cadence.

    Responsibilities:
    - Fetch a fresh snapshot of orders, beds and notifications each tick
    - Guarantee at most one tick in flight
    - Persist every new notification before any delivery is attempted
    - Never dispatch a notification the store did not accept
    """

    def __init__(
        self,
        order_source: OrderSource,
        store: NotificationStore,
        dispatcher: DeliveryDispatcher,
        scanner: Optional[AlertScanner] = None,
        interval_seconds: float = 60.0,
        clock: Callable[[], datetime] = utc_now
    ):
        self.order_source = order_source
        self.store = store
        self.dispatcher = dispatcher
        self.scanner = scanner or AlertScanner()
        self.metrics: ScanMetrics = self.scanner.metrics
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        self._status = SchedulerStatus.STOPPED
        self._loop_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._in_flight = False

    @property
    def status(self) -> SchedulerStatus:
        return self._status

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def start(self):
        """Start ticking. The first tick runs immediately."""
        if self._status != SchedulerStatus.STOPPED:
            self.logger.warning("Scheduler is already running")
            return

        self._status = SchedulerStatus.RUNNING
        self._loop_task = asyncio.create_task(self._run_loop())
        self.logger.info(f"Alert scheduler started, interval {self.interval_seconds}s")

    async def stop(self):
        """Stop ticking. A tick already in flight is allowed to finish."""
        if self._status != SchedulerStatus.RUNNING:
            return

        self._status = SchedulerStatus.STOPPING
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._tick_task and not self._tick_task.done():
            await asyncio.gather(self._tick_task, return_exceptions=True)

        self._status = SchedulerStatus.STOPPED
        self.logger.info("Alert scheduler stopped")

    async def _run_loop(self):
        while self._status == SchedulerStatus.RUNNING:
            # Ticks run as tasks so a slow tick cannot stretch the cadence.
            if self._tick_task is not None and not self._tick_task.done():
                self._skip_tick()
            else:
                self._tick_task = asyncio.create_task(self._safe_tick())
            await asyncio.sleep(self.interval_seconds)

    def _skip_tick(self):
        self.metrics.ticks_skipped.inc()
        self.logger.warning("Previous tick still in flight, skipping this tick")

    async def _safe_tick(self):
        try:
            await self.run_tick()
        except Exception as e:
            self.logger.error(f"Alert scheduler tick failed: {str(e)}")

    async def run_tick(self) -> TickResult:
        """
        Run one fetch -> scan -> persist -> dispatch cycle.

        Returns:
            TickResult; ``skipped`` is True when another tick was in flight

        Raises:
            Whatever the order source or store raises while fetching; a failed
            fetch aborts the tick before anything is scanned.
        """
        result = TickResult(started_at=self.clock())

        if self._in_flight:
            result.skipped = True
            self._skip_tick()
            return result

        self._in_flight = True
        try:
            iv_orders = await self.order_source.fetch_iv_orders()
            med_orders = await self.order_source.fetch_med_orders()
            location_map = await self.order_source.fetch_location_map()
            existing = await self.store.list_notifications()

            new_notifications = self.scanner.scan(
                iv_orders, med_orders, existing, location_map, result.started_at
            )
            result.generated = len(new_notifications)

            for notification in new_notifications:
                await self._persist(notification, result)

            for notification in result.persisted:
                await self._dispatch(notification, result)

            return result
        finally:
            self._in_flight = False

    async def _persist(self, notification: Notification, result: TickResult):
        try:
            accepted = await self.store.append(notification)
        except Exception as e:
            result.persist_failures += 1
            self.metrics.persist_failures.inc()
            self.logger.error(f"Failed to persist notification {notification.id}: {str(e)}")
            return

        if accepted:
            result.persisted.append(notification)
        else:
            result.duplicates_refused += 1

    async def _dispatch(self, notification: Notification, result: TickResult):
        attempt = await self.dispatcher.dispatch(notification)
        if attempt.success:
            result.delivered += 1
            return

        result.delivery_failures += 1
        self.metrics.delivery_failures.inc()
        self.logger.error(f"Delivery of notification {notification.id} failed: {attempt.error_message}")
        try:
            await self.store.update_status(notification.id, NotificationStatus.FAILED)
        except Exception as e:
            self.logger.error(f"Could not mark notification {notification.id} as failed: {str(e)}")
