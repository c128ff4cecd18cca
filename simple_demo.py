#!/usr/bin/env python3
"""
Simple bedwatch Demo - Console Output
=====================================

Seeds an eight-bed ward with IV fluid and high-risk medication orders, then:
1. Runs one scheduler tick and prints the alerts it raised
2. Runs a second tick to show that no deadline is alerted twice
3. Acknowledges an alert and prints the pending count

Usage: python simple_demo.py [config.yaml]
"""

import asyncio
import sys
from datetime import datetime, timezone, timedelta

from bedwatch.config import load_config, configure_logging
from bedwatch.models.orders import Bed, BedStatus, IVOrder, MedOrder
from bedwatch.services.alert_scanner import AlertScanner
from bedwatch.services.delivery import LoggingDispatcher
from bedwatch.services.message_composer import MessageComposer, MessageLocale
from bedwatch.services.notification_store import InMemoryNotificationStore
from bedwatch.services.order_source import InMemoryOrderSource
from bedwatch.services.scheduler import AlertScheduler


OCCUPIED_BEDS = (1, 2, 4, 5, 8)


def seed_ward(now: datetime) -> InMemoryOrderSource:
    """Eight beds, five occupied, with a mix of due, overdue and distant orders."""
    days = lambda n: now + timedelta(days=n)
    hours = lambda n: now + timedelta(hours=n)

    beds = [
        Bed(
            id=i,
            bed_number=i,
            status=BedStatus.OCCUPIED if i in OCCUPIED_BEDS else BedStatus.VACANT,
            current_subject_id=f"HN-{999 + i}" if i in OCCUPIED_BEDS else None,
        )
        for i in range(1, 9)
    ]

    ivs = [
        IVOrder("HN-1000", 1, days(-2), hours(4), order_id=1, fluid_type="0.9% NaCl 1000ml"),
        IVOrder("HN-1001", 2, days(-1), days(2), order_id=2, fluid_type="5% D/N/2 1000ml"),
        IVOrder("HN-1003", 4, days(0), days(5), order_id=3, fluid_type="Ringer Lactate"),
        IVOrder("HN-1004", 5, days(-3), days(-1), order_id=4, fluid_type="D5W 500ml"),
        IVOrder("HN-1007", 8, days(0), days(3), order_id=5, fluid_type="Acetar 1000ml"),
    ]

    meds = [
        MedOrder("HN-1000", 1, days(-1), hours(2), order_id=1, med_name="Dopamine", med_code="DOPA"),
        MedOrder("HN-1001", 2, days(0), hours(20), order_id=2, med_name="Adrenaline", med_code="ADR"),
        MedOrder("HN-1003", 4, days(-2), days(2), order_id=3, med_name="Fentanyl", med_code="FEN"),
        MedOrder("HN-1004", 5, days(-5), hours(-2), order_id=4, med_name="Insulin RI", med_code="INS"),
        MedOrder("HN-1007", 8, days(-1), hours(0.5), order_id=5, med_name="Amiodarone", med_code="AMIO"),
    ]

    return InMemoryOrderSource(ivs, meds, beds)


async def main(config_path=None):
    config = load_config(config_path)
    configure_logging(config)

    now = datetime.now(timezone.utc)
    source = seed_ward(now)
    store = InMemoryNotificationStore()
    composer = MessageComposer(MessageLocale(config.message_locale, config.display_utc_offset_hours))
    dispatcher = LoggingDispatcher(locale=composer.locale)
    scheduler = AlertScheduler(
        source, store, dispatcher,
        scanner=AlertScanner(config.thresholds(), composer),
        interval_seconds=config.scan_interval_seconds,
        clock=lambda: now,
    )

    print("=" * 60)
    print("bedwatch demo - first tick")
    print("=" * 60)
    first = await scheduler.run_tick()
    for notification in first.persisted:
        print(f"\n#{notification.id} [{notification.kind.value}]")
        print(notification.payload.message)

    print("\n" + "=" * 60)
    second = await scheduler.run_tick()
    print(f"Second tick generated {second.generated} notification(s)")

    if first.persisted:
        await store.acknowledge(first.persisted[0].id)
    print(f"Pending notifications: {await store.pending_count()}")
    if config.metrics_enabled:
        print(scheduler.metrics.export().decode())


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
