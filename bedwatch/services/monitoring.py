"""
Metrics for the alert scanner and its scheduler.
"""

import hashlib
import logging
from typing import Optional

from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest

logger = logging.getLogger(__name__)


class ScanMetrics:
    """Prometheus metrics for scans and scheduler ticks."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self):
        self.scans = Counter(
            'bedwatch_scans_total',
            'Total number of alert scans run',
            registry=self.registry
        )

        self.alerts_generated = Counter(
            'bedwatch_alerts_generated_total',
            'Notifications produced by the scanner',
            ['kind'],
            registry=self.registry
        )

        self.orders_skipped = Counter(
            'bedwatch_orders_skipped_total',
            'Orders skipped because they could not be evaluated',
            ['kind'],
            registry=self.registry
        )

        self.duplicates_suppressed = Counter(
            'bedwatch_duplicates_suppressed_total',
            'Alert-worthy orders whose deadline was already notified',
            ['kind'],
            registry=self.registry
        )

        self.scan_duration = Histogram(
            'bedwatch_scan_duration_seconds',
            'Time spent in one scan',
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5),
            registry=self.registry
        )

        self.ticks_skipped = Counter(
            'bedwatch_ticks_skipped_total',
            'Scheduler ticks skipped because the previous tick was still in flight',
            registry=self.registry
        )

        self.persist_failures = Counter(
            'bedwatch_persist_failures_total',
            'Notifications the store failed to persist',
            registry=self.registry
        )

        self.delivery_failures = Counter(
            'bedwatch_delivery_failures_total',
            'Notifications the dispatcher failed to deliver',
            registry=self.registry
        )

    def sample(self, name: str, labels: Optional[dict] = None) -> float:
        """Current value of a sample, 0.0 when it has not been recorded yet."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def export(self) -> bytes:
        """Metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)


def hash_subject_id(subject_id: str) -> str:
    """Privacy-preserving form of a patient identifier for log lines."""
    salt = "bedwatch_log_salt"
    return hashlib.sha256(f"{salt}{subject_id}".encode()).hexdigest()[:16]
