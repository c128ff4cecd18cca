from .threshold_evaluator import ThresholdEvaluator, is_alert_due, threshold_for, time_remaining
from .message_composer import MessageComposer, MessageLocale, compose_message, format_date_time, resolve_location
from .deduplication import build_already_alerted_set, make_dedup_key, order_dedup_key
from .alert_scanner import AlertScanner, scan, next_notification_id
from .monitoring import ScanMetrics, hash_subject_id
from .notification_store import NotificationStore, InMemoryNotificationStore, RedisNotificationStore
from .order_source import OrderSource, InMemoryOrderSource, parse_order_rows
from .delivery import DeliveryDispatcher, LoggingDispatcher, DeliveryAttempt, build_delivery_metadata
from .scheduler import AlertScheduler, SchedulerStatus, TickResult
from .clinical_events import ClinicalEventNotifier

__all__ = [
    'ThresholdEvaluator',
    'is_alert_due',
    'threshold_for',
    'time_remaining',
    'MessageComposer',
    'MessageLocale',
    'compose_message',
    'format_date_time',
    'resolve_location',
    'build_already_alerted_set',
    'make_dedup_key',
    'order_dedup_key',
    'AlertScanner',
    'scan',
    'next_notification_id',
    'ScanMetrics',
    'hash_subject_id',
    'NotificationStore',
    'InMemoryNotificationStore',
    'RedisNotificationStore',
    'OrderSource',
    'InMemoryOrderSource',
    'parse_order_rows',
    'DeliveryDispatcher',
    'LoggingDispatcher',
    'DeliveryAttempt',
    'build_delivery_metadata',
    'AlertScheduler',
    'SchedulerStatus',
    'TickResult',
    'ClinicalEventNotifier'
]
