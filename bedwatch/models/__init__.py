from .orders import (
    OrderKind, Order, IVOrder, MedOrder, AnyOrder, Bed, BedStatus,
    OrderParseError, bed_number_map, parse_timestamp, format_timestamp
)
from .notifications import (
    Notification, NotificationKind, NotificationStatus, NotificationPayload, DedupKey,
    AlertScanException, ScanInputError, NotificationStateError, ConfigurationException
)

__all__ = [
    'OrderKind',
    'Order',
    'IVOrder',
    'MedOrder',
    'AnyOrder',
    'Bed',
    'BedStatus',
    'OrderParseError',
    'bed_number_map',
    'parse_timestamp',
    'format_timestamp',
    'Notification',
    'NotificationKind',
    'NotificationStatus',
    'NotificationPayload',
    'DedupKey',
    'AlertScanException',
    'ScanInputError',
    'NotificationStateError',
    'ConfigurationException'
]
