"""
Notification stores for bedwatch.

The scanner only ever reads a snapshot of the store and returns new records;
appending them is the host's job. Both stores refuse to append a second
notification for a dedup key that is already present, so a caller that scans
twice before persisting still cannot double-alert.
"""

import json
import logging
from typing import Dict, List, Optional

import redis.asyncio as redis

from ..models.notifications import DedupKey, Notification, NotificationStatus
from .deduplication import make_dedup_key

logger = logging.getLogger(__name__)

# KEYS: notifications hash, id -> claim key hash, claim key
# ARGV: notification id, record
# Returns 1 when stored, 0 when a live record already holds the claim,
# -1 when the id is taken.
_APPEND_LUA = """
local owner = redis.call("get", KEYS[3])
if owner and redis.call("hexists", KEYS[1], owner) == 1
    and redis.call("hget", KEYS[2], owner) == KEYS[3] then
  return 0
end
if redis.call("hexists", KEYS[1], ARGV[1]) == 1 then
  return -1
end
redis.call("hset", KEYS[1], ARGV[1], ARGV[2])
redis.call("hset", KEYS[2], ARGV[1], KEYS[3])
redis.call("set", KEYS[3], ARGV[1])
return 1
"""


class NotificationStore:
    """Base class for notification stores."""

    async def list_notifications(self) -> List[Notification]:
        raise NotImplementedError

    async def append(self, notification: Notification) -> bool:
        """Persist a new notification. Returns False if its deadline was already notified."""
        raise NotImplementedError

    async def update_status(self, notification_id: int, status: NotificationStatus) -> Notification:
        raise NotImplementedError

    async def acknowledge(self, notification_id: int) -> Notification:
        """Mark a notification as read by staff."""
        return await self.update_status(notification_id, NotificationStatus.SENT)

    async def pending_count(self) -> int:
        return sum(1 for n in await self.list_notifications() if n.is_pending())


def _apply_status(notification: Notification, status: NotificationStatus) -> None:
    if status == NotificationStatus.SENT:
        notification.acknowledge()
    elif status == NotificationStatus.FAILED:
        notification.mark_failed()
    else:
        raise ValueError(f"Notifications cannot be moved back to {status.value}")


class InMemoryNotificationStore(NotificationStore):
    """Process-local store, used by tests and the demo."""

    def __init__(self, notifications: Optional[List[Notification]] = None):
        self._notifications: List[Notification] = list(notifications or [])

    async def list_notifications(self) -> List[Notification]:
        return list(self._notifications)

    async def append(self, notification: Notification) -> bool:
        key = notification.dedup_key
        if key is not None:
            claimed = {make_dedup_key(*n.dedup_key) for n in self._notifications if n.dedup_key is not None}
            if make_dedup_key(*key) in claimed:
                logger.warning(f"Refusing duplicate notification {notification.id} for {key.kind.value}")
                return False

        if any(existing.id == notification.id for existing in self._notifications):
            raise ValueError(f"Notification id {notification.id} already in use")
        self._notifications.append(notification)
        return True

    async def update_status(self, notification_id: int, status: NotificationStatus) -> Notification:
        for notification in self._notifications:
            if notification.id == notification_id:
                _apply_status(notification, status)
                return notification
        raise KeyError(f"Notification {notification_id} not found")


class RedisNotificationStore(NotificationStore):
    """
    Redis-backed store with atomic check-and-insert.

    Records live in one hash keyed by notification id. Each deadline has a
    claim key naming the id that notified it. Appending runs as one Lua
    script: a claim only blocks the append while the record it names is still
    in the hash, so deleting a record lets its deadline be notified again.
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "bedwatch"):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.notifications_key = f"{key_prefix}:notifications"
        self.dedup_key_prefix = f"{key_prefix}:dedup:"
        self.claims_key = f"{key_prefix}:claims"

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "bedwatch") -> 'RedisNotificationStore':
        return cls(redis.from_url(url), key_prefix)

    @classmethod
    def from_config(cls, config) -> 'RedisNotificationStore':
        """Build from ``BedwatchConfig.redis_url`` and ``redis_key_prefix``."""
        return cls.from_url(config.redis_url, config.redis_key_prefix)

    def _dedup_redis_key(self, key: DedupKey) -> str:
        kind, subject_id, deadline = make_dedup_key(*key)
        return f"{self.dedup_key_prefix}{kind.value}:{subject_id}:{deadline.isoformat()}"

    async def list_notifications(self) -> List[Notification]:
        raw: Dict = await self.redis.hgetall(self.notifications_key)
        notifications = []
        for notification_id, value in raw.items():
            try:
                notifications.append(Notification.from_dict(json.loads(_decode(value))))
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Unreadable notification record {_decode(notification_id)}: {e}")
        notifications.sort(key=lambda n: n.id)
        return notifications

    async def append(self, notification: Notification) -> bool:
        key = notification.dedup_key
        record = json.dumps(notification.to_dict())

        if key is None:
            written = await self.redis.hsetnx(self.notifications_key, str(notification.id), record)
            result = 1 if written else -1
        else:
            result = await self.redis.eval(
                _APPEND_LUA, 3,
                self.notifications_key, self.claims_key, self._dedup_redis_key(key),
                str(notification.id), record
            )

        if int(result) == 0:
            logger.warning(f"Deadline already notified, dropping notification {notification.id}")
            return False
        if int(result) < 0:
            raise ValueError(f"Notification id {notification.id} already in use")

        logger.debug(f"Stored notification {notification.id}")
        return True

    async def update_status(self, notification_id: int, status: NotificationStatus) -> Notification:
        value = await self.redis.hget(self.notifications_key, str(notification_id))
        if value is None:
            raise KeyError(f"Notification {notification_id} not found")

        notification = Notification.from_dict(json.loads(_decode(value)))
        _apply_status(notification, status)
        await self.redis.hset(
            self.notifications_key, str(notification_id), json.dumps(notification.to_dict())
        )
        return notification


def _decode(value) -> str:
    if isinstance(value, bytes):
        return value.decode()
    return value
