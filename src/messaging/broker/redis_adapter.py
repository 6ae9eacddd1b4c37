"""Redis-backed broker.

Each topic partition is a Redis list used as an append-only log: ``RPUSH``
returns the new length, which makes the offset assignment atomic. Committed
offsets live in one hash per consumer group.
"""

import json
import zlib

import redis
import structlog

from messaging.broker.port import BrokerPort, Message
from messaging.exceptions import PublishError

logger = structlog.get_logger(__name__)


class RedisBroker(BrokerPort):
    def __init__(self, redis_url="redis://localhost:6379/0", partitions=3, namespace="orderflow", client=None):
        self.partition_count = partitions
        self.namespace = namespace
        self._redis = client or redis.Redis.from_url(redis_url, decode_responses=True)

    def _log_key(self, topic, partition):
        return f"{self.namespace}:log:{topic}:{partition}"

    def _offsets_key(self, group):
        return f"{self.namespace}:offsets:{group}"

    def _topics_key(self):
        return f"{self.namespace}:topics"

    def partition_for(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % self.partition_count

    def publish(self, topic, key, value, headers=None):
        partition = self.partition_for(key)
        entry = json.dumps({"key": key, "value": value, "headers": headers or {}})
        try:
            length = self._redis.rpush(self._log_key(topic, partition), entry)
            self._redis.sadd(self._topics_key(), topic)
        except redis.RedisError as exc:
            raise PublishError(f"Redis publish to {topic} failed: {exc}") from exc

        return Message(
            topic=topic,
            partition=partition,
            offset=length - 1,
            key=key,
            value=value,
            headers=dict(headers or {}),
        )

    def partitions_for(self, topic):
        return list(range(self.partition_count))

    def poll(self, topic, group, partition, max_messages=50):
        start = int(self._redis.hget(self._offsets_key(group), f"{topic}:{partition}") or 0)
        entries = self._redis.lrange(self._log_key(topic, partition), start, start + max_messages - 1)

        messages = []
        for index, raw in enumerate(entries):
            entry = json.loads(raw)
            messages.append(
                Message(
                    topic=topic,
                    partition=partition,
                    offset=start + index,
                    key=entry["key"],
                    value=entry["value"],
                    headers=entry.get("headers") or {},
                )
            )
        return messages

    def commit(self, group, message):
        field = f"{message.topic}:{message.partition}"
        current = int(self._redis.hget(self._offsets_key(group), field) or 0)
        if message.offset + 1 > current:
            self._redis.hset(self._offsets_key(group), field, message.offset + 1)

    def topics(self):
        return sorted(self._redis.smembers(self._topics_key()))

    def lag(self, topic, group):
        total = 0
        for partition in self.partitions_for(topic):
            length = self._redis.llen(self._log_key(topic, partition))
            committed = int(self._redis.hget(self._offsets_key(group), f"{topic}:{partition}") or 0)
            total += max(length - committed, 0)
        return total

    def health(self) -> dict:
        """Connection status and server stats for the monitor."""
        try:
            info = self._redis.info()
        except redis.RedisError as exc:
            return {"healthy": False, "error": str(exc)}
        return {
            "healthy": True,
            "redis_version": info.get("redis_version", "unknown"),
            "connected_clients": info.get("connected_clients", 0),
            "used_memory_human": info.get("used_memory_human", "0B"),
        }
