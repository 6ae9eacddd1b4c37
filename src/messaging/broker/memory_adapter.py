"""In-memory broker for tests and local development."""

import threading
import zlib
from collections import defaultdict

import structlog

from messaging.broker.port import BrokerPort, Message
from messaging.exceptions import PublishError

logger = structlog.get_logger(__name__)


class InMemoryBroker(BrokerPort):
    """Partitioned in-process log with per-group committed offsets.

    Use ``configure()`` to make publishes fail, globally or for specific
    topics, so relay failure paths can be exercised.
    """

    def __init__(self, partitions: int = 3):
        self.partition_count = partitions
        self._lock = threading.RLock()
        self._data_reset()

    def configure(self, should_succeed=True, failure_reason="Broker unavailable", topics=None):
        """Configure publish behavior for the next calls."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.failing_topics = set(topics or ())

    def _data_reset(self):
        with self._lock:
            self._logs = defaultdict(lambda: [[] for _ in range(self.partition_count)])
            self._offsets = {}
            self.publish_calls = []
        self.configure()

    def partition_for(self, key: str) -> int:
        return zlib.crc32(key.encode("utf-8")) % self.partition_count

    def publish(self, topic, key, value, headers=None):
        self.publish_calls.append((topic, key))
        if not self.should_succeed and (not self.failing_topics or topic in self.failing_topics):
            raise PublishError(self.failure_reason)

        with self._lock:
            partition = self.partition_for(key)
            log = self._logs[topic][partition]
            message = Message(
                topic=topic,
                partition=partition,
                offset=len(log),
                key=key,
                value=value,
                headers=dict(headers or {}),
            )
            log.append(message)

        logger.debug("Message appended", topic=topic, partition=partition, offset=message.offset, key=key)
        return message

    def partitions_for(self, topic):
        return list(range(self.partition_count))

    def poll(self, topic, group, partition, max_messages=50):
        with self._lock:
            if topic not in self._logs:
                return []
            start = self._offsets.get((group, topic, partition), 0)
            return list(self._logs[topic][partition][start : start + max_messages])

    def commit(self, group, message):
        with self._lock:
            position = (group, message.topic, message.partition)
            self._offsets[position] = max(self._offsets.get(position, 0), message.offset + 1)

    def topics(self):
        with self._lock:
            return sorted(self._logs)

    # Test helpers
    def messages(self, topic: str) -> list[Message]:
        """All messages of ``topic`` across partitions, in publish order per partition."""
        with self._lock:
            if topic not in self._logs:
                return []
            return [message for log in self._logs[topic] for message in log]

    def committed_offset(self, group: str, topic: str, partition: int) -> int:
        with self._lock:
            return self._offsets.get((group, topic, partition), 0)
