"""Consumer worker: drives an ``IdempotentConsumer`` from the broker.

Each (topic, partition) channel is drained in offset order. Different channels
run in parallel on a thread pool. A retry message whose ``not-before`` time
has not arrived stops its channel until the next poll, which keeps the
remaining messages of that channel in order.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import structlog

from messaging.consumer import Outcome
from messaging.exceptions import PublishError, UndecodableMessage
from messaging.retry import DLT_SUFFIX, NOT_BEFORE, TARGET_GROUP, RetryChain, RetryRouter, utc_now

logger = structlog.get_logger(__name__)


@dataclass
class WorkerResult:
    applied: int = 0
    duplicates: int = 0
    retried: int = 0
    dead_lettered: int = 0
    deferred: int = 0
    skipped: int = 0

    def __add__(self, other):
        return WorkerResult(
            applied=self.applied + other.applied,
            duplicates=self.duplicates + other.duplicates,
            retried=self.retried + other.retried,
            dead_lettered=self.dead_lettered + other.dead_lettered,
            deferred=self.deferred + other.deferred,
            skipped=self.skipped + other.skipped,
        )


class ConsumerWorker:
    def __init__(self, consumer, broker, chain: RetryChain, workers: int = 1, batch_size: int = 50, clock=utc_now):
        self.consumer = consumer
        self.broker = broker
        self.chain = chain
        self.router = RetryRouter(broker, chain, group=consumer.group, clock=clock)
        self.workers = workers
        self.batch_size = batch_size
        self.clock = clock
        self._executor = None

    @property
    def group(self):
        return self.consumer.group

    def channels(self) -> list[tuple[str, int]]:
        channels = []
        for topic in self.consumer.topics:
            for channel_topic in [topic, *self.chain.retry_topics(topic)]:
                channels.extend((channel_topic, partition) for partition in self.broker.partitions_for(channel_topic))
        return channels

    def poll_once(self) -> WorkerResult:
        """Process every due message once across all channels."""
        channels = self.channels()
        if self.workers <= 1:
            results = [self._drain(topic, partition) for topic, partition in channels]
        else:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=f"{self.group}-worker")
            results = list(self._executor.map(lambda channel: self._drain(*channel), channels))

        total = WorkerResult()
        for result in results:
            total = total + result
        return total

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _is_due(self, message) -> bool:
        not_before = message.header(NOT_BEFORE)
        return not_before is None or float(not_before) <= self.clock().timestamp()

    def _drain(self, topic, partition) -> WorkerResult:
        result = WorkerResult()
        for message in self.broker.poll(topic, self.group, partition, self.batch_size):
            target = message.header(TARGET_GROUP)
            if target and target != self.group:
                # Retry traffic of another service sharing this topic
                self.broker.commit(self.group, message)
                result.skipped += 1
                continue

            if not self._is_due(message):
                result.deferred += 1
                break

            try:
                self._process(message, result)
            except PublishError as exc:
                logger.error(
                    "Could not route failed message, will redeliver",
                    topic=topic,
                    partition=partition,
                    offset=message.offset,
                    error=str(exc),
                )
                break

            self.broker.commit(self.group, message)
        return result

    def _process(self, message, result):
        try:
            outcome = self.consumer.handle(message)
        except UndecodableMessage as exc:
            self.router.route_poison(message, exc)
            result.dead_lettered += 1
        except Exception as exc:
            routed = self.router.route_failure(message, exc)
            if routed.topic.endswith(DLT_SUFFIX):
                result.dead_lettered += 1
            else:
                result.retried += 1
        else:
            if outcome is Outcome.DUPLICATE:
                result.duplicates += 1
            else:
                result.applied += 1
