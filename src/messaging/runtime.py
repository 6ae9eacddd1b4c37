"""Wiring of the messaging components for one service."""

import structlog

from messaging.broker import get_broker
from messaging.config import MessagingSettings
from messaging.dead_letter import DeadLetterAdmin, DeadLetterHandler
from messaging.ledger import IdempotencyLedger
from messaging.outbox import Outbox
from messaging.relay import OutboxRelay
from messaging.retry import RetryChain
from messaging.scheduler import FixedRateTask
from messaging.worker import ConsumerWorker

logger = structlog.get_logger(__name__)


class ServiceRuntime:
    """Builds the relay, consumer worker and dead-letter handler of a service.

    The broker is resolved lazily so tests can swap or reset it between runs.
    """

    def __init__(self, domain, store, registry, consumer, settings=None, broker=None):
        self.domain = domain
        self.store = store
        self.registry = registry
        self.consumer = consumer
        self.settings = settings or MessagingSettings.from_env()
        self._broker = broker
        self._jobs = []
        self._relays = []
        self._workers = []

    @property
    def name(self):
        return self.domain.name

    @property
    def broker(self):
        return self._broker or get_broker()

    @property
    def outbox(self):
        return Outbox(self.store, self.registry)

    @property
    def ledger(self):
        return IdempotencyLedger(self.store, group=self.consumer.group)

    @property
    def dead_letters(self):
        return DeadLetterAdmin(self.domain, self.store)

    def retry_chain(self) -> RetryChain:
        return RetryChain.from_settings(self.settings)

    def relay(self, **overrides) -> OutboxRelay:
        options = {
            "batch_size": self.settings.relay_batch_size,
            "lease_seconds": self.settings.relay_lease_seconds,
        }
        options.update(overrides)
        return OutboxRelay(self.domain, self.store, self.broker, self.registry, **options)

    def worker(self, **overrides) -> ConsumerWorker:
        options = {
            "workers": self.settings.consumer_workers,
            "batch_size": self.settings.consumer_batch_size,
        }
        options.update(overrides)
        return ConsumerWorker(self.consumer, self.broker, self.retry_chain(), **options)

    def dead_letter_handler(self) -> DeadLetterHandler:
        return DeadLetterHandler(
            self.domain,
            self.store,
            self.broker,
            self.consumer.topics,
            group=self.consumer.group,
            batch_size=self.settings.consumer_batch_size,
        )

    def schedule(self, name: str, func, interval: float):
        """Register a periodic job that runs inside this service's domain context."""
        self._jobs.append((name, func, interval))
        return func

    def _in_context(self, func):
        def run():
            with self.domain.domain_context():
                return func()

        return run

    def tasks(self) -> list[FixedRateTask]:
        """All periodic tasks of this service, ready to be gathered by a runner."""
        self.registry.validate(self.consumer.topics)

        relay = self.relay()
        worker = self.worker()
        self._relays.append(relay)
        self._workers.append(worker)
        tasks = [
            FixedRateTask(f"{self.name}.relay", relay.poll_once, self.settings.relay_interval_ms / 1000),
            FixedRateTask(f"{self.name}.consumer", worker.poll_once, self.settings.consumer_interval_ms / 1000),
            FixedRateTask(
                f"{self.name}.dead-letters",
                self.dead_letter_handler().poll_once,
                self.settings.consumer_interval_ms / 1000,
            ),
        ]
        tasks.extend(FixedRateTask(f"{self.name}.{name}", self._in_context(func), interval) for name, func, interval in self._jobs)

        logger.info("Service runtime prepared", service=self.name, topics=self.consumer.topics, tasks=len(tasks))
        return tasks

    def shutdown(self):
        """Release the relay lease and stop the worker pools started by ``tasks``."""
        for relay in self._relays:
            relay.release_lease()
        for worker in self._workers:
            worker.close()
        self._relays.clear()
        self._workers.clear()
        logger.info("Service runtime stopped", service=self.name)
