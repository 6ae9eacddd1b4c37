"""Idempotent consumer: applies each event at most once per service.

Handlers are plain functions registered per topic::

    @consumer.subscribe(Topics.PAYMENT_CONFIRMED, event_type=PaymentConfirmed, key=lambda e: e.payment_id)
    def on_payment_confirmed(event):
        ...
        return "order marked paid"

The handler runs inside the same unit of work as the ledger write, so its
domain changes, any outbox rows it appends and the SUCCESS entry commit
together or not at all.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import structlog
from protean.core.unit_of_work import UnitOfWork

from messaging.exceptions import UndecodableMessage
from messaging.ledger import IdempotencyLedger
from messaging.retry import RetryChain

logger = structlog.get_logger(__name__)


class Outcome(Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class Subscription:
    topic: str
    event_type: type
    key: Callable[[Any], Any]
    handler: Callable[[Any], str | None]


class IdempotentConsumer:
    def __init__(self, domain, store, registry, group: str):
        self.domain = domain
        self.store = store
        self.registry = registry
        self.group = group
        self.ledger = IdempotencyLedger(store, group=group)
        self._subscriptions: dict[str, Subscription] = {}

    def subscribe(self, topic: str, event_type, key):
        """Register the decorated function as the handler of ``topic``."""

        def decorator(handler):
            if topic in self._subscriptions:
                raise ValueError(f"Consumer group `{self.group}` already handles topic `{topic}`")
            self._subscriptions[topic] = Subscription(topic=topic, event_type=event_type, key=key, handler=handler)
            return handler

        return decorator

    @property
    def topics(self) -> list[str]:
        return sorted(self._subscriptions)

    def subscription_for(self, topic: str) -> Subscription:
        return self._subscriptions[topic]

    def decode(self, message):
        """Return the subscription and event carried by ``message``."""
        topic = RetryChain.original_topic(message)
        subscription = self._subscriptions.get(topic)
        if subscription is None:
            raise UndecodableMessage(f"Consumer group `{self.group}` has no handler for topic `{topic}`")

        event = self.registry.decode(message.header("type"), message.value)
        if not isinstance(event, subscription.event_type):
            raise UndecodableMessage(
                f"Topic `{topic}` expects {subscription.event_type.__name__}, got {type(event).__name__}",
                type_tag=message.header("type"),
            )
        return subscription, event

    def handle(self, message) -> Outcome:
        """Apply ``message`` unless its event was already applied.

        Raises ``UndecodableMessage`` for poison messages and re-raises any
        handler failure after recording it in the ledger.
        """
        with self.domain.domain_context():
            subscription, event = self.decode(message)
            event_type = message.header("type")
            event_key = str(subscription.key(event))
            log = logger.bind(group=self.group, event_type=event_type, event_key=event_key, topic=message.topic)

            try:
                with UnitOfWork():
                    entry = self.ledger.find(event_type, event_key)
                    if entry is not None and entry.is_settled:
                        self.ledger.record_duplicate(entry)
                        log.info("Duplicate event skipped", duplicate_count=entry.duplicate_count)
                        return Outcome.DUPLICATE

                    result = subscription.handler(event) or "processed"
                    self.ledger.record_success(entry, event_type, event_key, message.value, result)
            except Exception as exc:
                with UnitOfWork():
                    self.ledger.record_failure(event_type, event_key, message.value, f"{type(exc).__name__}: {exc}")
                log.warning("Event handling failed", error=str(exc), attempt=RetryChain.attempt_of(message))
                raise

            log.info("Event applied", result=result)
            return Outcome.APPLIED
