"""Messaging wiring of the Ordering service: outbox, consumer and runtime."""

from messaging.consumer import IdempotentConsumer
from messaging.outbox import Outbox
from messaging.runtime import ServiceRuntime
from messaging.store import MessageStore
from shared.events.catalog import register_contracts, registry

from ordering.domain import ordering

register_contracts(ordering)

store = MessageStore.register(ordering)
outbox = Outbox(store, registry)
consumer = IdempotentConsumer(ordering, store, registry, group="ordering")
runtime = ServiceRuntime(ordering, store, registry, consumer)
