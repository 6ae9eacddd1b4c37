"""Messaging wiring of the Shipping service: outbox, consumer and runtime."""

from messaging.consumer import IdempotentConsumer
from messaging.outbox import Outbox
from messaging.runtime import ServiceRuntime
from messaging.store import MessageStore
from shared.events.catalog import register_contracts, registry

from shipping.domain import shipping

register_contracts(shipping)

store = MessageStore.register(shipping)
outbox = Outbox(store, registry)
consumer = IdempotentConsumer(shipping, store, registry, group="shipping")
runtime = ServiceRuntime(shipping, store, registry, consumer)
