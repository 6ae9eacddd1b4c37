"""Messaging wiring of the Payments service: outbox, consumer and runtime."""

from messaging.consumer import IdempotentConsumer
from messaging.outbox import Outbox
from messaging.runtime import ServiceRuntime
from messaging.store import MessageStore
from shared.events.catalog import register_contracts, registry

from payments.domain import payments

register_contracts(payments)

store = MessageStore.register(payments)
outbox = Outbox(store, registry)
consumer = IdempotentConsumer(payments, store, registry, group="payments")
runtime = ServiceRuntime(payments, store, registry, consumer)
