"""Messaging wiring of the Inventory service: outbox, consumer and runtime."""

from messaging.consumer import IdempotentConsumer
from messaging.outbox import Outbox
from messaging.runtime import ServiceRuntime
from messaging.store import MessageStore
from shared.events.catalog import register_contracts, registry

from inventory.domain import inventory

register_contracts(inventory)

store = MessageStore.register(inventory)
outbox = Outbox(store, registry)
consumer = IdempotentConsumer(inventory, store, registry, group="inventory")
runtime = ServiceRuntime(inventory, store, registry, consumer)
