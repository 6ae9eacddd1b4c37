"""Fixtures for cross-service saga tests.

All four services run in-process against the in-memory broker. The
``fulfillment`` fixture drives every relay and consumer worker until no
service has anything left to do, which stands in for the background tasks
``server.py`` runs in production.
"""

import pytest
from protean import current_domain

SERVICES = ("ordering", "payments", "inventory", "shipping")


@pytest.fixture(scope="session")
def runtimes(ordering_bed, payments_bed, inventory_bed, shipping_bed):
    from inventory.bus import runtime as inventory_runtime
    from ordering.bus import runtime as ordering_runtime
    from payments.bus import runtime as payments_runtime
    from shipping.bus import runtime as shipping_runtime

    return {
        "ordering": ordering_runtime,
        "payments": payments_runtime,
        "inventory": inventory_runtime,
        "shipping": shipping_runtime,
    }


@pytest.fixture(autouse=True)
def _reset_services(runtimes, reset_domain):
    yield
    for runtime in runtimes.values():
        reset_domain(runtime.domain)


class Fulfillment:
    def __init__(self, runtimes, clock):
        self.runtimes = runtimes
        self.clock = clock
        self.relays = {name: runtime.relay(clock=clock) for name, runtime in runtimes.items()}
        self.workers = {name: runtime.worker(workers=1, clock=clock) for name, runtime in runtimes.items()}
        self.dead_letter_handlers = {name: runtime.dead_letter_handler() for name, runtime in runtimes.items()}

    def process(self, service, command):
        with self.runtimes[service].domain.domain_context():
            return current_domain.process(command, asynchronous=False)

    def call(self, service, func, *args, **kwargs):
        with self.runtimes[service].domain.domain_context():
            return func(*args, **kwargs)

    def get(self, service, aggregate_cls, identifier):
        with self.runtimes[service].domain.domain_context():
            return current_domain.repository_for(aggregate_cls).get(identifier)

    def settle(self, max_rounds=20):
        """Relay and consume until a full round moves nothing."""
        for _ in range(max_rounds):
            moved = 0
            for relay in self.relays.values():
                moved += relay.poll_once().published
            for worker in self.workers.values():
                result = worker.poll_once()
                moved += result.applied + result.duplicates + result.retried + result.dead_lettered
            if not moved:
                return
        raise AssertionError("Services did not settle")

    def settle_with_retries(self, delays):
        self.settle()
        for delay in delays:
            self.clock.advance(delay)
            self.settle()
        for handler in self.dead_letter_handlers.values():
            handler.poll_once()


@pytest.fixture
def fulfillment(runtimes, clock):
    return Fulfillment(runtimes, clock)


@pytest.fixture
def stock(fulfillment):
    from inventory.stock.stock import RegisterSku, SkuStock

    class Stock:
        def register(self, sku_id, quantity):
            fulfillment.process("inventory", RegisterSku(sku_id=sku_id, initial_quantity=quantity))

        def __getitem__(self, sku_id):
            return fulfillment.get("inventory", SkuStock, sku_id).stock_qty

    return Stock()


@pytest.fixture
def place_order(fulfillment):
    import json

    from ordering.order.creation import PlaceOrder

    def _place(order_id="100", sku_id="1", quantity=2, unit_price=5.0):
        items = json.dumps([{"sku_id": sku_id, "quantity": quantity, "unit_price": unit_price}])
        return fulfillment.process("ordering", PlaceOrder(order_id=order_id, customer_id="cust-001", items=items))

    return _place
