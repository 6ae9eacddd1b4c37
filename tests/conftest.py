import itertools
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the test configuration before any domain is imported."""
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ["BROKER_ADAPTER"] = "memory"


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def reset_domain():
    """Return a function that clears every provider of a domain."""

    def _reset(domain):
        with domain.domain_context():
            for _, provider in domain.providers.items():
                provider._data_reset()

    return _reset


# ---------------------------------------------------------------------------
# Service domains
# ---------------------------------------------------------------------------
@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session")
def payments_bed():
    from payments.domain import payments

    bed = DomainFixture(payments)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session")
def inventory_bed():
    from inventory.domain import inventory

    bed = DomainFixture(inventory)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session")
def shipping_bed():
    from shipping.domain import shipping

    bed = DomainFixture(shipping)
    bed.setup()
    yield bed
    bed.teardown()


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------
class FakeClock:
    """Controllable UTC clock for retry scheduling and relay leases."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self):
        return self.current

    def advance(self, seconds):
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def broker():
    from messaging.broker import get_broker

    return get_broker()


@pytest.fixture(autouse=True)
def _reset_broker():
    yield

    from messaging.broker import get_broker

    get_broker()._data_reset()


@pytest.fixture
def publish(broker):
    """Publish an event the way the relay would, bypassing the outbox."""
    from shared.events.catalog import registry

    def _publish(event, key):
        return broker.publish(registry.topic_for(event), key, registry.encode(event), {"type": registry.tag_for(event)})

    return _publish


@pytest.fixture
def message_for():
    """Build the broker message the relay would publish for ``event``."""
    from messaging.broker.port import Message
    from shared.events.catalog import registry

    offsets = itertools.count()

    def _message_for(event, key="test-key"):
        return Message(
            topic=registry.topic_for(event),
            partition=0,
            offset=next(offsets),
            key=key,
            value=registry.encode(event),
            headers={"type": registry.tag_for(event)},
        )

    return _message_for
