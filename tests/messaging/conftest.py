"""Messaging components are exercised inside the ordering domain."""

import pytest


@pytest.fixture(autouse=True)
def _ctx(ordering_bed, reset_domain):
    from ordering.domain import ordering

    with ordering_bed.domain_context():
        yield
    reset_domain(ordering)


@pytest.fixture
def store():
    from ordering.bus import store

    return store


@pytest.fixture
def registry():
    from shared.events.catalog import registry

    return registry
