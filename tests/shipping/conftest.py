import pytest


@pytest.fixture(autouse=True)
def _ctx(shipping_bed, reset_domain):
    from shipping.domain import shipping

    with shipping_bed.domain_context():
        yield
    reset_domain(shipping)


@pytest.fixture
def pending_topics():
    from shipping.bus import outbox

    def _pending_topics():
        return [record.event_type for record in outbox.list_pending()]

    return _pending_topics
