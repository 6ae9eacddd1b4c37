import pytest


@pytest.fixture(autouse=True)
def _ctx(payments_bed, reset_domain):
    from payments.domain import payments

    with payments_bed.domain_context():
        yield
    reset_domain(payments)
