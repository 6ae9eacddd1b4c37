import json

import pytest


@pytest.fixture(autouse=True)
def _ctx(ordering_bed, reset_domain):
    from ordering.domain import ordering

    with ordering_bed.domain_context():
        yield
    reset_domain(ordering)


@pytest.fixture
def items():
    return json.dumps(
        [
            {"sku_id": "1", "quantity": 2, "unit_price": 5.0},
            {"sku_id": "2", "quantity": 1, "unit_price": 12.5},
        ]
    )
