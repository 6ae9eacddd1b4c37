import pytest


@pytest.fixture(autouse=True)
def _ctx(inventory_bed, reset_domain):
    from inventory.domain import inventory

    with inventory_bed.domain_context():
        yield
    reset_domain(inventory)


@pytest.fixture
def register_sku():
    from inventory.stock.stock import RegisterSku
    from protean import current_domain

    def _register(sku_id, quantity):
        return current_domain.process(RegisterSku(sku_id=sku_id, name=f"SKU {sku_id}", initial_quantity=quantity), asynchronous=False)

    return _register


@pytest.fixture
def stock_of():
    from inventory.stock.stock import SkuStock
    from protean import current_domain

    def _stock_of(sku_id):
        return current_domain.repository_for(SkuStock).get(sku_id).stock_qty

    return _stock_of
