import pytest
from protean.integrations.pytest import DomainFixture
from protean.utils.globals import current_domain


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering
    from ordering.utils.db import drop_db, setup_db

    bed = DomainFixture(ordering)
    bed.setup()
    setup_db(ordering)
    yield bed
    drop_db(ordering)
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    from ordering.catalogue.reader import reset_catalog_reader
    from ordering.gateway import reset_gateways
    from ordering.order.placement import reset_order_number_generator
    from ordering.settings import reset_settings

    with ordering_bed.domain_context():
        yield

        reset_gateways()
        reset_catalog_reader()
        reset_order_number_generator()
        reset_settings()

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


# ---------------------------------------------------------------------------
# Shared builders
# ---------------------------------------------------------------------------
OWNER_ID = "owner-001"

ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "street": "12 Analytical Row",
    "city": "London",
    "state": "LDN",
    "postal_code": "N1 9GU",
    "country": "GB",
}


@pytest.fixture()
def owner_id():
    return OWNER_ID


@pytest.fixture()
def address():
    return dict(ADDRESS)


@pytest.fixture()
def seed_product():
    """Persist a Product and return it. Keyword arguments go to Product.create."""
    from ordering.catalogue.product import Product

    def _seed(name="Widget", slug=None, price=20.0, stock_quantity=10, **kwargs):
        product = Product.create(
            name=name,
            slug=slug or name.lower().replace(" ", "-"),
            price=price,
            stock_quantity=stock_quantity,
            **kwargs,
        )
        current_domain.repository_for(Product).add(product)
        return current_domain.repository_for(Product).get(product.id)

    return _seed


@pytest.fixture()
def place():
    """Validate and place a checkout for one or more (product, quantity) pairs."""
    from ordering.checkout.validation import CartLine, validate_checkout
    from ordering.order.placement import place_order

    def _place(*lines, owner=OWNER_ID):
        checkout = validate_checkout(
            owner_id=owner,
            lines=[
                CartLine(product_id=str(product.id), quantity=quantity, unit_price=product.price)
                for product, quantity in lines
            ],
            shipping_address=dict(ADDRESS),
            same_as_shipping=True,
        )
        return place_order(checkout)

    return _place


@pytest.fixture()
def fake_stripe():
    from ordering.gateway import set_gateway
    from ordering.gateway.fake_adapter import FakeGateway

    gateway = FakeGateway("stripe")
    set_gateway("stripe", gateway)
    return gateway


@pytest.fixture()
def fake_paypal():
    from ordering.gateway import set_gateway
    from ordering.gateway.fake_adapter import FakeGateway

    gateway = FakeGateway("paypal")
    set_gateway("paypal", gateway)
    return gateway
