"""Application tests for checkout validation against the catalog."""

from decimal import Decimal

import pytest
from ordering.checkout.validation import CartLine, validate_checkout
from ordering.errors import CheckoutRejected, TotalMismatch
from protean.exceptions import ValidationError


def _validate(lines, address, **kwargs):
    kwargs.setdefault("same_as_shipping", True)
    return validate_checkout(owner_id="owner-001", lines=lines, shipping_address=address, **kwargs)


class TestValidCheckout:
    def test_recomputes_totals_from_catalog(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5)
        shirt = seed_product(name="Shirt", price=30.0)

        checkout = _validate(
            [
                CartLine(product_id=str(mug.id), quantity=2, unit_price=12.5),
                CartLine(product_id=str(shirt.id), quantity=1, unit_price="30.00"),
            ],
            address,
        )

        assert checkout.pricing.subtotal == Decimal("55.00")
        assert checkout.pricing.tax == Decimal("4.40")
        assert checkout.pricing.shipping == Decimal("9.99")
        assert checkout.pricing.total == Decimal("69.39")
        assert [line.line_total for line in checkout.lines] == [Decimal("25.00"), Decimal("30.00")]

    def test_price_within_one_cent_uses_catalog_price(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5)
        checkout = _validate([CartLine(product_id=str(mug.id), quantity=1, unit_price=12.49)], address)
        assert checkout.lines[0].unit_price == Decimal("12.50")

    def test_snapshot_prefers_variant_fields(self, seed_product, address):
        shirt = seed_product(
            name="Shirt",
            price=30.0,
            primary_image_url="https://cdn.test/shirt.png",
            variants=[
                {
                    "name": "Size",
                    "value": "XL",
                    "sku": "SHIRT-XL",
                    "price_override": 34.0,
                    "image": "https://cdn.test/shirt-xl.png",
                }
            ],
        )
        variant = shirt.variants[0]

        checkout = _validate(
            [CartLine(product_id=str(shirt.id), variant_id=str(variant.id), quantity=1, unit_price=34.0)],
            address,
        )

        line = checkout.lines[0]
        assert line.unit_price == Decimal("34.00")
        assert line.product_image == "https://cdn.test/shirt-xl.png"
        assert line.variant_value == "XL"
        assert line.sku == "SHIRT-XL"
        assert line.product_slug == "shirt"

    def test_billing_copies_shipping_when_same(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5)
        checkout = _validate([CartLine(product_id=str(mug.id), quantity=1, unit_price=12.5)], address)
        assert checkout.billing_address == checkout.shipping_address

    def test_matching_client_subtotal_is_accepted(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5)
        checkout = _validate(
            [CartLine(product_id=str(mug.id), quantity=2, unit_price=12.5)],
            address,
            client_subtotal=25.0,
        )
        assert checkout.pricing.subtotal == Decimal("25.00")


class TestRejectedCheckout:
    def test_tampered_price_is_rejected(self, seed_product, address):
        item = seed_product(name="Lamp", price=20.0)

        with pytest.raises(CheckoutRejected) as exc:
            _validate([CartLine(product_id=str(item.id), quantity=1, unit_price=1.0)], address)

        assert exc.value.code == "PRICE_MISMATCH"
        [problem] = exc.value.errors
        assert problem.expected == Decimal("20.00")
        assert problem.to_dict()["line"] == 0

    def test_every_offending_line_is_reported(self, seed_product, address):
        good = seed_product(name="Good", price=10.0)
        scarce = seed_product(name="Scarce", price=10.0, stock_quantity=1)
        pricey = seed_product(name="Pricey", price=50.0)

        with pytest.raises(CheckoutRejected) as exc:
            _validate(
                [
                    CartLine(product_id=str(good.id), quantity=1, unit_price=10.0),
                    CartLine(product_id="no-such-product", quantity=1, unit_price=5.0),
                    CartLine(product_id=str(scarce.id), quantity=3, unit_price=10.0),
                    CartLine(product_id=str(pricey.id), quantity=1, unit_price=5.0),
                ],
                address,
            )

        assert exc.value.code == "CHECKOUT_REJECTED"
        assert [(e.code, e.to_dict()["line"]) for e in exc.value.errors] == [
            ("NOT_FOUND", 1),
            ("OUT_OF_STOCK", 2),
            ("PRICE_MISMATCH", 3),
        ]

    def test_stock_check_sums_lines_of_same_product(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5, stock_quantity=3)
        lines = [
            CartLine(product_id=str(mug.id), quantity=2, unit_price=12.5),
            CartLine(product_id=str(mug.id), quantity=2, unit_price=12.5),
        ]
        with pytest.raises(CheckoutRejected) as exc:
            _validate(lines, address)
        assert exc.value.code == "OUT_OF_STOCK"

    def test_product_flagged_out_of_stock(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5, stock_quantity=None, in_stock=False)
        with pytest.raises(CheckoutRejected) as exc:
            _validate([CartLine(product_id=str(mug.id), quantity=1, unit_price=12.5)], address)
        assert exc.value.code == "OUT_OF_STOCK"

    def test_unknown_variant(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5)
        with pytest.raises(CheckoutRejected) as exc:
            _validate([CartLine(product_id=str(mug.id), variant_id="nope", quantity=1, unit_price=12.5)], address)
        assert exc.value.code == "NOT_FOUND"

    def test_client_subtotal_mismatch(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5)
        with pytest.raises(TotalMismatch):
            _validate(
                [CartLine(product_id=str(mug.id), quantity=2, unit_price=12.5)],
                address,
                client_subtotal=20.0,
            )


class TestMalformedCheckout:
    def test_empty_cart(self, address):
        with pytest.raises(ValidationError) as exc:
            _validate([], address)
        assert "items" in exc.value.messages

    def test_zero_quantity(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5)
        with pytest.raises(ValidationError):
            _validate([CartLine(product_id=str(mug.id), quantity=0, unit_price=12.5)], address)

    def test_missing_owner(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5)
        with pytest.raises(ValidationError) as exc:
            validate_checkout(
                owner_id=None,
                lines=[CartLine(product_id=str(mug.id), quantity=1, unit_price=12.5)],
                shipping_address=address,
                same_as_shipping=True,
            )
        assert "owner_id" in exc.value.messages

    def test_address_errors_are_prefixed(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5)
        del address["postal_code"]
        with pytest.raises(ValidationError) as exc:
            _validate([CartLine(product_id=str(mug.id), quantity=1, unit_price=12.5)], address)
        assert "shipping_address.postal_code" in exc.value.messages

    def test_billing_required_unless_same_as_shipping(self, seed_product, address):
        mug = seed_product(name="Mug", price=12.5)
        with pytest.raises(ValidationError) as exc:
            _validate(
                [CartLine(product_id=str(mug.id), quantity=1, unit_price=12.5)],
                address,
                same_as_shipping=False,
            )
        assert "billing_address" in exc.value.messages
