"""Checkout validation: turn a client cart into a server-priced checkout.

Validation is read-only. Every line is checked against the catalog snapshot
and every problem is collected, so the client can fix the whole cart in one
round trip. The resulting ValidatedCheckout carries only server-computed
prices and is the sole input accepted by order placement.
"""

from dataclasses import dataclass
from decimal import Decimal

import structlog
from protean.exceptions import ValidationError

from ordering.catalogue.reader import get_catalog_reader
from ordering.errors import CheckoutRejected, NotFound, OutOfStock, PriceMismatch, TotalMismatch
from ordering.order.order import Address
from ordering.pricing import PricingSummary, calculate_totals, line_total, to_money, within_epsilon
from ordering.settings import get_settings

logger = structlog.get_logger(__name__)

_ADDRESS_FIELDS = (
    "first_name",
    "last_name",
    "company",
    "street",
    "city",
    "state",
    "postal_code",
    "country",
    "phone",
)


@dataclass(frozen=True)
class CartLine:
    """A cart line as submitted by the client. ``unit_price`` is only a claim."""

    product_id: str
    quantity: int
    unit_price: Decimal | float | str
    variant_id: str | None = None


@dataclass(frozen=True)
class ValidatedLine:
    product_id: str
    variant_id: str | None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    product_name: str
    product_slug: str | None = None
    product_image: str | None = None
    variant_name: str | None = None
    variant_value: str | None = None
    sku: str | None = None

    def as_item_data(self) -> dict:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
            "line_total": float(self.line_total),
            "product_name": self.product_name,
            "product_slug": self.product_slug,
            "product_image": self.product_image,
            "variant_name": self.variant_name,
            "variant_value": self.variant_value,
            "sku": self.sku,
        }


@dataclass(frozen=True)
class ValidatedCheckout:
    owner_id: str
    lines: tuple[ValidatedLine, ...]
    shipping_address: dict
    billing_address: dict
    pricing: PricingSummary
    notes: str | None = None
    currency: str = "USD"


def _clean_address(data, field_name):
    if data is None:
        raise ValidationError({field_name: [f"{field_name.replace('_', ' ').capitalize()} is required"]})
    address = {key: data.get(key) for key in _ADDRESS_FIELDS if data.get(key) is not None}
    try:
        Address(**address)
    except ValidationError as exc:
        raise ValidationError({f"{field_name}.{key}": value for key, value in exc.messages.items()}) from exc
    return address


def validate_checkout(
    owner_id,
    lines,
    shipping_address,
    billing_address=None,
    same_as_shipping=False,
    notes=None,
    client_subtotal=None,
) -> ValidatedCheckout:
    """Validate a cart against the catalog and recompute its totals.

    Raises:
        ValidationError: the request itself is malformed (no owner, empty cart,
            bad quantity, missing address fields).
        CheckoutRejected: one or more lines reference unknown products, lack
            stock, or claim a stale price. ``errors`` lists every problem.
        TotalMismatch: the client subtotal disagrees with the server's.
    """
    if not owner_id:
        raise ValidationError({"owner_id": ["Owner identity is required"]})
    if not lines:
        raise ValidationError({"items": ["Cart is empty"]})
    bad_quantities = [index for index, line in enumerate(lines) if line.quantity is None or line.quantity < 1]
    if bad_quantities:
        raise ValidationError({"items": [f"Line {index} must have a quantity of at least 1" for index in bad_quantities]})

    shipping = _clean_address(shipping_address, "shipping_address")
    billing = dict(shipping) if same_as_shipping else _clean_address(billing_address, "billing_address")

    reader = get_catalog_reader()

    requested = {}
    for line in lines:
        requested[str(line.product_id)] = requested.get(str(line.product_id), 0) + line.quantity

    problems = []
    validated = []
    for index, line in enumerate(lines):
        product_id = str(line.product_id)
        product = reader.get_product(product_id)
        if product is None:
            problems.append(NotFound("product", product_id, line=index))
            continue

        variant = None
        if line.variant_id:
            variant = reader.get_variant(product_id, str(line.variant_id))
            if variant is None:
                problems.append(NotFound("variant", str(line.variant_id), line=index))
                continue

        if not product.in_stock or (variant is not None and not variant.in_stock):
            problems.append(
                OutOfStock(product_id, requested=line.quantity, available=0, variant_id=line.variant_id, line=index)
            )
        elif product.stock_quantity is not None and product.stock_quantity < requested[product_id]:
            problems.append(
                OutOfStock(
                    product_id,
                    requested=requested[product_id],
                    available=product.stock_quantity,
                    variant_id=line.variant_id,
                    line=index,
                )
            )

        if variant is not None and variant.price_override is not None:
            authoritative = to_money(variant.price_override)
        else:
            authoritative = to_money(product.price)

        if not within_epsilon(line.unit_price, authoritative):
            problems.append(
                PriceMismatch(
                    product_id,
                    claimed=line.unit_price,
                    expected=authoritative,
                    variant_id=line.variant_id,
                    line=index,
                )
            )

        validated.append(
            ValidatedLine(
                product_id=product_id,
                variant_id=str(line.variant_id) if line.variant_id else None,
                quantity=line.quantity,
                unit_price=authoritative,
                line_total=line_total(authoritative, line.quantity),
                product_name=product.name,
                product_slug=product.slug,
                product_image=(variant.image if variant is not None and variant.image else product.primary_image_url),
                variant_name=variant.name if variant is not None else None,
                variant_value=variant.value if variant is not None else None,
                sku=variant.sku if variant is not None else None,
            )
        )

    if problems:
        logger.warning(
            "checkout_rejected",
            owner_id=str(owner_id),
            problems=[problem.code for problem in problems],
        )
        raise CheckoutRejected(problems)

    pricing = calculate_totals((line.unit_price, line.quantity) for line in validated)

    if client_subtotal is not None and not within_epsilon(client_subtotal, pricing.subtotal):
        logger.warning(
            "checkout_total_mismatch",
            owner_id=str(owner_id),
            claimed=str(client_subtotal),
            expected=str(pricing.subtotal),
        )
        raise TotalMismatch(claimed=client_subtotal, expected=pricing.subtotal)

    logger.info(
        "checkout_validated",
        owner_id=str(owner_id),
        line_count=len(validated),
        total=str(pricing.total),
    )
    return ValidatedCheckout(
        owner_id=str(owner_id),
        lines=tuple(validated),
        shipping_address=shipping,
        billing_address=billing,
        pricing=pricing,
        notes=notes,
        currency=get_settings().currency,
    )
