"""Pricing engine shared by the checkout preview and the checkout authority.

All arithmetic is done in Decimal and quantized to cents. Callers pass
(unit_price, quantity) pairs; unit prices may be Decimal, str, int or float.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ordering.settings import get_settings

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Convert a numeric value to a cent-quantized Decimal."""
    if isinstance(value, Decimal):
        amount = value
    else:
        # str() keeps floats like 10.1 from turning into 10.0999...
        amount = Decimal(str(value))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingSummary:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    free_shipping_remaining: Decimal
    qualifies_for_free_shipping: bool

    def as_floats(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "shipping": float(self.shipping),
            "total": float(self.total),
            "free_shipping_remaining": float(self.free_shipping_remaining),
            "qualifies_for_free_shipping": self.qualifies_for_free_shipping,
        }


def line_total(unit_price, quantity: int) -> Decimal:
    return to_money(to_money(unit_price) * quantity)


def calculate_totals(
    lines,
    tax_rate: Decimal | None = None,
    free_shipping_threshold: Decimal | None = None,
    flat_shipping_fee: Decimal | None = None,
) -> PricingSummary:
    """Compute subtotal, tax, shipping and total for (unit_price, quantity) pairs.

    Policy constants default to the configured settings. An empty cart still
    pays the flat shipping fee, matching the storefront's cart display.
    """
    settings = get_settings()
    tax_rate = settings.tax_rate if tax_rate is None else Decimal(tax_rate)
    threshold = settings.free_shipping_threshold if free_shipping_threshold is None else Decimal(free_shipping_threshold)
    flat_fee = settings.flat_shipping_fee if flat_shipping_fee is None else Decimal(flat_shipping_fee)

    subtotal = sum((line_total(price, quantity) for price, quantity in lines), Decimal("0.00"))
    subtotal = to_money(subtotal)
    tax = to_money(subtotal * tax_rate)
    qualifies = subtotal >= threshold
    shipping = Decimal("0.00") if qualifies else to_money(flat_fee)
    total = to_money(subtotal + tax + shipping)
    remaining = Decimal("0.00") if qualifies else to_money(threshold - subtotal)

    return PricingSummary(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=total,
        free_shipping_remaining=remaining,
        qualifies_for_free_shipping=qualifies,
    )


def within_epsilon(claimed, expected, epsilon: Decimal | None = None) -> bool:
    """True when two money amounts agree to within the configured epsilon."""
    if epsilon is None:
        epsilon = get_settings().price_epsilon
    return abs(Decimal(str(claimed)) - Decimal(str(expected))) <= epsilon
