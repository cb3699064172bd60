"""Order placement: create the order and decrement stock in one unit of work.

``place_order`` is the only way an Order comes into existence. It dispatches
the PlaceOrder command, whose handler runs inside the command's unit of work:

1. generate a unique order number;
2. reload every product touched by the checkout and decrement its stock
   conditionally (``Product.decrement_stock`` refuses to go below zero);
3. add the order and the updated products to the same unit of work.

Nothing is written until every decrement has succeeded, and a failure
anywhere discards the whole unit of work. Product writes are versioned, so a
concurrent checkout that consumed the same stock first makes ours fail with
ExpectedVersionError; the command is then re-run against fresh state, which
either succeeds or raises OutOfStock. Storage failures at commit, such as
two checkouts drawing the same order number, are retried the same way.
"""

import json
import secrets
import string
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import DatabaseError, ExpectedVersionError, ObjectNotFoundError, TransactionError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.catalogue.product import Product
from ordering.domain import ordering
from ordering.errors import NotFound, TransientStorageError
from ordering.order.order import Order
from ordering.settings import get_settings

logger = structlog.get_logger(__name__)

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number(now: datetime | None = None) -> str:
    """Return ``YYYYMMDDHHMMSS-XXXX`` from the UTC clock and a random suffix."""
    now = now or datetime.now(UTC)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(4))
    return f"{now.strftime('%Y%m%d%H%M%S')}-{suffix}"


_order_number_generator = generate_order_number


def set_order_number_generator(generator) -> None:
    """Swap the order number generator (tests use this to force collisions)."""
    global _order_number_generator
    _order_number_generator = generator


def reset_order_number_generator() -> None:
    global _order_number_generator
    _order_number_generator = generate_order_number


def order_number_taken(order_number) -> bool:
    repo = current_domain.repository_for(Order)
    return bool(repo._dao.query.filter(order_number=order_number).all().items)


def _unique_order_number() -> str:
    attempts = get_settings().order_number_attempts
    for _ in range(attempts):
        candidate = _order_number_generator()
        if not order_number_taken(candidate):
            return candidate
        logger.warning("order_number_collision", order_number=candidate)
    raise TransientStorageError("generate_order_number", attempts=attempts)


def _is_unique_violation(exc) -> bool:
    """True when a storage failure was the database rejecting a duplicate key."""
    original = getattr(exc, "original_exception", None)
    name = type(original).__name__ if original is not None else (exc.extra_info or {}).get("original_exception")
    return name in ("IntegrityError", "UniqueViolation")


@ordering.command(part_of="Order")
class PlaceOrder:
    owner_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of server-priced item dicts
    shipping_address = Text(required=True)  # JSON: address dict
    billing_address = Text(required=True)  # JSON: address dict
    subtotal = Float(required=True)
    tax = Float(required=True)
    shipping = Float(required=True)
    total = Float(required=True)
    currency = String(max_length=3, default="USD")
    notes = Text()


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items)

        quantities = {}
        for item in items_data:
            quantities[item["product_id"]] = quantities.get(item["product_id"], 0) + item["quantity"]

        order_number = _unique_order_number()

        product_repo = current_domain.repository_for(Product)
        products = []
        for product_id, quantity in quantities.items():
            try:
                product = product_repo.get(product_id)
            except ObjectNotFoundError as exc:
                raise NotFound("product", product_id) from exc
            product.decrement_stock(quantity, order_number=order_number)
            products.append(product)

        order = Order.create(
            order_number=order_number,
            owner_id=command.owner_id,
            items_data=items_data,
            shipping_address=json.loads(command.shipping_address),
            billing_address=json.loads(command.billing_address),
            pricing={
                "subtotal": command.subtotal,
                "tax": command.tax,
                "shipping": command.shipping,
                "total": command.total,
            },
            notes=command.notes,
            currency=command.currency or "USD",
        )

        for product in products:
            if product.tracks_stock:
                product_repo.add(product)
        current_domain.repository_for(Order).add(order)
        return str(order.id)


def place_order(checkout) -> Order:
    """Persist a ValidatedCheckout as a PENDING order and reserve its stock.

    Raises OutOfStock when the stock was consumed since validation, NotFound
    when a product disappeared, and TransientStorageError once version
    conflicts or storage failures (including an order number that lost a
    race to the unique index at commit) have exhausted the retry budget.
    """
    pricing = checkout.pricing
    payload = {
        "owner_id": checkout.owner_id,
        "items": json.dumps([line.as_item_data() for line in checkout.lines]),
        "shipping_address": json.dumps(checkout.shipping_address),
        "billing_address": json.dumps(checkout.billing_address),
        "subtotal": float(pricing.subtotal),
        "tax": float(pricing.tax),
        "shipping": float(pricing.shipping),
        "total": float(pricing.total),
        "currency": checkout.currency,
        "notes": checkout.notes,
    }

    attempts = get_settings().storage_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            order_id = current_domain.process(PlaceOrder(**payload), asynchronous=False)
        except ExpectedVersionError:
            logger.warning("place_order_conflict", owner_id=checkout.owner_id, attempt=attempt)
            continue
        except (DatabaseError, TransactionError) as exc:
            # Each run of the handler draws a fresh order number
            if _is_unique_violation(exc):
                logger.warning("order_number_collision_at_commit", owner_id=checkout.owner_id, attempt=attempt)
            else:
                logger.warning("place_order_storage_error", owner_id=checkout.owner_id, attempt=attempt, error=str(exc))
            continue

        order = current_domain.repository_for(Order).get(order_id)
        logger.info(
            "order_placed",
            order_id=order_id,
            order_number=order.order_number,
            owner_id=checkout.owner_id,
            total=order.total,
        )
        return order

    raise TransientStorageError("place_order", attempts=attempts)
