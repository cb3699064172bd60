"""Read-side helpers for orders.

Owner identity is always an explicit argument. An order that exists but
belongs to someone else is reported as not found.
"""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.errors import NotFound
from ordering.order.order import Order


def get_order(owner_id, order_id) -> Order:
    try:
        order = current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError as exc:
        raise NotFound("order", str(order_id)) from exc
    if str(order.owner_id) != str(owner_id):
        raise NotFound("order", str(order_id))
    return order


def list_orders(owner_id, status=None) -> list[Order]:
    """Return the owner's orders, newest first."""
    filters = {"owner_id": str(owner_id)}
    if status:
        filters["status"] = status
    orders = current_domain.repository_for(Order)._dao.query.filter(**filters).all().items
    return sorted(orders, key=lambda o: o.created_at, reverse=True)


def find_order_by_reference(order_number=None, order_id=None, **correlation) -> Order | None:
    """Locate an order from the references a payment provider event carries.

    Lookup order: order number, internal id, then any stored correlation id
    (``payment_intent_id``, ``provider_order_id``, ``capture_id``).
    """
    repo = current_domain.repository_for(Order)

    if order_number:
        found = repo._dao.query.filter(order_number=order_number).all().items
        if found:
            return found[0]

    if order_id:
        try:
            return repo.get(order_id)
        except ObjectNotFoundError:
            pass

    for field_name in ("payment_intent_id", "provider_order_id", "capture_id"):
        value = correlation.get(field_name)
        if not value:
            continue
        found = repo._dao.query.filter(**{field_name: value}).all().items
        if found:
            return found[0]

    return None
