"""Product aggregate (CQRS) as seen by checkout.

Only the fields checkout depends on are modelled: the authoritative price,
availability flags, the inventory record and the snapshot fields copied onto
order items. ``stock_quantity`` of ``None`` means stock is not tracked.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, HasMany, Integer, String

from ordering.catalogue.events import StockDecremented
from ordering.domain import ordering
from ordering.errors import OutOfStock


@ordering.entity(part_of="Product")
class ProductVariant:
    name = String(required=True, max_length=100)  # e.g. "Size"
    value = String(required=True, max_length=100)  # e.g. "XL"
    sku = String(max_length=100)
    price_override = Float(min_value=0.0)
    in_stock = Boolean(default=True)
    image = String(max_length=500)


@ordering.aggregate
class Product:
    name = String(required=True, max_length=255)
    slug = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    in_stock = Boolean(default=True)
    stock_quantity = Integer()
    primary_image_url = String(max_length=500)
    variants = HasMany(ProductVariant)

    @invariant.post
    def tracked_stock_cannot_be_negative(self):
        if self.stock_quantity is not None and self.stock_quantity < 0:
            raise ValidationError({"stock_quantity": ["Stock quantity cannot be negative"]})

    @classmethod
    def create(
        cls,
        name,
        slug,
        price,
        stock_quantity=None,
        in_stock=True,
        primary_image_url=None,
        variants=None,
    ):
        product = cls(
            name=name,
            slug=slug,
            price=price,
            stock_quantity=stock_quantity,
            in_stock=in_stock,
            primary_image_url=primary_image_url,
        )
        for variant in variants or []:
            product.add_variants(ProductVariant(**variant))
        return product

    @property
    def tracks_stock(self) -> bool:
        return self.stock_quantity is not None

    def get_variant(self, variant_id):
        return next((v for v in self.variants if str(v.id) == str(variant_id)), None)

    def decrement_stock(self, quantity, order_number=None):
        """Consume ``quantity`` units, only if that much stock is on hand.

        Untracked products are left untouched.
        """
        if not self.tracks_stock:
            return

        if self.stock_quantity < quantity:
            raise OutOfStock(product_id=str(self.id), requested=quantity, available=self.stock_quantity)

        previous = self.stock_quantity
        self.stock_quantity = previous - quantity

        self.raise_(
            StockDecremented(
                product_id=str(self.id),
                order_number=order_number,
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=self.stock_quantity,
                decremented_at=datetime.now(UTC),
            )
        )
