"""Catalog snapshot reader: read-only view of price and stock used by checkout.

The reader is a port so that checkout can run against the local Product
repository (default) or a remote catalog service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.catalogue.product import Product


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: str
    name: str
    slug: str
    price: float
    in_stock: bool
    stock_quantity: int | None
    primary_image_url: str | None = None


@dataclass(frozen=True)
class VariantSnapshot:
    variant_id: str
    product_id: str
    name: str
    value: str
    price_override: float | None
    in_stock: bool
    sku: str | None = None
    image: str | None = None


class CatalogSnapshotReader(ABC):
    @abstractmethod
    def get_product(self, product_id: str) -> ProductSnapshot | None:
        """Return the current product snapshot, or None when unknown."""
        ...

    @abstractmethod
    def get_variant(self, product_id: str, variant_id: str) -> VariantSnapshot | None:
        """Return the variant of ``product_id``, or None when unknown."""
        ...


class RepositoryCatalogReader(CatalogSnapshotReader):
    """Reads snapshots from the Product repository of the active domain."""

    def _load(self, product_id):
        try:
            return current_domain.repository_for(Product).get(product_id)
        except ObjectNotFoundError:
            return None

    def get_product(self, product_id):
        product = self._load(product_id)
        if product is None:
            return None
        return ProductSnapshot(
            product_id=str(product.id),
            name=product.name,
            slug=product.slug,
            price=product.price,
            in_stock=bool(product.in_stock),
            stock_quantity=product.stock_quantity,
            primary_image_url=product.primary_image_url,
        )

    def get_variant(self, product_id, variant_id):
        product = self._load(product_id)
        if product is None:
            return None
        variant = product.get_variant(variant_id)
        if variant is None:
            return None
        return VariantSnapshot(
            variant_id=str(variant.id),
            product_id=str(product.id),
            name=variant.name,
            value=variant.value,
            price_override=variant.price_override,
            in_stock=bool(variant.in_stock),
            sku=variant.sku,
            image=variant.image,
        )


_current_reader: CatalogSnapshotReader | None = None


def get_catalog_reader() -> CatalogSnapshotReader:
    """Return the active reader. Defaults to the repository-backed reader."""
    global _current_reader
    if _current_reader is None:
        _current_reader = RepositoryCatalogReader()
    return _current_reader


def set_catalog_reader(reader: CatalogSnapshotReader) -> None:
    global _current_reader
    _current_reader = reader


def reset_catalog_reader() -> None:
    global _current_reader
    _current_reader = None
