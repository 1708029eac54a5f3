"""Catalogue port — read access to products, seller profiles and carts.

Product CRUD, seller onboarding and cart editing live outside the
marketplace core; checkout only needs these snapshots.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class VariantSnapshot:
    """A sellable variant with its stable identifier."""

    variant_id: str
    color_code: str
    color_name: str
    size: str | None = None
    quantity: int = 0

    @property
    def label(self) -> str:
        return f"{self.color_name}, {self.size}" if self.size else self.color_name


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: str
    seller_id: str
    name: str
    price: float
    variants: tuple[VariantSnapshot, ...] = ()

    def variant(self, variant_id: str) -> VariantSnapshot | None:
        for variant in self.variants:
            if variant.variant_id == variant_id:
                return variant
        return None

    def resolve_variant(self, color: str | None, size: str | None = None) -> VariantSnapshot | None:
        """Map a buyer's (color, size) choice to a variant.

        Color may be given either as the code or the display name.
        """
        for variant in self.variants:
            if color is not None and color not in (variant.color_code, variant.color_name):
                continue
            if (variant.size or None) != (size or None):
                continue
            return variant
        return None


@dataclass(frozen=True)
class BankDetails:
    bank_name: str
    account_number: str
    account_name: str
    branch: str | None = None


@dataclass(frozen=True)
class SellerProfile:
    seller_id: str
    name: str = ""
    shipping_fee: float | None = None
    bank_details: BankDetails | None = None


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    color: str | None = None
    size: str | None = None
    subtotal: float | None = None


@dataclass
class CatalogueState:
    products: dict = field(default_factory=dict)
    sellers: dict = field(default_factory=dict)
    carts: dict = field(default_factory=dict)


class CataloguePort(ABC):
    @abstractmethod
    def get_product(self, product_id: str) -> ProductSnapshot | None:
        """Return the product snapshot or None when unknown."""
        ...

    @abstractmethod
    def get_seller(self, seller_id: str) -> SellerProfile | None:
        """Return the seller profile or None when unknown."""
        ...

    @abstractmethod
    def get_cart(self, buyer_id: str) -> list[CartLine]:
        """Return the buyer's current cart lines."""
        ...

    @abstractmethod
    def clear_cart(self, buyer_id: str) -> None:
        """Empty the buyer's cart after a successful checkout."""
        ...
