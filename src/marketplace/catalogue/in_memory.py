"""In-memory catalogue adapter for development and testing."""

from marketplace.catalogue.port import (
    CartLine,
    CataloguePort,
    CatalogueState,
    ProductSnapshot,
    SellerProfile,
)
from marketplace.errors import ExternalDependencyError


class InMemoryCatalogue(CataloguePort):
    def __init__(self) -> None:
        self.state = CatalogueState()
        self.available: bool = True

    def configure(self, available: bool) -> None:
        """Simulate the catalogue service being unreachable."""
        self.available = available

    def _check_available(self) -> None:
        if not self.available:
            raise ExternalDependencyError("Catalogue service unavailable")

    def add_product(self, product: ProductSnapshot) -> ProductSnapshot:
        self.state.products[product.product_id] = product
        return product

    def add_seller(self, seller: SellerProfile) -> SellerProfile:
        self.state.sellers[seller.seller_id] = seller
        return seller

    def set_cart(self, buyer_id: str, lines: list[CartLine]) -> None:
        self.state.carts[buyer_id] = list(lines)

    def get_product(self, product_id: str) -> ProductSnapshot | None:
        self._check_available()
        return self.state.products.get(product_id)

    def get_seller(self, seller_id: str) -> SellerProfile | None:
        self._check_available()
        return self.state.sellers.get(seller_id)

    def get_cart(self, buyer_id: str) -> list[CartLine]:
        self._check_available()
        return list(self.state.carts.get(buyer_id, []))

    def clear_cart(self, buyer_id: str) -> None:
        self._check_available()
        self.state.carts.pop(buyer_id, None)
