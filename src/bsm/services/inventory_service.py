from __future__ import annotations

from typing import Optional

from bsm.domain.errors import NotFoundError, ValidationError
from bsm.domain.models import Product


def _non_negative_int(value, message: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(message)
    return value


class InventoryService:
    def __init__(self, repo):
        self.repo = repo

    def get_product(self, product_id: str) -> Product:
        p = self.repo.get_product_by_id(product_id)
        if not p:
            raise NotFoundError("Product not found.", ids=[product_id])
        return p

    def add_product(self, name: str, price_in_cents: int, stock_qty: int, product_id: Optional[str] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        # zero is a valid promotional price
        _non_negative_int(price_in_cents, "Price must be a non-negative integer amount of cents.")
        _non_negative_int(stock_qty, "Stock must be a non-negative integer.")
        if product_id is not None and not str(product_id).strip():
            raise ValidationError("Product id cannot be blank.")
        return self.repo.add_product(name, price_in_cents, stock_qty, product_id=product_id)

    def update_product_price(self, product_id: str, price_in_cents: int) -> None:
        """Changes the current price only; sales already recorded keep their captured prices."""
        _non_negative_int(price_in_cents, "Price must be a non-negative integer amount of cents.")
        updated = self.repo.update_product_price(product_id, price_in_cents)
        if not updated:
            raise NotFoundError("Product not found.", ids=[product_id])
