# Overview: Store-scoped stock reads and conditional stock writes.

"""
StockLedger: authoritative read/decrement of quantity on hand.

Invariants:
- Product.stock is never negative after a committed operation.
- Every decrement is a single conditional UPDATE
  (stock = stock - :q WHERE stock >= :q). A zero rowcount means another
  checkout got there first and the caller's transaction must fail.
- check_availability() is advisory only. It runs outside the commit
  transaction and exists for fast user feedback; it never replaces the
  conditional write.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import select, update

from ..errors import InsufficientStock
from ..models import Product
from .concurrency import lock_for_update


@dataclass(frozen=True)
class StockShortage:
    product_id: int
    product_name: str | None
    available: int
    requested: int

    def to_error(self) -> InsufficientStock:
        return InsufficientStock(
            product_id=self.product_id,
            product_name=self.product_name,
            available=self.available,
            requested=self.requested,
        )


def aggregate_quantities(items: Iterable) -> dict[int, int]:
    """Sum requested quantities per product, keeping first-seen order."""
    totals: dict[int, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


class StockLedger:
    def __init__(self, session):
        self.session = session

    def get_stock(self, store_id: int, product_id: int) -> int | None:
        return self.session.execute(
            select(Product.stock).where(Product.id == product_id, Product.store_id == store_id)
        ).scalar_one_or_none()

    def check_availability(self, store_id: int, items) -> StockShortage | None:
        """
        Advisory pre-check: return the first line whose product cannot cover
        the requested quantity (summed across duplicate lines), else None.

        Products missing from the store count as zero available.
        """
        totals = aggregate_quantities(items)
        if not totals:
            return None

        rows = self.session.execute(
            select(Product.id, Product.name, Product.stock).where(
                Product.store_id == store_id,
                Product.id.in_(list(totals)),
            )
        ).all()
        on_hand = {row.id: (row.name, row.stock) for row in rows}

        for product_id, requested in totals.items():
            name, stock = on_hand.get(product_id, (None, 0))
            if stock < requested:
                return StockShortage(
                    product_id=product_id,
                    product_name=name,
                    available=stock,
                    requested=requested,
                )
        return None

    def lock_products(self, store_id: int, product_ids: Iterable[int]) -> dict[int, Product]:
        """Load and row-lock the store's products for the commit transaction."""
        ids = list(dict.fromkeys(product_ids))
        query = self.session.query(Product).filter(
            Product.store_id == store_id,
            Product.id.in_(ids),
        )
        products = lock_for_update(query).all()
        return {product.id: product for product in products}

    def decrement_if_available(self, store_id: int, product_id: int, quantity: int) -> int:
        """
        Conditionally decrement stock and return the new level.

        Must run inside the caller's transaction. Raises InsufficientStock
        (naming the product, available and requested) when no row matched.
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        result = self.session.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.store_id == store_id,
                Product.stock >= quantity,
            )
            .values(stock=Product.stock - quantity)
            .returning(Product.stock)
            .execution_options(synchronize_session=False)
        )
        new_stock = result.scalar_one_or_none()
        if new_stock is None:
            row = self.session.execute(
                select(Product.name, Product.stock).where(
                    Product.id == product_id,
                    Product.store_id == store_id,
                )
            ).first()
            raise InsufficientStock(
                product_id=product_id,
                product_name=row.name if row else None,
                available=row.stock if row else 0,
                requested=quantity,
            )
        return new_stock

    def restore(self, store_id: int, product_id: int, quantity: int) -> int:
        """Add quantity back to stock (sale undo). Returns the new level."""
        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.store_id == store_id)
            .values(stock=Product.stock + quantity)
            .returning(Product.stock)
            .execution_options(synchronize_session=False)
        )
        new_stock = result.scalar_one_or_none()
        if new_stock is None:
            raise ValueError(f"product {product_id} not found in store {store_id}")
        return new_stock
