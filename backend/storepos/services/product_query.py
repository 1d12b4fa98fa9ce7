# Overview: Store-scoped product search listing served through the read cache.

from __future__ import annotations

from sqlalchemy import func, or_, select

from ..errors import ValidationError
from ..models import Product
from .cache import CacheReader, product_list_key
from .sales_query import DEFAULT_LIMIT, MAX_LIMIT, _int_arg


def parse_product_args(args) -> tuple[str | None, int, int]:
    """Read the search term and pagination from query-string args."""
    page = _int_arg(args, "page", 1)
    limit = _int_arg(args, "limit", DEFAULT_LIMIT)
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    q = (args.get("q") or "").strip() or None
    if q is not None and len(q) > 100:
        raise ValidationError("q must be at most 100 characters")
    return q, page, min(limit, MAX_LIMIT)


class ProductQuery:
    """
    Product listing for checkout terminals, with current stock.

    Entries are stale as soon as a sale commits; the coordinator evicts them
    through the store's cache index.
    """

    def __init__(self, session, cache: CacheReader):
        self.session = session
        self.cache = cache

    def list_products(self, store_id: int, q: str | None = None, page: int = 1, limit: int = DEFAULT_LIMIT):
        """Return (payload, cache_hit); active products ordered by name."""
        key = product_list_key(store_id, {"q": q, "page": page, "limit": limit})
        cached = self.cache.get_json(key)
        if cached is not None:
            return cached, True

        conditions = [Product.store_id == store_id, Product.is_active.is_(True)]
        if q is not None:
            pattern = f"%{q.lower()}%"
            conditions.append(or_(func.lower(Product.name).like(pattern), func.lower(Product.sku).like(pattern)))

        total = self.session.execute(
            select(func.count(Product.id)).where(*conditions)
        ).scalar_one()
        products = self.session.execute(
            select(Product)
            .where(*conditions)
            .order_by(Product.name.asc(), Product.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        payload = {
            "items": [p.to_dict() for p in products],
            "count": len(products),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }
        self.cache.set_json(store_id, key, payload)
        return payload, False
