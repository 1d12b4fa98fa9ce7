# Overview: Paginated, store-scoped sales listing served through the read cache.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select

from ..errors import ValidationError
from ..models import Sale
from ..models.sales import SALE_STATUSES
from ..time_utils import parse_iso_datetime
from .cache import CacheReader, sales_list_key

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass(frozen=True)
class SalesFilter:
    member_id: int | None = None
    cashier_id: int | None = None
    status: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    def cache_params(self) -> dict:
        return {
            "member_id": self.member_id,
            "cashier_id": self.cashier_id,
            "status": self.status,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
        }


def _int_arg(args, name: str, default: int | None = None) -> int | None:
    raw = args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def _date_arg(args, name: str) -> datetime | None:
    try:
        return parse_iso_datetime(args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")


def parse_list_args(args) -> tuple[SalesFilter, int, int]:
    """Read filters and pagination from query-string args."""
    page = _int_arg(args, "page", 1)
    limit = _int_arg(args, "limit", DEFAULT_LIMIT)
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    limit = min(limit, MAX_LIMIT)

    status = (args.get("status") or "").strip().upper() or None
    if status is not None and status not in SALE_STATUSES:
        raise ValidationError(f"Unknown sale status {status}")

    date_to = _date_arg(args, "date_to")
    # A bare date covers the whole day
    if date_to is not None and len((args.get("date_to") or "").strip()) == 10:
        date_to = date_to + timedelta(days=1)

    filters = SalesFilter(
        member_id=_int_arg(args, "member_id"),
        cashier_id=_int_arg(args, "cashier_id"),
        status=status,
        date_from=_date_arg(args, "date_from"),
        date_to=date_to,
    )
    return filters, page, limit


class SalesQuery:
    def __init__(self, session, cache: CacheReader):
        self.session = session
        self.cache = cache

    def list_sales(self, store_id: int, filters: SalesFilter, page: int = 1, limit: int = DEFAULT_LIMIT):
        """
        Return (payload, cache_hit).

        Payload is {"sales": [...], "pagination": {...}}, newest first.
        """
        key = sales_list_key(store_id, filters.cache_params(), page, limit)
        cached = self.cache.get_json(key)
        if cached is not None:
            return cached, True

        conditions = [Sale.store_id == store_id]
        if filters.member_id is not None:
            conditions.append(Sale.member_id == filters.member_id)
        if filters.cashier_id is not None:
            conditions.append(Sale.cashier_id == filters.cashier_id)
        if filters.status is not None:
            conditions.append(Sale.status == filters.status)
        if filters.date_from is not None:
            conditions.append(Sale.date >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(Sale.date < filters.date_to)

        total = self.session.execute(
            select(func.count(Sale.id)).where(*conditions)
        ).scalar_one()
        sales = self.session.execute(
            select(Sale)
            .where(*conditions)
            .order_by(Sale.date.desc(), Sale.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        payload = {
            "sales": [sale.to_dict() for sale in sales],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }
        self.cache.set_json(store_id, key, payload)
        return payload, False
