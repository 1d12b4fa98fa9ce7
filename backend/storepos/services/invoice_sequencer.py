# Overview: Per-store, per-day invoice numbering backed by an atomic counter row.

"""
Invoice numbers look like YYYYMMDD + a 5-digit, zero-padded sequence
("2026101900001"). The sequence restarts at 00001 every calendar day of the
store (in the store's timezone) and is independent per store, so two stores
may hold the same invoice number.

Allocation is an increment-and-read on the (store_id, business_date) row of
invoice_counters, executed inside the caller's transaction: if the sale
rolls back, so does the increment, and two concurrent checkouts can never
observe the same value. The unique (store_id, invoice_number) constraint on
sales remains the final guard.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError

from ..errors import InvoiceCollision
from ..models import InvoiceCounter, Sale
from ..time_utils import business_date

SEQUENCE_WIDTH = 5


def format_invoice_number(day: date, sequence: int) -> str:
    """Sequences past 99999 widen instead of wrapping."""
    return f"{day:%Y%m%d}{sequence:0{SEQUENCE_WIDTH}d}"


class InvoiceSequencer:
    def __init__(self, session, *, max_skips: int = 20):
        self.session = session
        self.max_skips = max_skips

    def next(self, store_id: int, *, tz_name: str | None = None, at: datetime | None = None) -> str:
        """
        Allocate the next invoice number for a store's business day.

        Numbers already present on sales (e.g. imported history) are skipped;
        more than max_skips consecutive taken numbers raise InvoiceCollision.
        """
        if not store_id:
            raise ValueError("store_id is required")

        day = business_date(tz_name, at)
        for _ in range(self.max_skips + 1):
            candidate = format_invoice_number(day, self._increment(store_id, day))
            if not self._is_taken(store_id, candidate):
                return candidate

        raise InvoiceCollision(
            "Could not allocate a unique invoice number",
            details={"store_id": store_id, "business_date": day.isoformat()},
        )

    def current(self, store_id: int, day: date) -> int:
        """Last sequence handed out for the store/day (0 when none)."""
        value = self.session.execute(
            select(InvoiceCounter.last_value).where(
                InvoiceCounter.store_id == store_id,
                InvoiceCounter.business_date == day,
            )
        ).scalar_one_or_none()
        return value or 0

    def _increment(self, store_id: int, day: date) -> int:
        stmt = (
            update(InvoiceCounter)
            .where(
                InvoiceCounter.store_id == store_id,
                InvoiceCounter.business_date == day,
            )
            .values(last_value=InvoiceCounter.last_value + 1)
            .returning(InvoiceCounter.last_value)
            .execution_options(synchronize_session=False)
        )

        value = self.session.execute(stmt).scalar_one_or_none()
        if value is not None:
            return value

        # First sale of the day for this store: create the row in a savepoint
        # so losing the insert race does not abort the enclosing transaction.
        try:
            with self.session.begin_nested():
                self.session.add(InvoiceCounter(store_id=store_id, business_date=day, last_value=1))
            return 1
        except IntegrityError:
            value = self.session.execute(stmt).scalar_one_or_none()
            if value is None:
                raise
            return value

    def _is_taken(self, store_id: int, invoice_number: str) -> bool:
        return bool(self.session.execute(
            select(exists().where(
                Sale.store_id == store_id,
                Sale.invoice_number == invoice_number,
            ))
        ).scalar())
