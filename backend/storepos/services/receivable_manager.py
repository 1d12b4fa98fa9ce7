# Overview: Derives and persists outstanding-balance records for sales not fully paid.

from __future__ import annotations

from sqlalchemy import select

from ..models import Receivable, Sale, Member
from ..models.sales import OUTSTANDING_STATUSES, STATUS_PARTIALLY_PAID, STATUS_UNPAID


class ReceivableError(Exception):
    """Raised when a receivable would be duplicated or is inconsistent."""


def receivable_status(amount_paid: int) -> str:
    return STATUS_PARTIALLY_PAID if amount_paid > 0 else STATUS_UNPAID


def should_create_receivable(status: str, member_id: int | None, total: int, payment: int) -> bool:
    """
    A receivable exists for a sale iff its status can carry a balance,
    a member is attached, and something is still owed.
    """
    return (
        status in OUTSTANDING_STATUSES
        and member_id is not None
        and total - payment > 0
    )


class ReceivableManager:
    def __init__(self, session):
        self.session = session

    def create_receivable(self, sale: Sale, member: Member, amount_due: int, amount_paid: int) -> Receivable:
        """
        Insert the single receivable for a sale, inside the caller's transaction.

        The unique sale_id constraint guards storage; this check catches a
        second call within the same unit of work before flush.
        """
        if sale.id is None:
            self.session.flush()

        already = self.session.execute(
            select(Receivable.id).where(Receivable.sale_id == sale.id)
        ).scalar_one_or_none()
        if already is not None:
            raise ReceivableError(f"Sale {sale.id} already has a receivable")

        if amount_paid < 0 or amount_paid >= amount_due:
            raise ReceivableError("amount_paid must be between 0 and amount_due")

        receivable = Receivable(
            sale_id=sale.id,
            store_id=sale.store_id,
            member_id=member.id,
            amount_due=amount_due,
            amount_paid=amount_paid,
            status=receivable_status(amount_paid),
        )
        self.session.add(receivable)
        sale.receivable = receivable
        self.session.flush()
        return receivable

    def delete_for_sale(self, sale: Sale) -> bool:
        """Detach and delete the sale's receivable (orphan removal). Returns whether one existed."""
        if sale.receivable is None:
            return False
        sale.receivable = None
        self.session.flush()
        return True
