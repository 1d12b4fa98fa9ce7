from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

STATUS_PAID = "PAID"
STATUS_UNPAID = "UNPAID"
STATUS_PARTIALLY_PAID = "PARTIALLY_PAID"
STATUS_CREDIT = "CREDIT"
STATUS_CREDIT_PAID = "CREDIT_PAID"

SALE_STATUSES = (
    STATUS_PAID,
    STATUS_UNPAID,
    STATUS_PARTIALLY_PAID,
    STATUS_CREDIT,
    STATUS_CREDIT_PAID,
)

# Statuses that may leave a balance owed by a member
OUTSTANDING_STATUSES = frozenset({
    STATUS_UNPAID,
    STATUS_PARTIALLY_PAID,
    STATUS_CREDIT,
    STATUS_CREDIT_PAID,
})


class Sale(db.Model):
    """
    Committed sale.

    Created once by the sale-commit coordinator together with its details,
    stock decrements and (optionally) its receivable, all in one transaction.

    TOTAL INVARIANT: total == sum(detail.subtotal) - additional_discount.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("store_id", "invoice_number", name="uq_sales_store_invoice"),
        db.Index("ix_sales_store_date", "store_id", "date"),
        db.Index("ix_sales_store_member", "store_id", "member_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    # YYYYMMDD + 5-digit per-store, per-day sequence (e.g. "2026101900001")
    invoice_number = db.Column(db.String(32), nullable=False)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    attendant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=True)

    # Amounts in whole currency units
    total = db.Column(db.Integer, nullable=False)
    tax = db.Column(db.Integer, nullable=False, default=0)
    payment = db.Column(db.Integer, nullable=False, default=0)
    change = db.Column(db.Integer, nullable=False, default=0)
    discount = db.Column(db.Integer, nullable=False, default=0)
    additional_discount = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PAID, index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="CASH")
    reference_number = db.Column(db.String(128), nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    store = db.relationship("Store", backref=db.backref("sales", lazy=True))
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    attendant = db.relationship("User", foreign_keys=[attendant_id])
    member = db.relationship("Member")
    details = db.relationship(
        "SaleDetail",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleDetail.id",
        lazy="selectin",
    )
    receivable = db.relationship(
        "Receivable",
        back_populates="sale",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} invoice={self.invoice_number!r} store_id={self.store_id}>"

    def to_dict(self, include_details: bool = True) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "invoice_number": self.invoice_number,
            "cashier_id": self.cashier_id,
            "attendant_id": self.attendant_id,
            "member_id": self.member_id,
            "total": self.total,
            "tax": self.tax,
            "payment": self.payment,
            "change": self.change,
            "discount": self.discount,
            "additional_discount": self.additional_discount,
            "status": self.status,
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "date": to_utc_z(self.date),
            "cashier": self.cashier.to_summary() if self.cashier else None,
            "attendant": self.attendant.to_summary() if self.attendant else None,
            "member": self.member.to_summary() if self.member else None,
            "receivable": self.receivable.to_dict() if self.receivable else None,
        }
        if include_details:
            data["sale_details"] = [detail.to_dict() for detail in self.details]
        return data


class SaleDetail(db.Model):
    """
    One product line of a sale.

    price is the unit price at the time of sale and is never re-derived from
    the product. subtotal = price * quantity (before the line discount).
    Created once with its sale and never mutated.
    """
    __tablename__ = "sale_details"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_details_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)
    discount = db.Column(db.Integer, nullable=False, default=0)
    subtotal = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="details")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "price": self.price,
            "discount": self.discount,
            "subtotal": self.subtotal,
        }


class Receivable(db.Model):
    """
    Outstanding balance owed by a member for a sale not fully paid at checkout.

    At most one per sale (unique sale_id). Created atomically with the sale;
    later settled by the payment-collection workflow.
    """
    __tablename__ = "receivables"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_receivables_sale"),
        db.Index("ix_receivables_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)

    amount_due = db.Column(db.Integer, nullable=False)
    amount_paid = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=STATUS_UNPAID)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    sale = db.relationship("Sale", back_populates="receivable")
    member = db.relationship("Member", backref=db.backref("receivables", lazy=True))

    @property
    def remaining(self) -> int:
        return self.amount_due - self.amount_paid

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "store_id": self.store_id,
            "member_id": self.member_id,
            "amount_due": self.amount_due,
            "amount_paid": self.amount_paid,
            "remaining": self.remaining,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceCounter(db.Model):
    """
    Atomic per-store, per-day invoice sequence.

    One row per (store_id, business_date); last_value is incremented in a
    single UPDATE so concurrent checkouts never read the same value.
    """
    __tablename__ = "invoice_counters"
    __table_args__ = (
        db.UniqueConstraint("store_id", "business_date", name="uq_invoice_counters_store_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    business_date = db.Column(db.Date, nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "business_date": self.business_date.isoformat(),
            "last_value": self.last_value,
            "updated_at": to_utc_z(self.updated_at),
        }
