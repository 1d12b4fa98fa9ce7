# Overview: Sale-commit coordinator; turns a cart into one durable, numbered sale.

"""
Checkout flow

1. Preconditions, before any storage access: non-empty cart, attendant
   designated, member designated for credit statuses, consistent amounts.
2. Advisory stock pre-check (fast feedback, not authoritative).
3. One write transaction, rolled back entirely on any failure:
   a. re-validate products (row-locked), attendant and member in the store
   b. total_after_discount = total - additional_discount
   c. allocate the invoice number and insert Sale + SaleDetails
   d. conditional stock decrement per line, in cart order; a zero-row
      decrement aborts everything with InsufficientStock
   e. create the Receivable when a balance is left on a member's sale
4. After commit, best-effort: publish stock updates, evict store caches.

Lock-wait / busy errors retry the whole transaction with backoff and
surface as TransientStorageError when the budget runs out. An invoice
number clash on insert retries with a fresh number; it surfaces as
InvoiceCollision only when retries are exhausted.

Once the transaction has started it always runs to commit or rollback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError

from ..errors import (
    InsufficientStock,
    InvoiceCollision,
    NotFoundError,
    SaleError,
    SaleUndoError,
    TransientStorageError,
    ValidationError,
)
from ..models import Member, Sale, SaleDetail, Store, User
from ..models.sales import OUTSTANDING_STATUSES, SALE_STATUSES, STATUS_PAID
from ..time_utils import as_utc_naive, utcnow
from .concurrency import RETRYABLE_ERRORS, begin_write_transaction, lock_for_update, run_with_retry
from .receivable_manager import should_create_receivable
from .stock_ledger import aggregate_quantities
from .stock_notifier import StockChange

logger = logging.getLogger(__name__)


# =============================================================================
# Request parsing
# =============================================================================

def _pick(payload: dict, *keys: str, default=None):
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


# Largest value an INTEGER column holds on every supported database
MAX_INTEGER = 2**31 - 1


def _bounded(number: int, name: str) -> int:
    if abs(number) > MAX_INTEGER:
        raise ValidationError(f"{name} is out of range", details={"max": MAX_INTEGER})
    return number


def _amount(value: Any, name: str) -> int:
    """Coerce a money amount to a whole number, rounding half up."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    if isinstance(value, int):
        return _bounded(value, name)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{name} must be a number")
    # Checked before quantize, which fails on huge exponents
    if abs(number) > MAX_INTEGER:
        raise ValidationError(f"{name} is out of range", details={"max": MAX_INTEGER})
    return int(number.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _whole(value: Any, name: str) -> int:
    """Coerce a count or identifier; fractional values are rejected."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return _bounded(value, name)
    if isinstance(value, float) and value.is_integer():
        return _bounded(int(value), name)
    if isinstance(value, str) and value.strip().isascii():
        try:
            return _bounded(int(value.strip()), name)
        except ValueError:
            pass
    raise ValidationError(f"{name} must be an integer")


def _optional_id(value: Any, name: str) -> int | None:
    if value in (None, ""):
        return None
    return _whole(value, name)


@dataclass(frozen=True)
class CartItem:
    product_id: int
    quantity: int
    price: int
    discount: int = 0

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity

    @classmethod
    def from_payload(cls, payload: Any, index: int) -> "CartItem":
        if not isinstance(payload, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = _pick(payload, "product_id", "productId")
        if product_id is None:
            raise ValidationError(f"items[{index}].product_id is required")
        return cls(
            product_id=_whole(product_id, f"items[{index}].product_id"),
            quantity=_whole(_pick(payload, "quantity", default=0), f"items[{index}].quantity"),
            price=_amount(_pick(payload, "price", default=0), f"items[{index}].price"),
            discount=_amount(_pick(payload, "discount", default=0), f"items[{index}].discount"),
        )


@dataclass
class CheckoutRequest:
    items: list[CartItem]
    attendant_id: int | None = None
    member_id: int | None = None
    status: str = STATUS_PAID
    payment: int = 0
    change: int = 0
    tax: int = 0
    discount: int = 0
    additional_discount: int = 0
    payment_method: str = "CASH"
    reference_number: str | None = None
    # Client-computed cart total; checked against the lines when present
    total: int | None = None

    @classmethod
    def from_payload(cls, payload: dict | None) -> "CheckoutRequest":
        """Build a request from the JSON body; accepts snake_case and camelCase keys."""
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")

        raw_items = _pick(payload, "items", default=[])
        if not isinstance(raw_items, list):
            raise ValidationError("items must be an array")

        total = _pick(payload, "total")
        reference = _pick(payload, "reference_number", "referenceNumber")
        return cls(
            items=[CartItem.from_payload(item, i) for i, item in enumerate(raw_items)],
            attendant_id=_optional_id(_pick(payload, "attendant_id", "attendantId"), "attendant_id"),
            member_id=_optional_id(_pick(payload, "member_id", "memberId"), "member_id"),
            status=str(_pick(payload, "status", "transactionType", default=STATUS_PAID)).upper(),
            payment=_amount(_pick(payload, "payment", default=0), "payment"),
            change=_amount(_pick(payload, "change", default=0), "change"),
            tax=_amount(_pick(payload, "tax", default=0), "tax"),
            discount=_amount(_pick(payload, "discount", default=0), "discount"),
            additional_discount=_amount(
                _pick(payload, "additional_discount", "additionalDiscount", default=0),
                "additional_discount",
            ),
            payment_method=str(_pick(payload, "payment_method", "paymentMethod", default="CASH")).upper(),
            reference_number=str(reference).strip() or None if reference is not None else None,
            total=_amount(total, "total") if total is not None else None,
        )

    @property
    def cart_total(self) -> int:
        return sum(item.subtotal for item in self.items)

    @property
    def total_after_discount(self) -> int:
        return self.cart_total - self.additional_discount


def validate_request(request: CheckoutRequest) -> None:
    """Fail-fast preconditions; raises ValidationError before any storage access."""
    if not request.items:
        raise ValidationError("Cart is empty")

    for index, item in enumerate(request.items):
        if item.quantity <= 0:
            raise ValidationError(
                "Quantity must be greater than zero",
                details={"index": index, "product_id": item.product_id},
            )
        if item.price < 0 or item.discount < 0:
            raise ValidationError(
                "Price and discount must not be negative",
                details={"index": index, "product_id": item.product_id},
            )

    if request.cart_total > MAX_INTEGER:
        raise ValidationError("Cart total is out of range", details={"max": MAX_INTEGER})

    if request.attendant_id is None:
        raise ValidationError("An attendant must be selected")

    if request.status not in SALE_STATUSES:
        raise ValidationError(
            f"Unknown sale status {request.status}",
            details={"allowed": list(SALE_STATUSES)},
        )

    if request.status in OUTSTANDING_STATUSES and request.member_id is None:
        raise ValidationError("Credit sales require a member")

    if not request.payment_method or len(request.payment_method) > 16:
        raise ValidationError("payment_method is invalid")

    for name in ("payment", "change", "tax", "discount", "additional_discount"):
        if getattr(request, name) < 0:
            raise ValidationError(f"{name} must not be negative")

    if request.total is not None and request.total != request.cart_total:
        raise ValidationError(
            "total does not match the cart lines",
            details={"total": request.total, "lines_total": request.cart_total},
        )

    if request.additional_discount > request.cart_total:
        raise ValidationError("additional_discount exceeds the cart total")

    if request.status == STATUS_PAID and request.payment < request.total_after_discount:
        raise ValidationError(
            "Payment does not cover the sale total",
            details={"total": request.total_after_discount, "payment": request.payment},
        )


# =============================================================================
# Outcomes
# =============================================================================

@dataclass
class CheckoutOutcome:
    sale: Sale | None = None
    error: SaleError | None = None
    stock_changes: list[StockChange] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class UndoOutcome:
    invoice_number: str | None = None
    error: SaleError | None = None
    stock_changes: list[StockChange] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


def _is_invoice_collision(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "uq_sales_store_invoice" in message or "sales.invoice_number" in message


# =============================================================================
# Coordinator
# =============================================================================

class SaleCommitCoordinator:
    def __init__(
        self,
        session,
        *,
        ledger,
        sequencer,
        receivables,
        notifier,
        invalidator,
        retry_attempts: int = 3,
        retry_backoff: float = 0.1,
        invoice_attempts: int = 5,
        decrement_hook: Callable[[int, CartItem], None] | None = None,
    ):
        self.session = session
        self.ledger = ledger
        self.sequencer = sequencer
        self.receivables = receivables
        self.notifier = notifier
        self.invalidator = invalidator
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.invoice_attempts = invoice_attempts
        # Called before each line's decrement; tests use it to inject failures
        self.decrement_hook = decrement_hook

    # -- checkout ------------------------------------------------------------

    def checkout(self, principal, request: CheckoutRequest) -> CheckoutOutcome:
        """
        Commit a cart as one sale and return the outcome.

        Domain failures come back as outcome.error; unexpected exceptions
        propagate after the transaction has been rolled back.
        """
        try:
            sale, changes = self._checkout(principal, request)
        except SaleError as exc:
            return CheckoutOutcome(error=exc)

        self._after_commit(sale.store_id, changes, sale_id=sale.id)
        return CheckoutOutcome(sale=sale, stock_changes=changes)

    def precheck(self, principal, request: CheckoutRequest) -> CheckoutOutcome:
        """Preconditions plus the advisory stock check; writes nothing."""
        try:
            store_id = self._store_id(principal)
            validate_request(request)
            shortage = self.ledger.check_availability(store_id, request.items)
            if shortage:
                raise shortage.to_error()
        except SaleError as exc:
            return CheckoutOutcome(error=exc)
        finally:
            self.session.rollback()
        return CheckoutOutcome()

    def _store_id(self, principal) -> int:
        if principal is None or principal.store_id is None:
            raise ValidationError("No store is bound to this session")
        return principal.store_id

    def _checkout(self, principal, request: CheckoutRequest):
        store_id = self._store_id(principal)
        validate_request(request)

        try:
            shortage = self.ledger.check_availability(store_id, request.items)
        finally:
            # The write transaction must start fresh
            self.session.rollback()
        if shortage:
            raise shortage.to_error()

        for attempt in range(1, self.invoice_attempts + 1):
            try:
                return run_with_retry(
                    lambda: self._commit_once(store_id, principal.user_id, request),
                    session=self.session,
                    attempts=self.retry_attempts,
                    backoff_base=self.retry_backoff,
                )
            except IntegrityError as exc:
                if not _is_invoice_collision(exc):
                    raise
                logger.warning("Invoice number collision in store %s (attempt %d/%d)",
                               store_id, attempt, self.invoice_attempts)
            except RETRYABLE_ERRORS as exc:
                raise TransientStorageError(
                    "Storage is busy, please retry the checkout",
                    details={"reason": type(exc).__name__},
                ) from exc

        raise InvoiceCollision(
            "Could not allocate a unique invoice number",
            details={"store_id": store_id, "attempts": self.invoice_attempts},
        )

    def _commit_once(self, store_id: int, cashier_id: int, request: CheckoutRequest):
        session = self.session
        try:
            begin_write_transaction(session)

            store = session.get(Store, store_id)
            if store is None or not store.is_active:
                raise ValidationError("Store not found or inactive")

            self._revalidate_products(store_id, request)
            self._require_attendant(store_id, request.attendant_id)
            member = self._require_member(store_id, request)

            total_after_discount = request.total_after_discount
            now = utcnow()

            sale = Sale(
                store_id=store_id,
                invoice_number=self.sequencer.next(store_id, tz_name=store.timezone, at=now),
                cashier_id=cashier_id,
                attendant_id=request.attendant_id,
                member_id=member.id if member else None,
                total=total_after_discount,
                tax=request.tax,
                payment=request.payment,
                change=request.change if request.status == STATUS_PAID else 0,
                discount=request.discount,
                additional_discount=request.additional_discount,
                status=request.status,
                payment_method=request.payment_method,
                reference_number=request.reference_number,
                date=now,
            )
            for item in request.items:
                sale.details.append(SaleDetail(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=item.price,
                    discount=item.discount,
                    subtotal=item.subtotal,
                ))
            session.add(sale)
            session.flush()

            changes: list[StockChange] = []
            for index, item in enumerate(request.items):
                if self.decrement_hook is not None:
                    self.decrement_hook(index, item)
                new_stock = self.ledger.decrement_if_available(store_id, item.product_id, item.quantity)
                changes.append(StockChange(product_id=item.product_id, stock=new_stock))

            if should_create_receivable(
                request.status,
                member.id if member else None,
                total_after_discount,
                request.payment,
            ):
                self.receivables.create_receivable(
                    sale,
                    member,
                    amount_due=total_after_discount,
                    amount_paid=request.payment,
                )

            session.commit()
        except Exception:
            session.rollback()
            raise

        logger.info("Committed sale %s (invoice %s) in store %s with %d line(s)",
                    sale.id, sale.invoice_number, store_id, len(request.items))
        return sale, changes

    def _revalidate_products(self, store_id: int, request: CheckoutRequest) -> None:
        totals = aggregate_quantities(request.items)
        products = self.ledger.lock_products(store_id, totals)
        for product_id, requested in totals.items():
            product = products.get(product_id)
            if product is None or not product.is_active:
                raise ValidationError(
                    f"Product {product_id} not found in this store",
                    details={"product_id": product_id},
                )
            if product.stock < requested:
                raise InsufficientStock(
                    product_id=product_id,
                    product_name=product.name,
                    available=product.stock,
                    requested=requested,
                )

    def _require_attendant(self, store_id: int, attendant_id: int) -> User:
        attendant = self.session.get(User, attendant_id)
        if attendant is None or not attendant.is_active or attendant.store_id != store_id:
            raise ValidationError(
                "Attendant not found in this store",
                details={"attendant_id": attendant_id},
            )
        return attendant

    def _require_member(self, store_id: int, request: CheckoutRequest) -> Member | None:
        if request.member_id is None:
            return None
        member = self.session.get(Member, request.member_id)
        if member is None or not member.is_active or member.store_id != store_id:
            raise ValidationError(
                "Member not found in this store",
                details={"member_id": request.member_id},
            )
        if request.status in OUTSTANDING_STATUSES and member.is_general:
            raise ValidationError("Credit sales require a specific member, not the general customer")
        return member

    # -- undo ----------------------------------------------------------------

    def undo_sale(self, principal, sale_id: int, *, window_minutes: int = 5) -> UndoOutcome:
        """
        Reverse a sale committed within the undo window.

        Restores stock for every line, removes the receivable, details and the
        sale in one transaction; then runs the same post-commit side effects
        as checkout.
        """
        try:
            store_id = self._store_id(principal)
            invoice_number, changes = run_with_retry(
                lambda: self._undo_once(store_id, sale_id, timedelta(minutes=window_minutes)),
                session=self.session,
                attempts=self.retry_attempts,
                backoff_base=self.retry_backoff,
            )
        except SaleError as exc:
            return UndoOutcome(error=exc)
        except RETRYABLE_ERRORS as exc:
            return UndoOutcome(error=TransientStorageError(
                "Storage is busy, please retry",
                details={"reason": type(exc).__name__},
            ))

        self._after_commit(store_id, changes, sale_id=sale_id)
        return UndoOutcome(invoice_number=invoice_number, stock_changes=changes)

    def _undo_once(self, store_id: int, sale_id: int, window: timedelta):
        session = self.session
        try:
            begin_write_transaction(session)

            sale = lock_for_update(
                session.query(Sale).filter_by(id=sale_id, store_id=store_id)
            ).first()
            if sale is None:
                raise NotFoundError("Sale not found", details={"sale_id": sale_id})

            age = utcnow() - as_utc_naive(sale.date)
            if age > window:
                raise SaleUndoError(
                    f"Sales older than {int(window.total_seconds() // 60)} minutes cannot be undone",
                    details={"age_minutes": round(age.total_seconds() / 60)},
                )

            receivable = sale.receivable
            if receivable is not None and receivable.amount_paid != sale.payment:
                raise SaleUndoError("Sale has receivable payments recorded and cannot be undone")

            changes = [
                StockChange(
                    product_id=detail.product_id,
                    stock=self.ledger.restore(store_id, detail.product_id, detail.quantity),
                )
                for detail in sale.details
            ]
            self.receivables.delete_for_sale(sale)

            invoice_number = sale.invoice_number
            session.delete(sale)
            session.commit()
        except Exception:
            session.rollback()
            raise

        logger.info("Undid sale %s (invoice %s) in store %s", sale_id, invoice_number, store_id)
        return invoice_number, changes

    # -- side effects --------------------------------------------------------

    def _after_commit(self, store_id: int, changes: list[StockChange], *, sale_id: int | None = None) -> None:
        """Best-effort post-commit work; neither step may raise."""
        published = self.notifier.publish_stock_changes(store_id, changes)
        if published != len(changes):
            logger.warning("Sale %s: published %d of %d stock update(s)", sale_id, published, len(changes))
        self.invalidator.invalidate_store(store_id)
