# Overview: Sale-commit error taxonomy and the single error-to-response mapping.

"""
Every failure the engine reports is a SaleError carrying a message and a
details dict. Routes never branch on error types themselves: they hand the
error to error_response(), which is also registered as the Flask error
handler for SaleError.
"""

from __future__ import annotations

from flask import jsonify


class SaleError(Exception):
    """Base class for sale-commit failures."""
    status_code = 400
    error_code = "SALE_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SaleError):
    """Rejected before any storage write (empty cart, missing attendant, ...)."""
    error_code = "VALIDATION_ERROR"


class NotFoundError(SaleError):
    status_code = 404
    error_code = "NOT_FOUND"


class InsufficientStock(SaleError):
    """
    Requested quantity exceeds stock on hand.

    Raised by the advisory pre-check and, authoritatively, when a conditional
    decrement inside the commit transaction affects zero rows.
    """
    error_code = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: int,
        requested: int,
        available: int | None = None,
        product_name: str | None = None,
    ):
        label = product_name or f"product {product_id}"
        if available is None:
            message = f"Insufficient stock for {label}. Requested: {requested}"
        else:
            message = f"Insufficient stock for {label}. Available: {available}, Requested: {requested}"
        super().__init__(
            message,
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


class InvoiceCollision(SaleError):
    """Invoice number allocation kept colliding after bounded retries."""
    status_code = 500
    error_code = "INVOICE_COLLISION"


class TransientStorageError(SaleError):
    """Lock timeouts / connectivity problems that outlived the retry budget."""
    status_code = 503
    error_code = "TRANSIENT_STORAGE_ERROR"


class SaleUndoError(SaleError):
    error_code = "SALE_UNDO_REJECTED"


def error_response(error: SaleError):
    """Map a SaleError to a (response, status) pair."""
    body = {"error": error.message, "code": error.error_code}
    if error.details:
        body["details"] = error.details
    return jsonify(body), error.status_code
