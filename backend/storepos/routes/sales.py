# Overview: Flask API routes for sale checkout, listing, pre-check and undo.

"""Sales API routes with role enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SaleError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from ..services.engine import get_engine
from ..services.sale_commit import CheckoutRequest
from ..services.sales_query import parse_list_args
from ..decorators import require_auth, require_role


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_role(ROLE_CASHIER, ROLE_ADMIN)
def create_sale_route():
    """
    Commit a checkout as one sale.

    Available to: admin, cashier (store-bound session)
    Returns 201 with the persisted sale, its details and receivable.
    """
    try:
        checkout = CheckoutRequest.from_payload(request.get_json(silent=True))
        outcome = get_engine().coordinator.checkout(g.principal, checkout)
        if not outcome.ok:
            return error_response(outcome.error)

        return jsonify({"sale": outcome.sale.to_dict()}), 201

    except SaleError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to commit sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_role(ROLE_CASHIER, ROLE_ADMIN, ROLE_MANAGER)
def list_sales_route():
    """
    List the store's sales, newest first.

    Query params: member_id, cashier_id, status, date_from, date_to, page, limit.
    Served from the read cache when possible (X-Cache: HIT/MISS).
    """
    try:
        filters, page, limit = parse_list_args(request.args)
        payload, hit = get_engine().sales.list_sales(g.principal.store_id, filters, page, limit)
        response = jsonify(payload)
        response.headers["X-Cache"] = "HIT" if hit else "MISS"
        return response

    except SaleError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/precheck")
@require_auth
@require_role(ROLE_CASHIER, ROLE_ADMIN)
def precheck_sale_route():
    """
    Advisory availability check for a cart; writes nothing.

    The commit re-checks stock authoritatively, so a passing pre-check is no
    guarantee.
    """
    try:
        checkout = CheckoutRequest.from_payload(request.get_json(silent=True))
        outcome = get_engine().coordinator.precheck(g.principal, checkout)
        if not outcome.ok:
            return error_response(outcome.error)

        return jsonify({
            "available": True,
            "total": checkout.cart_total,
            "total_after_discount": checkout.total_after_discount,
        })

    except SaleError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to pre-check sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/undo")
@require_auth
@require_role(ROLE_ADMIN)
def undo_sale_route(sale_id: int):
    """
    Reverse a recent sale: restore stock, drop its receivable and the sale.

    Requires: ADMIN
    """
    try:
        outcome = get_engine().coordinator.undo_sale(
            g.principal,
            sale_id,
            window_minutes=current_app.config["SALE_UNDO_WINDOW_MINUTES"],
        )
        if not outcome.ok:
            return error_response(outcome.error)

        return jsonify({
            "undone": True,
            "sale_id": sale_id,
            "invoice_number": outcome.invoice_number,
            "stock": [{"product_id": c.product_id, "stock": c.stock} for c in outcome.stock_changes],
        })

    except SaleError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to undo sale")
        return jsonify({"error": "Internal server error"}), 500
