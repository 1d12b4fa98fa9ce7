# Overview: Flask API route for the store's product search listing.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SaleError, error_response
from ..services.engine import get_engine
from ..services.product_query import parse_product_args
from ..decorators import require_auth, require_role


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_role()
def list_products_route():
    """
    List active products of the caller's store with current stock.

    Query params:
    - q: str (optional) - case-insensitive match on name or SKU
    - page: int (optional) - page number (1-indexed, default 1)
    - limit: int (optional) - items per page (default 20, max 100)
    """
    try:
        q, page, limit = parse_product_args(request.args)
        payload, hit = get_engine().products.list_products(g.principal.store_id, q, page, limit)
        response = jsonify(payload)
        response.headers["X-Cache"] = "HIT" if hit else "MISS"
        return response

    except SaleError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500
