# backend/stockrecon/routes/stock.py
"""
Effective stock routes.

- GET  /api/products/<id>/effective-stock
- POST /api/stock/effective   body: {"product_ids": [1, 2, 3]}
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import NotFoundError, PersistenceError
from ..services import current_services


stock_bp = Blueprint("stock", __name__, url_prefix="/api")

MAX_BATCH_SIZE = 200


@stock_bp.get("/products/<int:product_id>/effective-stock")
def effective_stock_route(product_id: int):
    services = current_services()
    try:
        product = services.store.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        quantity = services.stock.fetch_effective_stock(product_id)
        return jsonify({
            "product_id": product_id,
            "has_serial": product.has_serial,
            "effective_stock": quantity,
            "stored_stock": product.stock,
            "is_low_stock": services.stock.is_low_stock(product),
        }), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError:
        current_app.logger.exception("Effective stock lookup failed")
        return jsonify({"error": "Storage error"}), 500


@stock_bp.post("/stock/effective")
def effective_stock_batch_route():
    data = request.get_json(silent=True) or {}
    product_ids = data.get("product_ids")

    if not isinstance(product_ids, list) or not all(
        isinstance(pid, int) and not isinstance(pid, bool) for pid in product_ids
    ):
        return jsonify({"error": "product_ids must be a list of integers"}), 400
    if len(product_ids) > MAX_BATCH_SIZE:
        return jsonify({"error": f"At most {MAX_BATCH_SIZE} product ids per request"}), 400

    try:
        quantities = current_services().stock.fetch_effective_stock_batch(product_ids)
        # JSON object keys are strings
        return jsonify({"effective_stock": {str(pid): qty for pid, qty in quantities.items()}}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError:
        current_app.logger.exception("Effective stock batch lookup failed")
        return jsonify({"error": "Storage error"}), 500
