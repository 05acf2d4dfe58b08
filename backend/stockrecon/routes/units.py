# backend/stockrecon/routes/units.py
"""
Product unit routes.

- GET    /api/products/<id>/units          list units (optional ?status=)
- POST   /api/products/<id>/units          create units from serial entries
- POST   /api/units/<id>/status            ordinary status transition
- POST   /api/units/<id>/transfer          move a unit to another serialized product
- DELETE /api/units/<id>                   hard delete (caller verified no sale history)
- POST   /api/units/backfill-barcodes      assign barcodes to units missing one
- GET    /api/units/barcodes/validate      check stored barcodes (optional ?product_id=)

Unit status is never accepted as a raw field on create; new units always start
as available and move only through /status.
"""

from flask import Blueprint, request, jsonify, current_app

from ..domain import Pricing, UnitEntry
from ..errors import DuplicateSerialError, NotFoundError, PersistenceError, ValidationError
from ..services import current_services
from ..validation import enforce_rules_pricing, parse_unit_entry_payloads


units_bp = Blueprint("units", __name__, url_prefix="/api")


def _storage_error(exc: PersistenceError, message: str):
    if isinstance(exc, DuplicateSerialError):
        return jsonify({"error": str(exc)}), 409
    current_app.logger.exception(message)
    return jsonify({"error": "Storage error"}), 500


@units_bp.get("/products/<int:product_id>/units")
def list_units_route(product_id: int):
    status = request.args.get("status")
    try:
        units = current_services().lifecycle.get_units(product_id, status)
        return jsonify({"units": [unit.to_dict() for unit in units]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PersistenceError as e:
        return _storage_error(e, "Failed to list units")


@units_bp.post("/products/<int:product_id>/units")
def create_units_route(product_id: int):
    """
    Create serialized units.

    Request body:
    {
        "units": [{"serial": "A1", "price_cents": 1000, "color": "black", ...}, ...],
        "default_pricing": {"price_cents": 900, "min_price_cents": 800, "max_price_cents": 1200}
    }

    Partial success: 201 with both "created" and "errors" when at least one
    unit was created, 400 when none were.
    """
    data = request.get_json(silent=True) or {}

    try:
        entries = [UnitEntry.from_dict(patch) for patch in parse_unit_entry_payloads(data.get("units"))]

        default_pricing = None
        raw_pricing = data.get("default_pricing")
        if raw_pricing is not None:
            if not isinstance(raw_pricing, dict) or set(raw_pricing) - {"price_cents", "min_price_cents", "max_price_cents"}:
                raise ValidationError("default_pricing must only contain price_cents, min_price_cents, max_price_cents")
            enforce_rules_pricing(raw_pricing)
            default_pricing = Pricing(**raw_pricing)

        lifecycle = current_services().lifecycle
        result = lifecycle.create_units(product_id, entries, default_pricing=default_pricing)

        status = 201 if result.created else 400
        return jsonify(result.to_dict()), status

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TypeError:
        return jsonify({"error": "Prices must be integers (cents)"}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return _storage_error(e, "Failed to create units")
    except Exception:
        current_app.logger.exception("Failed to create units")
        return jsonify({"error": "Internal server error"}), 500


@units_bp.post("/units/<int:unit_id>/status")
def update_status_route(unit_id: int):
    """
    Request body: {"status": "reserved", "note": "optional"}

    400 for an unknown status or a transition the state machine rejects
    (nothing leaves 'sold' through this route).
    """
    data = request.get_json(silent=True) or {}
    new_status = data.get("status")
    if not new_status:
        return jsonify({"error": "status is required"}), 400

    try:
        unit = current_services().lifecycle.update_status(unit_id, new_status, note=data.get("note"))
        return jsonify({"unit": unit.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return _storage_error(e, "Failed to update unit status")
    except Exception:
        current_app.logger.exception("Failed to update unit status")
        return jsonify({"error": "Internal server error"}), 500


@units_bp.post("/units/<int:unit_id>/transfer")
def transfer_unit_route(unit_id: int):
    """Request body: {"target_product_id": int}"""
    data = request.get_json(silent=True) or {}
    target = data.get("target_product_id")
    if not isinstance(target, int) or isinstance(target, bool):
        return jsonify({"error": "target_product_id must be an integer"}), 400

    try:
        unit = current_services().lifecycle.transfer_to_product(unit_id, target)
        return jsonify({"unit": unit.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return _storage_error(e, "Failed to transfer unit")
    except Exception:
        current_app.logger.exception("Failed to transfer unit")
        return jsonify({"error": "Internal server error"}), 500


@units_bp.delete("/units/<int:unit_id>")
def delete_unit_route(unit_id: int):
    try:
        current_services().lifecycle.delete_unit(unit_id)
        return "", 204
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return _storage_error(e, "Failed to delete unit")
    except Exception:
        current_app.logger.exception("Failed to delete unit")
        return jsonify({"error": "Internal server error"}), 500


@units_bp.post("/units/backfill-barcodes")
def backfill_barcodes_route():
    try:
        return jsonify(current_services().lifecycle.backfill_missing_barcodes()), 200
    except PersistenceError as e:
        return _storage_error(e, "Barcode backfill failed")


@units_bp.get("/units/barcodes/validate")
def validate_barcodes_route():
    product_id = request.args.get("product_id", type=int)
    try:
        return jsonify(current_services().lifecycle.validate_unit_barcodes(product_id)), 200
    except PersistenceError as e:
        return _storage_error(e, "Barcode validation failed")
