# backend/stockrecon/routes/acquisitions.py
"""
POST /api/acquisitions

Request body:
{
    "allow_partial": false,
    "items": [
        {"product": {"brand": "Apple", "model": "iPhone 13", "has_serial": true, "price_cents": 50000},
         "units": [{"serial": "A1"}, {"serial": "A2", "color": "blue"}],
         "default_pricing": {"price_cents": 48000, "min_price_cents": 45000}},
        {"product_id": 7, "quantity": 10}
    ]
}

Returns 201 on success, 400 for invalid input, 409 when the acquisition
failed and was rolled back (body carries errors, rollback_errors and the
failed step).
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import ValidationError
from ..services import current_services
from ..services.acquisition_service import AcquisitionItem
from ..domain import PRICE_FIELDS, Pricing, UnitEntry
from ..validation import enforce_rules_pricing, parse_product_payload, parse_unit_entry_payloads


acquisitions_bp = Blueprint("acquisitions", __name__, url_prefix="/api/acquisitions")


def _parse_item(index: int, raw) -> AcquisitionItem:
    if not isinstance(raw, dict):
        raise ValidationError(f"Item {index + 1}: must be an object")

    product_data = None
    if raw.get("product") is not None:
        product_data = parse_product_payload(raw["product"])

    entries = []
    if raw.get("units"):
        entries = [UnitEntry.from_dict(patch) for patch in parse_unit_entry_payloads(raw["units"])]

    quantity = raw.get("quantity", 0)
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValidationError(f"Item {index + 1}: quantity must be an integer")

    product_id = raw.get("product_id")
    if product_id is not None and (not isinstance(product_id, int) or isinstance(product_id, bool)):
        raise ValidationError(f"Item {index + 1}: product_id must be an integer")

    default_pricing = None
    raw_pricing = raw.get("default_pricing")
    if raw_pricing is not None:
        if not isinstance(raw_pricing, dict) or set(raw_pricing) - set(PRICE_FIELDS):
            raise ValidationError(
                f"Item {index + 1}: default_pricing must only contain price_cents, min_price_cents, max_price_cents"
            )
        if any(isinstance(v, bool) or not isinstance(v, (int, type(None))) for v in raw_pricing.values()):
            raise ValidationError(f"Item {index + 1}: prices must be integers (cents)")
        try:
            enforce_rules_pricing(raw_pricing)
        except ValidationError as e:
            raise ValidationError(f"Item {index + 1}: {e}") from e
        default_pricing = Pricing(**raw_pricing)

    return AcquisitionItem(
        product_id=product_id,
        product_data=product_data,
        quantity=quantity,
        unit_entries=entries,
        default_pricing=default_pricing,
    )


@acquisitions_bp.post("")
def create_acquisition_route():
    data = request.get_json(silent=True) or {}
    raw_items = data.get("items")

    try:
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("items must be a non-empty list")
        allow_partial = data.get("allow_partial", False)
        if not isinstance(allow_partial, bool):
            raise ValidationError("allow_partial must be a boolean")
        items = [_parse_item(index, raw) for index, raw in enumerate(raw_items)]

        result = current_services().acquisitions.acquire(items, allow_partial=allow_partial)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Acquisition failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict()), 201 if result.success else 409
