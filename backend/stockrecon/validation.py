from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

PRICE_KEYS = ("price_cents", "min_price_cents", "max_price_cents")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


UNIT_ENTRY_POLICY = ModelValidationPolicy(
    writable_fields={
        "serial_number", "price_cents", "min_price_cents", "max_price_cents",
        "color", "storage", "ram", "battery_level",
    },
    required_on_create={"serial_number"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "brand", "model", "category", "threshold", "has_serial",
        "price_cents", "min_price_cents", "max_price_cents",
    },
    required_on_create={"brand", "model"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_pricing(patch: dict) -> None:
    """Price range and min/max ordering, shared by products and units."""
    for key in PRICE_KEYS:
        price = patch.get(key)
        if price is None:
            continue
        if price < 0:
            raise ValidationError(f"{key} must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")

    low, high = patch.get("min_price_cents"), patch.get("max_price_cents")
    if low is not None and high is not None and low >= high:
        raise ValidationError("min_price_cents must be less than max_price_cents")


def enforce_rules_unit(patch: dict) -> None:
    enforce_rules_pricing(patch)

    battery = patch.get("battery_level")
    if battery is not None and not 0 <= battery <= 100:
        raise ValidationError("battery_level must be between 0 and 100")

    for key in ("storage", "ram"):
        if patch.get(key) is not None and patch[key] <= 0:
            raise ValidationError(f"{key} must be > 0")


def parse_unit_entry_payloads(raw_entries: Any) -> list[dict]:
    """
    Validate a JSON list of unit entries.

    Accepts "serial" as an alias of "serial_number". Returns cleaned dicts
    ready for UnitEntry.from_dict(). Duplicate serials are NOT rejected here;
    the store's uniqueness check reports them per entry.
    """
    from .models import ProductUnit

    if not isinstance(raw_entries, list) or not raw_entries:
        raise ValidationError("units must be a non-empty list")

    cleaned = []
    for index, raw in enumerate(raw_entries):
        if not isinstance(raw, dict):
            raise ValidationError(f"Entry {index + 1}: must be an object")
        payload = dict(raw)
        if "serial" in payload:
            payload.setdefault("serial_number", payload.pop("serial"))
        try:
            patch = validate_payload(model=ProductUnit, payload=payload, policy=UNIT_ENTRY_POLICY, partial=False)
            enforce_rules_unit(patch)
        except ValidationError as exc:
            raise ValidationError(f"Entry {index + 1}: {exc}") from exc
        cleaned.append(patch)
    return cleaned


def parse_product_payload(raw: Any) -> dict:
    from .models import Product

    patch = validate_payload(model=Product, payload=raw, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_pricing(patch)
    if patch.get("threshold") is not None and patch["threshold"] < 0:
        raise ValidationError("threshold must be >= 0")
    return patch
