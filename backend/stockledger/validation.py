from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

QUANTITY_READ_ONLY = "quantity can only change through stock movements"


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What a client may send for one model:
    - writable_fields: columns clients are allowed to set
    - required_on_create: fields required for POST
    - extra_fields: non-column fields passed through to the service as-is
    - read_only_fields: columns that exist but are never client-writable,
      with the message returned when a client tries
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    extra_fields: set[str] = field(default_factory=set)
    read_only_fields: dict[str, str] = field(default_factory=dict)


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _clean_value(col, raw: Any):
    if raw is None:
        if not col.nullable:
            raise ValidationError(f"{col.key} cannot be null")
        return None

    coltype = col.type
    if isinstance(coltype, Boolean):
        if not isinstance(raw, bool):
            raise ValidationError(f"{col.key} must be a boolean")
        return raw
    if isinstance(coltype, Integer):
        return coerce_int(col.key, raw)
    if not isinstance(coltype, (String, Text)):
        return raw

    value = str(raw).strip()
    if not value:
        # Blank optional strings (sku, supplier, ...) are stored as NULL so
        # they never collide on a unique index
        if col.nullable:
            return None
        raise ValidationError(f"{col.key} cannot be blank")
    length = getattr(coltype, "length", None)
    if length and len(value) > length:
        raise ValidationError(f"{col.key} exceeds max length {length}")
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validate and normalize incoming JSON against the policy and the model's
    column metadata (nullable, type, String length).

    partial=False: create semantics (required_on_create enforced)
    partial=True: patch semantics (only the provided keys are checked)

    Returns a patch dict holding only allowed keys, ready to pass to a service.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    for key, message in policy.read_only_fields.items():
        if key in payload:
            raise ValidationError(message)

    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        if key in policy.extra_fields:
            patch[key] = raw
        elif key in policy.writable_fields and key in columns:
            patch[key] = _clean_value(columns[key], raw)
        else:
            raise ValidationError(f"Field not allowed: {key}")
    return patch


def enforce_rules_item(patch: dict) -> None:
    """Item rules not captured by column metadata."""
    for key in ("price_cents", "cost_cents", "reorder_level"):
        value = patch.get(key)
        if value is not None and value < 0:
            raise ValidationError(f"{key} must be >= 0")

    for key in ("price_cents", "cost_cents"):
        value = patch.get(key)
        if value is not None and value > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")

    if "opening_quantity" in patch:
        patch["opening_quantity"] = coerce_int("opening_quantity", patch["opening_quantity"])
        if patch["opening_quantity"] < 0:
            raise ValidationError("opening_quantity must be >= 0")


def enforce_rules_movement(patch: dict) -> None:
    # in/out carry a positive magnitude; adjustment carries the signed delta
    movement_type = patch.get("type")
    quantity = patch.get("quantity")
    if movement_type in ("in", "out") and quantity is not None and quantity <= 0:
        raise ValidationError(f"quantity must be > 0 for {movement_type}")
    if movement_type == "adjustment" and quantity == 0:
        raise ValidationError("quantity must be non-zero for adjustment")

    unit_price = patch.get("unit_price_cents")
    if unit_price is not None and not 0 <= unit_price <= MAX_PRICE_CENTS:
        raise ValidationError(f"unit_price_cents must be between 0 and {MAX_PRICE_CENTS}")
