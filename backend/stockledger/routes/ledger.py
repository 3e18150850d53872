# backend/stockledger/routes/ledger.py
"""
Stock ledger routes.

Time semantics:
- since/until accept ISO-8601 datetimes with Z/offsets; normalized to UTC-naive.
- Both filters are inclusive.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import translate_errors, with_operator_context
from ..errors import ValidationError
from ..extensions import db
from ..models import StockMovement
from ..services import ledger_service
from ..time_utils import parse_iso_datetime
from ..validation import ModelValidationPolicy, coerce_int, enforce_rules_movement, validate_payload


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"item_code", "type", "quantity", "unit_price_cents", "reason", "reference", "idempotency_key"},
    required_on_create={"item_code", "type", "quantity"},
)


def _parse_filter(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@ledger_bp.post("/movements")
@with_operator_context
@translate_errors("apply stock movement")
def apply_movement():
    """
    Append one stock movement.

    Request body:
    {
        "item_code": str,
        "type": "in" | "out" | "adjustment",
        "quantity": int,          // magnitude for in/out, signed for adjustment
        "unit_price_cents": int (optional, defaults to the item price),
        "reason": str (optional),
        "reference": str (optional),
        "idempotency_key": str (optional; a retry with the same key is not re-applied)
    }

    Returns:
        201: Movement applied, updated item returned
        400: Invalid request
        404: Item not found
        409: INSUFFICIENT_STOCK
        503: STORAGE_ERROR (safe to retry with the same idempotency_key)
    """
    patch = validate_payload(
        model=StockMovement,
        payload=request.get_json(silent=True),
        policy=MOVEMENT_POLICY,
        partial=False,
    )
    enforce_rules_movement(patch)

    item = ledger_service.apply_movement(
        patch["item_code"],
        patch["type"],
        patch["quantity"],
        patch.get("unit_price_cents"),
        patch.get("reason"),
        patch.get("reference"),
        actor=g.actor,
        idempotency_key=patch.get("idempotency_key"),
    )
    db.session.commit()
    return jsonify({"item": item.to_dict()}), 201


@ledger_bp.get("/items/<code>/movements")
@with_operator_context
@translate_errors("list stock movements")
def list_movements(code: str):
    """Movements for an item, newest first. Query: since, until, limit, offset."""
    limit = request.args.get("limit")
    offset = request.args.get("offset")
    movements = ledger_service.transactions_for_item(
        code,
        since=_parse_filter("since"),
        until=_parse_filter("until"),
        limit=coerce_int("limit", limit) if limit else None,
        offset=coerce_int("offset", offset) if offset else 0,
    )
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@ledger_bp.get("/items/<code>/on-hand")
@with_operator_context
@translate_errors("load on-hand quantity")
def on_hand(code: str):
    return jsonify({
        "item_code": code,
        "quantity_on_hand": ledger_service.get_quantity_on_hand(code),
    }), 200


@ledger_bp.get("/verify")
@with_operator_context
@translate_errors("verify balances")
def verify():
    """Items whose cached quantity disagrees with the ledger (read-only)."""
    drift = ledger_service.verify_balances(fix=False)
    return jsonify({"ok": not drift, "drift": drift}), 200
