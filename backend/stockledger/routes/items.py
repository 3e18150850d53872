# backend/stockledger/routes/items.py
"""
Item master routes.

quantity is read-only here; stock only moves through /api/ledger and
stock opname commits.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import translate_errors, with_operator_context
from ..errors import ItemNotFound
from ..extensions import db
from ..models import InventoryItem
from ..services import code_service, item_service, monitoring_service
from ..validation import QUANTITY_READ_ONLY, ModelValidationPolicy, enforce_rules_item, validate_payload


items_bp = Blueprint("items", __name__, url_prefix="/api/items")

ITEM_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "code",
        "name",
        "category",
        "sku",
        "description",
        "price_cents",
        "cost_cents",
        "reorder_level",
        "supplier",
    },
    required_on_create={"name", "category"},
    extra_fields={"opening_quantity"},
    read_only_fields={"quantity": QUANTITY_READ_ONLY},
)

ITEM_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(item_service.EDITABLE_FIELDS),
    read_only_fields={"quantity": QUANTITY_READ_ONLY},
)


@items_bp.get("")
@with_operator_context
@translate_errors("list items")
def list_items():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    items = item_service.list_items(
        include_inactive=include_inactive,
        search=request.args.get("q"),
    )
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@items_bp.get("/<code>")
@with_operator_context
@translate_errors("load item")
def get_item(code: str):
    item = item_service.get_by_code(code)
    data = item.to_dict()
    data["monitoring_status"] = monitoring_service.status_for(item.code)
    return jsonify({"item": data}), 200


@items_bp.get("/lookup")
@with_operator_context
@translate_errors("look up item")
def lookup_item():
    """
    Resolve a barcode scan or typed code.

    Query: ?value=<scanned string>
    """
    value = request.args.get("value", "")
    item = item_service.find_by_sku_or_code(value)
    if item is None:
        raise ItemNotFound(value.strip())
    return jsonify({"item": item.to_dict()}), 200


@items_bp.get("/allocate-code")
@with_operator_context
@translate_errors("allocate code")
def allocate_code():
    """
    Suggest the next free product code.

    Query: ?category=<category name>  or  ?category_code=<1-3 chars>
    The code is not reserved; POST /api/items may still answer 409 DUPLICATE_CODE.
    """
    category_code = request.args.get("category_code")
    if not category_code:
        category_code = code_service.resolve_category_code(request.args.get("category"))
    return jsonify({"code": code_service.allocate_code(category_code)}), 200


@items_bp.post("")
@with_operator_context
@translate_errors("create item")
def create_item():
    """
    Create an item. The code is allocated from the category unless given.

    Request body:
    {
        "name": str,
        "category": str,
        "price_cents": int (optional),
        "cost_cents": int (optional),
        "sku": str (optional),
        "opening_quantity": int (optional, posted as an "in" movement)
    }

    Returns:
        201: Item created
        400: Invalid request / invalid category
        409: DUPLICATE_CODE (retry to get a fresh code)
    """
    patch = validate_payload(
        model=InventoryItem,
        payload=request.get_json(silent=True),
        policy=ITEM_CREATE_POLICY,
        partial=False,
    )
    enforce_rules_item(patch)

    item = item_service.create_item(actor=g.actor, **patch)
    db.session.commit()
    return jsonify({"item": item.to_dict()}), 201


@items_bp.patch("/<code>")
@with_operator_context
@translate_errors("update item")
def update_item(code: str):
    patch = validate_payload(
        model=InventoryItem,
        payload=request.get_json(silent=True),
        policy=ITEM_UPDATE_POLICY,
        partial=True,
    )
    enforce_rules_item(patch)

    item = item_service.update_item(code, **patch)
    db.session.commit()
    return jsonify({"item": item.to_dict()}), 200


@items_bp.post("/<code>/deactivate")
@with_operator_context
@translate_errors("deactivate item")
def deactivate_item(code: str):
    item = item_service.deactivate_item(code)
    db.session.commit()
    return jsonify({"item": item.to_dict()}), 200
