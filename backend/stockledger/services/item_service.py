# Overview: Service-layer operations for items; lookups used by the allocator, ledger and opname engine.

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateCode, ItemNotFound, ValidationError
from ..extensions import db
from ..models import InventoryItem
from .code_service import allocate_code, resolve_category_code
from .ledger_service import MOVEMENT_IN, apply_movement

logger = logging.getLogger(__name__)

# Attributes an operator may edit directly. quantity is deliberately absent:
# it only moves through ledger_service.apply_movement.
EDITABLE_FIELDS = {
    "name",
    "sku",
    "description",
    "category",
    "price_cents",
    "cost_cents",
    "reorder_level",
    "supplier",
}

OPENING_STOCK_REASON = "Opening stock"


def normalize_scan(value: str | None) -> str:
    """Barcode scans and typed codes are matched the same way: trimmed, exact."""
    return (value or "").strip()


def find_by_code(code: str) -> InventoryItem | None:
    return db.session.query(InventoryItem).filter_by(code=normalize_scan(code)).first()


def get_by_code(code: str) -> InventoryItem:
    item = find_by_code(code)
    if item is None:
        raise ItemNotFound(code)
    return item


def find_by_sku_or_code(value: str) -> InventoryItem | None:
    """
    Resolve a scan or manual entry.

    An exact code match wins over a sku match so a barcode that happens to
    look like another item's code cannot shadow that item.
    """
    normalized = normalize_scan(value)
    if not normalized:
        return None

    matches = db.session.query(InventoryItem).filter(
        or_(InventoryItem.code == normalized, InventoryItem.sku == normalized)
    ).all()
    for item in matches:
        if item.code == normalized:
            return item
    return matches[0] if matches else None


def list_active() -> list[InventoryItem]:
    return (
        db.session.query(InventoryItem)
        .filter(InventoryItem.is_active.is_(True))
        .order_by(InventoryItem.code)
        .all()
    )


def list_items(include_inactive: bool = False, search: str | None = None) -> list[InventoryItem]:
    q = db.session.query(InventoryItem)
    if not include_inactive:
        q = q.filter(InventoryItem.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                InventoryItem.name.ilike(pattern),
                InventoryItem.code.ilike(pattern),
                InventoryItem.sku.ilike(pattern),
            )
        )
    return q.order_by(InventoryItem.code).all()


def _validate_attrs(attrs: dict) -> None:
    for key in ("price_cents", "cost_cents", "reorder_level"):
        value = attrs.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{key} must be an integer")
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
    if "name" in attrs and not (attrs["name"] or "").strip():
        raise ValidationError("name cannot be blank")


def _insert_item(code: str, attrs: dict) -> InventoryItem:
    item = InventoryItem(code=code, quantity=0, is_active=True, **attrs)
    try:
        with db.session.begin_nested():
            db.session.add(item)
    except IntegrityError as exc:
        if find_by_code(code) is not None:
            raise DuplicateCode(code) from exc
        sku = attrs.get("sku")
        if sku:
            raise ValidationError(f"sku {sku!r} is already used by another item") from exc
        raise
    return item


def create_item(
    *,
    name: str,
    category: str,
    actor: str,
    price_cents: int = 0,
    cost_cents: int = 0,
    sku: str | None = None,
    description: str | None = None,
    supplier: str | None = None,
    reorder_level: int = 0,
    opening_quantity: int = 0,
    code: str | None = None,
) -> InventoryItem:
    """
    Create an item under an allocated code.

    DUPLICATE HANDLING: a collision on insert means another item took the
    suggested code between allocation and insert. The code is re-allocated
    and the insert retried once; a second collision surfaces DuplicateCode.
    An explicit ``code`` is never re-allocated.

    Opening stock is recorded as an ``in`` movement, so the item's quantity
    equals its ledger sum from the first moment it exists.
    """
    attrs = {
        "name": (name or "").strip(),
        "category": (category or "").strip() or None,
        "price_cents": price_cents,
        "cost_cents": cost_cents,
        "sku": normalize_scan(sku) or None,
        "description": description,
        "supplier": supplier,
        "reorder_level": reorder_level,
    }
    _validate_attrs(attrs)
    if isinstance(opening_quantity, bool) or not isinstance(opening_quantity, int) or opening_quantity < 0:
        raise ValidationError("opening_quantity must be an integer >= 0")

    if code:
        item = _insert_item(normalize_scan(code), attrs)
    else:
        category_code = resolve_category_code(category)
        suggested = allocate_code(category_code)
        try:
            item = _insert_item(suggested, attrs)
        except DuplicateCode:
            logger.info("code %s taken during insert, re-allocating once", suggested)
            item = _insert_item(allocate_code(category_code), attrs)

    if opening_quantity:
        apply_movement(
            item.code,
            MOVEMENT_IN,
            opening_quantity,
            item.cost_cents,
            OPENING_STOCK_REASON,
            actor=actor,
        )
    return item


def update_item(code: str, **attrs) -> InventoryItem:
    """Edit descriptive attributes. Never touches quantity."""
    if "quantity" in attrs:
        raise ValidationError("quantity can only change through stock movements")
    unknown = set(attrs) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    _validate_attrs(attrs)

    item = get_by_code(code)
    try:
        with db.session.begin_nested():
            for key, value in attrs.items():
                if key == "sku":
                    value = normalize_scan(value) or None
                setattr(item, key, value)
    except IntegrityError as exc:
        raise ValidationError(f"sku {attrs.get('sku')!r} is already used by another item") from exc
    return item


def deactivate_item(code: str) -> InventoryItem:
    """Soft delete; the item keeps its code and ledger history."""
    item = get_by_code(code)
    item.is_active = False
    db.session.flush()
    return item
