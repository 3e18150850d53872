# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func

from ..errors import InsufficientStock, ItemNotFound, ValidationError
from ..extensions import db
from ..models import InventoryItem, StockMovement
from ..time_utils import utcnow
from .concurrency import lock_for_update
"""
Stock Ledger Invariants (authoritative)

- stock_movements is append-only: no updates, no deletes. Corrections are
  new offsetting movements.
- InventoryItem.quantity == SUM(stock_movements.quantity) for the item at
  all times. It is a cached projection written only here, in the same DB
  transaction as the movement that explains it (flush here, caller commits).
- Balance never goes negative. A movement that would make it negative is
  rejected with InsufficientStock and nothing is written.
- Sign convention: in/out take a positive magnitude (out is stored negative);
  adjustment takes the signed delta and may not be zero.
- Movements carrying an idempotency_key are applied at most once.
"""

logger = logging.getLogger(__name__)

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT)


def signed_quantity(movement_type: str, quantity: int) -> int:
    """Effect of a movement on the balance."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type: {movement_type!r}")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")

    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity == 0:
            raise ValidationError("quantity must be non-zero for adjustment")
        return quantity

    if quantity <= 0:
        raise ValidationError(f"quantity must be > 0 for {movement_type}")
    return quantity if movement_type == MOVEMENT_IN else -quantity


def _get_item(item_code: str, *, lock: bool = False) -> InventoryItem:
    query = db.session.query(InventoryItem).filter_by(code=item_code)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise ItemNotFound(item_code)
    return item


def find_movement_by_key(idempotency_key: str) -> StockMovement | None:
    return db.session.query(StockMovement).filter_by(idempotency_key=idempotency_key).first()


def apply_movement(
    item_code: str,
    movement_type: str,
    quantity: int,
    unit_price_cents: int | None,
    reason: str | None,
    reference: str | None = None,
    *,
    actor: str,
    idempotency_key: str | None = None,
) -> InventoryItem:
    """
    Append one movement and move the item balance with it.

    Both writes are flushed in the current DB transaction; the caller commits
    (or rolls back) them together.

    Raises:
        ValidationError: bad type/quantity/actor
        ItemNotFound: no item with that code
        InsufficientStock: balance would go negative (nothing written)
    """
    movement, item = _append(
        item_code,
        movement_type,
        quantity,
        unit_price_cents,
        reason,
        reference,
        actor=actor,
        idempotency_key=idempotency_key,
    )
    return item


def record_movement(
    item_code: str,
    movement_type: str,
    quantity: int,
    unit_price_cents: int | None,
    reason: str | None,
    reference: str | None = None,
    *,
    actor: str,
    idempotency_key: str | None = None,
) -> StockMovement:
    """Same as apply_movement but returns the movement row (used by opname commit)."""
    movement, _ = _append(
        item_code,
        movement_type,
        quantity,
        unit_price_cents,
        reason,
        reference,
        actor=actor,
        idempotency_key=idempotency_key,
    )
    return movement


def _append(
    item_code: str,
    movement_type: str,
    quantity: int,
    unit_price_cents: int | None,
    reason: str | None,
    reference: str | None,
    *,
    actor: str,
    idempotency_key: str | None,
) -> tuple[StockMovement, InventoryItem]:
    delta = signed_quantity(movement_type, quantity)
    if not actor or not str(actor).strip():
        raise ValidationError("actor is required")
    if unit_price_cents is not None and unit_price_cents < 0:
        raise ValidationError("unit_price_cents must be >= 0")

    if idempotency_key:
        existing = find_movement_by_key(idempotency_key)
        if existing is not None:
            if existing.item_code != item_code:
                raise ValidationError(
                    f"idempotency_key {idempotency_key!r} already used for item {existing.item_code!r}"
                )
            logger.info("movement %s already applied, skipping", idempotency_key)
            return existing, _get_item(item_code)

    item = _get_item(item_code, lock=True)

    new_balance = item.quantity + delta
    if new_balance < 0:
        raise InsufficientStock(item_code, item.quantity, delta)

    now = utcnow()
    movement = StockMovement(
        item_code=item.code,
        type=movement_type,
        quantity=delta,
        balance_after=new_balance,
        unit_price_cents=unit_price_cents if unit_price_cents is not None else item.price_cents,
        reason=reason,
        reference=reference,
        idempotency_key=idempotency_key,
        created_by=str(actor).strip(),
        created_at=now,
    )
    db.session.add(movement)

    item.quantity = new_balance
    item.updated_at = now

    db.session.flush()
    return movement, item


def transactions_for_item(
    item_code: str,
    *,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[StockMovement]:
    """
    Movements for one item, newest first.

    Date filters are inclusive on both ends. Pure projection, no mutation.
    """
    _get_item(item_code)

    q = db.session.query(StockMovement).filter(StockMovement.item_code == item_code)
    if since is not None:
        q = q.filter(StockMovement.created_at >= since)
    if until is not None:
        q = q.filter(StockMovement.created_at <= until)

    q = q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    if offset:
        q = q.offset(offset)
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def get_quantity_on_hand(item_code: str) -> int:
    """
    Ledger-derived balance: SUM(quantity) over the item's movements.

    This is the authoritative figure; InventoryItem.quantity caches it.
    """
    _get_item(item_code)
    total = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity), 0)
    ).filter(StockMovement.item_code == item_code).scalar()
    return int(total or 0)


def verify_balances(*, fix: bool = False) -> list[dict]:
    """
    Compare every cached item quantity with its ledger sum.

    Returns one entry per mismatching item. With fix=True the cached value is
    rewritten from the ledger (the ledger is never touched).
    """
    sums = dict(
        db.session.query(
            StockMovement.item_code,
            func.coalesce(func.sum(StockMovement.quantity), 0),
        ).group_by(StockMovement.item_code).all()
    )

    drift = []
    for item in db.session.query(InventoryItem).order_by(InventoryItem.code).all():
        ledger_quantity = int(sums.get(item.code, 0))
        if item.quantity == ledger_quantity:
            continue
        drift.append({
            "code": item.code,
            "cached_quantity": item.quantity,
            "ledger_quantity": ledger_quantity,
        })
        if fix:
            logger.warning(
                "repairing cached balance for %s: %d -> %d",
                item.code, item.quantity, ledger_quantity,
            )
            item.quantity = ledger_quantity

    if fix and drift:
        db.session.flush()
    return drift
