# Overview: Item, category and stock movement models.

from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Category(db.Model):
    """
    Category lookup used only to resolve a category name to its short code.

    The code (1-3 characters) is the prefix of every product code allocated
    for the category, e.g. category "Minuman" with code "MN" yields MN01, MN02.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(3), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Category name={self.name!r} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryItem(db.Model):
    """
    Item master data.

    CODE DESIGN DECISION:
    InventoryItem.code is the canonical identifier and the primary scan target.
    - Codes are unique (storage-level constraint is the source of truth)
    - Codes are suggested by code_service.allocate_code, never reserved
    - sku is an optional barcode; scans match either sku or code

    QUANTITY:
    quantity is a cached projection of SUM(stock_movements.quantity) for the
    item. It is written only by ledger_service.apply_movement, in the same
    DB transaction as the movement row that explains it.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_inventory_items_code"),
        db.UniqueConstraint("sku", name="uq_inventory_items_sku"),
        db.Index("ix_inventory_items_category_name", "category", "name"),
        db.Index("ix_inventory_items_active", "is_active"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(16), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    supplier = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem code={self.code!r} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "quantity": self.quantity,
            "reorder_level": self.reorder_level,
            "supplier": self.supplier,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger row.

    IMMUTABLE: never updated or deleted. Corrections are new offsetting
    movements. quantity is the signed effect on the item balance:
    - in: positive
    - out: negative
    - adjustment: either sign, never zero

    item_code is a reference, not ownership; items are fetched by lookup.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_item_created", "item_code", "created_at"),
        db.Index("ix_stock_movements_reference", "reference"),
        db.UniqueConstraint("idempotency_key", name="uq_stock_movements_idempotency_key"),
        db.CheckConstraint("quantity <> 0", name="ck_stock_movements_quantity_nonzero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    item_code = db.Column(db.String(16), db.ForeignKey("inventory_items.code"), nullable=False, index=True)

    # in | out | adjustment
    type = db.Column(db.String(16), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)

    # Balance after this movement (audit aid; the ledger sum stays authoritative)
    balance_after = db.Column(db.Integer, nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    reason = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(128), nullable=True)

    # Optional client-supplied key; a retried movement with the same key is not re-applied
    idempotency_key = db.Column(db.String(128), nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_code": self.item_code,
            "type": self.type,
            "quantity": self.quantity,
            "balance_after": self.balance_after,
            "unit_price_cents": self.unit_price_cents,
            "reason": self.reason,
            "reference": self.reference,
            "idempotency_key": self.idempotency_key,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
