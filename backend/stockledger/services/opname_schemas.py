# Overview: Plain data types shared by the stock opname services and routes.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import ValidationError
from ..time_utils import to_utc_z

MODE_PARTIAL = "partial"
MODE_GRAND = "grand"
MODES = (MODE_PARTIAL, MODE_GRAND)

VIEW_PARTIAL = "partial_so"
VIEW_GRAND = "grand_so"
VIEW_EDIT = "edit_so"
VIEWS = (VIEW_PARTIAL, VIEW_GRAND, VIEW_EDIT)

COMMIT_COMMITTED = "committed"
COMMIT_PARTIAL = "partially_committed"
COMMIT_NOT_COMMITTED = "not_committed"
# Every adjustment posted; history, monitoring and draft removal still outstanding
COMMIT_FINALIZE_PENDING = "finalize_pending"


def _to_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{name} must be an integer")


@dataclass
class OpnameLine:
    """
    One counted item.

    system_quantity is the on-hand snapshot taken when the line was added.
    counted_quantity is what the operator entered; it starts at 0, never at
    the snapshot, so an item nobody counted shows up as a full deficit.
    """
    code: str
    name: str
    system_quantity: int
    counted_quantity: int = 0
    sku: str | None = None
    category: str | None = None
    unit_price_cents: int = 0
    applied_movement_id: int | None = None

    @property
    def difference(self) -> int:
        return self.counted_quantity - self.system_quantity

    @property
    def value_difference_cents(self) -> int:
        return self.difference * self.unit_price_cents

    @property
    def classification(self) -> str:
        if self.difference > 0:
            return "surplus"
        if self.difference < 0:
            return "deficit"
        return "match"

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "system_quantity": self.system_quantity,
            "counted_quantity": self.counted_quantity,
            "unit_price_cents": self.unit_price_cents,
            "applied_movement_id": self.applied_movement_id,
            "difference": self.difference,
            "value_difference_cents": self.value_difference_cents,
            "classification": self.classification,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OpnameLine":
        if not isinstance(data, dict):
            raise ValidationError("line must be an object")
        try:
            code = str(data["code"]).strip()
            name = str(data["name"])
        except KeyError as e:
            raise ValidationError(f"line is missing required field: {e}")
        counted = _to_int(data.get("counted_quantity", 0), "counted_quantity")
        if counted < 0:
            raise ValidationError("counted_quantity cannot be negative")
        movement_id = data.get("applied_movement_id")
        return cls(
            code=code,
            name=name,
            sku=data.get("sku"),
            category=data.get("category"),
            system_quantity=_to_int(data.get("system_quantity", 0), "system_quantity"),
            counted_quantity=counted,
            unit_price_cents=_to_int(data.get("unit_price_cents", 0), "unit_price_cents"),
            applied_movement_id=int(movement_id) if movement_id is not None else None,
        )


@dataclass
class OpnameSession:
    """In-memory working copy of a stock opname; persisted by session_service.save_draft."""
    id: str
    device_id: str
    mode: str
    last_view: str
    started_at: datetime
    started_by: str | None = None
    lines: list[OpnameLine] = field(default_factory=list)
    updated_at: datetime | None = None

    def find_line(self, code: str) -> OpnameLine | None:
        for line in self.lines:
            if line.code == code:
                return line
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "mode": self.mode,
            "last_view": self.last_view,
            "started_at": to_utc_z(self.started_at),
            "started_by": self.started_by,
            "updated_at": to_utc_z(self.updated_at),
            "lines": [line.to_dict() for line in self.lines],
        }


def default_view(mode: str) -> str:
    return VIEW_GRAND if mode == MODE_GRAND else VIEW_PARTIAL


@dataclass(frozen=True)
class OpnameSummary:
    matching_count: int
    mismatching_count: int
    total_items: int
    surplus_count: int = 0
    deficit_count: int = 0
    total_difference: int = 0
    total_value_difference_cents: int = 0

    def to_dict(self) -> dict:
        return {
            "matching_count": self.matching_count,
            "mismatching_count": self.mismatching_count,
            "total_items": self.total_items,
            "surplus_count": self.surplus_count,
            "deficit_count": self.deficit_count,
            "total_difference": self.total_difference,
            "total_value_difference_cents": self.total_value_difference_cents,
        }


@dataclass(frozen=True)
class LineFailure:
    code: str
    difference: int
    error_code: str
    message: str

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "difference": self.difference,
            "error_code": self.error_code,
            "message": self.message,
        }


@dataclass
class CommitResult:
    """
    Outcome of opname_service.commit.

    movements: adjustments appended by this call (already durable)
    failures: lines still outstanding; committing the session again retries
    only these
    """
    session_id: str
    status: str
    movements: list = field(default_factory=list)
    failures: list[LineFailure] = field(default_factory=list)
    history_id: str | None = None

    @property
    def fully_committed(self) -> bool:
        return self.status == COMMIT_COMMITTED

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "status": self.status,
            "movements": [m.to_dict() for m in self.movements],
            "failures": [f.to_dict() for f in self.failures],
            "history_id": self.history_id,
        }
