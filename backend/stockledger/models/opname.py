# Overview: Stock opname draft, history and monitoring models.

from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class OpnameSessionRecord(db.Model):
    """
    Persisted draft of an in-progress stock opname (physical count).

    One row per device. The row is read and written as a whole: mode,
    serialized line list and last_view marker travel together so a draft
    reloaded after a crash is exactly the draft that was last saved.

    LIFECYCLE:
    1. Inserted by opname_service.start_session
    2. Overwritten by session_service.save_draft (idempotent, last write wins)
    3. Deleted by session_service.clear_session after a full commit or an
       explicit cancel; nothing else deletes it
    """
    __tablename__ = "opname_sessions"
    __table_args__ = (
        db.UniqueConstraint("device_id", name="uq_opname_sessions_device"),
    )

    # uuid4 hex, passed explicitly to every engine call
    id = db.Column(db.String(32), primary_key=True)
    device_id = db.Column(db.String(64), nullable=False)

    # partial | grand
    mode = db.Column(db.String(16), nullable=False)

    # Screen the operator resumes into (e.g. partial_so, grand_so, edit_so)
    last_view = db.Column(db.String(32), nullable=False)

    lines_json = db.Column(db.Text, nullable=False, default="[]")

    started_by = db.Column(db.String(64), nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<OpnameSessionRecord id={self.id} device={self.device_id!r} mode={self.mode}>"


class OpnameHistory(db.Model):
    """
    Summary of a fully committed stock opname.

    id format: SO-YYYYMMDDHHMMSS, with -1, -2, ... appended when two
    sessions finish within the same second.
    lines_json is the committed line list, used by trend analysis.
    """
    __tablename__ = "opname_history"

    id = db.Column(db.String(40), primary_key=True)
    session_id = db.Column(db.String(32), nullable=False, index=True)
    mode = db.Column(db.String(16), nullable=False)

    counted_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    counted_by = db.Column(db.String(64), nullable=False)

    total_items = db.Column(db.Integer, nullable=False)
    total_difference = db.Column(db.Integer, nullable=False)
    total_value_difference_cents = db.Column(db.Integer, nullable=False)
    duration_seconds = db.Column(db.Integer, nullable=False)

    lines_json = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def lines(self) -> list[dict]:
        return json.loads(self.lines_json or "[]")

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "session_id": self.session_id,
            "mode": self.mode,
            "counted_at": to_utc_z(self.counted_at),
            "counted_by": self.counted_by,
            "total_items": self.total_items,
            "total_difference": self.total_difference,
            "total_value_difference_cents": self.total_value_difference_cents,
            "duration_seconds": self.duration_seconds,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = self.lines
        return data


class OpnameMonitoringRecord(db.Model):
    """
    Per item, per day discrepancy tracking.

    consecutive_so_count carries across days: it is the number of committed
    sessions in a row in which the item showed a nonzero difference, and
    drops to 0 the first time the item is counted and matches.
    status is derived from MonitoringPolicy when the row is written.
    """
    __tablename__ = "opname_monitoring"
    __table_args__ = (
        db.UniqueConstraint("item_code", "date", name="uq_opname_monitoring_item_date"),
        db.Index("ix_opname_monitoring_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_code = db.Column(db.String(16), db.ForeignKey("inventory_items.code"), nullable=False, index=True)
    item_name = db.Column(db.String(255), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)

    so_count = db.Column(db.Integer, nullable=False, default=0)
    total_difference = db.Column(db.Integer, nullable=False, default=0)
    total_value_difference_cents = db.Column(db.Integer, nullable=False, default=0)
    consecutive_so_count = db.Column(db.Integer, nullable=False, default=0)

    # normal | warning | critical
    status = db.Column(db.String(16), nullable=False, default="normal")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<OpnameMonitoringRecord item={self.item_code!r} date={self.date} "
            f"consecutive={self.consecutive_so_count} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "date": self.date.isoformat() if self.date else None,
            "so_count": self.so_count,
            "total_difference": self.total_difference,
            "total_value_difference_cents": self.total_value_difference_cents,
            "consecutive_so_count": self.consecutive_so_count,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
