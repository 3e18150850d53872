# Overview: Service-layer operations for stock opname history.

from __future__ import annotations

import json
from datetime import datetime

from ..errors import SessionNotFound
from ..extensions import db
from ..models import OpnameHistory
from ..time_utils import opname_history_stamp, utcnow
from .opname_schemas import OpnameSession, OpnameSummary


def next_history_id(counted_at: datetime) -> str:
    """SO-YYYYMMDDHHMMSS, suffixed -1, -2, ... until unused."""
    base = f"SO-{opname_history_stamp(counted_at)}"
    candidate = base
    suffix = 1
    while db.session.get(OpnameHistory, candidate) is not None:
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def create_history(
    session: OpnameSession,
    summary: OpnameSummary,
    *,
    counted_by: str,
    counted_at: datetime | None = None,
) -> OpnameHistory:
    """Record a committed session. Flushes; the caller commits."""
    counted_at = counted_at or utcnow()
    duration = max(0, int((counted_at - session.started_at).total_seconds()))

    entry = OpnameHistory(
        id=next_history_id(counted_at),
        session_id=session.id,
        mode=session.mode,
        counted_at=counted_at,
        counted_by=counted_by,
        total_items=summary.total_items,
        total_difference=summary.total_difference,
        total_value_difference_cents=summary.total_value_difference_cents,
        duration_seconds=duration,
        lines_json=json.dumps([
            {
                "code": line.code,
                "name": line.name,
                "category": line.category,
                "system_quantity": line.system_quantity,
                "counted_quantity": line.counted_quantity,
                "difference": line.difference,
                "unit_price_cents": line.unit_price_cents,
            }
            for line in session.lines
        ]),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_history(limit: int | None = None) -> list[OpnameHistory]:
    q = db.session.query(OpnameHistory).order_by(
        OpnameHistory.counted_at.desc(), OpnameHistory.id.desc()
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def get_history(history_id: str) -> OpnameHistory:
    entry = db.session.get(OpnameHistory, history_id)
    if entry is None:
        raise SessionNotFound(f"Stock opname history {history_id} not found")
    return entry


def delete_history(history_ids: list[str]) -> int:
    """Remove history entries (report housekeeping; the ledger is untouched)."""
    if not history_ids:
        return 0
    deleted = db.session.query(OpnameHistory).filter(
        OpnameHistory.id.in_(history_ids)
    ).delete(synchronize_session=False)
    db.session.flush()
    return deleted
