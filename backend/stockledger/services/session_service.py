# Overview: Service-layer operations for persisted stock opname drafts.

"""
Stock Opname Session Store

WHY: A physical count can take hours. The app may be closed, navigated
away from or killed at any point, and the operator must be able to resume
with every counted quantity intact.

CONTRACT:
- At most one active session per device (unique device_id)
- save_draft overwrites the whole record (mode, lines, last_view); calling it
  twice with the same snapshot is harmless, the last call wins
- The engine owns no timers. Callers batch keystrokes in memory and flush
  with save_draft on their own schedule (e.g. after 500ms of inactivity) and
  before anything that may suspend the process
- save_draft never resurrects a cleared session: once a session is committed
  or cancelled, a late flush raises SessionNotFound instead of re-creating it
- clear_session and delete_draft are only called by opname_service after a
  full commit or an explicit cancel
"""
from __future__ import annotations

import json
import logging

from ..errors import ActiveSessionExists, SessionNotFound, ValidationError
from ..extensions import db
from ..models import OpnameSessionRecord
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .opname_schemas import MODES, VIEWS, OpnameLine, OpnameSession

logger = logging.getLogger(__name__)


def _serialize_lines(lines: list[OpnameLine]) -> str:
    stored = []
    for line in lines:
        stored.append({
            "code": line.code,
            "name": line.name,
            "sku": line.sku,
            "category": line.category,
            "system_quantity": line.system_quantity,
            "counted_quantity": line.counted_quantity,
            "unit_price_cents": line.unit_price_cents,
            "applied_movement_id": line.applied_movement_id,
        })
    return json.dumps(stored)


def _to_session(record: OpnameSessionRecord) -> OpnameSession:
    return OpnameSession(
        id=record.id,
        device_id=record.device_id,
        mode=record.mode,
        last_view=record.last_view,
        started_at=record.started_at,
        started_by=record.started_by,
        lines=[OpnameLine.from_dict(line) for line in json.loads(record.lines_json or "[]")],
        updated_at=record.updated_at,
    )


def _validate(session: OpnameSession) -> None:
    if session.mode not in MODES:
        raise ValidationError(f"Invalid stock opname mode: {session.mode!r}")
    if session.last_view not in VIEWS:
        raise ValidationError(f"Invalid last_view: {session.last_view!r}")
    seen = set()
    for line in session.lines:
        if line.code in seen:
            raise ValidationError(f"Item {line.code!r} appears more than once in the session")
        seen.add(line.code)
        if line.counted_quantity < 0:
            raise ValidationError(f"counted_quantity for {line.code!r} cannot be negative")


def create_session(session: OpnameSession) -> OpnameSession:
    """Persist a brand new session. Fails if the device already has one."""
    _validate(session)

    def _op():
        existing = db.session.query(OpnameSessionRecord).filter_by(device_id=session.device_id).first()
        if existing is not None:
            raise ActiveSessionExists(session.device_id, existing.id)

        now = utcnow()
        record = OpnameSessionRecord(
            id=session.id,
            device_id=session.device_id,
            mode=session.mode,
            last_view=session.last_view,
            lines_json=_serialize_lines(session.lines),
            started_by=session.started_by,
            started_at=session.started_at,
            created_at=now,
            updated_at=now,
        )
        db.session.add(record)
        db.session.commit()
        session.updated_at = now
        return session

    return run_with_retry(_op)


def load_active_session(device_id: str) -> OpnameSession | None:
    """The draft last saved for this device, verbatim, or None."""
    record = db.session.query(OpnameSessionRecord).filter_by(device_id=device_id).first()
    return _to_session(record) if record else None


def get_session(session_id: str) -> OpnameSession:
    record = db.session.get(OpnameSessionRecord, session_id)
    if record is None:
        raise SessionNotFound(f"Stock opname session {session_id} not found")
    return _to_session(record)


def save_draft(session: OpnameSession) -> OpnameSession:
    """
    Overwrite the stored draft with this snapshot and commit.

    Raises:
        SessionNotFound: the session was committed, cancelled or never created
        ValidationError: snapshot is malformed (duplicate lines, bad mode)
    """
    _validate(session)

    def _op():
        record = db.session.get(OpnameSessionRecord, session.id)
        if record is None or record.device_id != session.device_id:
            raise SessionNotFound(f"Stock opname session {session.id} is no longer active")

        now = utcnow()
        record.mode = session.mode
        record.last_view = session.last_view
        record.lines_json = _serialize_lines(session.lines)
        record.updated_at = now
        db.session.commit()
        session.updated_at = now
        return session

    return run_with_retry(_op)


def delete_draft(session_id: str) -> bool:
    """Flush the draft deletion without committing; the caller commits."""
    record = db.session.get(OpnameSessionRecord, session_id)
    if record is None:
        return False
    db.session.delete(record)
    db.session.flush()
    logger.info("cleared stock opname session %s (device %s)", session_id, record.device_id)
    return True


def clear_session(session_id: str) -> bool:
    """Delete the stored draft. Returns False when there was nothing to clear."""
    def _op():
        deleted = delete_draft(session_id)
        db.session.commit()
        return deleted

    return run_with_retry(_op)
