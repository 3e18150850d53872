# backend/stockledger/services/opname_service.py
"""
Stock opname (physical count) reconciliation engine.

WHY: Regular physical counts keep the ledger honest. The engine compares
the on-hand snapshot taken when an item was added to the session (system
quantity) with what the operator counted, and turns every difference into
an adjustment movement on commit.

LIFECYCLE:
1. start_session: draft created and persisted (one per device)
2. lines added / counted, draft flushed by the caller via save_draft
3. compute_summary: informational, used for the confirmation prompt
4. commit: adjustments appended line by line, then the draft is cleared
   (or kept with the failed lines outstanding)
5. cancel_session: explicit operator cancel, nothing posted

Every call takes the session explicitly; there is no module-level
"current session".
"""
from __future__ import annotations

import logging
import uuid
from typing import Callable

from flask import current_app

from ..errors import (
    DuplicateLine,
    FinalizePending,
    ItemNotFound,
    PartialCommitFailure,
    StockLedgerError,
    StorageError,
    ValidationError,
)
from ..extensions import db
from ..models import InventoryItem
from ..time_utils import business_date, utcnow
from ..validation import coerce_int
from . import history_service, monitoring_service, session_service
from .concurrency import run_with_retry
from .item_service import find_by_sku_or_code, list_active
from .ledger_service import MOVEMENT_ADJUSTMENT, record_movement
from .opname_schemas import (
    COMMIT_COMMITTED,
    COMMIT_FINALIZE_PENDING,
    COMMIT_NOT_COMMITTED,
    COMMIT_PARTIAL,
    MODE_GRAND,
    MODES,
    VIEWS,
    CommitResult,
    LineFailure,
    OpnameLine,
    OpnameSession,
    OpnameSummary,
    default_view,
)

logger = logging.getLogger(__name__)

ADJUSTMENT_REASON = "Stock opname adjustment"


def _uncategorized_label() -> str:
    return current_app.config.get("SO_UNCATEGORIZED_LABEL", "Uncategorized")


def _validate_count(counted_quantity) -> int:
    if isinstance(counted_quantity, bool) or not isinstance(counted_quantity, int):
        raise ValidationError("counted_quantity must be an integer")
    if counted_quantity < 0:
        raise ValidationError("counted_quantity cannot be negative")
    return counted_quantity


def line_from_item(item: InventoryItem, counted_quantity: int = 0) -> OpnameLine:
    """Snapshot an item's on-hand quantity into a new line."""
    return OpnameLine(
        code=item.code,
        name=item.name,
        sku=item.sku,
        category=item.category,
        system_quantity=item.quantity,
        counted_quantity=counted_quantity,
        unit_price_cents=item.price_cents or 0,
    )


def start_session(
    mode: str,
    device_id: str | None = None,
    actor: str | None = None,
) -> OpnameSession:
    """
    Create and persist a new session for a device.

    grand: one line per active item, counted_quantity 0
    partial: no lines; items are added as they are scanned

    Raises:
        ValidationError: unknown mode
        ActiveSessionExists: device already has a session (resume or cancel it)
    """
    if mode not in MODES:
        raise ValidationError(f"Invalid stock opname mode: {mode!r}")
    device_id = device_id or current_app.config.get("DEFAULT_DEVICE_ID", "default")

    lines = []
    if mode == MODE_GRAND:
        lines = sorted_lines(line_from_item(item) for item in list_active())

    session = OpnameSession(
        id=uuid.uuid4().hex,
        device_id=device_id,
        mode=mode,
        last_view=default_view(mode),
        started_at=utcnow(),
        started_by=actor,
        lines=lines,
    )
    session_service.create_session(session)
    logger.info("started %s stock opname %s on device %s (%d lines)", mode, session.id, device_id, len(lines))
    return session


def add_or_update_line(
    session: OpnameSession,
    item: InventoryItem,
    counted_quantity: int,
    replace: bool = False,
) -> OpnameLine:
    """
    Put an item on the session.

    An item already on the session is never duplicated. Without replace the
    caller gets DuplicateLine and can ask the operator whether to re-add;
    with replace=True the earlier counted quantity is overwritten. The
    system quantity snapshot of an existing line is kept.
    """
    counted_quantity = _validate_count(counted_quantity)

    existing = session.find_line(item.code)
    if existing is not None:
        if not replace:
            raise DuplicateLine(item.code, existing.counted_quantity)
        existing.counted_quantity = counted_quantity
        return existing

    line = line_from_item(item, counted_quantity)
    session.lines.append(line)
    return line


def add_line_by_scan(
    session: OpnameSession,
    value: str,
    counted_quantity: int,
    replace: bool = False,
) -> OpnameLine:
    """Barcode scan or typed code; both resolve through sku-or-code lookup."""
    item = find_by_sku_or_code(value)
    if item is None:
        raise ItemNotFound((value or "").strip())
    return add_or_update_line(session, item, counted_quantity, replace=replace)


def set_counted_quantity(session: OpnameSession, code: str, counted_quantity: int) -> OpnameLine:
    """Edit the count of a line already on the session (grand mode entry, edit view)."""
    counted_quantity = _validate_count(counted_quantity)
    line = session.find_line(code)
    if line is None:
        raise ItemNotFound(code)
    line.counted_quantity = counted_quantity
    return line


def merge_counts(session: OpnameSession, entries) -> list[OpnameLine]:
    """
    Apply a batch of counted quantities flushed by a client.

    Each entry only contributes its code and counted_quantity. Snapshot
    fields (system_quantity, price, name, category) and posted markers
    stay as the server recorded them; any such keys sent by the client are
    ignored. A code not yet on the session is looked up and snapshotted
    like a scan. A line that already posted an adjustment cannot change
    its count.
    """
    if not isinstance(entries, list):
        raise ValidationError("lines must be a list")

    merged = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValidationError("line must be an object")
        code = str(entry.get("code") or "").strip()
        if not code:
            raise ValidationError("line is missing required field: code")
        counted_quantity = coerce_int("counted_quantity", entry.get("counted_quantity", 0))

        line = session.find_line(code)
        if line is None:
            merged.append(add_line_by_scan(session, code, counted_quantity))
            continue
        if line.applied_movement_id is not None and line.counted_quantity != counted_quantity:
            raise ValidationError(f"Line {code!r} already posted an adjustment and cannot be recounted")
        merged.append(set_counted_quantity(session, code, counted_quantity))
    return merged


def remove_line(session: OpnameSession, code: str) -> OpnameLine:
    line = session.find_line(code)
    if line is None:
        raise ItemNotFound(code)
    if line.applied_movement_id is not None:
        raise ValidationError(f"Line {code!r} already posted an adjustment and cannot be removed")
    session.lines.remove(line)
    return line


def set_last_view(session: OpnameSession, view: str) -> OpnameSession:
    if view not in VIEWS:
        raise ValidationError(f"Invalid last_view: {view!r}")
    session.last_view = view
    return session


def sort_key(line: OpnameLine, uncategorized: str) -> tuple[str, str]:
    return (line.category or uncategorized, line.name)


def sorted_lines(lines, uncategorized: str | None = None) -> list[OpnameLine]:
    """
    Display and report order: category, then name within the category.

    Items without a category sort under the uncategorized label as if it
    were their category name. Comparison is plain string ordering so the
    output is reproducible across locales.
    """
    uncategorized = uncategorized or _uncategorized_label()
    return sorted(lines, key=lambda line: sort_key(line, uncategorized))


def mismatched_lines(session: OpnameSession) -> list[OpnameLine]:
    """Comparison view: deficits first, then surpluses, each in display order."""
    deficits = [line for line in session.lines if line.difference < 0]
    surpluses = [line for line in session.lines if line.difference > 0]
    return sorted_lines(deficits) + sorted_lines(surpluses)


def compute_summary(session: OpnameSession) -> OpnameSummary:
    matching = [line for line in session.lines if line.counted_quantity == line.system_quantity]
    mismatching = [line for line in session.lines if line.counted_quantity != line.system_quantity]
    return OpnameSummary(
        matching_count=len(matching),
        mismatching_count=len(mismatching),
        total_items=len(session.lines),
        surplus_count=sum(1 for line in mismatching if line.difference > 0),
        deficit_count=sum(1 for line in mismatching if line.difference < 0),
        total_difference=sum(line.difference for line in session.lines),
        total_value_difference_cents=sum(line.value_difference_cents for line in session.lines),
    )


def _movement_key(session: OpnameSession, line: OpnameLine) -> str:
    return f"{session.id}:{line.code}"


def commit(
    session: OpnameSession,
    actor: str,
    should_stop: Callable[[], bool] | None = None,
) -> CommitResult:
    """
    Post one adjustment per line with a nonzero difference.

    Lines are processed one after another, each in its own DB transaction,
    so an adjustment that succeeded stays posted even if a later line
    fails. Lines that already posted (applied_movement_id set by an earlier,
    partial commit) are skipped, which makes a retry apply only the failed
    subset. Zero-difference lines post nothing.

    should_stop is polled before each line; when it returns True the
    remaining lines are reported as not attempted.

    Returns:
        CommitResult with status "committed"; the draft is cleared and the
        session is written to history and monitoring.

    Raises:
        PartialCommitFailure: some or all lines failed. The draft stays
        saved with the posted lines marked, ready for another commit.
        FinalizePending: every line posted but history, monitoring or draft
        removal could not be written. Commit again to finish; nothing is
        posted twice.
    """
    if not actor or not str(actor).strip():
        raise ValidationError("actor is required")

    # Reject commits for a session that is no longer stored (already committed or cancelled)
    session_service.get_session(session.id)

    movements = []
    failures = []
    stopped = False

    for line in sorted_lines(session.lines):
        if line.difference == 0 or line.applied_movement_id is not None:
            continue

        if stopped or (should_stop is not None and should_stop()):
            stopped = True
            failures.append(LineFailure(line.code, line.difference, "NOT_ATTEMPTED", "Commit stopped before this line"))
            continue

        try:
            movement = _post_line(session, line, actor)
        except StockLedgerError as exc:
            db.session.rollback()
            logger.warning("stock opname %s: adjustment for %s failed: %s", session.id, line.code, exc)
            failures.append(LineFailure(line.code, line.difference, exc.code, str(exc)))
            continue

        line.applied_movement_id = movement.id
        movements.append(movement)

    if failures:
        status = COMMIT_PARTIAL if movements or _any_posted(session) else COMMIT_NOT_COMMITTED
        result = CommitResult(session_id=session.id, status=status, movements=movements, failures=failures)
        session_service.save_draft(session)
        logger.warning(
            "stock opname %s %s: %d applied, %d failed",
            session.id, status, len(movements), len(failures),
        )
        raise PartialCommitFailure(result)

    try:
        # Persist the posted markers first so a retry never posts a line twice
        if movements:
            session_service.save_draft(session)
        history_id = _finalize(session, actor)
    except StorageError as exc:
        result = CommitResult(session_id=session.id, status=COMMIT_FINALIZE_PENDING, movements=movements)
        logger.warning(
            "stock opname %s: %d adjustment(s) applied, finalize pending: %s",
            session.id, len(movements), exc,
        )
        raise FinalizePending(result, exc) from exc

    logger.info("stock opname %s committed: %d adjustment(s)", session.id, len(movements))
    return CommitResult(
        session_id=session.id,
        status=COMMIT_COMMITTED,
        movements=movements,
        history_id=history_id,
    )


def _any_posted(session: OpnameSession) -> bool:
    return any(line.applied_movement_id is not None for line in session.lines)


def _post_line(session: OpnameSession, line: OpnameLine, actor: str):
    def _op():
        movement = record_movement(
            line.code,
            MOVEMENT_ADJUSTMENT,
            line.difference,
            line.unit_price_cents,
            ADJUSTMENT_REASON,
            reference=session.id,
            actor=actor,
            idempotency_key=_movement_key(session, line),
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def _finalize(session: OpnameSession, actor: str) -> str:
    """History, monitoring and draft removal in one transaction once every line is posted."""
    summary = compute_summary(session)
    counted_at = utcnow()

    def _op():
        entry = history_service.create_history(
            session, summary, counted_by=actor, counted_at=counted_at
        )
        monitoring_service.record_session(business_date(counted_at), session.lines)
        session_service.delete_draft(session.id)
        db.session.commit()
        return entry.id

    return run_with_retry(_op)


def cancel_session(session: OpnameSession) -> bool:
    """
    Explicit operator cancel. Nothing is posted.

    A session with adjustments already posted by a partial commit can still
    be cancelled; those movements stay in the ledger and must be reversed
    with a new adjustment if they were wrong.
    """
    if _any_posted(session):
        logger.warning(
            "cancelling stock opname %s with %d adjustment(s) already posted",
            session.id, sum(1 for line in session.lines if line.applied_movement_id is not None),
        )
    return session_service.clear_session(session.id)
