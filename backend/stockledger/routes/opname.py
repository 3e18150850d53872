# backend/stockledger/routes/opname.py
"""
Stock opname (physical count) API routes.

A session belongs to the device that started it (X-Device-Id). Clients keep
edits in memory and flush them with PUT /sessions/<id> on their own debounce
timer; the server keeps no timers.
"""
from flask import Blueprint, Response, g, jsonify, request

from ..decorators import translate_errors, with_operator_context
from ..errors import SessionNotFound, ValidationError
from ..services import monitoring_service, opname_service, report_service, session_service
from ..validation import coerce_int


opname_bp = Blueprint("opname", __name__, url_prefix="/api/opname")


def _load(session_id: str):
    session = session_service.get_session(session_id)
    if session.device_id != g.device_id:
        raise SessionNotFound(f"Stock opname session {session_id} not found on device {g.device_id}")
    return session


def _session_payload(session) -> dict:
    data = session.to_dict()
    data["lines"] = [line.to_dict() for line in opname_service.sorted_lines(session.lines)]
    return data


@opname_bp.post("/sessions")
@with_operator_context
@translate_errors("start stock opname")
def start_session():
    """
    Start a session on this device.

    Request body: {"mode": "partial" | "grand"}

    Returns:
        201: Session created (grand: every active item pre-loaded, counted 0)
        409: ACTIVE_SESSION_EXISTS (resume it via GET /sessions/active)
    """
    data = request.get_json(silent=True) or {}
    session = opname_service.start_session(
        data.get("mode"),
        device_id=g.device_id,
        actor=g.actor,
    )
    return jsonify({"session": _session_payload(session)}), 201


@opname_bp.get("/sessions/active")
@with_operator_context
@translate_errors("load active stock opname")
def active_session():
    """The draft to resume on this device, including last_view; null when none."""
    session = session_service.load_active_session(g.device_id)
    return jsonify({"session": _session_payload(session) if session else None}), 200


@opname_bp.put("/sessions/<session_id>")
@with_operator_context
@translate_errors("save stock opname draft")
def save_draft(session_id: str):
    """
    Flush the client's pending counts into the stored draft.

    Request body:
    {
        "last_view": str (optional),
        "lines": [{"code": str, "counted_quantity": int}] (optional)
    }

    Only counted quantities are taken from the client. Snapshot fields and
    posted markers in the payload are ignored; new codes are snapshotted
    on the server like a scan. Lines not listed are left as they are.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    session = _load(session_id)
    if "mode" in data and data["mode"] != session.mode:
        raise ValidationError("mode cannot change during a session")
    if "last_view" in data:
        opname_service.set_last_view(session, data["last_view"])
    if "lines" in data:
        opname_service.merge_counts(session, data["lines"])

    session_service.save_draft(session)
    return jsonify({"session": _session_payload(session)}), 200


@opname_bp.post("/sessions/<session_id>/lines")
@with_operator_context
@translate_errors("add stock opname line")
def add_line(session_id: str):
    """
    Add a scanned or typed item.

    Request body:
    {
        "value": str,                 // barcode or code
        "counted_quantity": int (optional, default 0),
        "replace": bool (optional)    // re-add an item already on the session
    }

    Returns:
        201: Line added / replaced
        404: Item not found
        409: DUPLICATE_LINE (ask the operator, then retry with replace=true)
    """
    data = request.get_json(silent=True) or {}
    session = _load(session_id)
    line = opname_service.add_line_by_scan(
        session,
        data.get("value", ""),
        coerce_int("counted_quantity", data.get("counted_quantity", 0)),
        replace=bool(data.get("replace", False)),
    )
    session_service.save_draft(session)
    return jsonify({"line": line.to_dict()}), 201


@opname_bp.patch("/sessions/<session_id>/lines/<code>")
@with_operator_context
@translate_errors("update stock opname count")
def update_line(session_id: str, code: str):
    data = request.get_json(silent=True) or {}
    if "counted_quantity" not in data:
        raise ValidationError("Missing required field: counted_quantity")
    session = _load(session_id)
    line = opname_service.set_counted_quantity(
        session, code, coerce_int("counted_quantity", data["counted_quantity"])
    )
    session_service.save_draft(session)
    return jsonify({"line": line.to_dict()}), 200


@opname_bp.delete("/sessions/<session_id>/lines/<code>")
@with_operator_context
@translate_errors("remove stock opname line")
def remove_line(session_id: str, code: str):
    session = _load(session_id)
    opname_service.remove_line(session, code)
    session_service.save_draft(session)
    return jsonify({"session": _session_payload(session)}), 200


@opname_bp.get("/sessions/<session_id>/summary")
@with_operator_context
@translate_errors("summarize stock opname")
def summary(session_id: str):
    """Pre-commit confirmation data: counts, mismatched lines and item trends."""
    session = _load(session_id)
    return jsonify({
        "summary": opname_service.compute_summary(session).to_dict(),
        "mismatched": [line.to_dict() for line in opname_service.mismatched_lines(session)],
        "consecutive": monitoring_service.consecutive_discrepancies(
            [line.code for line in session.lines]
        ),
        "trends": [t.to_dict() for t in monitoring_service.analyze_items(session.lines) if t.needs_attention],
    }), 200


@opname_bp.get("/sessions/<session_id>/report")
@with_operator_context
@translate_errors("render stock opname report")
def report(session_id: str):
    session = _load(session_id)
    only_mismatched = request.args.get("only_mismatched", "false").lower() == "true"
    text = report_service.render_report(session, only_mismatched=only_mismatched)
    return Response(text, mimetype="text/plain")


@opname_bp.post("/sessions/<session_id>/commit")
@with_operator_context
@translate_errors("commit stock opname")
def commit(session_id: str):
    """
    Post adjustments for every mismatching line.

    Returns:
        200: Fully committed; draft cleared
        409: PARTIAL_COMMIT_FAILURE with result.movements (posted) and
             result.failures (outstanding); POST again to retry the failures
        503: FINALIZE_PENDING, every adjustment posted (result.movements) but
             history was not recorded; POST again to finish
    """
    session = _load(session_id)
    result = opname_service.commit(session, g.actor)
    return jsonify({"result": result.to_dict()}), 200


@opname_bp.delete("/sessions/<session_id>")
@with_operator_context
@translate_errors("cancel stock opname")
def cancel(session_id: str):
    session = _load(session_id)
    opname_service.cancel_session(session)
    return jsonify({"cancelled": session_id}), 200
