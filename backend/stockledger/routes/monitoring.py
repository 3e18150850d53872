# backend/stockledger/routes/monitoring.py
"""
Stock opname monitoring and history routes (read paths, plus notes).
"""
from flask import Blueprint, jsonify, request

from ..decorators import translate_errors, with_operator_context
from ..errors import ValidationError
from ..extensions import db
from ..services import history_service, item_service, monitoring_service
from ..time_utils import parse_iso_date


monitoring_bp = Blueprint("monitoring", __name__, url_prefix="/api/monitoring")


@monitoring_bp.get("/items")
@with_operator_context
@translate_errors("list monitoring records")
def list_records():
    """Latest record per item, most severe first. Query: ?status=warning"""
    status = request.args.get("status")
    if status and status not in monitoring_service.STATUSES:
        raise ValidationError(f"Invalid status: {status!r}")
    records = monitoring_service.list_records(status=status)
    return jsonify({"records": [r.to_dict() for r in records]}), 200


@monitoring_bp.get("/items/<code>")
@with_operator_context
@translate_errors("load item monitoring")
def item_monitoring(code: str):
    item = item_service.get_by_code(code)
    return jsonify({
        "item_code": item.code,
        "status": monitoring_service.status_for(item.code),
        "records": [r.to_dict() for r in monitoring_service.records_for_item(item.code)],
    }), 200


@monitoring_bp.put("/items/<code>/notes")
@with_operator_context
@translate_errors("update monitoring notes")
def update_notes(code: str):
    """Request body: {"date": "YYYY-MM-DD", "notes": str | null}"""
    data = request.get_json(silent=True) or {}
    try:
        day = parse_iso_date(data.get("date"))
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD")
    if day is None:
        raise ValidationError("Missing required field: date")
    record = monitoring_service.update_notes(code, day, data.get("notes"))
    db.session.commit()
    return jsonify({"record": record.to_dict()}), 200


@monitoring_bp.get("/history")
@with_operator_context
@translate_errors("list stock opname history")
def list_history():
    entries = history_service.list_history()
    return jsonify({"history": [e.to_dict() for e in entries]}), 200


@monitoring_bp.get("/history/<history_id>")
@with_operator_context
@translate_errors("load stock opname history")
def get_history(history_id: str):
    entry = history_service.get_history(history_id)
    return jsonify({"history": entry.to_dict(include_lines=True)}), 200


@monitoring_bp.post("/history/delete")
@with_operator_context
@translate_errors("delete stock opname history")
def delete_history():
    """Request body: {"ids": [str, ...]}"""
    data = request.get_json(silent=True) or {}
    ids = data.get("ids")
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise ValidationError("ids must be a list of strings")
    deleted = history_service.delete_history(ids)
    db.session.commit()
    return jsonify({"deleted": deleted}), 200
