# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, g, jsonify, request

from .errors import StockLedgerError
from .extensions import db


def with_operator_context(f):
    """
    Establish who is acting and on which device.

    Authentication happens outside this service (the POS front end owns
    login and roles); it forwards the operator and device as headers:
    - X-Actor: operator name/id stamped on movements (required for writes)
    - X-Device-Id: device whose stock opname draft is used
      (defaults to DEFAULT_DEVICE_ID)

    Sets g.actor and g.device_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = (request.headers.get("X-Actor") or "").strip()
        if not actor and request.method not in ("GET", "HEAD", "OPTIONS"):
            return jsonify({"error": "X-Actor header is required", "code": "ACTOR_REQUIRED"}), 400

        g.actor = actor or None
        g.device_id = (
            (request.headers.get("X-Device-Id") or "").strip()
            or current_app.config.get("DEFAULT_DEVICE_ID", "default")
        )
        return f(*args, **kwargs)

    return decorated_function


def translate_errors(action: str):
    """
    Map domain errors to JSON responses and roll back the DB session.

    StockLedgerError subclasses carry their own HTTP status; anything else
    is logged with a traceback and returned as 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except StockLedgerError as e:
                db.session.rollback()
                return jsonify(e.to_dict()), e.http_status
            except Exception as e:
                db.session.rollback()
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": f"Unexpected error: {e}", "code": "INTERNAL_ERROR"}), 500

        return decorated_function
    return decorator
