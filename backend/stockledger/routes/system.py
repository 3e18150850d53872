# backend/stockledger/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import InventoryItem, OpnameSessionRecord, StockMovement
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Database connectivity plus row counts of the core tables."""
    start_time = time.time()
    try:
        item_count = db.session.query(InventoryItem).count()
        movement_count = db.session.query(StockMovement).count()
        open_sessions = db.session.query(OpnameSessionRecord).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "response_time_ms": round(elapsed_ms, 2),
            "items": item_count,
            "movements": movement_count,
            "open_opname_sessions": open_sessions,
        }
    except Exception as e:
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "error": str(e)}


@system_bp.get("/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return {"status": database["status"], "timestamp": to_utc_z(utcnow()), "database": database}, status_code
