# Overview: Health check and locally stored media.

"""
System health endpoint and local photo serving.

Photos written by the local storage adapter live under PHOTO_STORAGE_DIR
and are served from PHOTO_BASE_URL (default /media/photos).
"""

import time

from flask import Blueprint, current_app, send_from_directory
from sqlalchemy import text

from ..extensions import db
from ..services.photo_storage import get_photo_storage
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "latency_ms": round((time.time() - start_time) * 1000, 2)}
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"
    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }
    return response, 200 if healthy else 503


@system_bp.get("/media/photos/<path:key>")
def serve_photo(key: str):
    return send_from_directory(get_photo_storage().root_dir, key)
