"""
Health check blueprint.

    GET /api/v1/health   liveness plus database status (503 when the DB is unreachable)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from taskflow.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": exc.__class__.__name__}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    checks["app"] = {
        "name": "Taskflow",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    return jsonify({
        "success": overall,
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), 200 if overall else 503
