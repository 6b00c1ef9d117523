# backend/backoffice/routes/system.py
"""Unauthenticated liveness probe for the back office."""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Company, Organization, SessionToken
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _tenant_counts() -> dict:
    return {
        "organizations": db.session.query(Organization).count(),
        "companies": db.session.query(Company).filter(Company.deleted_at.is_(None)).count(),
    }


def _live_sessions() -> dict:
    live = db.session.query(SessionToken).filter(
        SessionToken.is_revoked.is_(False),
        SessionToken.expires_at > utcnow(),
    ).count()
    return {"active_sessions": live}


HEALTH_CHECKS = {
    "database": _tenant_counts,
    "sessions": _live_sessions,
}


def _run_check(name, probe) -> dict:
    started = time.perf_counter()
    try:
        result = {"status": "healthy", "details": probe()}
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Health check %s failed", name)
        result = {"status": "unhealthy", "error": f"{name} check failed"}
    result["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return result


@system_bp.get("/health")
def health():
    """200 when every check passes, 503 otherwise."""
    checks = {name: _run_check(name, probe) for name, probe in HEALTH_CHECKS.items()}
    healthy = all(check["status"] == "healthy" for check in checks.values())
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": checks,
    }
    return body, 200 if healthy else 503
