# Overview: Flask API routes for system health; reports database and ledger reachability.

"""
System health and version endpoints.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Booking, Location, SessionToken, Suite
from maslow.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a few cheap counts."""
    start_time = time.time()
    try:
        location_count = db.session.query(Location).count()
        suite_count = db.session.query(Suite).count()
        available_count = db.session.query(Suite).filter(Suite.is_available.is_(True)).count()
        active_bookings = db.session.query(Booking).filter(
            Booking.status.in_(("confirmed", "checked_in"))
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "locations": location_count,
                "suites": suite_count,
                "suites_available": available_count,
                "active_bookings": active_bookings,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_session_service_health() -> dict:
    start_time = time.time()
    try:
        now = utcnow()
        live_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at >= now,
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"live_sessions": live_sessions},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session service error",
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: All systems healthy
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    session_health = check_session_service_health()

    all_checks = [database_health, session_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "session_service": session_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment info."""
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
