# backend/rentdesk/routes/system.py
"""
Liveness and readiness check. No authentication.

200 when the database answers a trivial query, 503 otherwise. The body also
reports how many bookings currently hold a product (BOOKED or ISSUED), which
is the number the front desk cares about after a restart.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text
from ..extensions import db
from ..models import Booking
from ..models.rentals import BLOCKING_BOOKING_STATUSES
from rentdesk.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database() -> dict:
    started = time.perf_counter()
    try:
        db.session.execute(text("SELECT 1"))
        holding = (
            db.session.query(Booking)
            .filter(Booking.status.in_(BLOCKING_BOOKING_STATUSES))
            .count()
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "error": "Database error",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "dialect": db.engine.dialect.name,
        "bookings_holding_products": holding,
    }


@system_bp.get("/health")
def health():
    database = check_database()
    healthy = database["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }, 200 if healthy else 503
