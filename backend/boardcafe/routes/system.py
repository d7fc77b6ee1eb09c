# backend/boardcafe/routes/system.py
"""
System health and version endpoints.

Provides health checks for the database and the loyalty configuration, and
version information for deployment debugging.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Customer, CustomerMembership, MembershipPlan, PointsSettings
from ..services.points_service import SETTINGS_ID
from boardcafe.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        customer_count = db.session.query(Customer).count()
        membership_count = db.session.query(CustomerMembership).filter_by(status="ACTIVE").count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "customers": customer_count,
                "active_memberships": membership_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_loyalty_config_health() -> dict:
    """
    Check that the loyalty programme is configured: settings row and at
    least one purchasable plan. Missing pieces degrade, they do not fail.
    """
    start_time = time.time()
    try:
        settings = db.session.get(PointsSettings, SETTINGS_ID)
        plan_count = db.session.query(MembershipPlan).filter_by(is_active=True).count()

        elapsed_ms = (time.time() - start_time) * 1000

        warnings = []
        if settings is None:
            warnings.append("points settings not initialized (defaults apply)")
        if plan_count == 0:
            warnings.append("no active membership plans")

        result = {
            "status": "degraded" if warnings else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "settings_initialized": settings is not None,
                "active_plans": plan_count,
            }
        }
        if warnings:
            result["warning"] = "; ".join(warnings)
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Loyalty configuration health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Loyalty configuration error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: All systems healthy (or degraded but operational)
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    loyalty_health = check_loyalty_config_health()

    all_checks = [database_health, loyalty_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "loyalty_config": loyalty_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "0.4.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
