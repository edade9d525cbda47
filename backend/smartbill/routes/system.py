# backend/smartbill/routes/system.py
"""
System health endpoint.

The database is required; the cache is not. A failing cache degrades
performance (every read falls through to the database) but never
correctness, so it reports "degraded" rather than "unhealthy".
"""

import time
from flask import Blueprint, current_app

from ..extensions import get_services
from ..services.record_store import StoreError
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        get_services().store.ping()
    except StoreError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }

    elapsed_ms = (time.time() - start_time) * 1000
    return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}


def check_cache_health() -> dict:
    start_time = time.time()
    services = get_services()
    ok = services.cache_policy.ping()
    elapsed_ms = (time.time() - start_time) * 1000

    if not ok:
        return {
            "status": "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "backend": services.cache.name,
            "warning": "Cache unreachable; serving from database",
        }
    return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "backend": services.cache.name}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy, or degraded (cache down)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    cache_health = check_cache_health()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif cache_health["status"] == "degraded":
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "cache": cache_health,
        },
    }

    return response, http_status
