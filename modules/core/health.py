# modules/core/health.py
"""
Health check module for the prayer time engine.
Database connectivity (when configured) and engine status.
"""

import time
from typing import Any, Dict, Optional

from modules.core.database import DatabaseManager, db_manager

__all__ = [
    'check_database',
    'check_engine',
    'get_health_status',
]


# =============================================================================
# Section 1: Database Health Check
# =============================================================================

async def check_database(db: Optional[DatabaseManager] = None) -> Dict[str, Any]:
    """Check database connectivity and response time; 'disabled' without DATABASE_URL."""
    db = db or db_manager
    if not db.is_configured:
        return {"status": "disabled", "detail": "DATABASE_URL not set, overrides kept in memory"}

    start_time = time.time()

    try:
        await db.fetch_one("SELECT 1 as test")
        response_time = round((time.time() - start_time) * 1000, 2)

        return {
            "status": "healthy",
            "response_time_ms": response_time,
            "test_query": "passed"
        }

    except Exception as e:
        response_time = round((time.time() - start_time) * 1000, 2)
        return {
            "status": "unhealthy",
            "response_time_ms": response_time,
            "error": str(e)
        }


# =============================================================================
# Section 2: Prayer Engine Check
# =============================================================================

def check_engine() -> Dict[str, Any]:
    """Local calculation self-test through the prayer engine router helpers."""
    from modules.prayer_engine.router import check_module_health

    module_health = check_module_health()
    return {
        "status": "healthy" if module_health["healthy"] else "unhealthy",
        **module_health
    }


# =============================================================================
# Section 3: System Health Aggregation
# =============================================================================

async def get_health_status(db: Optional[DatabaseManager] = None) -> Dict[str, Any]:
    """Get complete system health status."""
    start_time = time.time()

    db_status = await check_database(db)
    engine_status = check_engine()

    # A missing database only disables persistence; schedules still resolve
    overall_status = (
        "healthy"
        if engine_status["status"] == "healthy" and db_status["status"] in ("healthy", "disabled")
        else "unhealthy"
    )
    total_time = round((time.time() - start_time) * 1000, 2)

    return {
        "status": overall_status,
        "timestamp": time.time(),
        "total_check_time_ms": total_time,
        "services": {
            "database": db_status,
            "prayer_engine": engine_status
        }
    }
