#===============================================================================
# PRAYER TIME ENGINE - MAIN APPLICATION FILE (app.py)
# Hosts the prayer engine health surface:
# - /health                              system health (database + engine)
# - /integrations/prayer-engine/health   engine self-test
# - /integrations/prayer-engine/status   configuration and cache stats
#
# Schedules are resolved in-process through PrayerTimeEngine; this app does
# not expose schedule or override routes.
#===============================================================================

#-- Section 1: Core Imports
import os
import logging

from fastapi import FastAPI

from config.settings import settings
from modules.core.database import db_manager
from modules.core.health import get_health_status
from modules.core.safe_logger import init_safe_logging, log_summary

#-- Section 2: Prayer Engine Imports
from modules.prayer_engine import build_engine, get_integration_info, router as prayer_engine_router, set_engine

#-- Section 3: Logging Configuration
init_safe_logging(settings.log_level, use_structured=settings.log_json)
logger = logging.getLogger(__name__)

#-- Section 4: Application
app = FastAPI(
    title="Prayer Time Engine",
    description="Layered prayer time resolution with offline fallback",
    version="1.0.0",
)

#-- Section 5: Application Lifecycle Events
@app.on_event("startup")
async def startup_event():
    """Build the engine and, when configured, connect the database."""
    logger.info("🚀 Starting Prayer Time Engine...")

    engine = build_engine(settings)
    app.state.prayer_engine = engine
    set_engine(engine)

    if db_manager.is_configured:
        try:
            await db_manager.connect()
            await engine.store.initialize()
            logger.info("✅ Database connected")
        except Exception as e:
            # Schedules still resolve; overrides are unavailable until the database is back
            logger.error(f"❌ Database unavailable at startup: {e}")

    info = get_integration_info()
    log_summary("Prayer engine ready", {
        "method": info["calculation_method"],
        "providers": ",".join(info["providers"]) or "none",
        "environment": settings.environment,
    })


@app.on_event("shutdown")
async def shutdown_event():
    engine = getattr(app.state, "prayer_engine", None)
    if engine is not None:
        await engine.close()
    set_engine(None)
    logger.info("👋 Prayer Time Engine stopped")

#-- Section 6: Health Endpoints
@app.get("/health")
async def health_check():
    """System health check endpoint"""
    return await get_health_status()

#-- Section 7: Routers
app.include_router(prayer_engine_router)

#-- Section 8: Development Server
if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))

    print("🚀 Starting Prayer Time Engine Development Server...")
    print(f"   Health: http://localhost:{port}/health")
    print(f"   Engine: http://localhost:{port}/integrations/prayer-engine/status")
    print()

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
        access_log=True,
        reload=False
    )
