# modules/prayer_engine/router.py
"""
Prayer Engine FastAPI Router
Provides REST endpoints for health checks and module status only.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from .astronomy import AstronomicalCalculator
from .engine import PrayerTimeEngine
from .errors import CalculationFailure
from .methods import CalculationParameters

logger = logging.getLogger(__name__)

MODULE_VERSION = '1.0.0'

# Create router instance
router = APIRouter(prefix="/integrations/prayer-engine", tags=["Prayer Engine"])

_engine: Optional[PrayerTimeEngine] = None


def set_engine(engine: Optional[PrayerTimeEngine]) -> None:
    """Register the engine instance the endpoints report on (app startup)."""
    global _engine
    _engine = engine


def get_engine() -> Optional[PrayerTimeEngine]:
    return _engine


# Response models
class HealthResponse(BaseModel):
    healthy: bool
    module: str
    version: str
    timestamp: str
    details: Dict[str, Any]


class StatusResponse(BaseModel):
    module_info: Dict[str, Any]
    system_status: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Prayer engine health check endpoint"""
    try:
        health_status = check_module_health()
        integration_info = get_integration_info()

        return HealthResponse(
            healthy=health_status['healthy'],
            module=integration_info['module'],
            version=integration_info['version'],
            timestamp=datetime.now(timezone.utc).isoformat(),
            details={
                'engine_configured': health_status['engine_configured'],
                'local_calculation_available': health_status['local_calculation_available'],
                'providers': integration_info['providers'],
                'calculation_method': integration_info['calculation_method'],
                'features_available': len(integration_info['features'])
            }
        )

    except Exception as e:
        logger.error(f"Prayer engine health check failed: {e}")
        raise HTTPException(status_code=500, detail=f"Health check failed: {str(e)}")


@router.get("/status", response_model=StatusResponse)
async def module_status():
    """Get detailed module status and configuration"""
    try:
        integration_info = get_integration_info()
        engine = get_engine()

        system_status = {
            'engine_configured': engine is not None,
            'cache': engine.cache_stats() if engine else None,
            'override_store': type(engine.store).__name__ if engine else None,
            'provider_timeout_seconds': engine.config.provider_timeout if engine else None,
        }

        return StatusResponse(
            module_info=integration_info,
            system_status=system_status
        )

    except Exception as e:
        logger.error(f"Prayer engine status check failed: {e}")
        raise HTTPException(status_code=500, detail=f"Status check failed: {str(e)}")


# Integration info and health check functions
def get_integration_info() -> Dict[str, Any]:
    """Get prayer engine integration information"""
    engine = get_engine()
    config = engine.config if engine else None
    location = config.default_location if config else None

    return {
        'module': 'prayer_engine',
        'version': MODULE_VERSION,
        'description': 'Layered prayer time resolution with offline fallback',
        'location': {
            'latitude': location.latitude,
            'longitude': location.longitude,
            'timezone': location.timezone,
        } if location else None,
        'calculation_method': config.default_method.name if config else None,
        'providers': [provider.name for provider in engine.orchestrator.providers] if engine else [],
        'features': [
            'Remote provider fallback chain',
            'Local astronomical calculation',
            'Offline emergency schedule',
            'Manual overrides with Iqamah and Tarawih',
            'Hijri calendar and observances',
            'Qibla bearing',
            'Location-bucketed schedule cache'
        ],
        'endpoints': {
            'health': '/integrations/prayer-engine/health',
            'status': '/integrations/prayer-engine/status'
        }
    }


def check_module_health() -> Dict[str, Any]:
    """Check prayer engine health: local calculation must always work"""
    engine = get_engine()

    local_calculation_available = False
    if engine is not None:
        location = engine.config.default_location
        try:
            AstronomicalCalculator().compute(
                location,
                datetime.now(location.tzinfo).date(),
                CalculationParameters(method=engine.config.default_method, asr_school=engine.config.asr_school),
            )
            local_calculation_available = True
        except CalculationFailure as e:
            logger.error(f"❌ Local calculation self-test failed: {e}")

    status = {
        'healthy': engine is not None and local_calculation_available,
        'engine_configured': engine is not None,
        'local_calculation_available': local_calculation_available,
        'missing_components': []
    }

    if engine is None:
        status['missing_components'].append('engine')
    elif not local_calculation_available:
        status['missing_components'].append('local_calculation')

    return status
