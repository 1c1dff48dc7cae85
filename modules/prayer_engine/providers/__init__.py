# modules/prayer_engine/providers/__init__.py
"""
Remote prayer time providers, tried in priority order by the orchestrator.
"""

import logging
from typing import Dict, Iterable, List, Optional

from .aladhan_client import AlAdhanClient
from .base import (
    DEFAULT_PROVIDER_TIMEOUT,
    FailureKind,
    PrayerTimeProvider,
    ProviderFailure,
    ProviderResult,
    is_failure,
)
from .islamicfinder_client import IslamicFinderClient

logger = logging.getLogger(__name__)

PROVIDER_CLASSES = {
    AlAdhanClient.name: AlAdhanClient,
    IslamicFinderClient.name: IslamicFinderClient,
}


def build_providers(names: Iterable[str],
                    timeout: float = DEFAULT_PROVIDER_TIMEOUT,
                    base_urls: Optional[Dict[str, str]] = None) -> List[PrayerTimeProvider]:
    """
    Instantiate providers by name, keeping the given priority order.
    Unknown names are logged and skipped.
    """
    base_urls = base_urls or {}
    providers = []
    for raw_name in names:
        name = raw_name.strip().lower()
        if not name:
            continue
        provider_class = PROVIDER_CLASSES.get(name)
        if provider_class is None:
            logger.warning(f"⚠️ Unknown prayer time provider '{raw_name}' - skipping")
            continue
        kwargs = {"timeout": timeout}
        if base_urls.get(name):
            kwargs["base_url"] = base_urls[name]
        providers.append(provider_class(**kwargs))
    return providers


__all__ = [
    'AlAdhanClient',
    'IslamicFinderClient',
    'PrayerTimeProvider',
    'ProviderFailure',
    'ProviderResult',
    'FailureKind',
    'DEFAULT_PROVIDER_TIMEOUT',
    'PROVIDER_CLASSES',
    'build_providers',
    'is_failure',
]
