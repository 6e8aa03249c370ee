"""Debrid providers and the cache-backed resolver.

Submodules:
    providers -- Real-Debrid and Premiumize API clients
    resolver  -- TTL-cached availability checks and link generation
"""

import httpx

from ..config import CatalogConfig
from .providers import DebridProvider, PremiumizeProvider, RealDebridProvider
from .resolver import DebridResolver

__all__ = [
    "DebridProvider",
    "DebridResolver",
    "PremiumizeProvider",
    "RealDebridProvider",
    "build_providers",
]


def build_providers(
    config: CatalogConfig, client: httpx.AsyncClient
) -> dict[str, DebridProvider]:
    """Registry of providers whose API key is configured."""
    providers: dict[str, DebridProvider] = {}
    if config.real_debrid_api_key:
        providers[RealDebridProvider.id] = RealDebridProvider(
            client, config.real_debrid_api_key
        )
    if config.premiumize_api_key:
        providers[PremiumizeProvider.id] = PremiumizeProvider(
            client, config.premiumize_api_key
        )
    return providers
