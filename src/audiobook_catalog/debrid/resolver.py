"""Debrid resolution -- cache-status checks and link generation across providers.

check_cache() consults the TTL cache per (provider, hash) before calling a
provider; only misses reach the provider, batched, and every answer is
written back with a fixed TTL. Without an explicit provider the batch fans
out to every registered provider concurrently, and a failing or slow
provider only loses its own results. generate_link() is never cached.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from ..cache import TTLCache
from ..errors import CatalogError, ProviderError, UnknownProvider
from ..models import CacheStatus, DebridLink
from .providers import DebridProvider

log = logger.bind(stage="debrid")


def cache_key(provider_id: str, info_hash: str) -> str:
    return f"debrid:{provider_id}:{info_hash}"


class DebridResolver:
    """Multi-provider cache checker and link generator."""

    def __init__(
        self,
        providers: dict[str, DebridProvider],
        cache: TTLCache,
        ttl_seconds: int = 8 * 60 * 60,
        provider_timeout: float = 30.0,
    ) -> None:
        self._providers = providers
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.provider_timeout = provider_timeout

    def providers(self) -> list[str]:
        """Ids of the registered (credentialed) providers."""
        return list(self._providers)

    def get_provider(self, provider_id: str) -> DebridProvider:
        try:
            return self._providers[provider_id]
        except KeyError:
            raise UnknownProvider(provider_id) from None

    async def check_cache(
        self, info_hashes: list[str], provider: str | None = None
    ) -> list[CacheStatus]:
        """One CacheStatus per provider per hash the provider answered for."""
        if provider is not None:
            targets = [self.get_provider(provider)]
        else:
            targets = list(self._providers.values())

        per_provider = await asyncio.gather(
            *(self._check_provider(p, info_hashes) for p in targets)
        )
        return [status for statuses in per_provider for status in statuses]

    async def _check_provider(
        self, provider: DebridProvider, info_hashes: list[str]
    ) -> list[CacheStatus]:
        known: dict[str, bool] = {}
        misses: list[str] = []
        for h in dict.fromkeys(info_hashes):
            cached = self.cache.get(cache_key(provider.id, h))
            if cached is None:
                misses.append(h)
            else:
                known[h] = cached

        if misses:
            log.debug(f"{provider.id}: {len(known)} cache hits, {len(misses)} misses")
            try:
                fresh = await asyncio.wait_for(
                    provider.check_cache(misses), timeout=self.provider_timeout
                )
            except asyncio.TimeoutError:
                log.warning(f"{provider.id} cache check timed out")
                fresh = {}
            except CatalogError as e:
                log.warning(f"{provider.id} cache check failed: {e}")
                fresh = {}
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                log.warning(f"{provider.id} cache check returned an unexpected response: {e}")
                fresh = {}

            for h, is_cached in fresh.items():
                self.cache.set(cache_key(provider.id, h), is_cached, self.ttl_seconds)
                known[h] = is_cached

        return [
            CacheStatus(info_hash=h, cached=known[h], provider=provider.id)
            for h in dict.fromkeys(info_hashes)
            if h in known
        ]

    async def generate_link(
        self, info_hash: str, provider: str, file_id: int | None = None
    ) -> DebridLink | None:
        """Resolve a playable link.

        Returns None when the provider has nothing resolvable. Raises
        UnknownProvider for an unregistered id and ProviderError when the
        provider call fails or times out.
        """
        target = self.get_provider(provider)
        log.info(f"Generating {provider} link for {info_hash} (file={file_id})")
        try:
            return await asyncio.wait_for(
                target.generate_link(info_hash, file_id), timeout=self.provider_timeout
            )
        except asyncio.TimeoutError:
            raise ProviderError(
                provider, f"timed out after {self.provider_timeout:.0f}s"
            ) from None
        except ProviderError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProviderError(provider, f"unexpected response: {e}") from e
