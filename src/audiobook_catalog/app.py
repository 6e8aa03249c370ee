"""Application wiring -- builds every component from a CatalogConfig.

All state (source registry, run status, provider registry, caches) lives on
a CatalogApp instance; nothing is module-global, so several apps can run in
one process and tests can build their own.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from loguru import logger

from .api.openlibrary import OpenLibraryClient
from .cache import TTLCache
from .catalog import CatalogAggregator
from .config import CatalogConfig
from .debrid import DebridResolver, build_providers
from .errors import ConfigError
from .orchestrator import ScrapeOrchestrator
from .sources import build_sources
from .store import ContentStore

log = logger.bind(stage="app")


@dataclass
class CatalogApp:
    config: CatalogConfig
    client: httpx.AsyncClient
    store: ContentStore
    orchestrator: ScrapeOrchestrator
    catalog: CatalogAggregator
    resolver: DebridResolver

    @classmethod
    def from_config(cls, config: CatalogConfig) -> CatalogApp:
        if config.catalog_page_size < 1:
            raise ConfigError(
                f"catalog_page_size must be at least 1, got {config.catalog_page_size}"
            )
        config.ensure_dirs()

        client = httpx.AsyncClient(
            timeout=config.http_timeout,
            headers={"User-Agent": config.user_agent},
            follow_redirects=True,
        )
        store = ContentStore(config.db_path)
        metadata = OpenLibraryClient(
            client, TTLCache(), cache_ttl_seconds=config.metadata_cache_ttl_seconds
        )
        sources = build_sources(config, client)
        providers = build_providers(config, client)

        log.debug(
            f"Built app: sources={list(sources)} providers={list(providers)} "
            f"db={config.db_path}"
        )
        return cls(
            config=config,
            client=client,
            store=store,
            orchestrator=ScrapeOrchestrator(
                store,
                sources,
                metadata,
                pacing_seconds=config.scrape_pacing_seconds,
                adapter_timeout=config.adapter_timeout_seconds,
            ),
            catalog=CatalogAggregator(
                store,
                metadata,
                {s.id: s.display_name for s in sources.values()},
                page_size=config.catalog_page_size,
                seed_query=config.popular_seed_query,
            ),
            resolver=DebridResolver(
                providers,
                TTLCache(),
                ttl_seconds=config.debrid_cache_ttl_seconds,
                provider_timeout=config.provider_timeout_seconds,
            ),
        )

    async def aclose(self) -> None:
        await self.client.aclose()
        self.store.close()

    async def __aenter__(self) -> CatalogApp:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
