"""Source adapters -- one per scraped origin.

Submodules:
    base        -- SourceAdapter interface
    librivox    -- LibriVox feed + Internet Archive enrichment
    archive_org -- Internet Archive audio_bookspoetry collection
"""

import httpx

from ..config import CatalogConfig
from .archive_org import ArchiveOrgSource
from .base import SourceAdapter
from .librivox import LibrivoxSource

__all__ = ["ArchiveOrgSource", "LibrivoxSource", "SourceAdapter", "build_sources"]


def build_sources(
    config: CatalogConfig, client: httpx.AsyncClient
) -> dict[str, SourceAdapter]:
    """Registry of all adapters keyed by source id, in scrape order."""
    adapters: list[SourceAdapter] = [
        LibrivoxSource(
            client,
            enabled=config.librivox_enabled,
            limit=config.librivox_limit,
            enrichment_delay=config.enrichment_delay_seconds,
        ),
        ArchiveOrgSource(
            client,
            enabled=config.archive_org_enabled,
            rows=config.archive_org_rows,
        ),
    ]
    return {a.id: a for a in adapters}
