"""Catalog aggregation -- merges persisted records and Open Library metadata.

get_page() resolves a catalog request in a fixed order: a search term wins,
then a source-specific catalog, then "recent", and finally "popular" (the
default). Pagination (skip/limit) always applies to the final composed
sequence. A partial catalog is preferred over none: store failures degrade
to metadata-only results and metadata failures degrade to empty.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from . import matcher
from .errors import StoreUnavailable
from .models import (
    CANONICAL_ID_PREFIX,
    CATALOG_POPULAR,
    CATALOG_RECENT,
    CONTENT_TYPE,
    ITEM_ID_PREFIX,
    CanonicalMetadataRecord,
    CatalogItem,
    ContentRecord,
    Stream,
)

if TYPE_CHECKING:
    from .api.openlibrary import OpenLibraryClient
    from .store import ContentStore

log = logger.bind(stage="catalog")

_INFO_HASH = re.compile(r"^[a-fA-F0-9]{40}$")
_MAX_SEARCH_RECORDS = 500
_MAX_GENRES = 5

GENRES = (
    "Fiction",
    "Non-Fiction",
    "Science Fiction",
    "Fantasy",
    "Mystery",
    "Romance",
    "Biography",
    "Self-Help",
)


def format_file_size(size_bytes: int) -> str:
    """Human-readable size: '1.2 GB', '580 MB', '900 KB', '12 B'."""
    if size_bytes >= 1024**3:
        return f"{size_bytes / 1024**3:.1f} GB"
    if size_bytes >= 1024**2:
        return f"{size_bytes / 1024**2:.0f} MB"
    if size_bytes >= 1024:
        return f"{size_bytes / 1024:.0f} KB"
    return f"{size_bytes} B"


def format_quality(record: ContentRecord) -> str:
    fmt = str(record.audio_format).upper()
    return f"{record.bitrate_kbps}kbps {fmt}" if record.bitrate_kbps else fmt


class CatalogAggregator:
    """Composes paginated catalog views over the store and Open Library."""

    def __init__(
        self,
        store: ContentStore,
        metadata: OpenLibraryClient,
        sources: dict[str, str],
        page_size: int = 20,
        seed_query: str = "audiobook",
    ) -> None:
        """
        Args:
            store: Persisted content records
            metadata: Canonical metadata search collaborator
            sources: Source id -> display name, for source catalogs and labels
            page_size: Default page length when no limit is given
            seed_query: Open Library query used when the store is empty
        """
        self.store = store
        self.metadata = metadata
        self.sources = sources
        self.page_size = page_size
        self.seed_query = seed_query

    def manifest(self) -> dict[str, Any]:
        """Describe the catalogs this aggregator can serve."""
        catalogs = [
            {
                "type": CONTENT_TYPE,
                "id": CATALOG_POPULAR,
                "name": "Popular Audiobooks",
                "extra": [{"name": "search"}, {"name": "genre", "options": list(GENRES)}],
            },
            {"type": CONTENT_TYPE, "id": CATALOG_RECENT, "name": "Recently Added"},
        ]
        catalogs.extend(
            {"type": CONTENT_TYPE, "id": source_id, "name": name}
            for source_id, name in self.sources.items()
        )
        return {
            "types": [CONTENT_TYPE],
            "resources": ["catalog", "meta", "stream"],
            "id_prefixes": [f"{ITEM_ID_PREFIX}:", f"{CANONICAL_ID_PREFIX}:"],
            "catalogs": catalogs,
        }

    # -- Catalog pages --

    async def get_page(
        self,
        catalog_id: str,
        search: str | None = None,
        genre: str | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[CatalogItem]:
        limit = self.page_size if limit is None else limit
        window = skip + limit

        if search:
            items = await self._search(search, genre, window)
        elif catalog_id in self.sources:
            items = await self._source_catalog(catalog_id, window)
        elif catalog_id == CATALOG_RECENT:
            items = await self._recent(window)
        else:
            items = await self._popular(genre, window)

        page = items[skip:window]
        log.debug(
            f"get_page(catalog={catalog_id!r}, search={search!r}, genre={genre!r}, "
            f"skip={skip}, limit={limit}) -> {len(page)} items"
        )
        return page

    async def _search(self, search: str, genre: str | None, window: int) -> list[CatalogItem]:
        """Scraped matches first, then metadata fills the remaining slots."""
        try:
            records = await self._store(self.store.search, search, _MAX_SEARCH_RECORDS)
        except StoreUnavailable as e:
            log.warning(f"Store unavailable for search, using metadata only: {e}")
            records = []

        items: list[CatalogItem] = []
        seen: set[str] = set()
        for record in records:
            key = matcher.normalize_text(record.title)
            if key in seen:
                continue
            seen.add(key)
            items.append(self._record_item(record))

        if len(items) >= window:
            return items

        for meta in await self.metadata.search(search, limit=window):
            if len(items) >= window:
                break
            if genre and not _has_genre(meta, genre):
                continue
            key = matcher.normalize_text(meta.title)
            if key in seen:
                continue
            seen.add(key)
            items.append(_metadata_item(meta))
        return items

    async def _source_catalog(self, source_id: str, window: int) -> list[CatalogItem]:
        try:
            records = await self._store(
                self.store.find, {"source_id": source_id}, "scraped_at", True, window
            )
        except StoreUnavailable as e:
            log.warning(f"Store unavailable for source catalog {source_id}: {e}")
            return []
        return [self._record_item(r) for r in records]

    async def _recent(self, window: int) -> list[CatalogItem]:
        """Newest records across sources; one failing source yields nothing for it."""
        per_source = await asyncio.gather(
            *(self._recent_for_source(s, window) for s in self.sources)
        )
        merged = [r for records in per_source for r in records]
        merged.sort(key=lambda r: r.scraped_at, reverse=True)
        return [self._record_item(r) for r in merged[:window]]

    async def _recent_for_source(self, source_id: str, window: int) -> list[ContentRecord]:
        try:
            return await self._store(
                self.store.find, {"source_id": source_id}, "scraped_at", True, window
            )
        except StoreUnavailable as e:
            log.warning(f"Recent sub-query failed for {source_id}: {e}")
            return []

    async def _popular(self, genre: str | None, window: int) -> list[CatalogItem]:
        """Persisted records in store order; Open Library when the store is empty.

        Scraped records carry no genre, so a genre only shapes the fallback.
        """
        try:
            if await self._store(self.store.count):
                records = await self._store(self.store.find, None, None, False, window)
                return [self._record_item(r) for r in records]
        except StoreUnavailable as e:
            log.warning(f"Store unavailable for popular catalog, using metadata: {e}")

        if genre:
            metas = await self.metadata.search(f"subject:{genre}", limit=window)
            return [_metadata_item(m) for m in metas if _has_genre(m, genre)]
        metas = await self.metadata.search(self.seed_query, limit=window)
        return [_metadata_item(m) for m in metas]

    # -- Item detail and streams --

    async def get_meta(self, item_id: str) -> CatalogItem | None:
        """Detail view for an ``ab:`` record or an ``ol:`` canonical work."""
        if item_id.startswith(f"{CANONICAL_ID_PREFIX}:"):
            meta = await self.metadata.get_by_id(item_id)
            return _metadata_item(meta) if meta else None

        records = await self._records_for_item(item_id)
        if not records:
            return None

        record = records[0]
        item = self._record_item(record)
        if record.canonical_id:
            meta = await self.metadata.get_by_id(record.canonical_id)
            if meta:
                item.poster = meta.cover_url
                item.genres = meta.subjects[:_MAX_GENRES]
                item.release_info = str(meta.year) if meta.year else item.release_info
                if meta.description:
                    item.description = f"{meta.description}\n\n{item.description}"
        return item

    async def get_streams(self, item_id: str) -> list[Stream]:
        """Playable streams for an item.

        For a canonical work, streams come from records already linked to it
        plus persisted records whose title/author fuzzy-match the work.
        """
        if not item_id.startswith(f"{CANONICAL_ID_PREFIX}:"):
            return [self._record_stream(r) for r in await self._records_for_item(item_id)]

        meta = await self.metadata.get_by_id(item_id)
        if meta is None:
            return []

        try:
            linked = await self._store(self.store.find, {"canonical_id": item_id})
            candidates = await self._store(self.store.search, meta.title, _MAX_SEARCH_RECORDS)
        except StoreUnavailable as e:
            log.warning(f"Store unavailable for streams of {item_id}: {e}")
            return []

        author = meta.authors[0] if meta.authors else None
        fuzzy = [
            record
            for record, s in matcher.score_candidates(meta.title, author, candidates)
            if s > matcher.MATCH_THRESHOLD
        ]

        streams = []
        seen: set[str] = set()
        for record in [*linked, *fuzzy]:
            if record.unique_key in seen:
                continue
            seen.add(record.unique_key)
            streams.append(self._record_stream(record))
        return streams

    async def _records_for_item(self, item_id: str) -> list[ContentRecord]:
        parts = item_id.split(":", 2)
        if len(parts) != 3 or parts[0] != ITEM_ID_PREFIX:
            return []
        _, source_id, origin_id = parts
        try:
            return await self._store(
                self.store.find, {"source_id": source_id, "origin_id": origin_id}
            )
        except StoreUnavailable as e:
            log.warning(f"Store unavailable for {item_id}: {e}")
            return []

    # -- Rendering --

    def _source_name(self, source_id: str) -> str:
        return self.sources.get(source_id, source_id)

    def _record_item(self, record: ContentRecord) -> CatalogItem:
        summary = " | ".join(
            [
                format_quality(record),
                format_file_size(record.size_bytes),
                self._source_name(record.source_id),
            ]
        )
        return CatalogItem(
            id=record.item_id,
            name=record.title,
            author=record.author,
            narrator=record.narrator,
            description=summary,
        )

    def _record_stream(self, record: ContentRecord) -> Stream:
        source_name = self._source_name(record.source_id)
        stream = Stream(
            name=f"{source_name}\n{format_quality(record)}",
            title=f"{record.title}\n{format_file_size(record.size_bytes)} | {source_name}",
            source_id=record.source_id,
        )
        if _INFO_HASH.match(record.locator):
            stream.info_hash = record.locator.lower()
        else:
            stream.url = record.locator
        return stream

    @staticmethod
    async def _store(fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(fn, *args)


def _has_genre(meta: CanonicalMetadataRecord, genre: str) -> bool:
    wanted = genre.casefold()
    return any(subject.casefold() == wanted for subject in meta.subjects)


def _metadata_item(meta: CanonicalMetadataRecord) -> CatalogItem:
    return CatalogItem(
        id=meta.canonical_id,
        name=meta.title,
        author=meta.author or None,
        poster=meta.cover_url,
        release_info=str(meta.year) if meta.year else None,
        genres=meta.subjects[:_MAX_GENRES],
        description=meta.description,
    )
