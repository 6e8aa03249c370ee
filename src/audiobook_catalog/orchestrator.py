"""Scrape orchestration -- drives source adapters and persists their records.

Each source moves Idle -> Running -> Idle (success or error). The running
flag is set with a compare-and-set before the first suspension point, so a
source can never be scraped twice at once. run_all() walks sources one at
a time with a fixed pause between them and turns each source's failure into
an error marker instead of aborting the batch.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from loguru import logger

from . import matcher
from .errors import CatalogError, SourceBusy, SourceUnavailable, UnknownSource
from .models import ContentRecord, RawContentRecord, ScrapeRunStatus

if TYPE_CHECKING:
    from .api.openlibrary import OpenLibraryClient
    from .sources.base import SourceAdapter
    from .store import ContentStore

log = logger.bind(stage="orchestrator")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScrapeOrchestrator:
    """Runs source adapters and owns the per-source ScrapeRunStatus map."""

    def __init__(
        self,
        store: ContentStore,
        sources: dict[str, SourceAdapter],
        metadata: OpenLibraryClient,
        pacing_seconds: float = 1.0,
        adapter_timeout: float = 300.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.metadata = metadata
        self.pacing_seconds = pacing_seconds
        self.adapter_timeout = adapter_timeout
        self._sources = sources
        self._clock = clock
        self._status: dict[str, ScrapeRunStatus] = {}

    # -- Registry / status --

    def sources(self) -> list[SourceAdapter]:
        return list(self._sources.values())

    def get_source(self, source_id: str) -> SourceAdapter:
        try:
            return self._sources[source_id]
        except KeyError:
            raise UnknownSource(source_id) from None

    def status(self, source_id: str) -> ScrapeRunStatus:
        self.get_source(source_id)
        current = self._status.get(source_id)
        if current is None:
            return ScrapeRunStatus(source_id=source_id)
        return replace(current)

    def all_status(self) -> list[ScrapeRunStatus]:
        return [self.status(source_id) for source_id in self._sources]

    # -- Runs --

    async def run_one(self, source_id: str) -> int:
        """Scrape one source and persist its records.

        Returns the number of records stored for the source after the upsert.
        Raises UnknownSource, SourceBusy, SourceUnavailable or StoreUnavailable.
        """
        adapter = self.get_source(source_id)
        if not adapter.enabled:
            log.info(f"Source {source_id} is disabled, skipping")
            return 0

        current = self.status(source_id)
        if current.is_running:
            raise SourceBusy(source_id)
        self._status[source_id] = replace(current, is_running=True, last_error=None)

        log.info(f"Starting scrape for {adapter.display_name}")
        started = self._clock()
        try:
            raw = await self._scrape(adapter)
            records = [r.to_content_record(started) for r in raw]
            await asyncio.to_thread(self.store.upsert_many, records)
            count = await asyncio.to_thread(self.store.count, {"source_id": source_id})
        except CatalogError as e:
            log.error(f"Scrape failed for {source_id}: {e}")
            self._status[source_id] = replace(
                self._status[source_id], is_running=False, last_error=str(e)
            )
            raise
        except BaseException:
            self._status[source_id] = replace(
                self._status[source_id], is_running=False, last_error="interrupted"
            )
            raise

        elapsed = (self._clock() - started).total_seconds()
        log.info(
            f"Scrape for {adapter.display_name} completed in {elapsed:.1f}s: "
            f"{len(records)} scraped, {count} stored"
        )
        self._status[source_id] = ScrapeRunStatus(
            source_id=source_id,
            last_run_at=started,
            record_count=count,
            is_running=False,
        )
        return count

    async def run_all(self) -> dict[str, int | CatalogError]:
        """Scrape every enabled source in order.

        Returns source id -> stored record count, or the error that source
        failed with.
        """
        results: dict[str, int | CatalogError] = {}
        enabled = [a for a in self._sources.values() if a.enabled]
        for idx, adapter in enumerate(enabled):
            if idx and self.pacing_seconds:
                await asyncio.sleep(self.pacing_seconds)
            try:
                results[adapter.id] = await self.run_one(adapter.id)
            except CatalogError as e:
                results[adapter.id] = e

        failed = sum(1 for r in results.values() if isinstance(r, CatalogError))
        log.info(f"Scraped {len(results)} sources ({failed} failed)")
        return results

    async def _scrape(self, adapter: SourceAdapter) -> list[RawContentRecord]:
        """Run one adapter under the timeout; any failure is scoped to its source."""
        try:
            return await asyncio.wait_for(adapter.scrape(), timeout=self.adapter_timeout)
        except SourceUnavailable:
            raise
        except asyncio.TimeoutError:
            raise SourceUnavailable(
                adapter.id, f"timed out after {self.adapter_timeout:.0f}s"
            ) from None
        except Exception as e:
            log.exception(f"Adapter {adapter.id} crashed")
            raise SourceUnavailable(adapter.id, f"adapter error: {e}") from e

    # -- Reconciliation --

    async def reconcile(self, limit: int = 25) -> int:
        """Match records without a canonical id against Open Library.

        Returns how many records gained a canonical id. Records with no
        match above the threshold stay unmatched and are retried next time.
        """
        pending: list[ContentRecord] = await asyncio.to_thread(
            self.store.find, {"canonical_id": None}, None, False, limit
        )
        matched = 0
        for record in pending:
            author = record.author if record.author != "Unknown" else None
            query = f"{record.title} {author}" if author else record.title
            candidates = await self.metadata.search(query, limit=5)
            best = matcher.match(record.title, author, candidates)
            if best is None:
                continue
            await asyncio.to_thread(
                self.store.set_canonical_id, record.unique_key, best.canonical_id
            )
            matched += 1
            log.debug(f"Reconciled {record.unique_key} -> {best.canonical_id}")

        log.info(f"Reconciled {matched}/{len(pending)} records")
        return matched
