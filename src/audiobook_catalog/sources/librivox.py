"""LibriVox adapter -- public-domain recordings hosted on the Internet Archive.

For each LibriVox book, resolves the Internet Archive identifier, then
enriches it from the archive metadata API to compute total audio size and
pick a direct stream URL (a single .m4b when present, else the zip). Records
are keyed on the LibriVox book id, so the chosen URL can change between
scrapes without creating a second row.
Enrichment calls are paced with a fixed delay; an enrichment failure only
falls back to the zip URL and never fails the whole pass.
"""

import asyncio
import re
from dataclasses import replace
from urllib.parse import quote

import httpx
from loguru import logger

from ..errors import SourceUnavailable
from ..models import AudioFormat, RawContentRecord
from ..parser import parse
from .base import SourceAdapter

log = logger.bind(stage="librivox")

LIBRIVOX_API = "https://librivox.org/api/feed/audiobooks"
ARCHIVE_METADATA_API = "https://archive.org/metadata"
ARCHIVE_DOWNLOAD = "https://archive.org/download"

_IARCHIVE_DETAILS = re.compile(r"archive\.org/details/([^/?]+)")
_IARCHIVE_ZIP = re.compile(r"archive\.org/(?:compress|download)/([^/?]+)")

_AUDIO_FORMATS = frozenset({"VBR MP3", "64Kbps MP3", "128Kbps MP3"})


class LibrivoxSource(SourceAdapter):
    id = "librivox"
    display_name = "LibriVox"

    def __init__(
        self,
        client: httpx.AsyncClient,
        enabled: bool = True,
        limit: int = 50,
        enrichment_delay: float = 0.1,
    ) -> None:
        super().__init__(client, enabled)
        self.limit = limit
        self.enrichment_delay = enrichment_delay

    async def scrape(self) -> list[RawContentRecord]:
        data = await self._get_json(
            LIBRIVOX_API, params={"format": "json", "limit": str(self.limit)}
        )
        books = data.get("books")
        if books is None:
            return []
        if not isinstance(books, list):
            raise SourceUnavailable(self.id, "feed payload 'books' is not a list")

        records = []
        for book in books:
            identifier = archive_identifier(book)
            if not identifier or not book.get("id"):
                continue

            zip_url = book.get("url_zip_file") or f"{ARCHIVE_DOWNLOAD}/{identifier}"
            size, stream_url = await self._enrich(identifier)
            stream_url = stream_url or zip_url

            title = book.get("title") or identifier
            parsed = parse(title)
            parsed_format = AudioFormat.M4B if stream_url.endswith(".m4b") else AudioFormat.MP3

            records.append(
                RawContentRecord(
                    identifier=str(book["id"]),
                    title=title,
                    creator=_author_name(book) or parsed.author or "Unknown",
                    size_bytes=size,
                    source_id=self.id,
                    locator=stream_url,
                    unique_key=f"librivox:{book['id']}",
                    parsed=replace(parsed, audio_format=parsed_format),
                )
            )

            if self.enrichment_delay:
                await asyncio.sleep(self.enrichment_delay)

        log.info(f"LibriVox returned {len(records)} books")
        return records

    async def _enrich(self, identifier: str) -> tuple[int, str | None]:
        """Total audio bytes and a direct .m4b URL, from archive.org metadata."""
        try:
            resp = await self.client.get(f"{ARCHIVE_METADATA_API}/{identifier}")
            resp.raise_for_status()
            files = resp.json().get("files") or []
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            log.warning(f"Failed to fetch archive metadata for {identifier}: {e}")
            return 0, None

        total = 0
        m4b_name = None
        for f in files:
            name = f.get("name", "")
            if f.get("format") in _AUDIO_FORMATS or name.endswith((".mp3", ".m4b")):
                try:
                    total += int(f.get("size") or 0)
                except (TypeError, ValueError):
                    pass
            if m4b_name is None and name.endswith(".m4b"):
                m4b_name = name

        if m4b_name:
            return total, f"{ARCHIVE_DOWNLOAD}/{identifier}/{quote(m4b_name)}"
        return total, None


def archive_identifier(book: dict) -> str | None:
    """Internet Archive identifier from url_iarchive, else url_zip_file."""
    match = _IARCHIVE_DETAILS.search(book.get("url_iarchive") or "")
    if match:
        return match.group(1)
    match = _IARCHIVE_ZIP.search(book.get("url_zip_file") or "")
    if match:
        return match.group(1)
    return None


def _author_name(book: dict) -> str:
    authors = book.get("authors") or []
    if not authors:
        return ""
    first = authors[0]
    return f"{first.get('first_name', '')} {first.get('last_name', '')}".strip()
