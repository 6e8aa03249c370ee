"""Core enums, records, and constants for the audiobook catalog.

Enums:
    AudioFormat  -- Container/codec family detected from a release name.

Records:
    ParsedAttributes        -- Structured fields derived from a raw title string.
    RawContentRecord        -- One item produced by a source adapter in a scrape pass.
    ContentRecord           -- Persisted, upserted form of a raw record.
    CanonicalMetadataRecord -- Bibliographic record from Open Library.
    ScrapeRunStatus         -- Per-source run state, owned by the orchestrator.
    CacheStatus, DebridLink -- Debrid availability and resolved links.
    CatalogItem, Stream     -- Rendered catalog entries and playable streams.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class AudioFormat(StrEnum):
    MP3 = "mp3"
    M4B = "m4b"
    FLAC = "flac"
    UNKNOWN = "unknown"


CONTENT_TYPE = "audiobook"

# Prefix for ids of persisted records: ab:<source>:<origin id>
ITEM_ID_PREFIX = "ab"

# Prefix for ids of canonical works: ol:<work id>
CANONICAL_ID_PREFIX = "ol"

CATALOG_POPULAR = "popular"
CATALOG_RECENT = "recent"


@dataclass(frozen=True)
class ParsedAttributes:
    title: str
    author: str | None = None
    narrator: str | None = None
    year: int | None = None
    audio_format: AudioFormat = AudioFormat.UNKNOWN
    bitrate_kbps: int | None = None
    is_abridged: bool = False


@dataclass
class RawContentRecord:
    """An item as one adapter saw it during a single scrape pass."""

    identifier: str
    title: str
    creator: str
    size_bytes: int
    source_id: str
    locator: str
    unique_key: str
    parsed: ParsedAttributes

    def to_content_record(self, scraped_at: datetime) -> "ContentRecord":
        return ContentRecord(
            unique_key=self.unique_key,
            origin_id=self.identifier,
            title=self.title,
            author=self.creator or self.parsed.author or "Unknown",
            narrator=self.parsed.narrator,
            audio_format=self.parsed.audio_format,
            bitrate_kbps=self.parsed.bitrate_kbps,
            size_bytes=self.size_bytes,
            source_id=self.source_id,
            locator=self.locator,
            scraped_at=scraped_at,
        )


@dataclass
class ContentRecord:
    unique_key: str
    origin_id: str
    title: str
    author: str
    source_id: str
    locator: str
    scraped_at: datetime
    narrator: str | None = None
    audio_format: AudioFormat = AudioFormat.UNKNOWN
    bitrate_kbps: int | None = None
    size_bytes: int = 0
    canonical_id: str | None = None

    @property
    def item_id(self) -> str:
        """Stable external id, independent of the storage key."""
        return f"{ITEM_ID_PREFIX}:{self.source_id}:{self.origin_id}"


@dataclass(frozen=True)
class CanonicalMetadataRecord:
    canonical_id: str
    title: str
    authors: list[str] = field(default_factory=list)
    cover_url: str | None = None
    year: int | None = None
    subjects: list[str] = field(default_factory=list)
    description: str | None = None

    @property
    def author(self) -> str:
        return ", ".join(self.authors)


@dataclass
class ScrapeRunStatus:
    source_id: str
    last_run_at: datetime | None = None
    record_count: int = 0
    is_running: bool = False
    last_error: str | None = None


@dataclass(frozen=True)
class CacheStatus:
    info_hash: str
    cached: bool
    provider: str


@dataclass(frozen=True)
class DebridLink:
    url: str
    filename: str
    size: int
    mime_type: str | None = None


@dataclass
class CatalogItem:
    id: str
    name: str
    type: str = CONTENT_TYPE
    author: str | None = None
    narrator: str | None = None
    poster: str | None = None
    release_info: str | None = None
    genres: list[str] = field(default_factory=list)
    description: str | None = None


@dataclass
class Stream:
    name: str
    title: str
    source_id: str
    url: str | None = None
    info_hash: str | None = None
