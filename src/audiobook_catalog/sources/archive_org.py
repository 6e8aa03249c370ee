"""Internet Archive adapter -- newest items of the audio_bookspoetry collection."""

import httpx
from loguru import logger

from ..errors import SourceUnavailable
from ..models import RawContentRecord
from ..parser import parse
from .base import SourceAdapter

log = logger.bind(stage="archive-org")

ARCHIVE_SEARCH_API = "https://archive.org/advancedsearch.php"
ARCHIVE_DOWNLOAD = "https://archive.org/download"

_QUERY = "mediatype:audio AND collection:audio_bookspoetry"
_FIELDS = ("identifier", "title", "creator", "description", "item_size")


class ArchiveOrgSource(SourceAdapter):
    id = "archive-org"
    display_name = "Internet Archive"

    def __init__(
        self, client: httpx.AsyncClient, enabled: bool = True, rows: int = 50
    ) -> None:
        super().__init__(client, enabled)
        self.rows = rows

    async def scrape(self) -> list[RawContentRecord]:
        params = [
            ("q", _QUERY),
            *(("fl[]", f) for f in _FIELDS),
            ("sort[]", "addeddate desc"),
            ("rows", str(self.rows)),
            ("output", "json"),
        ]
        data = await self._get_json(ARCHIVE_SEARCH_API, params=params)

        response = data.get("response")
        if not isinstance(response, dict):
            raise SourceUnavailable(self.id, "search payload has no 'response'")

        records = []
        for doc in response.get("docs") or []:
            identifier = doc.get("identifier")
            if not identifier:
                continue

            title = _first(doc.get("title")) or identifier
            parsed = parse(title)
            creator = _first(doc.get("creator")) or parsed.author or "Unknown"

            records.append(
                RawContentRecord(
                    identifier=identifier,
                    title=title,
                    creator=creator,
                    size_bytes=_as_int(doc.get("item_size")),
                    source_id=self.id,
                    locator=f"{ARCHIVE_DOWNLOAD}/{identifier}",
                    unique_key=f"archive:{identifier}",
                    parsed=parsed,
                )
            )

        log.info(f"Archive.org returned {len(records)} items")
        return records


def _first(value) -> str | None:
    """Archive fields may be a string or a list of strings."""
    if isinstance(value, list):
        return str(value[0]) if value else None
    return str(value) if value else None


def _as_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
