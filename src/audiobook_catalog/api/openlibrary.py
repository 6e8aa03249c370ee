"""Open Library client for canonical bibliographic metadata.

Queries the Open Library search and works APIs and returns
CanonicalMetadataRecords. Results are cached briefly by query string.
Failures are logged and degrade to an empty result (search) or None
(work lookup); callers never see transport errors.
"""

import httpx
from loguru import logger

from ..cache import TTLCache
from ..models import CANONICAL_ID_PREFIX, CanonicalMetadataRecord

log = logger.bind(stage="openlibrary")

OPEN_LIBRARY_API = "https://openlibrary.org"
COVER_BASE_URL = "https://covers.openlibrary.org/b"

_SEARCH_FIELDS = "key,title,author_name,first_publish_year,cover_i,subject"
_MAX_SUBJECTS = 10
_MAX_WORK_AUTHORS = 3


def cover_url(cover_id: int | None, size: str = "L") -> str | None:
    if not cover_id:
        return None
    return f"{COVER_BASE_URL}/id/{cover_id}-{size}.jpg"


def _work_key(canonical_id: str) -> str:
    """'ol:OL45883W', 'OL45883W' or '/works/OL45883W' -> 'OL45883W'."""
    work = canonical_id
    if work.startswith(f"{CANONICAL_ID_PREFIX}:"):
        work = work[len(CANONICAL_ID_PREFIX) + 1 :]
    return work.removeprefix("/works/")


class OpenLibraryClient:
    """Metadata search collaborator backed by openlibrary.org."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: TTLCache,
        cache_ttl_seconds: int = 3600,
        base_url: str = OPEN_LIBRARY_API,
    ) -> None:
        self.client = client
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds
        self.base_url = base_url.rstrip("/")

    async def search(self, query: str, limit: int = 20) -> list[CanonicalMetadataRecord]:
        """Search works by free text, return up to ``limit`` records."""
        cache_key = f"metadata:search:{query}:{limit}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        log.debug(f"Open Library search: query={query!r} limit={limit}")
        try:
            resp = await self.client.get(
                f"{self.base_url}/search.json",
                params={"q": query, "limit": str(limit), "fields": _SEARCH_FIELDS},
            )
            resp.raise_for_status()
            docs = resp.json().get("docs") or []
            results = [_doc_to_record(d) for d in docs if d.get("key") and d.get("title")]
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            log.warning(f"Open Library search failed for {query!r}: {e}")
            return []

        self.cache.set(cache_key, results, self.cache_ttl_seconds)
        log.debug(f"Open Library results: {len(results)} works")
        return results

    async def get_by_id(self, canonical_id: str) -> CanonicalMetadataRecord | None:
        """Fetch a single work with its description and author names."""
        work = _work_key(canonical_id)
        cache_key = f"metadata:work:{work}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            resp = await self.client.get(f"{self.base_url}/works/{work}.json")
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            log.warning(f"Open Library work fetch failed for {work}: {e}")
            return None
        if not isinstance(data, dict):
            log.warning(f"Open Library work {work}: unexpected payload {type(data).__name__}")
            return None

        authors = []
        for ref in (data.get("authors") or [])[:_MAX_WORK_AUTHORS]:
            author = ref.get("author") if isinstance(ref, dict) else None
            key = author.get("key") if isinstance(author, dict) else None
            if not key:
                continue
            name = await self._author_name(key)
            if name:
                authors.append(name)

        description = data.get("description")
        if isinstance(description, dict):
            description = description.get("value")

        covers = data.get("covers") or []
        record = CanonicalMetadataRecord(
            canonical_id=f"{CANONICAL_ID_PREFIX}:{work}",
            title=data.get("title", ""),
            authors=authors or ["Unknown Author"],
            cover_url=cover_url(covers[0]) if covers else None,
            subjects=list((data.get("subjects") or [])[:_MAX_SUBJECTS]),
            description=description,
        )
        self.cache.set(cache_key, record, self.cache_ttl_seconds)
        return record

    async def _author_name(self, key: str) -> str | None:
        try:
            resp = await self.client.get(f"{self.base_url}{key}.json")
            resp.raise_for_status()
            return resp.json().get("name")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            log.debug(f"Skipping author {key}: {e}")
            return None


def _doc_to_record(doc: dict) -> CanonicalMetadataRecord:
    work = _work_key(doc["key"])
    return CanonicalMetadataRecord(
        canonical_id=f"{CANONICAL_ID_PREFIX}:{work}",
        title=doc["title"],
        authors=doc.get("author_name") or ["Unknown Author"],
        cover_url=cover_url(doc.get("cover_i")),
        year=doc.get("first_publish_year"),
        subjects=list((doc.get("subject") or [])[:_MAX_SUBJECTS]),
    )
