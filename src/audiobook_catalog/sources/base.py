"""Source adapter interface shared by all scraped origins."""

from abc import ABC, abstractmethod

import httpx

from ..errors import SourceUnavailable
from ..models import RawContentRecord


class SourceAdapter(ABC):
    """One external origin of content records.

    Each adapter owns its own pagination and pacing, maps origin payloads
    through the title parser, and derives a deterministic unique key per
    item. Transport errors and malformed payloads surface as
    SourceUnavailable scoped to ``id``.
    """

    id: str
    display_name: str

    def __init__(self, client: httpx.AsyncClient, enabled: bool = True) -> None:
        self.client = client
        self.enabled = enabled

    @abstractmethod
    async def scrape(self) -> list[RawContentRecord]:
        """Fetch one pass of records from the origin."""

    async def _get_json(self, url: str, **kwargs) -> dict:
        """GET a JSON object, translating failures into SourceUnavailable."""
        try:
            resp = await self.client.get(url, **kwargs)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise SourceUnavailable(self.id, f"request to {url} failed: {e}") from e
        except ValueError as e:
            raise SourceUnavailable(self.id, f"invalid JSON from {url}: {e}") from e
        if not isinstance(data, dict):
            raise SourceUnavailable(self.id, f"unexpected payload from {url}")
        return data
