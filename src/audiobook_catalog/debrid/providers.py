"""Debrid provider clients -- Real-Debrid and Premiumize.

A provider answers two questions for an info hash: is it already cached
on the service (check_cache), and what direct link does it unrestrict to
(generate_link). Transport and API failures raise ProviderError; a
resolvable-but-empty result is ``None``, never an error.
"""

from abc import ABC, abstractmethod
from pathlib import PurePosixPath

import httpx
from loguru import logger

from ..errors import ProviderError
from ..models import DebridLink

log = logger.bind(stage="debrid")

_AUDIO_SUFFIXES = frozenset({".mp3", ".m4a", ".m4b", ".flac", ".ogg", ".opus"})


def magnet_uri(info_hash: str) -> str:
    return f"magnet:?xt=urn:btih:{info_hash}"


class DebridProvider(ABC):
    """Interface shared by debrid services."""

    id: str
    name: str

    def __init__(self, client: httpx.AsyncClient, api_key: str) -> None:
        self.client = client
        self.api_key = api_key

    @abstractmethod
    async def check_cache(self, info_hashes: list[str]) -> dict[str, bool]:
        """Map each hash the service reported on to its cached flag."""

    @abstractmethod
    async def generate_link(
        self, info_hash: str, file_id: int | None = None
    ) -> DebridLink | None:
        """Add, select, and unrestrict; None when no file can be resolved."""


class RealDebridProvider(DebridProvider):
    id = "real-debrid"
    name = "Real-Debrid"
    base_url = "https://api.real-debrid.com/rest/1.0"

    async def _request(self, method: str, endpoint: str, **kwargs):
        try:
            resp = await self.client.request(
                method,
                f"{self.base_url}{endpoint}",
                headers={"Authorization": f"Bearer {self.api_key}"},
                **kwargs,
            )
            resp.raise_for_status()
            if resp.status_code == 204 or not resp.content:
                return None
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self.id, f"API error {e.response.status_code} on {endpoint}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.id, f"request to {endpoint} failed: {e}") from e
        except ValueError as e:
            raise ProviderError(self.id, f"invalid JSON from {endpoint}") from e

    async def check_cache(self, info_hashes: list[str]) -> dict[str, bool]:
        if not info_hashes:
            return {}
        data = await self._request(
            "GET", f"/torrents/instantAvailability/{'/'.join(info_hashes)}"
        )
        if not isinstance(data, dict):
            data = {}

        results = {}
        for h in info_hashes:
            availability = data.get(h.lower())
            results[h] = bool(availability)
        return results

    async def generate_link(
        self, info_hash: str, file_id: int | None = None
    ) -> DebridLink | None:
        added = await self._request(
            "POST", "/torrents/addMagnet", data={"magnet": magnet_uri(info_hash)}
        )
        torrent_id = (added or {}).get("id")
        if not torrent_id:
            raise ProviderError(self.id, "addMagnet returned no torrent id")

        await self._request(
            "POST",
            f"/torrents/selectFiles/{torrent_id}",
            data={"files": str(file_id) if file_id is not None else "all"},
        )

        info = await self._request("GET", f"/torrents/info/{torrent_id}") or {}
        links = info.get("links") or []
        if not links:
            log.info(f"Real-Debrid has no links for {info_hash}")
            return None

        unrestricted = await self._request(
            "POST", "/unrestrict/link", data={"link": links[0]}
        ) or {}
        if not unrestricted.get("download"):
            return None

        return DebridLink(
            url=unrestricted["download"],
            filename=unrestricted.get("filename", ""),
            size=int(unrestricted.get("filesize") or 0),
            mime_type=unrestricted.get("mimeType"),
        )


class PremiumizeProvider(DebridProvider):
    id = "premiumize"
    name = "Premiumize"
    base_url = "https://www.premiumize.me/api"

    async def _request(self, method: str, endpoint: str, **kwargs) -> dict:
        try:
            resp = await self.client.request(method, f"{self.base_url}{endpoint}", **kwargs)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self.id, f"API error {e.response.status_code} on {endpoint}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.id, f"request to {endpoint} failed: {e}") from e
        except ValueError as e:
            raise ProviderError(self.id, f"invalid JSON from {endpoint}") from e

        if not isinstance(data, dict) or data.get("status") != "success":
            message = data.get("message") if isinstance(data, dict) else None
            raise ProviderError(self.id, message or f"{endpoint} did not succeed")
        return data

    async def check_cache(self, info_hashes: list[str]) -> dict[str, bool]:
        if not info_hashes:
            return {}
        data = await self._request(
            "GET",
            "/cache/check",
            params=[("apikey", self.api_key)] + [("items[]", h) for h in info_hashes],
        )
        flags = data.get("response") or []
        if not isinstance(flags, list):
            raise ProviderError(self.id, "/cache/check returned a non-list response")
        return {h: bool(flag) for h, flag in zip(info_hashes, flags)}

    async def generate_link(
        self, info_hash: str, file_id: int | None = None
    ) -> DebridLink | None:
        data = await self._request(
            "POST",
            "/transfer/directdl",
            data={"apikey": self.api_key, "src": magnet_uri(info_hash)},
        )
        files = [f for f in data.get("content") or [] if f.get("link")]
        if not files:
            log.info(f"Premiumize has no files for {info_hash}")
            return None

        if file_id is not None:
            if file_id >= len(files):
                return None
            chosen = files[file_id]
        else:
            audio = [
                f
                for f in files
                if PurePosixPath(f.get("path", "")).suffix.lower() in _AUDIO_SUFFIXES
            ]
            chosen = max(audio or files, key=lambda f: int(f.get("size") or 0))

        return DebridLink(
            url=chosen.get("stream_link") or chosen["link"],
            filename=PurePosixPath(chosen.get("path", "")).name,
            size=int(chosen.get("size") or 0),
        )
