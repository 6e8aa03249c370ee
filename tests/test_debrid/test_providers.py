"""Tests for debrid/providers.py -- Real-Debrid and Premiumize API clients."""

from urllib.parse import parse_qs

import httpx
import pytest

from audiobook_catalog.debrid.providers import (
    PremiumizeProvider,
    RealDebridProvider,
    magnet_uri,
)
from audiobook_catalog.errors import ProviderError
from audiobook_catalog.models import DebridLink

H1 = "a" * 40
H2 = "b" * 40


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def test_magnet_uri():
    assert magnet_uri(H1) == f"magnet:?xt=urn:btih:{H1}"


class TestRealDebrid:
    @pytest.mark.asyncio
    async def test_check_cache(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200, json={H1: {"rd": [{"1": {"filename": "book.m4b"}}]}, H2: []}
            )

        provider = RealDebridProvider(_client(handler), "rd-token")
        assert await provider.check_cache([H1, H2]) == {H1: True, H2: False}
        assert seen[0].url.path == f"/rest/1.0/torrents/instantAvailability/{H1}/{H2}"
        assert seen[0].headers["Authorization"] == "Bearer rd-token"

    @pytest.mark.asyncio
    async def test_check_cache_empty_input(self):
        provider = RealDebridProvider(_client(lambda r: httpx.Response(500)), "k")
        assert await provider.check_cache([]) == {}

    @pytest.mark.asyncio
    async def test_auth_failure_raises(self):
        provider = RealDebridProvider(_client(lambda r: httpx.Response(401)), "bad")
        with pytest.raises(ProviderError, match="401"):
            await provider.check_cache([H1])

    @pytest.mark.asyncio
    async def test_generate_link_flow(self):
        calls = []

        def handler(request):
            path = request.url.path.removeprefix("/rest/1.0")
            calls.append((request.method, path, request.content))
            if path == "/torrents/addMagnet":
                return httpx.Response(201, json={"id": "T1", "uri": "..."})
            if path == "/torrents/selectFiles/T1":
                return httpx.Response(204)
            if path == "/torrents/info/T1":
                return httpx.Response(200, json={"links": ["https://real-debrid.com/d/X"]})
            if path == "/unrestrict/link":
                return httpx.Response(
                    200,
                    json={
                        "download": "https://dl.real-debrid.com/x/book.m4b",
                        "filename": "book.m4b",
                        "filesize": 123456,
                        "mimeType": "audio/mp4",
                    },
                )
            return httpx.Response(404)

        provider = RealDebridProvider(_client(handler), "k")
        link = await provider.generate_link(H1)

        assert link == DebridLink(
            url="https://dl.real-debrid.com/x/book.m4b",
            filename="book.m4b",
            size=123456,
            mime_type="audio/mp4",
        )
        assert [c[1] for c in calls] == [
            "/torrents/addMagnet",
            "/torrents/selectFiles/T1",
            "/torrents/info/T1",
            "/unrestrict/link",
        ]
        assert parse_qs(calls[0][2].decode())["magnet"] == [magnet_uri(H1)]
        assert parse_qs(calls[1][2].decode())["files"] == ["all"]

    @pytest.mark.asyncio
    async def test_generate_link_selects_file(self):
        selected = {}

        def handler(request):
            path = request.url.path.removeprefix("/rest/1.0")
            if path == "/torrents/addMagnet":
                return httpx.Response(201, json={"id": "T1"})
            if path.startswith("/torrents/selectFiles"):
                selected.update(_form(request))
                return httpx.Response(204)
            return httpx.Response(200, json={"links": []})

        provider = RealDebridProvider(_client(handler), "k")
        assert await provider.generate_link(H1, file_id=3) is None
        assert selected == {"files": "3"}

    @pytest.mark.asyncio
    async def test_missing_torrent_id_raises(self):
        provider = RealDebridProvider(_client(lambda r: httpx.Response(201, json={})), "k")
        with pytest.raises(ProviderError):
            await provider.generate_link(H1)


class TestPremiumize:
    @pytest.mark.asyncio
    async def test_check_cache(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"status": "success", "response": [True, False]})

        provider = PremiumizeProvider(_client(handler), "pm-key")
        assert await provider.check_cache([H1, H2]) == {H1: True, H2: False}
        params = seen[0].url.params
        assert params["apikey"] == "pm-key"
        assert params.get_list("items[]") == [H1, H2]

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        payload = {"status": "error", "message": "Not logged in."}
        provider = PremiumizeProvider(_client(lambda r: httpx.Response(200, json=payload)), "k")
        with pytest.raises(ProviderError, match="Not logged in"):
            await provider.check_cache([H1])

    @pytest.mark.asyncio
    async def test_non_list_cache_response_raises(self):
        payload = {"status": "success", "response": 5}
        provider = PremiumizeProvider(_client(lambda r: httpx.Response(200, json=payload)), "k")
        with pytest.raises(ProviderError, match="non-list"):
            await provider.check_cache([H1])

    @pytest.mark.asyncio
    async def test_generate_link_picks_largest_audio(self):
        payload = {
            "status": "success",
            "content": [
                {"path": "Book/cover.jpg", "size": 9_000_000, "link": "https://pm/cover"},
                {"path": "Book/part1.mp3", "size": 1000, "link": "https://pm/p1"},
                {
                    "path": "Book/full.m4b",
                    "size": 5000,
                    "link": "https://pm/full",
                    "stream_link": "https://pm/stream/full",
                },
            ],
        }
        sent = {}

        def handler(request):
            sent.update(_form(request))
            return httpx.Response(200, json=payload)

        provider = PremiumizeProvider(_client(handler), "k")
        link = await provider.generate_link(H1)

        assert link == DebridLink(url="https://pm/stream/full", filename="full.m4b", size=5000)
        assert sent == {"apikey": "k", "src": magnet_uri(H1)}

    @pytest.mark.asyncio
    async def test_generate_link_by_file_id(self):
        payload = {
            "status": "success",
            "content": [
                {"path": "a.mp3", "size": 1, "link": "https://pm/a"},
                {"path": "b.mp3", "size": 2, "link": "https://pm/b"},
            ],
        }
        provider = PremiumizeProvider(_client(lambda r: httpx.Response(200, json=payload)), "k")
        assert (await provider.generate_link(H1, file_id=0)).url == "https://pm/a"
        assert await provider.generate_link(H1, file_id=5) is None

    @pytest.mark.asyncio
    async def test_generate_link_no_files(self):
        payload = {"status": "success", "content": []}
        provider = PremiumizeProvider(_client(lambda r: httpx.Response(200, json=payload)), "k")
        assert await provider.generate_link(H1) is None
