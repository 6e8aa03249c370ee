"""Tests for app.py -- component wiring from CatalogConfig."""

import pytest

from audiobook_catalog.app import CatalogApp
from audiobook_catalog.config import CatalogConfig
from audiobook_catalog.errors import ConfigError


def _config(tmp_path, **overrides) -> CatalogConfig:
    return CatalogConfig(
        _env_file=None,
        data_dir=tmp_path / "data",
        log_dir=tmp_path / "logs",
        real_debrid_api_key="",
        premiumize_api_key="",
        **overrides,
    )


class TestFromConfig:
    @pytest.mark.asyncio
    async def test_builds_components(self, tmp_path):
        async with CatalogApp.from_config(_config(tmp_path)) as app:
            assert [s.id for s in app.orchestrator.sources()] == ["librivox", "archive-org"]
            assert app.resolver.providers() == []
            assert app.catalog.sources == {
                "librivox": "LibriVox",
                "archive-org": "Internet Archive",
            }
            assert app.store.count() == 0
        assert (tmp_path / "data" / "catalog.db").exists()
        assert app.client.is_closed

    @pytest.mark.asyncio
    async def test_providers_need_credentials(self, tmp_path):
        config = _config(tmp_path).model_copy(update={"premiumize_api_key": "pm"})
        async with CatalogApp.from_config(config) as app:
            assert app.resolver.providers() == ["premiumize"]

    @pytest.mark.asyncio
    async def test_disabled_source_stays_registered(self, tmp_path):
        async with CatalogApp.from_config(_config(tmp_path, librivox_enabled=False)) as app:
            assert app.orchestrator.get_source("librivox").enabled is False
            assert await app.orchestrator.run_one("librivox") == 0

    def test_invalid_page_size(self, tmp_path):
        with pytest.raises(ConfigError):
            CatalogApp.from_config(_config(tmp_path, catalog_page_size=0))
