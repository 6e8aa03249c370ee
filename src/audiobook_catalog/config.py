"""Catalog configuration via pydantic-settings (.env + env vars)."""

import sys
from pathlib import Path

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict


class CatalogConfig(BaseSettings):
    """All catalog configuration with layered resolution:
    .env file < environment variables < constructor kwargs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -- Directories --
    data_dir: Path = Path("/var/lib/audiobook-catalog")
    log_dir: Path = Path("/var/log/audiobook-catalog")

    # -- Behavior --
    verbose: bool = False
    log_level: str = "INFO"
    user_agent: str = "audiobook-catalog/0.1"
    http_timeout: float = 30.0

    # -- Scraping --
    librivox_enabled: bool = True
    librivox_limit: int = 50
    archive_org_enabled: bool = True
    archive_org_rows: int = 50
    scrape_pacing_seconds: float = 1.0
    enrichment_delay_seconds: float = 0.1
    adapter_timeout_seconds: float = 300.0

    # -- Catalog --
    catalog_page_size: int = 20
    popular_seed_query: str = "audiobook"
    metadata_cache_ttl_seconds: int = 3600
    reconcile_batch_size: int = 25

    # -- Debrid (a provider is enabled only when its key is set) --
    real_debrid_api_key: str = ""
    premiumize_api_key: str = ""
    debrid_cache_ttl_hours: int = 8
    provider_timeout_seconds: float = 30.0

    @property
    def db_path(self) -> Path:
        """Path to the SQLite content database."""
        return self.data_dir / "catalog.db"

    @property
    def debrid_cache_ttl_seconds(self) -> int:
        return self.debrid_cache_ttl_hours * 60 * 60

    def ensure_dirs(self) -> None:
        """Create all required directories if they don't exist."""
        for d in (self.data_dir, self.log_dir):
            d.mkdir(parents=True, exist_ok=True)

    def setup_logging(self) -> None:
        """Configure loguru for the catalog."""
        logger.remove()  # Remove default stderr handler

        log_format = (
            "{time:YYYY-MM-DDTHH:mm:ssZ} | {level:<8} | "
            "{extra[stage]:<12} | {message}"
        )

        def _default_extra(record):
            record["extra"].setdefault("stage", "")
            return True

        logger.add(
            sys.stderr,
            format=log_format,
            level=self.log_level.upper(),
            filter=_default_extra,
        )

        self.log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self.log_dir / "catalog.log"),
            format=log_format,
            level="DEBUG",
            rotation="10 MB",
            retention="30 days",
            filter=_default_extra,
        )
