"""Exception hierarchy for the audiobook catalog.

NoMatch is not an exception: the fuzzy matcher returns None.
"""


class CatalogError(Exception):
    """Base exception for all catalog errors."""


class ConfigError(CatalogError):
    """Invalid or missing configuration."""


class SourceUnavailable(CatalogError):
    """One source's origin was unreachable or returned an unusable payload."""

    def __init__(self, source_id: str, message: str) -> None:
        super().__init__(f"{source_id}: {message}")
        self.source_id = source_id


class UnknownSource(CatalogError):
    """No adapter is registered under the requested source id."""

    def __init__(self, source_id: str) -> None:
        super().__init__(f"Unknown source: {source_id}")
        self.source_id = source_id


class SourceBusy(CatalogError):
    """A scrape for this source is already running."""

    def __init__(self, source_id: str) -> None:
        super().__init__(f"Scrape already running for {source_id}")
        self.source_id = source_id


class StoreUnavailable(CatalogError):
    """The document store could not be read or written."""


class ProviderError(CatalogError):
    """A debrid provider call failed (distinct from 'nothing available')."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class UnknownProvider(CatalogError):
    """No debrid provider is registered under the requested id."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unknown provider: {provider}")
        self.provider = provider
