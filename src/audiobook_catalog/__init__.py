"""Audiobook Catalog -- scrape audiobook sources, match them to canonical works, and serve them.

Core modules:
    config       -- Catalog configuration via pydantic-settings (.env + env vars)
    cli          -- Click CLI entry point (scrape, catalog, streams, debrid lookups)
    app          -- Wires store, sources, metadata, and providers from one config
    parser       -- Release-name parsing into title/author/format/bitrate/year
    matcher      -- Fuzzy title/author scoring against canonical metadata
    store        -- SQLite upsert-by-key document store for scraped records
    orchestrator -- Per-source scrape runs, pacing, and reconciliation
    catalog      -- Paginated catalog pages, item details, and streams
    cache        -- In-process TTL cache

Subpackages:
    api     -- External metadata clients (Open Library)
    sources -- Source adapters (LibriVox, Internet Archive)
    debrid  -- Debrid providers (Real-Debrid, Premiumize) and the cached resolver
"""
