"""CLI entry point for the audiobook catalog."""

import asyncio
import os
from pathlib import Path

import click
from loguru import logger

from .app import CatalogApp
from .catalog import format_file_size
from .config import CatalogConfig
from .errors import CatalogError

log = logger.bind(stage="cli")


def _find_config_file() -> Path | None:
    """Look for .env next to the package or in cwd."""
    pkg_dir = Path(__file__).resolve().parent
    for candidate in [
        pkg_dir.parent.parent / ".env",  # dev: src/../.env
        Path.cwd() / ".env",
    ]:
        if candidate.is_file():
            return candidate
    return None


def _load_env_file(env_file: Path) -> None:
    """Load a shell-style .env file into os.environ (without overriding)."""
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        if (value.startswith('"') and value.endswith('"')) or (
            value.startswith("'") and value.endswith("'")
        ):
            value = value[1:-1]
        # Skip bash variable expansions like ${VAR:-default}
        if "${" in value:
            continue
        # Don't override existing env vars (CLI > env > file)
        if key not in os.environ:
            os.environ[key] = value


def _run(ctx: click.Context, action):
    """Build the app, run one async action against it, and close it."""
    config: CatalogConfig = ctx.obj["config"]

    async def _main():
        async with CatalogApp.from_config(config) as app:
            return await action(app)

    try:
        return asyncio.run(_main())
    except CatalogError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True),
    default=None,
    help="Path to .env file.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_file: str | None) -> None:
    """Aggregate audiobook sources into a catalog and resolve debrid streams."""
    env_file = Path(config_file) if config_file else _find_config_file()
    if env_file and env_file.is_file():
        _load_env_file(env_file)

    config_kwargs: dict[str, bool | str] = {"verbose": verbose}
    if verbose:
        config_kwargs["log_level"] = "DEBUG"

    config = CatalogConfig(**config_kwargs)  # type: ignore[arg-type]
    config.setup_logging()
    if env_file:
        log.debug(f"Loaded env from {env_file}")
    ctx.obj = {"config": config}


@main.command()
@click.argument("source_id", required=False)
@click.pass_context
def scrape(ctx: click.Context, source_id: str | None) -> None:
    """Scrape one source, or every enabled source when SOURCE_ID is omitted."""

    async def action(app: CatalogApp):
        if source_id:
            return {source_id: await app.orchestrator.run_one(source_id)}
        return await app.orchestrator.run_all()

    results = _run(ctx, action)
    failed = False
    for sid, outcome in results.items():
        if isinstance(outcome, CatalogError):
            failed = True
            click.echo(f"{sid}: FAILED ({outcome})")
        else:
            click.echo(f"{sid}: {outcome} records")
    if failed:
        ctx.exit(1)


@main.command()
@click.argument("source_id", required=False)
@click.pass_context
def status(ctx: click.Context, source_id: str | None) -> None:
    """Show scrape status and stored record counts per source."""

    async def action(app: CatalogApp):
        orch = app.orchestrator
        statuses = [orch.status(source_id)] if source_id else orch.all_status()
        counts = {
            s.source_id: await asyncio.to_thread(app.store.count, {"source_id": s.source_id})
            for s in statuses
        }
        return statuses, counts

    statuses, counts = _run(ctx, action)
    for s in statuses:
        last = s.last_run_at.isoformat() if s.last_run_at else "never"
        line = f"{s.source_id}: {counts[s.source_id]} stored, last run {last}"
        if s.is_running:
            line += " (running)"
        if s.last_error:
            line += f" error={s.last_error}"
        click.echo(line)


@main.command()
@click.option("--limit", type=int, default=None, help="Max records to match.")
@click.pass_context
def reconcile(ctx: click.Context, limit: int | None) -> None:
    """Match unmatched records to Open Library works."""
    batch = limit or ctx.obj["config"].reconcile_batch_size
    matched = _run(ctx, lambda app: app.orchestrator.reconcile(batch))
    click.echo(f"Matched {matched} records")


@main.command()
@click.argument("catalog_id", default="popular")
@click.option("-s", "--search", default=None, help="Search term.")
@click.option("-g", "--genre", default=None, help="Genre filter.")
@click.option("--skip", type=click.IntRange(min=0), default=0)
@click.option("--limit", type=click.IntRange(min=1), default=None)
@click.pass_context
def catalog(
    ctx: click.Context,
    catalog_id: str,
    search: str | None,
    genre: str | None,
    skip: int,
    limit: int | None,
) -> None:
    """List a catalog page (popular, recent, or a source id)."""
    items = _run(
        ctx,
        lambda app: app.catalog.get_page(
            catalog_id, search=search, genre=genre, skip=skip, limit=limit
        ),
    )
    if not items:
        click.echo("No items")
    for item in items:
        author = f" / {item.author}" if item.author else ""
        click.echo(f"{item.id}\t{item.name}{author}")


@main.command()
@click.argument("item_id")
@click.pass_context
def meta(ctx: click.Context, item_id: str) -> None:
    """Show details for an item id."""
    item = _run(ctx, lambda app: app.catalog.get_meta(item_id))
    if item is None:
        raise click.ClickException(f"Not found: {item_id}")
    click.echo(item.name)
    for label, value in (
        ("Author", item.author),
        ("Narrator", item.narrator),
        ("Released", item.release_info),
        ("Genres", ", ".join(item.genres)),
        ("Poster", item.poster),
    ):
        if value:
            click.echo(f"{label}: {value}")
    if item.description:
        click.echo("")
        click.echo(item.description)


@main.command()
@click.argument("item_id")
@click.pass_context
def streams(ctx: click.Context, item_id: str) -> None:
    """List playable streams for an item id."""
    found = _run(ctx, lambda app: app.catalog.get_streams(item_id))
    if not found:
        click.echo("No streams")
    for s in found:
        target = s.url or f"magnet:?xt=urn:btih:{s.info_hash}"
        click.echo(f"{s.name.replace(chr(10), ' ')}\t{target}")


@main.command()
@click.pass_context
def providers(ctx: click.Context) -> None:
    """List configured debrid providers."""

    async def action(app: CatalogApp):
        return app.resolver.providers()

    ids = _run(ctx, action)
    click.echo("\n".join(ids) if ids else "No debrid providers configured")


@main.command("check-cache")
@click.argument("info_hashes", nargs=-1, required=True)
@click.option("-p", "--provider", default=None, help="Provider id (default: all).")
@click.pass_context
def check_cache(ctx: click.Context, info_hashes: tuple[str, ...], provider: str | None) -> None:
    """Check debrid cache status for one or more info hashes."""
    results = _run(ctx, lambda app: app.resolver.check_cache(list(info_hashes), provider))
    for r in results:
        click.echo(f"{r.provider}\t{r.info_hash}\t{'cached' if r.cached else 'not cached'}")


@main.command()
@click.argument("info_hash")
@click.option("-p", "--provider", required=True, help="Provider id.")
@click.option("--file-id", type=int, default=None, help="File index to select.")
@click.pass_context
def link(ctx: click.Context, info_hash: str, provider: str, file_id: int | None) -> None:
    """Generate a direct streaming link through a debrid provider."""
    result = _run(ctx, lambda app: app.resolver.generate_link(info_hash, provider, file_id))
    if result is None:
        click.echo("No link available")
        ctx.exit(2)
    click.echo(result.url)
    click.echo(f"{result.filename} ({format_file_size(result.size)})")
