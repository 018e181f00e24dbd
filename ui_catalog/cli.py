"""
Command-line interface for ui-catalog.

Provides commands to initialize the database, seed sources, run crawls
and query the catalog.

Usage:
    ui-catalog init-db              # Create tables and seed sources
    ui-catalog seed                 # (Re-)apply the bundled source list
    ui-catalog sources              # List sources and their crawl state
    ui-catalog crawl magic-ui       # Crawl one source and wait for the result
    ui-catalog status <job-id>      # Show a crawl job
    ui-catalog search "button"      # Ranked search
    ui-catalog stats                # Crawl job statistics and search analytics
    ui-catalog run                  # Scheduler + index refresh + metrics

Commands accepting --mock use an in-memory store with synthetic adapters,
so the whole pipeline can be exercised without PostgreSQL or network.
"""

import asyncio
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import click

from ui_catalog.adapters.base import AdapterRegistry
from ui_catalog.catalog.store import CatalogStore
from ui_catalog.observability.logging import setup_logging
from ui_catalog.observability.metrics import get_metrics


@asynccontextmanager
async def _catalog_backend(mock: bool) -> AsyncIterator[tuple[CatalogStore, AdapterRegistry]]:
    """Yield (store, adapters) for the selected backend and clean up after."""
    from ui_catalog.adapters.mock_adapter import create_mock_adapters
    from ui_catalog.adapters.registry_adapter import build_registry
    from ui_catalog.catalog.memory_store import InMemoryCatalogStore
    from ui_catalog.catalog.repository import CatalogRepository
    from ui_catalog.catalog.seed import seed_sources
    from ui_catalog.storage.database import Database

    if mock:
        store = InMemoryCatalogStore()
        await seed_sources(store)
        yield store, create_mock_adapters()
        return

    async with Database() as db:
        repo = CatalogRepository(db)
        adapters = build_registry(await repo.list_sources())
        try:
            yield repo, adapters
        finally:
            await adapters.aclose()


def _echo_job(job) -> None:
    color = {"success": "green", "failed": "red", "cancelled": "yellow"}.get(job.status.value)
    click.echo(click.style(f"Job {job.id}: {job.status.value}", fg=color))
    counters = ", ".join(f"{k}={v}" for k, v in job.counters.items())
    click.echo(f"  {counters}, failed={job.components_failed}")
    if job.duration_ms is not None:
        click.echo(f"  duration: {job.duration_ms} ms")
    if job.error_code:
        click.echo(f"  error: [{job.error_code}] {job.error_message}")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """UI Catalog - crawl, deduplicate and search UI components."""
    setup_logging("DEBUG" if debug else None)


@main.command("init-db")
@click.option("--no-seed", is_flag=True, help="Do not seed source websites")
def init_db(no_seed: bool) -> None:
    """Initialize the database schema."""
    from ui_catalog.catalog.repository import CatalogRepository
    from ui_catalog.catalog.seed import ensure_seeded
    from ui_catalog.storage.database import Database

    async def run():
        async with Database() as db:
            repo = CatalogRepository(db)
            await repo.create_tables()
            if not no_seed:
                await ensure_seeded(repo)
        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command()
def seed() -> None:
    """Upsert the bundled source websites."""
    from ui_catalog.catalog.repository import CatalogRepository
    from ui_catalog.catalog.seed import seed_sources
    from ui_catalog.storage.database import Database

    async def run():
        async with Database() as db:
            count = await seed_sources(CatalogRepository(db))
        click.echo(f"Seeded {count} sources")

    asyncio.run(run())


@main.command()
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive sources")
@click.option("--mock", is_flag=True, help="Use the in-memory store")
def sources(include_inactive: bool, mock: bool) -> None:
    """List source websites and their crawl state."""

    async def run():
        async with _catalog_backend(mock) as (store, adapters):
            rows = await store.list_sources(active_only=not include_inactive)
            for source in rows:
                last = source.last_crawled_at.isoformat() if source.last_crawled_at else "never"
                adapter = "yes" if source.slug in adapters else "no"
                click.echo(
                    f"{source.slug:<16} {source.crawl_status.value:<8} "
                    f"components={source.component_count:<5} last={last} adapter={adapter}"
                )

    asyncio.run(run())


@main.command()
@click.argument("source_slugs", nargs=-1)
@click.option("--all", "crawl_all", is_flag=True, help="Crawl every source with an adapter")
@click.option("--force", is_flag=True, help="Cancel a running job for the source first")
@click.option("--mock", is_flag=True, help="Use mock adapters and the in-memory store")
def crawl(source_slugs: tuple[str, ...], crawl_all: bool, force: bool, mock: bool) -> None:
    """Crawl one or more sources and wait for the results."""
    from ui_catalog.crawl.orchestrator import CrawlOrchestrator
    from ui_catalog.errors import CatalogError

    if not source_slugs and not crawl_all:
        raise click.UsageError("Pass at least one source slug or --all")

    async def run() -> bool:
        async with _catalog_backend(mock) as (store, adapters):
            orchestrator = CrawlOrchestrator(store, adapters)
            slugs = list(adapters) if crawl_all else list(source_slugs)

            jobs = []
            ok = True
            for slug in slugs:
                try:
                    jobs.append(await orchestrator.trigger_crawl(slug, force=force))
                except CatalogError as e:
                    click.echo(click.style(f"{slug}: {e}", fg="red"))
                    ok = False

            for job in jobs:
                finished = await orchestrator.wait_for(job.id)
                click.echo(f"\n[{finished.metadata.get('source_slug')}]")
                _echo_job(finished)
                ok = ok and finished.status.value == "success"
            return ok

    if not asyncio.run(run()):
        sys.exit(1)


@main.command()
@click.argument("job_id")
def status(job_id: str) -> None:
    """Show the state of a crawl job."""
    from ui_catalog.catalog.repository import CatalogRepository
    from ui_catalog.storage.database import Database

    async def run():
        async with Database() as db:
            job = await CatalogRepository(db).get_crawl_job(job_id)
        if job is None:
            click.echo(click.style(f"Crawl job '{job_id}' not found", fg="red"))
            sys.exit(1)
        _echo_job(job)

    asyncio.run(run())


@main.command()
@click.argument("query")
@click.option("--source", default=None, help="Filter by source slug")
@click.option("--type", "component_type", default=None, help="Filter by component type")
@click.option("--limit", default=10, help="Maximum results to return")
@click.option("--mock", is_flag=True, help="Crawl mock sources into memory first")
def search(query: str, source: str | None, component_type: str | None, limit: int, mock: bool) -> None:
    """Search the catalog."""
    from ui_catalog.crawl.orchestrator import CrawlOrchestrator
    from ui_catalog.errors import InvalidQueryError
    from ui_catalog.search.schemas import SearchFilters
    from ui_catalog.search.service import SearchService

    async def run():
        async with _catalog_backend(mock) as (store, adapters):
            if mock:
                orchestrator = CrawlOrchestrator(store, adapters)
                for slug in adapters:
                    await orchestrator.run_crawl(slug)

            service = SearchService(store)
            try:
                result = await service.search(
                    query,
                    SearchFilters(source=source, component_type=component_type),
                    limit=limit,
                )
            except InvalidQueryError as e:
                raise click.BadParameter(str(e), param_hint="QUERY") from e

            click.echo(f"\nSearching for: {query}")
            click.echo("-" * 60)
            if not result.hits:
                click.echo("No results found.")
            for i, hit in enumerate(result.hits, 1):
                click.echo(f"\n{i}. [{hit.source_slug}] {hit.name} ({hit.component_type})")
                click.echo(f"   Score: {hit.score:.2f} | Views: {hit.view_count}")
                if hit.tags:
                    click.echo(f"   Tags: {', '.join(hit.tags)}")
            click.echo(f"\n{'-' * 60}")
            click.echo(f"Found {result.total} results in {result.elapsed_ms:.1f} ms")
            if result.suggestions:
                click.echo(f"Suggestions: {', '.join(result.suggestions)}")
            if result.stale:
                click.echo(click.style("Warning: results served from a stale index", fg="yellow"))

    asyncio.run(run())


@main.command()
@click.option("--days", default=7, help="Search analytics window in days")
@click.option("--top", default=10, help="Number of top queries to show")
@click.option("--mock", is_flag=True, help="Crawl mock sources into memory first")
def stats(days: int, top: int, mock: bool) -> None:
    """Show crawl job statistics and search analytics."""
    from ui_catalog.errors import InvalidQueryError
    from ui_catalog.services.catalog_service import CatalogService

    async def run():
        async with _catalog_backend(mock) as (store, adapters):
            service = CatalogService(store, adapters)
            if mock:
                for slug in adapters:
                    await service.run_crawl(slug)

            try:
                analytics = await service.search_analytics(days=days, limit=top)
            except InvalidQueryError as e:
                raise click.UsageError(str(e)) from e
            crawl_stats = await service.crawl_stats()

        click.echo("\nCrawl jobs")
        click.echo("-" * 60)
        if not crawl_stats.sources:
            click.echo("No crawl jobs recorded.")
        for source in crawl_stats.sources:
            statuses = ", ".join(f"{k}={v}" for k, v in sorted(source.jobs_by_status.items()))
            last = source.last_success_at.isoformat() if source.last_success_at else "never"
            click.echo(f"[{source.source_slug}] {statuses} | last success: {last}")
        click.echo(f"Total: {crawl_stats.total_jobs} jobs")

        click.echo(f"\nSearches, last {days} days")
        click.echo("-" * 60)
        click.echo(
            f"{analytics.total_searches} searches, "
            f"avg {analytics.avg_response_time_ms:.1f} ms"
        )
        for i, query in enumerate(analytics.top_queries, 1):
            click.echo(
                f"{i}. {query.query!r} x{query.searches} "
                f"({query.avg_response_time_ms:.1f} ms)"
            )

    asyncio.run(run())


@main.command()
@click.option("--mock", is_flag=True, help="Use mock adapters and the in-memory store")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def run(mock: bool, metrics: bool, metrics_port: int | None) -> None:
    """Run the crawl scheduler and the search index refresher until stopped."""
    from ui_catalog.services.catalog_service import CatalogService

    async def serve():
        async with _catalog_backend(mock) as (store, adapters):
            service = CatalogService(store, adapters)

            if metrics:
                get_metrics().start_server(port=metrics_port)

            stop_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, stop_event.set)

            await service.start()
            try:
                await stop_event.wait()
            finally:
                await service.stop()

    asyncio.run(serve())


if __name__ == "__main__":
    main()
