"""
Main CLI application for the package index crawler.

Provides the command-line interface for:
- Crawling an ecosystem once or on a schedule
- Searching indexed symbols
- Viewing index status
- Managing configuration
"""

import asyncio
import signal
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pkgindex import __version__
from pkgindex.config import Settings, get_default_config_path, load_config
from pkgindex.core.exceptions import DiscoveryError, PkgIndexError
from pkgindex.utils.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from pkgindex.crawler.orchestrator import Crawler, CrawlResult

# Initialize Typer app
app = typer.Typer(
    name="pkgindex",
    help="Package index crawler - Discover, download and index package symbols",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
logger = get_logger(__name__)

state = {"verbose": False}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]pkgindex[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging",
    ),
) -> None:
    """
    Package index crawler.

    Use 'pkgindex --help' for command list.
    """
    state["verbose"] = verbose


def _load_settings(config_file: Optional[Path]) -> Settings:
    """Load configuration and set up logging from it."""
    settings = load_config(config_file or get_default_config_path())
    setup_logging(settings.logging, level="DEBUG" if state["verbose"] else None)
    return settings


def _parse_since(value: Optional[str]) -> Optional[datetime]:
    from pkgindex.crawler.discovery import parse_rfc3339

    if not value:
        return None
    try:
        return parse_rfc3339(value)
    except ValueError:
        raise typer.BadParameter(
            f"Invalid timestamp {value!r}; expected RFC3339 like 2024-01-02T03:04:05Z",
            param_hint="--since",
        ) from None


def _check_ecosystem(name: str) -> str:
    from pkgindex.ecosystems.registry import ecosystem_names

    if name not in ecosystem_names():
        raise typer.BadParameter(
            f"Unknown ecosystem {name!r}; choose from {', '.join(ecosystem_names())}",
            param_hint="--ecosystem",
        )
    return name


def _install_signal_handlers(crawler: "Crawler") -> list[signal.Signals]:
    """Route SIGINT and SIGTERM to crawler.cancel() where the loop supports it."""
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, crawler.cancel)
            installed.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            logger.debug(f"Cannot install handler for {sig.name}")
    return installed


def _remove_signal_handlers(signals: list[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for sig in signals:
        loop.remove_signal_handler(sig)


def _print_summary(result: "CrawlResult", title: str = "Crawl Summary") -> None:
    """Print the statistics table of one run."""
    from pkgindex.crawler.orchestrator import CrawlStatus

    stats = result.stats
    style = {
        CrawlStatus.COMPLETED: "green",
        CrawlStatus.FAILED: "red",
        CrawlStatus.CANCELLED: "yellow",
    }.get(result.status, "white")

    table = Table(title=title, show_header=False)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold", justify="right")

    table.add_row("Status", f"[{style}]{result.status.value}[/{style}]")
    table.add_row("Since", result.since.isoformat() if result.since else "beginning")
    table.add_row("Duration", f"{stats.elapsed_seconds:.1f}s")
    table.add_row("Processed", str(stats.processed))
    table.add_row("Succeeded", str(stats.succeeded))
    table.add_row("Failed", str(stats.failed))
    table.add_row("Skipped", str(stats.skipped))
    table.add_row("Symbols", str(stats.symbols_indexed))
    table.add_row("Rate", f"{stats.rate:.2f} modules/sec")
    if result.error:
        table.add_row("Error", f"[red]{result.error}[/red]")

    console.print(table)


# =============================================================================
# Crawl
# =============================================================================


@app.command()
def crawl(
    ecosystem: Optional[str] = typer.Option(
        None,
        "--ecosystem",
        "-e",
        help="Ecosystem to crawl (go, npm, crates, pypi, packagist, github)",
    ),
    packages: Optional[list[str]] = typer.Option(
        None,
        "--package",
        "-p",
        help="Package to crawl, optionally as name@version. Repeatable.",
    ),
    search: Optional[str] = typer.Option(
        None,
        "--search",
        "-s",
        help="Crawl the results of a registry search",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        help="Maximum search results to crawl",
        min=1,
        max=250,
    ),
    since: Optional[str] = typer.Option(
        None,
        "--since",
        help="Only crawl versions published after this RFC3339 time",
    ),
    full: bool = typer.Option(
        False,
        "--full",
        help="Ignore the last crawl time and crawl everything",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-w",
        help="Number of concurrent workers",
        min=1,
        max=64,
    ),
    max_modules: Optional[int] = typer.Option(
        None,
        "--max-modules",
        "-m",
        help="Maximum versions to crawl (0 = unlimited)",
        min=0,
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
) -> None:
    """
    Crawl an ecosystem and index package symbols.

    Without --package or --search, follows the ecosystem's changelog from
    the last completed crawl.

    Examples:
        pkgindex crawl --ecosystem go --max-modules 100
        pkgindex crawl -e pypi -p requests -p httpx@0.27.0
    """
    since_time = _parse_since(since)

    try:
        settings = _load_settings(config_file)
    except PkgIndexError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if ecosystem:
        settings.crawler.ecosystem = _check_ecosystem(ecosystem)
    if workers is not None:
        settings.crawler.workers = workers
    if max_modules is not None:
        settings.crawler.max_modules = max_modules

    try:
        result = asyncio.run(_crawl_async(
            settings=settings,
            names=packages or [],
            query=search,
            limit=limit,
            since=since_time,
            full=full,
        ))
    except KeyboardInterrupt:
        console.print("\n[yellow]Crawl cancelled by user[/yellow]")
        raise typer.Exit(1)
    except PkgIndexError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    _print_summary(result)

    from pkgindex.crawler.orchestrator import CrawlStatus

    if result.status != CrawlStatus.COMPLETED:
        raise typer.Exit(1)


async def _crawl_async(
    settings: Settings,
    names: list[str],
    query: Optional[str],
    limit: int,
    since: Optional[datetime],
    full: bool,
) -> "CrawlResult":
    """Async crawl implementation."""
    from pkgindex.crawler.discovery import NameListSource, SearchSource
    from pkgindex.crawler.download import create_http_client
    from pkgindex.crawler.orchestrator import Crawler
    from pkgindex.ecosystems.registry import get_ecosystem
    from pkgindex.extractors.loader import get_extractor
    from pkgindex.storage.store import SqliteStore

    name = settings.crawler.ecosystem
    extractor = get_extractor(settings, name)
    store = SqliteStore.from_settings(settings)

    try:
        async with create_http_client(settings.http) as client:
            eco = get_ecosystem(name, client, settings)

            source = None
            if names:
                source = NameListSource(names)
            elif query:
                source = SearchSource(eco, query, limit=limit)

            crawler = Crawler(eco, store, extractor, settings, source)

            console.print(Panel(
                f"[bold]Crawling:[/bold] {name}\n"
                f"[dim]Workers: {settings.crawler.workers} | "
                f"Max modules: {settings.crawler.max_modules or 'unlimited'} | "
                f"Database: {settings.storage.database_path}[/dim]",
                title="Package Index Crawler",
                border_style="blue",
            ))

            handlers = _install_signal_handlers(crawler)
            try:
                if source is not None or since is not None or full:
                    await crawler.run(since=since)
                else:
                    await crawler.run_incremental()
            except DiscoveryError as e:
                console.print(f"[red]Discovery failed:[/red] {e}")
            finally:
                _remove_signal_handlers(handlers)

            return crawler.get_result()
    finally:
        store.close()


@app.command()
def schedule(
    ecosystem: Optional[str] = typer.Option(
        None,
        "--ecosystem",
        "-e",
        help="Ecosystem to crawl",
    ),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        "-i",
        help="Seconds between incremental crawls",
        min=1.0,
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
) -> None:
    """
    Run incremental crawls on a schedule until interrupted.

    Example:
        pkgindex schedule --ecosystem go --interval 600
    """
    try:
        settings = _load_settings(config_file)
    except PkgIndexError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if ecosystem:
        settings.crawler.ecosystem = _check_ecosystem(ecosystem)

    try:
        results = asyncio.run(_schedule_async(settings, interval))
    except KeyboardInterrupt:
        console.print("\n[yellow]Schedule stopped by user[/yellow]")
        raise typer.Exit(0)
    except PkgIndexError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Scheduled Runs")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Status")
    table.add_column("Processed", justify="right")
    table.add_column("Succeeded", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Symbols", justify="right")
    table.add_column("Duration", justify="right")

    for i, result in enumerate(results, start=1):
        stats = result.stats
        table.add_row(
            str(i),
            result.status.value,
            str(stats.processed),
            str(stats.succeeded),
            str(stats.failed),
            str(stats.symbols_indexed),
            f"{stats.elapsed_seconds:.1f}s",
        )
    console.print(table)


async def _schedule_async(settings: Settings, interval: Optional[float]) -> list["CrawlResult"]:
    from pkgindex.crawler.download import create_http_client
    from pkgindex.crawler.orchestrator import Crawler
    from pkgindex.ecosystems.registry import get_ecosystem
    from pkgindex.extractors.loader import get_extractor
    from pkgindex.storage.store import SqliteStore

    name = settings.crawler.ecosystem
    extractor = get_extractor(settings, name)
    store = SqliteStore.from_settings(settings)

    try:
        async with create_http_client(settings.http) as client:
            eco = get_ecosystem(name, client, settings)
            crawler = Crawler(eco, store, extractor, settings)

            handlers = _install_signal_handlers(crawler)
            try:
                return await crawler.run_with_schedule(interval)
            finally:
                _remove_signal_handlers(handlers)
    finally:
        store.close()


# =============================================================================
# Index inspection
# =============================================================================


@app.command()
def status(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
) -> None:
    """
    Show index status.

    Displays database statistics and the last completed crawl time.
    """
    try:
        _show_status(config_file)
    except PkgIndexError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _show_status(config_file: Optional[Path]) -> None:
    """Display index status."""
    from pkgindex.ecosystems.registry import ecosystem_names
    from pkgindex.storage.store import SqliteStore

    settings = _load_settings(config_file)
    db_path = Path(settings.storage.database_path)

    console.print(Panel(
        f"[bold]pkgindex[/bold] v{__version__}",
        border_style="blue",
    ))

    console.print("\n[bold]Database:[/bold]")
    if not db_path.exists():
        console.print(f"  [yellow]Not found:[/yellow] {db_path}")
        console.print("  Run [bold]pkgindex crawl[/bold] to create it")
        return

    store = SqliteStore.from_settings(settings)
    try:
        last_crawl = store.get_last_crawl_time()

        table = Table(show_header=False, box=None)
        table.add_column("Metric", style="dim")
        table.add_column("Value", style="bold")

        table.add_row("Path", str(db_path))
        table.add_row("Size", f"{db_path.stat().st_size / 1024 / 1024:.1f} MB")
        table.add_row("Packages", str(store.count_packages()))
        table.add_row("Symbols", str(store.count_symbols()))
        table.add_row("Last crawl", last_crawl.isoformat() if last_crawl else "never")
        console.print(table)

        console.print("\n[bold]Packages by ecosystem:[/bold]")
        eco_table = Table(show_header=True)
        eco_table.add_column("Ecosystem", style="cyan")
        eco_table.add_column("Packages", justify="right")
        for name in ecosystem_names():
            eco_table.add_row(name, str(store.count_packages(name)))
        console.print(eco_table)
    finally:
        store.close()


@app.command()
def search(
    query: str = typer.Argument(
        ...,
        help="Symbol name or fragment",
    ),
    ecosystem: Optional[str] = typer.Option(
        None,
        "--ecosystem",
        "-e",
        help="Restrict to one ecosystem",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum results",
        min=1,
        max=500,
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
) -> None:
    """
    Search indexed public symbols by name.

    Example:
        pkgindex search NewClient --ecosystem go
    """
    from pkgindex.storage.store import SqliteStore

    try:
        settings = _load_settings(config_file)
        if not Path(settings.storage.database_path).exists():
            console.print("[yellow]No index found.[/yellow] Run 'pkgindex crawl' first.")
            raise typer.Exit(1)

        store = SqliteStore.from_settings(settings)
        try:
            rows = store.search_symbols(query, limit=limit, ecosystem=ecosystem)
        finally:
            store.close()
    except PkgIndexError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not rows:
        console.print(f"[yellow]No symbols matching[/yellow] {query!r}")
        return

    table = Table(title=f"Symbols matching {query!r}")
    table.add_column("Symbol", style="cyan")
    table.add_column("Kind")
    table.add_column("Package")
    table.add_column("Version", style="dim")
    table.add_column("Location", style="dim")

    for row in rows:
        name = row["name"]
        if row["deprecated"]:
            name = f"[strike]{name}[/strike]"
        table.add_row(
            name,
            row["kind"],
            f"{row['ecosystem']}:{row['package']}",
            row["version"],
            f"{row['file_path']}:{row['line']}",
        )

    console.print(table)


# =============================================================================
# Configuration
# =============================================================================


@app.command()
def config(
    show: bool = typer.Option(
        False,
        "--show",
        "-s",
        help="Show current configuration",
    ),
    init: bool = typer.Option(
        False,
        "--init",
        help="Create default configuration file",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output path for config file",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file to show",
    ),
) -> None:
    """
    Configuration management.

    View or initialize configuration files.

    Examples:
        pkgindex config --show
        pkgindex config --init --output ./my-config.yaml
    """
    if init:
        _init_config(output)
    elif show:
        try:
            _show_config(config_file)
        except PkgIndexError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
    else:
        console.print(
            "Use --show to view config or --init to create default config")


def _show_config(config_file: Optional[Path]) -> None:
    """Show current configuration."""
    settings = load_config(config_file or get_default_config_path())
    config_dict = settings.model_dump(mode="json")

    console.print(Panel(
        "[bold]Current Configuration[/bold]",
        border_style="blue",
    ))

    for section, values in config_dict.items():
        console.print(f"\n[bold cyan]{section}:[/bold cyan]")
        if isinstance(values, dict):
            for key, value in values.items():
                console.print(f"  {key}: [dim]{value}[/dim]")
        else:
            console.print(f"  {values}")


def _init_config(output: Optional[Path]) -> None:
    """Create default configuration file."""
    import yaml

    config_dict = Settings().model_dump(mode="json")
    output_path = output or Path("config.yaml")

    if output_path.exists():
        if not typer.confirm(f"File {output_path} exists. Overwrite?"):
            raise typer.Exit(0)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

    console.print(f"[green]✓[/green] Configuration saved to: {output_path}")


if __name__ == "__main__":
    app()
