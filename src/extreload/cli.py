"""Extreload CLI entry point."""

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from extreload.domain import DEFAULT_HOST, DEFAULT_PORT, ReloaderOptions

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Extreload - live reload for browser extensions in development."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


@cli.command()
@click.option("--host", default=DEFAULT_HOST, help="Host to bind to")
@click.option("--port", default=DEFAULT_PORT, help="Port to bind to")
@click.option("--content-script", default="content", help="Name of the content script bundle")
@click.option(
    "--background-script", default="background", help="Name of the background script bundle"
)
@click.option(
    "--reload-page/--no-reload-page",
    default=True,
    help="Reload open pages along with the extension",
)
@click.option(
    "--watch",
    "watch_dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Build output directory; every completed build triggers a reload",
)
def serve(
    host: str,
    port: int,
    content_script: str,
    background_script: str,
    reload_page: bool,
    watch_dir: Path | None,
) -> None:
    """Start the reload server."""
    import uvicorn

    from extreload.api.app import create_app

    options = ReloaderOptions(
        content_script_name=content_script,
        background_script_name=background_script,
        reload_full_page=reload_page,
        host=host,
        port=port,
    )

    console.print(f"[bold green]Starting reload server on {options.url}[/bold green]")
    if watch_dir is None:
        console.print("[yellow]No --watch directory given, builds will not trigger reloads[/yellow]")

    uvicorn.run(
        create_app(options, watch_dir=watch_dir),
        host=host,
        port=port,
        log_level="warning",
    )


@cli.command()
@click.option("--url", default=f"ws://{DEFAULT_HOST}:{DEFAULT_PORT}", help="Reload server URL")
@click.option("--name", default="Local Extension", help="Extension display name")
@click.option("--pages", default=1, help="Number of simulated open pages")
def client(url: str, name: str, pages: int) -> None:
    """Run a simulated extension against a reload server."""
    from extreload.client import LocalExtensionRuntime, SimulatedPage

    runtime = LocalExtensionRuntime(name, url)
    for tab_id in range(1, pages + 1):
        runtime.open_page(SimulatedPage(tab_id=tab_id, url=f"https://example.test/{tab_id}"))

    console.print(f"[bold green]{name} connecting to {url} with {pages} pages[/bold green]")
    try:
        asyncio.run(runtime.run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Client stopped[/yellow]")


@cli.command()
@click.argument(
    "output_dir", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--background-source",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Script appended to the background bundle (default: bundled agent)",
)
@click.option(
    "--content-source",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Script appended to the content bundle (default: bundled agent)",
)
@click.option("--host", default=DEFAULT_HOST, help="Reload server host the agent connects to")
@click.option("--port", default=DEFAULT_PORT, help="Reload server port the agent connects to")
@click.option("--content-script", default="content", help="Name of the content script bundle")
@click.option(
    "--background-script", default="background", help="Name of the background script bundle"
)
def inject(
    output_dir: Path,
    background_source: Path | None,
    content_source: Path | None,
    host: str,
    port: int,
    content_script: str,
    background_script: str,
) -> None:
    """Append reload scripts to the bundles in OUTPUT_DIR.

    Without source flags the browser agents shipped with extreload are used.
    Running it again replaces the injected scripts instead of duplicating them.
    """
    from extreload.reload import ScriptInjector

    options = ReloaderOptions(
        content_script_name=content_script,
        background_script_name=background_script,
        host=host,
        port=port,
    )
    injector = ScriptInjector.bundled(options)
    if background_source is not None:
        injector.background_source = background_source.read_text(encoding="utf-8")
    if content_source is not None:
        injector.content_source = content_source.read_text(encoding="utf-8")
    modified = injector.inject_directory(output_dir)

    if not modified:
        console.print("[yellow]No bundles modified[/yellow]")
        raise SystemExit(1)

    for file_name in modified:
        console.print(f"[green]Injected reload script into {file_name}[/green]")


@cli.command()
@click.option("--host", default=DEFAULT_HOST, help="Reload server host")
@click.option("--port", default=DEFAULT_PORT, help="Reload server port")
def status(host: str, port: int) -> None:
    """Show the state of a running reload server."""
    import httpx

    try:
        response = httpx.get(f"http://{host}:{port}/status", timeout=5.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]Could not reach reload server: {e}[/red]")
        raise SystemExit(1) from e

    data = response.json()
    throttle = data["throttle"]

    table = Table(title="Reload Server Status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Extension", data["extension_name"] or "-")
    table.add_row("Connected", "yes" if data["connected"] else "no")
    table.add_row("Command", data["command"])
    table.add_row("Reloads in Window", f"{throttle['reload_count']}/{throttle['max_reloads']}")
    table.add_row("Waiting", "yes" if throttle["is_waiting"] else "no")

    console.print(table)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
