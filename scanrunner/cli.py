"""CLI interface for scanrunner."""

import asyncio
import json
import logging
import signal
import sys
from contextlib import contextmanager, suppress

import typer
from rich.console import Console
from rich.table import Table

from scanrunner.consts import (
    DEFAULT_EXIT_CODE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_OUTPUT,
    DEFAULT_RUNTIME,
    DEFAULT_SERVER,
    DEFAULT_THREADS,
    LOG_FORMAT,
    PLUGIN_DEFAULT_GLOB,
)
from scanrunner.models.model_scanner import RegistryScanResult, ScanSummary
from scanrunner.plugins.plugin_host import PluginHost
from scanrunner.plugins.plugin_set import PluginSet
from scanrunner.registry import create_registry_client
from scanrunner.runtime.docker_runtime import DockerRuntime
from scanrunner.scanner.host_scanner import scan_host_images
from scanrunner.scanner.registry_scanner import RegistryScanner
from scanrunner.session import ScanSession

app = typer.Typer(
    name="scanrunner",
    help="scanrunner - Run security-check plugins against container images",
)
list_app = typer.Typer(help="List discovered resources")
app.add_typer(list_app, name="list")

# Human output goes to stderr; stdout carries the JSON report
console = Console(stderr=True)
out = Console()

logger = logging.getLogger(__name__)


def _requested_exit_code(ctx: typer.Context, exit_code: int | None) -> int:
    """Command-level --exit-code wins over the root option."""
    if exit_code is not None:
        return exit_code
    return (ctx.obj or {}).get("exit_code", DEFAULT_EXIT_CODE)


@contextmanager
def _cancel_on_interrupt(session: ScanSession):
    """Turn Ctrl-C into a graceful session cancellation while the block runs."""
    loop = asyncio.get_running_loop()
    installed = False
    with suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, session.cancel)
        installed = True
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _discover(host: PluginHost, plugin_dir: str | None, glob: str) -> PluginSet:
    plugins = await host.discover(plugin_dir, glob)
    if not plugins:
        logger.warning("No plugins discovered, the report will be empty")
    return plugins


async def _run_host_scan(
    refs: list[str],
    plugin_dir: str | None,
    glob: str,
    threads: int,
    output: str,
) -> tuple[ScanSession, list[ScanSummary]]:
    host = PluginHost()
    plugins = await _discover(host, plugin_dir, glob)
    runtime = DockerRuntime()

    try:
        async with ScanSession(plugins, host=host, threads=threads) as session:
            with _cancel_on_interrupt(session):
                summaries = await scan_host_images(session, runtime, refs)
    finally:
        runtime.close()

    session.finalize(sys.stdout, output)
    return session, summaries


async def _run_registry_scan(
    repos: list[str],
    runtime: str,
    server: str,
    config: str | None,
    namespace: str | None,
    tags: list[str],
    plugin_dir: str | None,
    glob: str,
    threads: int,
    output: str,
) -> tuple[ScanSession, RegistryScanResult]:
    client = create_registry_client(runtime, config)

    try:
        host = PluginHost()
        plugins = await _discover(host, plugin_dir, glob)
        async with ScanSession(plugins, host=host, threads=threads) as session:
            scanner = RegistryScanner(client, session, server=server)
            with _cancel_on_interrupt(session):
                result = await scanner.run(repos, namespace=namespace, tags=tags)
    finally:
        await client.close()

    session.finalize(sys.stdout, output)
    return session, result


@app.callback()
def main_callback(
    ctx: typer.Context,
    exit_code: int = typer.Option(
        DEFAULT_EXIT_CODE, "--exit-code", "-e", help="Exit code to use when the report holds events"
    ),
    log_level: str = typer.Option(DEFAULT_LOG_LEVEL, "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"),
) -> None:
    """Run security-check plugins against container images."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        console.print(f"[red]Error:[/red] Invalid log level '{log_level}'")
        raise typer.Exit(1)

    # Configure logging
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)
    ctx.obj = {"exit_code": exit_code}


@list_app.command("plugin")
def list_plugin(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print full plugin descriptors as JSON"),
    glob: str = typer.Option(PLUGIN_DEFAULT_GLOB, "--glob", "-g", help="File name pattern of plugins"),
    plugin_dir: str = typer.Option(None, "--plugin-dir", help="Directory searched for plugins"),
) -> None:
    """List discovered plugins."""
    try:
        plugins = asyncio.run(PluginHost().discover(plugin_dir, glob))
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if verbose:
        out.print_json(json.dumps([p.model_dump(mode="json") for p in plugins]))
        return

    if not plugins:
        console.print("[yellow]No plugins found.[/yellow]")
        return

    table = Table(title=f"Plugins ({len(plugins)})")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Commands", style="dim")
    for plugin in plugins:
        table.add_row(
            plugin.name,
            plugin.version or "-",
            ", ".join(c.joined_path for c in plugin.commands) or "-",
        )
    out.print(table)


@app.command("scan-host")
def scan_host(
    ctx: typer.Context,
    image_refs: list[str] = typer.Argument(None, help="Image references (default: every local image)"),
    glob: str = typer.Option(PLUGIN_DEFAULT_GLOB, "--glob", "-g", help="File name pattern of plugins"),
    plugin_dir: str = typer.Option(None, "--plugin-dir", help="Directory searched for plugins"),
    output: str = typer.Option(DEFAULT_OUTPUT, "--output", "-o", help="Report file path"),
    threads: int = typer.Option(DEFAULT_THREADS, "--threads", "-t", help="Parallel plugin invocations per image"),
    exit_code: int = typer.Option(
        None, "--exit-code", "-e", help="Exit code to use when the report holds events"
    ),
) -> None:
    """Scan images present in the local docker daemon."""
    requested = _requested_exit_code(ctx, exit_code)

    try:
        session, summaries = asyncio.run(
            _run_host_scan(image_refs or [], plugin_dir, glob, threads, output)
        )
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    failed = sum(s.failed for s in summaries)
    console.print("\n[bold green]Scan complete![/bold green]")
    console.print(
        f"Images: {len(summaries)}  Invocations failed: {failed}  "
        f"Events: {len(session.reporter.events)}"
    )

    raise typer.Exit(session.exit_code(requested))


@app.command("scan-registry")
def scan_registry(
    ctx: typer.Context,
    repos: list[str] = typer.Argument(None, help="Repositories (default: the server catalog)"),
    runtime: str = typer.Option(DEFAULT_RUNTIME, "--runtime", "-r", help="Runtime backend (docker, containerd)"),
    server: str = typer.Option(DEFAULT_SERVER, "--server", "-s", help="Registry server address"),
    config: str = typer.Option(None, "--config", "-c", help="Auth config file (TOML)"),
    namespace: str = typer.Option(None, "--namespace", "-n", help="Only scan repositories in this namespace"),
    tags: list[str] = typer.Option(None, "--tags", "-t", help="Tags to scan (recorded, not enforced)"),
    glob: str = typer.Option(PLUGIN_DEFAULT_GLOB, "--glob", "-g", help="File name pattern of plugins"),
    plugin_dir: str = typer.Option(None, "--plugin-dir", help="Directory searched for plugins"),
    output: str = typer.Option(DEFAULT_OUTPUT, "--output", "-o", help="Report file path"),
    threads: int = typer.Option(DEFAULT_THREADS, "--threads", help="Parallel plugin invocations per image"),
    exit_code: int = typer.Option(
        None, "--exit-code", "-e", help="Exit code to use when the report holds events"
    ),
) -> None:
    """Pull repositories from a registry, scan them and remove them again."""
    requested = _requested_exit_code(ctx, exit_code)

    try:
        session, result = asyncio.run(
            _run_registry_scan(
                repos or [],
                runtime,
                server,
                config,
                namespace,
                tags or [],
                plugin_dir,
                glob,
                threads,
                output,
            )
        )
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print("\n[bold green]Scan complete![/bold green]")
    summary_table = Table(title="Registry Scan Summary")
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Count", justify="right", style="magenta")
    summary_table.add_row("Repositories", str(len(result.repositories)))
    summary_table.add_row("Pulled", str(result.pulled))
    summary_table.add_row("Images scanned", str(result.scanned))
    summary_table.add_row("Failures", str(result.failed))
    summary_table.add_row("Events", str(len(session.reporter.events)))
    console.print(summary_table)

    errors = [r for r in result.repositories if r.error]
    if errors:
        console.print(f"\n[yellow]Failed repositories ({len(errors)}):[/yellow]")
        for repo_result in errors[:5]:
            console.print(f"  [dim]{repo_result.repository}:[/dim] {repo_result.error[:80]}")
        if len(errors) > 5:
            console.print(f"  [dim]... and {len(errors) - 5} more[/dim]")

    raise typer.Exit(session.exit_code(requested))


if __name__ == "__main__":
    app()
