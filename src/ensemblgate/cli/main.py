"""
ensemblgate CLI - Main entry point.

A terminal front end for the resilient Ensembl REST access layer:
cached, rate-limited, retried requests with enriched errors.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, List, Optional

import orjson
import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ensemblgate import __app_name__, __version__
from ensemblgate.core.client import EnsemblClient
from ensemblgate.core.config import (
    AppConfig,
    ConfigError,
    LoggingConfig,
    load_app_config,
    write_default_config,
)
from ensemblgate.core.config.loader import DEFAULT_CONFIG_PATH
from ensemblgate.core.enrich import EnsemblError, suggest_species
from ensemblgate.core.logging import setup_logging_from_config
from ensemblgate.core.species import resolve_base_url

# Load environment variables from .env (if present)
load_dotenv()

console = Console()
err_console = Console(stderr=True)

# Create main app
app = typer.Typer(
    name=__app_name__,
    help="Resilient command-line access to the Ensembl REST API",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def create_client(config: AppConfig) -> EnsemblClient:
    """Build the client used by every command."""
    return EnsemblClient.from_config(config)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (default: $ENSEMBLGATE_CONFIG or configs/ensemblgate.yaml)",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Override the configured log level",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """ensemblgate - Ensembl REST access with caching, rate limiting and retries."""
    if ctx.invoked_subcommand == "init":
        return

    try:
        config = load_app_config(config_path)
        if log_level:
            config.logging = LoggingConfig.model_validate(
                {**config.logging.model_dump(), "level": log_level}
            )
    except ValidationError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level") from e
    except ConfigError as e:
        err_console.print(f"[red]{e}[/red]")
        if e.details:
            err_console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(1)

    setup_logging_from_config(config.logging)
    ctx.obj = config


def _config(ctx: typer.Context) -> AppConfig:
    return ctx.obj if isinstance(ctx.obj, AppConfig) else AppConfig()


def _report_error(error: EnsemblError) -> None:
    """Print an enriched error with its suggestion and example."""
    err_console.print(f"[bold red]Error:[/bold red] {error.message}")
    if error.suggestion:
        err_console.print(f"[yellow]Suggestion:[/yellow] {error.suggestion}")
    if error.example:
        err_console.print(f"[dim]Example:[/dim] {error.example}")


def _run(config: AppConfig, action: Any) -> Any:
    """Run an async action against a fresh client, mapping errors to exit 1."""

    async def runner() -> Any:
        async with create_client(config) as client:
            return await action(client)

    try:
        return asyncio.run(runner())
    except EnsemblError as e:
        _report_error(e)
        raise typer.Exit(1)


def _parse_params(values: List[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected key=value, got {item!r}", param_hint="--param")
        params[name] = value
    return params


# =============================================================================
# Init Command
# =============================================================================


@app.command()
def init(
    path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--path",
        "-p",
        help="Where to write the configuration file",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Write a default configuration file."""
    if not write_default_config(path, force=force):
        err_console.print(f"[yellow]{path} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold green]OK - configuration written to {path}[/bold green]\n\n"
        "Next steps:\n"
        "  1. Check the release: [yellow]ensemblgate release[/yellow]\n"
        "  2. Query an endpoint: [yellow]ensemblgate get /lookup/id/ENSG00000141510[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


# =============================================================================
# Request Commands
# =============================================================================


@app.command()
def get(
    ctx: typer.Context,
    endpoint: str = typer.Argument(..., help="Endpoint path, e.g. /lookup/id/ENSG00000141510"),
    param: List[str] = typer.Option(
        [],
        "--param",
        "-p",
        help="Query parameter as key=value (repeatable)",
    ),
    assembly: Optional[str] = typer.Option(
        None,
        "--assembly",
        "-a",
        help="Genome assembly (GRCh37/hg19 routes human queries to the GRCh37 server)",
    ),
    species: Optional[str] = typer.Option(
        None,
        "--species",
        "-s",
        help="Species used for assembly routing",
    ),
    stats: bool = typer.Option(False, "--stats", help="Print cache statistics afterwards"),
) -> None:
    """GET an endpoint and print the JSON response."""
    config = _config(ctx)
    params = _parse_params(param)
    server = resolve_base_url(assembly, species) if assembly else None
    if not endpoint.startswith("/"):
        endpoint = "/" + endpoint

    async def action(client: EnsemblClient) -> tuple[Any, dict[str, Any]]:
        data = await client.request(endpoint, params, server=server)
        return data, client.cache_stats()

    data, cache_stats = _run(config, action)

    if isinstance(data, (dict, list)):
        console.print_json(orjson.dumps(data).decode("utf-8"))
    else:
        console.print(data)

    if stats:
        err_console.print(
            f"[dim]cache: size={cache_stats['size']} hits={cache_stats['hits']} "
            f"misses={cache_stats['misses']} hit_rate={cache_stats['hit_rate']}[/dim]"
        )


@app.command()
def lookup(
    ctx: typer.Context,
    ids: List[str] = typer.Argument(..., help="Stable IDs, or gene symbols with --species"),
    species: Optional[str] = typer.Option(
        None,
        "--species",
        "-s",
        help="Look up gene symbols for this species instead of stable IDs",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """Batch lookup of stable IDs or gene symbols."""
    config = _config(ctx)

    async def action(client: EnsemblClient) -> dict[str, Any]:
        if species:
            return await client.lookup_symbols(species, ids)
        return await client.lookup_ids(ids)

    results = _run(config, action)

    if as_json:
        console.print_json(orjson.dumps(results).decode("utf-8"))
        return

    table = Table(title="Lookup", show_header=True, header_style="bold magenta")
    table.add_column("Query", style="cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Biotype")
    table.add_column("Location")

    for query, entry in results.items():
        if not entry:
            table.add_row(query, "[red]not found[/red]", "", "", "")
            continue
        location = ""
        if entry.get("seq_region_name"):
            location = f"{entry['seq_region_name']}:{entry.get('start')}-{entry.get('end')}"
        table.add_row(
            query,
            str(entry.get("id", "")),
            str(entry.get("display_name", "")),
            str(entry.get("biotype", "")),
            location,
        )

    console.print(table)


@app.command()
def release(
    ctx: typer.Context,
    assembly: Optional[str] = typer.Option(None, "--assembly", "-a", help="Genome assembly"),
) -> None:
    """Show the Ensembl release served by the upstream server."""
    config = _config(ctx)
    server = resolve_base_url(assembly) if assembly else None

    async def action(client: EnsemblClient) -> tuple[str, str]:
        version = await client.release_version(server)
        return server or client.base_url, version

    base, version = _run(config, action)
    style = "yellow" if version == "unknown" else "green"
    console.print(f"{base}: release [{style}]{version}[/{style}]")


@app.command("suggest-species")
def suggest_species_command(
    token: str = typer.Argument(..., help="Possibly misspelled species name"),
) -> None:
    """Suggest the nearest known species name."""
    suggestion = suggest_species(token)
    if suggestion is None:
        err_console.print(f"[red]No species close to '{token}'.[/red]")
        raise typer.Exit(1)
    console.print(suggestion)


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
