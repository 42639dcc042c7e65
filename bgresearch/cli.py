"""
bgresearch.cli — Command-line interface for the research service.

Usage:
    bgresearch serve                 Start the API on localhost:8080
    bgresearch analyze "<query>"     Run one analysis and print the summary
    bgresearch config                Show the resolved provider configuration
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

console = Console()


def _setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s — %(message)s",
        datefmt="%H:%M:%S",
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """Background Research — LLM-backed company research summaries."""
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------

@main.command()
@click.option("--host", default=None, help="Bind host (default: $HOST or 127.0.0.1).")
@click.option("--port", default=None, type=int, help="Bind port (default: $PORT or 8080).")
@click.option("--reload", "do_reload", is_flag=True, help="Enable auto-reload for development.")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["critical", "error", "warning", "info", "debug", "trace"]),
    help="Server log level (default: $RESEARCH_LOG_LEVEL or info).",
)
def serve(host: str | None, port: int | None, do_reload: bool, log_level: str | None) -> None:
    """Start the research API server."""
    import uvicorn
    from pydantic import ValidationError

    from bgresearch.core.models import ProviderConfig, ServerConfig

    # Both configs resolve before uvicorn imports the app
    try:
        server_config = ServerConfig.from_env()
        config = ProviderConfig.from_env()
    except ValidationError as exc:
        console.print("[red]✗[/red] Invalid configuration:")
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"])
            console.print(f"  [red]{field}[/red]: {err['msg']}")
        sys.exit(1)

    host = host or server_config.host
    port = port or server_config.port
    log_level = log_level or server_config.log_level

    console.print(f"[bold green]Starting Research API[/] on {host}:{port}")
    console.print(f"[dim]Provider: {config.provider} | Model: {config.model} | Timeout: {config.timeout_ms}ms[/dim]")
    if not config.has_credentials:
        console.print("[yellow]![/yellow] OPENAI_API_KEY is not set — /analyze will answer 500 Configuration error")

    uvicorn.run(
        "bgresearch.server:app",
        host=host,
        port=port,
        reload=do_reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------

async def _analyze_once(raw_query: str):
    from bgresearch.core.models import ProviderConfig
    from bgresearch.operations.orchestrator import CompletionOrchestrator
    from bgresearch.validation import validate

    query = validate({"query": raw_query})
    orchestrator = CompletionOrchestrator.from_config(ProviderConfig.from_env())
    try:
        return await orchestrator.run(query)
    finally:
        await orchestrator.close()


@main.command()
@click.argument("query")
@click.option("--json", "as_json", is_flag=True, help="Print the raw outcome as JSON.")
def analyze(query: str, as_json: bool) -> None:
    """Run a single research query through the pipeline."""
    from bgresearch.core.errors import ConfigurationError, QueryValidationError
    from bgresearch.core.models import Success

    try:
        outcome = asyncio.run(_analyze_once(query))
    except QueryValidationError as exc:
        console.print(f"[red]✗[/red] {exc.error}: {exc.message}")
        sys.exit(1)
    except ConfigurationError as exc:
        console.print(f"[red]✗[/red] {exc.error}: {exc.message}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(outcome.model_dump(mode="json"), indent=2))
    elif isinstance(outcome, Success):
        console.print(Markdown(outcome.summary))
        console.print(
            f"\n[dim]Model: {outcome.metadata.model} | Tokens: {outcome.metadata.tokens_used}[/dim]"
        )
    else:
        console.print(f"[red]✗[/red] Analysis failed ({outcome.kind.value}): {outcome.message}")

    if not isinstance(outcome, Success):
        sys.exit(1)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------

@main.command("config")
def show_config() -> None:
    """Show the resolved provider configuration (API key redacted)."""
    from bgresearch.core.models import ProviderConfig, ServerConfig

    provider = ProviderConfig.from_env()
    server = ServerConfig.from_env()

    table = Table(title="Research Service Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    for key, value in provider.redacted().items():
        table.add_row(key, "—" if value is None else str(value))
    table.add_row("host", server.host)
    table.add_row("port", str(server.port))
    table.add_row("cors_origins", ", ".join(server.cors_origins))
    console.print(table)

    if not provider.has_credentials:
        console.print("[yellow]![/yellow] Set [bold]OPENAI_API_KEY[/bold] before running [cyan]bgresearch serve[/cyan]")


if __name__ == "__main__":
    main()
