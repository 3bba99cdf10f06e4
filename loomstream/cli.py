"""loomstream CLI — Typer + Rich terminal interface.

Commands: serve, generate, models list, models show, config show.
"""

from __future__ import annotations

import asyncio
import logging
import os

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from loomstream import __version__
from loomstream.keys import ensure_api_key, load_keys_env
from loomstream.presets import LENGTH_PRESETS, LengthMode, resolve_policy, resolve_token_budget
from loomstream.providers.base import UpstreamError
from loomstream.providers.litellm_provider import LiteLLMProvider
from loomstream.providers.registry import load_models, load_server_config
from loomstream.schemas.streaming import EventKind
from loomstream.streaming.orchestrator import BoundedStream

# Load API keys from ~/.loomstream/keys.env and .env on startup
load_keys_env()

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="loomstream",
    help="Boundary-bounded text generation over server-sent events.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

models_app = typer.Typer(
    name="models",
    help="Inspect the model registry.",
    no_args_is_help=True,
)
app.add_typer(models_app, name="models")

config_app = typer.Typer(
    name="config",
    help="Show server configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"loomstream {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(log_level)
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    # LiteLLM is chatty at INFO
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Enable debug logging.",
    ),
) -> None:
    """loomstream — stream completions that stop at a word, sentence, paragraph or page."""
    _configure_logging(verbose)


# ── Helpers ──────────────────────────────────────────────────────

def _load_registry():
    """Load the model registry, exit on error."""
    try:
        return load_models()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading models:[/red] {e}")
        raise typer.Exit(1) from None


def _load_config():
    """Load server config, exit on error."""
    try:
        return load_server_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _require_key(env_var: str) -> None:
    try:
        ensure_api_key(env_var)
    except RuntimeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None


# ── loomstream serve ─────────────────────────────────────────────

@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Interface to bind (default: from config)"),
    port: int = typer.Option(None, "--port", "-p", help="Port to serve on (default: from config)"),
) -> None:
    """Start the generation server."""
    config = _load_config()
    registry = _load_registry()
    _require_key(config.api_key_env)

    from loomstream.server import create_app

    bind_host = host or config.host
    bind_port = port or config.port

    console.print(Panel(
        f"[bold]URL:[/bold] http://{bind_host}:{bind_port}/api/generate\n"
        f"[bold]Models:[/bold] {len(registry)}\n"
        f"[bold]Upstream:[/bold] {config.api_base}",
        title="[bold blue]loomstream[/bold blue]",
        border_style="blue",
    ))

    import uvicorn

    uvicorn.run(
        create_app(registry=registry, server_config=config),
        host=bind_host,
        port=bind_port,
        log_level="warning",
    )


# ── loomstream generate ──────────────────────────────────────────

@app.command()
def generate(
    prompt: str = typer.Argument(..., help="Text to continue"),
    model: str = typer.Option(..., "--model", "-m", help="Model registry key"),
    length: LengthMode = typer.Option(
        LengthMode.SENTENCE, "--length", "-l", help="Stop at this boundary",
    ),
    temperature: float = typer.Option(None, "--temperature", "-t", help="Sampling temperature"),
    max_tokens: int = typer.Option(None, "--max-tokens", help="Token cap"),
) -> None:
    """Stream one bounded continuation to the terminal."""
    config = _load_config()
    registry = _load_registry()

    if model not in registry:
        console.print(f"[red]Model not found:[/red] '{model}'")
        console.print(f"[dim]Available: {', '.join(sorted(registry))}[/dim]")
        raise typer.Exit(1) from None

    cfg = registry[model]
    _require_key(cfg.api_key_env)
    provider = LiteLLMProvider(cfg, config)
    policy = resolve_policy(length, provider.max_tokens, max_tokens)

    async def _run() -> str | None:
        upstream = await provider.open_stream(
            prompt, max_tokens=policy.max_tokens, temperature=temperature,
        )
        async for event in BoundedStream(upstream, policy).events():
            if event.kind == EventKind.CONTENT:
                console.print(event.content, end="", markup=False, highlight=False)
            elif event.kind == EventKind.ERROR:
                return event.error
        return None

    try:
        error = asyncio.run(_run())
    except UpstreamError as e:
        console.print(f"[red]Generation failed:[/red] {e}")
        raise typer.Exit(1) from None

    console.print()
    if error:
        console.print(f"[red]Stream error:[/red] {error}")
        raise typer.Exit(1)


# ── loomstream models ────────────────────────────────────────────

@models_app.command("list")
def models_list() -> None:
    """Show all registered models as a table."""
    registry = _load_registry()

    table = Table(title="Registered Models", show_lines=True)
    table.add_column("Key", style="bold cyan")
    table.add_column("Display Name")
    table.add_column("Max Tokens", justify="right")
    table.add_column("Default Temp", justify="right")

    for key, cfg in sorted(registry.items()):
        table.add_row(
            key,
            cfg.display_name,
            f"{cfg.max_tokens:,}",
            f"{cfg.default_temperature:.2f}",
        )

    console.print(table)
    console.print(f"\n[dim]{len(registry)} models registered[/dim]")


@models_app.command("show")
def models_show(
    key: str = typer.Argument(..., help="Model registry key"),
) -> None:
    """Show full details for one model."""
    registry = _load_registry()

    if key not in registry:
        console.print(f"[red]Model not found:[/red] '{key}'")
        console.print(f"[dim]Available: {', '.join(sorted(registry))}[/dim]")
        raise typer.Exit(1) from None

    cfg = registry[key]
    table = Table(title=f"Model: {key}", show_header=False, show_lines=True)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Display Name", cfg.display_name)
    table.add_row("LiteLLM ID", cfg.model)
    table.add_row("Max Tokens", f"{cfg.max_tokens:,}")
    table.add_row("Default Temp", f"{cfg.default_temperature:.2f}")
    table.add_row("API Key Env", cfg.api_key_env)
    if cfg.api_base:
        table.add_row("API Base", cfg.api_base)

    for mode, preset in LENGTH_PRESETS.items():
        budget = resolve_token_budget(mode, cfg.max_tokens)
        table.add_row(f"Budget: {preset.label}", f"{budget:,} tokens ({mode})")

    api_key = os.environ.get(cfg.api_key_env, "")
    key_status = "[green]set[/green]" if api_key else "[red]not set[/red]"
    table.add_row("API Key Status", key_status)

    console.print(table)


# ── loomstream config ────────────────────────────────────────────

@config_app.command("show")
def config_show() -> None:
    """Show the server configuration."""
    config = _load_config()

    table = Table(title="Server Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Host", config.host)
    table.add_row("Port", str(config.port))
    table.add_row("CORS Origins", ", ".join(config.cors_origins))
    table.add_row("Upstream API Base", config.api_base)
    table.add_row("API Key Env", config.api_key_env)
    table.add_row("HTTP-Referer", config.referer or "-")
    table.add_row("X-Title", config.title or "-")

    console.print(table)


# ── Entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    app()
