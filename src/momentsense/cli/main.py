"""Command Line Interface for MomentSense.

Commands:
    momentsense synthesize moment.json [--no-ai] [--output FILE] [--json]
    momentsense demo [--no-ai]
    momentsense serve [--host HOST] [--port PORT]
    momentsense config [set-key SERVICE]
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import click
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from momentsense import __version__
from momentsense.config import AIMode, APIKeyManager, AppConfig, get_config, load_config
from momentsense.core.models import MomentRecord
from momentsense.synthesizer import (
    InputValidationError,
    MomentSenseError,
    MomentSynthesizer,
)
from momentsense.utils.logging import LogContext, setup_logging

logger = logging.getLogger(__name__)

console = Console()

CLI_IDENTIFIER = "cli"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def print_header(text: str) -> None:
    console.print(f"\n[bold cyan]{text}[/bold cyan]\n")


def print_success(text: str) -> None:
    console.print(f"[bold green]OK[/bold green] {text}")


def print_warning(text: str) -> None:
    console.print(f"[bold yellow]![/bold yellow] {text}")


def print_error(text: str) -> None:
    console.print(f"[bold red]x[/bold red] {text}")


def resolve_config(ctx: click.Context, no_ai: bool = False) -> AppConfig:
    """Effective configuration for a command, honoring --config and --no-ai."""
    config_path = ctx.obj.get("config_path") if ctx.obj else None
    config = load_config(Path(config_path)) if config_path else get_config()
    if no_ai:
        config = config.model_copy(
            update={"ai": config.ai.model_copy(update={"mode": AIMode.DISABLED})}
        )
    return config


def print_moment(moment: MomentRecord) -> None:
    """Render one moment as a panel plus a score table."""
    narratives = moment.narratives
    body = (
        f"[bold]{narratives.short}[/bold]\n\n"
        f"{narratives.medium}\n\n"
        f"[dim]Emotion:[/dim] {moment.primary_emotion} "
        f"({moment.emotion_confidence:.0%})  "
        f"[dim]Atmosphere:[/dim] {moment.atmosphere.lighting.value}, "
        f"{moment.atmosphere.energy.value}"
    )
    if moment.excitement.excitement_hook:
        body += f"\n[dim]Hook:[/dim] {moment.excitement.excitement_hook}"

    title = moment.venue_name
    if moment.is_highlight:
        title += " [yellow](highlight)[/yellow]"
    console.print(Panel(body, title=title, border_style="cyan"))

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Transcendence", f"{moment.transcendence_score:.2f}")
    for line in moment.transcendence_factors:
        label, _, value = line.partition(": ")
        table.add_row(f"  {label}", value)
    table.add_row("Tier", moment.processing.tier.value)
    table.add_row("Cloud calls", ", ".join(moment.processing.cloud_calls) or "none")
    table.add_row("Processing", f"{moment.processing.processing_time_ms} ms")
    if moment.environment.weather is not None:
        weather = moment.environment.weather
        table.add_row(
            "Weather",
            f"{weather.condition}, {weather.temperature_c:g}°C "
            f"(comfort {weather.comfort_score:.0%})",
        )
    console.print(table)


async def run_synthesis(config: AppConfig, payloads: list[dict[str, Any]]) -> list[MomentRecord]:
    synthesizer = MomentSynthesizer.from_config(config)
    try:
        moments = []
        with LogContext(f"Synthesizing {len(payloads)} moment(s)", logger=logger):
            for payload in payloads:
                result = await synthesizer.synthesize(payload, CLI_IDENTIFIER)
                moments.append(result.moment)
        return moments
    finally:
        await synthesizer.aclose()


# =============================================================================
# DEMO SCENARIOS
# =============================================================================


def demo_scenarios(now: datetime | None = None) -> list[dict[str, Any]]:
    """Built-in moments covering a famous landmark, dining and an unknown venue."""
    captured = (now or datetime.now(timezone.utc)).replace(microsecond=0).isoformat()

    def photos(lighting: str, energy: str, crowd: str, setting: str, faces: int) -> dict[str, Any]:
        return {
            "count": 3,
            "refs": [
                {
                    "local_id": f"demo-{lighting}-{index}",
                    "local_analysis": {
                        "scene_type": "travel",
                        "lighting": lighting,
                        "indoor_outdoor": setting,
                        "face_count": faces if index == 0 else 0,
                        "crowd_level": crowd,
                        "energy_level": energy,
                        "basic_emotion": "happy",
                    },
                }
                for index in range(3)
            ],
        }

    return [
        {
            "photos": photos("golden_hour", "calm", "busy", "outdoor", 2),
            "audio": {
                "duration_seconds": 24,
                "sentiment_score": 0.85,
                "sentiment_keywords": ["dream", "temple", "together"],
            },
            "venue": {
                "name": "Senso-ji Temple",
                "category": "landmark",
                "coordinates": {"lat": 35.7148, "lon": 139.7967},
            },
            "companions": [
                {"name": "Mia", "relationship": "family", "age_group": "child"},
                {"name": "Jordan", "relationship": "partner", "age_group": "adult"},
            ],
            "captured_at": captured,
            "context": {"destination": "Tokyo", "trip_intent": "cultural immersion"},
        },
        {
            "photos": photos("bright", "lively", "packed", "outdoor", 1),
            "audio": {
                "duration_seconds": 12,
                "sentiment_score": 0.6,
                "sentiment_keywords": ["amazing", "first"],
            },
            "venue": {
                "name": "Eiffel Tower",
                "coordinates": {"lat": 48.8584, "lon": 2.2945},
            },
            "companions": [{"name": "Sam", "relationship": "friend"}],
            "captured_at": captured,
        },
        {
            "photos": photos("indoor_warm", "lively", "moderate", "indoor", 2),
            "audio": {
                "duration_seconds": 8,
                "sentiment_score": 0.4,
                "sentiment_keywords": ["remember", "childhood"],
            },
            "venue": {"name": "Kikanbo Ramen Kanda", "category": "dining"},
            "companions": [],
            "captured_at": captured,
            "context": {"is_first_visit": False},
        },
        {
            "photos": {"count": 1, "refs": []},
            "venue": {"name": "Quiet Bench By The Canal"},
            "companions": [],
            "captured_at": captured,
        },
    ]


# =============================================================================
# CLI GROUP
# =============================================================================


@click.group()
@click.version_option(__version__, prog_name="momentsense")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.option("--config", "config_path", type=click.Path(), help="Custom config file")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool, config_path: str | None) -> None:
    """MomentSense - turn a captured travel moment into a lasting memory."""
    if debug:
        setup_logging("DEBUG")
    elif verbose:
        setup_logging("INFO")
    else:
        setup_logging("WARNING")

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = config_path


# =============================================================================
# SYNTHESIZE COMMAND
# =============================================================================


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--no-ai", is_flag=True, help="Use local narratives only")
@click.option(
    "--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write the moment JSON here"
)
@click.option("--json", "output_json", is_flag=True, help="Print the moment as JSON")
@click.pass_context
def synthesize(
    ctx: click.Context,
    input_file: Path,
    no_ai: bool,
    output: Path | None,
    output_json: bool,
) -> None:
    """Synthesize one moment from a JSON request file.

    Example:
        momentsense synthesize moment.json --no-ai --output memory.json
    """
    try:
        payload = json.loads(input_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON in {input_file}: {e.msg} (line {e.lineno})")
        sys.exit(1)

    config = resolve_config(ctx, no_ai)

    try:
        moments = asyncio.run(run_synthesis(config, [payload]))
    except InputValidationError as e:
        print_error(e.message)
        for error in e.errors:
            console.print(f"  [red]{error['field']}[/red]: {error['message']}")
        sys.exit(1)
    except MomentSenseError as e:
        print_error(e.message)
        sys.exit(1)

    moment = moments[0]
    document = moment.model_dump_json(indent=2)

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(document, encoding="utf-8")

    if output_json:
        click.echo(document)
    else:
        print_moment(moment)
        if output is not None:
            print_success(f"Moment written to {output}")


# =============================================================================
# DEMO COMMAND
# =============================================================================


@cli.command()
@click.option("--no-ai", is_flag=True, help="Use local narratives only")
@click.pass_context
def demo(ctx: click.Context, no_ai: bool) -> None:
    """Run the built-in demo moments end to end."""
    print_header("MomentSense Demo")
    config = resolve_config(ctx, no_ai)

    if not config.is_ai_available():
        print_warning("Narrative model unavailable; narratives are generated locally")

    try:
        moments = asyncio.run(run_synthesis(config, demo_scenarios()))
    except MomentSenseError as e:
        print_error(e.message)
        sys.exit(1)

    for moment in moments:
        print_moment(moment)

    summary = Table(title="Demo Summary")
    summary.add_column("Venue", style="cyan")
    summary.add_column("Category")
    summary.add_column("Score", justify="right")
    summary.add_column("Highlight")
    summary.add_column("Tier")
    for moment in moments:
        summary.add_row(
            moment.venue_name,
            moment.venue_category.value if moment.venue_category else "-",
            f"{moment.transcendence_score:.2f}",
            "yes" if moment.is_highlight else "no",
            moment.processing.tier.value,
        )
    console.print(summary)


# =============================================================================
# SERVE COMMAND
# =============================================================================


@cli.command()
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", type=int, default=None, help="Port (default from config)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the HTTP API."""
    from momentsense.api.app import create_app

    config = resolve_config(ctx)
    host = host or config.server.host
    port = port or config.server.port

    print_header(f"MomentSense API on http://{host}:{port}")
    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_level="debug" if ctx.obj.get("debug") else "info",
    )


# =============================================================================
# CONFIG COMMANDS
# =============================================================================


@cli.group(invoke_without_command=True)
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show the effective configuration (secrets excluded)."""
    if ctx.invoked_subcommand is not None:
        return

    app_config = resolve_config(ctx)
    summary = app_config.to_summary()

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for section, values in summary.items():
        if isinstance(values, dict):
            for key, value in values.items():
                table.add_row(f"{section}.{key}", str(value))
        else:
            table.add_row(section, str(values))
    console.print(table)

    keys = Table(title="API Keys")
    keys.add_column("Service", style="cyan")
    keys.add_column("Source")
    for service in APIKeyManager.ENV_VARS:
        manager = APIKeyManager(service)
        manager.get_key()
        keys.add_row(service, manager.get_key_source().value)
    console.print(keys)


@config.command("set-key")
@click.argument("service", type=click.Choice(sorted(APIKeyManager.ENV_VARS)))
def set_key(service: str) -> None:
    """Store an API key in the system keyring."""
    key = click.prompt(f"{service} API key", hide_input=True).strip()
    if not key:
        print_error("No key entered")
        sys.exit(1)
    if APIKeyManager(service).store_key(key):
        print_success(f"{service} key stored in system keyring")
    else:
        print_error("Could not store key; set the environment variable instead")
        sys.exit(1)


if __name__ == "__main__":
    cli()
