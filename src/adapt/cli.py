"""Click-based CLI for ADAPT."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console

from adapt import __version__
from adapt.config import ADAPTConfig, load_config
from adapt.state import Error, Ready

if TYPE_CHECKING:
    from adapt.orchestrator import LifecycleOrchestrator

logger = logging.getLogger("adapt")


def _orchestrator(ctx: click.Context) -> LifecycleOrchestrator:
    """Build the orchestrator once per invocation."""
    from adapt.factory import build_orchestrator

    obj = ctx.obj
    if "orchestrator" not in obj:
        obj["orchestrator"] = build_orchestrator(obj["config"])
    orchestrator: LifecycleOrchestrator = obj["orchestrator"]
    return orchestrator


@click.group()
@click.version_option(version=__version__, prog_name="adapt")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to user config TOML file.",
)
@click.option(
    "--set",
    "set_kv",
    nargs=2,
    multiple=True,
    help="Override a config value: --set KEY VALUE (dot notation).",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Verbose output.")
@click.option("-q", "--quiet", is_flag=True, default=False, help="Suppress all output.")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    set_kv: tuple[tuple[str, str], ...],
    verbose: bool,
    quiet: bool,
) -> None:
    """ADAPT -- adaptive local model lifecycle manager."""
    ctx.ensure_object(dict)
    cfg = load_config(user_config_path=config_path, cli_overrides=dict(set_kv) or None)
    ctx.obj = {
        "config": cfg,
        "verbose": verbose,
        "quiet": quiet,
    }

    # Configure logging
    level = getattr(logging, cfg.general.log_level.upper(), logging.WARNING)
    if verbose:
        level = logging.DEBUG
    if quiet:
        level = logging.CRITICAL
    logging.basicConfig(level=level, format="%(name)s: %(message)s", stream=sys.stderr)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show device resources, tier, and the recommended model."""
    from rich.table import Table

    obj = ctx.obj
    console = Console(quiet=obj["quiet"])
    orchestrator = _orchestrator(ctx)

    snapshot = orchestrator.refresh_resources()
    prefs = orchestrator.preferences()

    table = Table(title="Device Resources", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Device tier", snapshot.device_tier.name)
    table.add_row("RAM", f"{snapshot.available_ram_mb}MB / {snapshot.total_ram_mb}MB")
    battery = f"{snapshot.battery_percent}%"
    if snapshot.is_charging:
        battery += " (charging)"
    table.add_row("Battery", battery)
    table.add_row("Storage free", f"{snapshot.available_storage_mb / 1024:.1f}GB")
    table.add_row("Preferred model", prefs.preferred_model_key or "-")
    table.add_row("Last loaded model", prefs.last_loaded_model_key or "-")
    table.add_row("Auto-load", "on" if prefs.auto_load_enabled else "off")
    console.print(table)
    console.print(orchestrator.get_model_recommendation())


@main.command(name="models")
@click.option("--safe", is_flag=True, default=False, help="Only list models that fit this device.")
@click.pass_context
def models_cmd(ctx: click.Context, safe: bool) -> None:
    """List catalog models with download and admission status."""
    from rich.table import Table

    obj = ctx.obj
    console = Console(quiet=obj["quiet"])
    orchestrator = _orchestrator(ctx)
    orchestrator.refresh_resources()

    downloaded = {m.model_key or m.id: m.is_downloaded for m in orchestrator.host_models()}
    fits = {entry.model_key for entry in orchestrator.safe_models()} if safe else None

    table = Table(title="Model Catalog", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Name", style="blue")
    table.add_column("Quality", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Downloaded")
    table.add_column("Can load")

    for entry, ok, reason in orchestrator.models_with_status():
        if fits is not None and entry.model_key not in fits:
            continue
        verdict = "Yes" if ok else f"[red]No[/red] - {reason}"
        if ok and reason != "OK":
            verdict = f"[yellow]Yes[/yellow] - {reason}"
        table.add_row(
            entry.model_key,
            entry.display_name,
            str(entry.quality_tier),
            f"{entry.size_mb}MB",
            "Yes" if downloaded.get(entry.model_key) else "No",
            verdict,
        )
    console.print(table)


@main.command()
@click.argument("model_key", required=False)
@click.pass_context
def load(ctx: click.Context, model_key: str | None) -> None:
    """Download (if needed) and load a model.

    Without MODEL_KEY the best model for this device is selected.
    """
    from adapt.progress import LifecycleReporter

    obj = ctx.obj
    console = Console(stderr=True, quiet=obj["quiet"])
    reporter = LifecycleReporter(console, verbose=obj["verbose"], quiet=obj["quiet"])
    orchestrator = _orchestrator(ctx)

    if model_key is not None and model_key not in orchestrator.catalog:
        raise click.BadParameter(
            f"Unknown model {model_key!r}. Choose from: "
            + ", ".join(orchestrator.catalog.all_keys()),
            param_hint="MODEL_KEY",
        )

    subscription = orchestrator.state.subscribe(reporter.callback)
    try:
        if model_key is None:
            final = orchestrator.auto_load()
        else:
            final = orchestrator.load_model_by_key(model_key)
    finally:
        subscription.cancel()
        reporter.finish()

    if isinstance(final, Error):
        ctx.exit(1)
    if isinstance(final, Ready):
        click.echo(f"Loaded: {final.model_name}")


@main.command()
@click.argument("model_key", required=False)
@click.option("--clear", is_flag=True, default=False, help="Clear the preferred model.")
@click.pass_context
def prefer(ctx: click.Context, model_key: str | None, clear: bool) -> None:
    """Set or clear the preferred model."""
    orchestrator = _orchestrator(ctx)
    if clear:
        orchestrator.set_preferred_model(None)
        click.echo("Preferred model cleared.")
        return
    if model_key is None:
        current = orchestrator.preferences().preferred_model_key
        click.echo(f"Preferred model: {current or '-'}")
        return
    if model_key not in orchestrator.catalog:
        raise click.BadParameter(f"Unknown model {model_key!r}", param_hint="MODEL_KEY")
    orchestrator.set_preferred_model(model_key)
    click.echo(f"Preferred model set to {model_key}.")


@main.command()
@click.argument("mode", type=click.Choice(["on", "off"]))
@click.pass_context
def autoload(ctx: click.Context, mode: str) -> None:
    """Enable or disable automatic model loading at startup."""
    _orchestrator(ctx).set_auto_load_enabled(mode == "on")
    click.echo(f"Auto-load {mode}.")


@main.command()
@click.argument("current_key", required=False)
@click.pass_context
def upgrade(ctx: click.Context, current_key: str | None) -> None:
    """Suggest the next model up in quality that fits this device."""
    from adapt.policy import can_upgrade

    orchestrator = _orchestrator(ctx)
    snapshot = orchestrator.refresh_resources()
    key = current_key or orchestrator.preferences().last_loaded_model_key
    if key is None:
        click.echo("No model loaded yet; nothing to upgrade from.")
        return
    if key not in orchestrator.catalog:
        raise click.BadParameter(f"Unknown model {key!r}", param_hint="CURRENT_KEY")

    config: ADAPTConfig = ctx.obj["config"]
    ok, better = can_upgrade(key, snapshot, orchestrator.catalog, config.probe.ram_safety_margin)
    if ok and better is not None:
        click.echo(
            f"Upgrade available: {orchestrator.catalog.display_name_for(better)} ({better})"
        )
    else:
        click.echo(f"{orchestrator.catalog.display_name_for(key)} is the best fit for this device.")


@main.command(name="config")
@click.pass_context
def config_cmd(ctx: click.Context) -> None:
    """Show the resolved configuration."""
    import json as json_mod
    from dataclasses import asdict

    from rich.syntax import Syntax

    obj = ctx.obj
    config: ADAPTConfig = obj["config"]
    console = Console(quiet=obj["quiet"])

    config_dict = asdict(config)
    config_dict["resolved_paths"] = {
        "models_dir": str(config.models_path),
        "preferences": str(config.preferences_path),
        "storage": str(config.storage_path),
    }
    json_str = json_mod.dumps(config_dict, indent=2)
    syntax = Syntax(json_str, "json", theme="monokai")
    console.print(syntax)
