#!/usr/bin/env python3
"""
Crucible - Main CLI Entry Point

Command-line interface for multi-agent claim reasoning sessions.
"""

import asyncio
import json
import logging
import sys
from typing import Optional

import click

from crucible import __version__
from crucible.config import ConfigValidationError, CrucibleConfig, get_crucible_config
from crucible.cycle.runner import CycleRunner
from crucible.embedding.space import EmbeddingSpace
from crucible.llm.client import GenerationClient
from crucible.notifications.bus import EventType, NotificationBus, SessionEvent
from crucible.persistence.store import InMemoryStore, JsonlStore


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def load_config(config_path: Optional[str], **overrides) -> CrucibleConfig:
    base = CrucibleConfig.from_yaml(config_path) if config_path else get_crucible_config()
    return base.with_overrides(**overrides)


def _echo_cycle(event: SessionEvent) -> None:
    data = event.data
    if event.event_type == EventType.CYCLE_COMPLETE:
        timeouts = f", timeouts: {', '.join(data['timeouts'])}" if data.get("timeouts") else ""
        click.echo(
            f"  cycle {data['cycle_number']:>3}  {data['transition']:<9} "
            f"support={data['support']:.2f}  roles={len(data['roles'])}{timeouts}"
        )
    elif event.event_type == EventType.CLAIM_CHANGED:
        click.echo(f"        claim -> {data['claim']}")


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    Crucible - Multi-agent claim reasoning.

    A claim is attacked, refined and scored by specialized workers one
    cycle at a time until it dies, graduates, or the budget runs out.
    """
    pass


@cli.command()
@click.argument("seed_claim", type=str)
@click.option("--max-cycles", type=int, help="Maximum number of cycles (default: 50)")
@click.option("--cost-limit", type=float, help="Stop once spend reaches this many USD")
@click.option("--models", type=str, help="Comma-separated model pool")
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("--seed", type=int, help="Random seed for scheduling and frontier draws")
@click.option("--store-dir", type=click.Path(), help="Directory for JSONL session records")
@click.option("--output", type=click.Path(), help="Write the session summary here (JSON)")
@click.option("--verbose", is_flag=True, help="Enable verbose output")
def run(
    seed_claim: str,
    max_cycles: Optional[int],
    cost_limit: Optional[float],
    models: Optional[str],
    config_path: Optional[str],
    seed: Optional[int],
    store_dir: Optional[str],
    output: Optional[str],
    verbose: bool,
):
    """
    Run a reasoning session on SEED_CLAIM until it stops.
    """
    configure_logging(verbose)

    model_pool = [m.strip() for m in models.split(",") if m.strip()] if models else None
    try:
        config = load_config(
            config_path,
            seed_claim=seed_claim,
            max_cycles=max_cycles,
            cost_limit_usd=cost_limit,
            model_pool=model_pool,
            random_seed=seed,
            store_dir=store_dir,
        )
        bus = NotificationBus()
        bus.subscribe(_echo_cycle)
        runner = CycleRunner(
            config=config,
            client=GenerationClient.from_config(config),
            embedder=EmbeddingSpace(model=config.embedding_model, base_url=config.ollama_base_url),
            store=JsonlStore(config.store_dir) if config.store_dir else InMemoryStore(),
            bus=bus,
        )
    except ConfigValidationError as e:
        click.echo("❌ Invalid configuration:", err=True)
        for problem in e.problems:
            click.echo(f"   - {problem}", err=True)
        sys.exit(1)
    except (OSError, ValueError) as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)

    click.echo("🚀 Crucible Starting...")
    click.echo(f"   Session: {runner.session_id}")
    click.echo(f"   Seed claim: {seed_claim}")
    click.echo(f"   Models: {', '.join(config.model_pool)}")
    click.echo(f"   Max cycles: {config.max_cycles}")
    if config.cost_limit_usd is not None:
        click.echo(f"   Cost limit: ${config.cost_limit_usd:.2f}")
    click.echo()

    try:
        summary = asyncio.run(runner.run())
    except KeyboardInterrupt:
        click.echo("\n⚠️  Interrupted", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"❌ Error: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)

    state = summary.final_state
    click.echo("\n" + "=" * 60)
    click.echo(f"SESSION {summary.status.value.upper()}")
    click.echo("=" * 60)
    click.echo(f"Stop reason: {summary.stop_reason.value if summary.stop_reason else '-'}")
    click.echo(f"Cycles run: {summary.cycles_run}")
    click.echo(f"Current claim: {state.get('claim') or '(none)'}")
    if state.get("claim"):
        click.echo(f"Support: {state.get('support', 0.0):.2f}")
    click.echo(f"Graduated: {len(state.get('graduated', []))}")
    for entry in state.get("graduated", []):
        click.echo(f"  🎓 [{entry['final_support']:.2f}] {entry['claim']}")
    click.echo(f"Cemetery: {len(state.get('cemetery', []))}")
    for entry in state.get("cemetery", []):
        click.echo(f"  ✝  cycle {entry['cycle_killed']}: {entry['claim']}")
    click.echo(f"Total cost: ${summary.costs.get('total_usd', 0.0):.4f}")

    if output:
        with open(output, "w") as f:
            json.dump(summary.to_dict(), f, indent=2, default=str)
        click.echo(f"💾 Summary saved to: {output}")


@cli.command("config")
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML config file")
def show_config(config_path: Optional[str]):
    """
    Print the effective configuration and any problems with it.
    """
    config = load_config(config_path)
    click.echo(json.dumps(config.to_dict(), indent=2, default=str))
    problems = config.validate()
    if problems:
        click.echo("\n⚠️  Problems:", err=True)
        for problem in problems:
            click.echo(f"   - {problem}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--store-dir", type=click.Path(exists=True, file_okay=False), required=True)
def sessions(store_dir: str):
    """
    List sessions recorded in a store directory.
    """
    store = JsonlStore(store_dir)
    session_ids = store.list_session_ids()
    if not session_ids:
        click.echo("No sessions found.")
        return

    click.echo(f"{'SESSION':<36}  {'STATUS':<10}  {'CYCLES':>6}  CLAIM")
    for session_id in session_ids:
        row = store.load_session_row(session_id) or {}
        claim = (row.get("snapshot") or {}).get("claim") or "-"
        click.echo(
            f"{session_id:<36}  {row.get('status', '?'):<10}  "
            f"{row.get('cycles_run', 0):>6}  {claim[:60]}"
        )


@cli.command()
@click.argument("session_id", type=str)
@click.option("--store-dir", type=click.Path(exists=True, file_okay=False), required=True)
def trajectory(session_id: str, store_dir: str):
    """
    Show the recorded claim trajectory of a session.
    """
    store = JsonlStore(store_dir)
    points = store.read_trajectory(session_id)
    if not points:
        click.echo(f"No trajectory recorded for {session_id}.")
        sys.exit(1)

    for point in points:
        marker = "·" if point.embedding is None else "•"
        click.echo(f"{marker} {point.cycle_number:>3}  {point.support:.2f}  {point.claim_text}")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=8000, type=int, help="Port")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: str, port: int, reload: bool):
    """
    Start the HTTP API.
    """
    import uvicorn

    configure_logging(False)
    uvicorn.run("api.server:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    cli()
