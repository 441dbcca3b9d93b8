"""Typer CLI entrypoint and command definitions for behavtel."""

import asyncio
import json
from pathlib import Path

import typer

from behavtel.core.defaults import (
    DEFAULT_DATA_DIR,
    DEFAULT_PROFILE,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
)

app = typer.Typer()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    """Behavioral telemetry: window features and session summaries."""
    import logging

    from behavtel.core.logging import configure_logging

    configure_logging(logging.DEBUG if verbose else logging.INFO)


# -- features -----------------------------------------------------------------
features_app = typer.Typer()
app.add_typer(features_app, name="features")


@features_app.command("extract")
def features_extract(
    input_path: str = typer.Option(..., "--input", help="JSON file holding one batch (keystroke_data, mouse_data, scroll_data)"),
    profile: str = typer.Option(DEFAULT_PROFILE, help="Built-in profile name or path to a YAML profile"),
) -> None:
    """Compute window features for a single batch and print them as JSON."""
    from pydantic import ValidationError

    from behavtel.core.types import EventBatch
    from behavtel.features.metrics import resolve_profile
    from behavtel.features.window import extract_batch_features

    path = Path(input_path)
    if not path.exists():
        typer.echo(f"File not found: {path}", err=True)
        raise typer.Exit(code=1)

    try:
        metric_profile = resolve_profile(profile)
        batch = EventBatch.model_validate_json(path.read_text("utf-8"))
    except (ValidationError, ValueError) as exc:
        typer.echo(f"Invalid input: {exc}", err=True)
        raise typer.Exit(code=1)

    features = extract_batch_features(batch, profile=metric_profile)
    if features is None:
        typer.echo("No features: batch is empty or spans zero time", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(features.as_record(), indent=2))


# -- session ------------------------------------------------------------------
session_app = typer.Typer()
app.add_typer(session_app, name="session")


@session_app.command("replay")
def session_replay(
    input_path: str = typer.Option(..., "--input", help="JSONL file, one batch per line"),
    out: str = typer.Option(DEFAULT_DATA_DIR, "--out", help="Data directory for parquet tables and config.json"),
    profile: str | None = typer.Option(
        None, help="Built-in profile name or path to a YAML profile (default: the configured profile)",
    ),
    user_id: str = typer.Option("replay-user", "--user-id", help="User id written with every row"),
) -> None:
    """Replay stored batches as one session and write all tables to parquet."""
    from pydantic import ValidationError

    from behavtel.capture.monitor import BehaviorMonitor
    from behavtel.core.config import MonitorConfig
    from behavtel.core.types import EventBatch
    from behavtel.features.metrics import resolve_profile
    from behavtel.persist.gateway import ParquetGateway

    path = Path(input_path)
    if not path.exists():
        typer.echo(f"File not found: {path}", err=True)
        raise typer.Exit(code=1)

    gateway = ParquetGateway(out)
    try:
        batches = [
            EventBatch.model_validate_json(line)
            for line in path.read_text("utf-8").splitlines()
            if line.strip()
        ]
        monitor = BehaviorMonitor.from_config(
            gateway,
            user_id,
            MonitorConfig(out),
            profile=resolve_profile(profile) if profile else None,
        )
    except (ValidationError, ValueError) as exc:
        typer.echo(f"Invalid input: {exc}", err=True)
        raise typer.Exit(code=1)

    async def _replay() -> int:
        produced = 0
        for batch in batches:
            monitor.buffer.load(batch)
            if await monitor.flush() is not None:
                produced += 1
        return produced

    produced = asyncio.run(_replay())
    typer.echo(f"Replayed {len(batches)} batch(es); {produced} produced window features")

    summary = asyncio.run(monitor.finalize())
    if summary is None:
        typer.echo("Session is empty; no summary written")
        return
    typer.echo(json.dumps(summary.as_record(), indent=2))
    typer.echo(f"Wrote {len(gateway.read_features())} window feature row(s) to {Path(out)}")


# -- profiles -----------------------------------------------------------------
profiles_app = typer.Typer()
app.add_typer(profiles_app, name="profiles")


@profiles_app.command("list")
def profiles_list() -> None:
    """List built-in metric profiles and their metrics."""
    from behavtel.features.metrics import BUILTIN_PROFILES

    for name, prof in BUILTIN_PROFILES.items():
        typer.echo(f"{name}: {', '.join(prof.metrics)}")


@profiles_app.command("export")
def profiles_export(
    name: str = typer.Argument(..., help="Built-in profile name or path to a YAML profile"),
    out: str = typer.Option(..., "--out", help="Destination YAML file"),
) -> None:
    """Write a metric profile to YAML, as a starting point for a custom one."""
    from pydantic import ValidationError

    from behavtel.features.metrics import resolve_profile, save_profile

    try:
        prof = resolve_profile(name)
    except (ValidationError, ValueError) as exc:
        typer.echo(f"Invalid profile: {exc}", err=True)
        raise typer.Exit(code=1)
    path = save_profile(prof, Path(out))
    typer.echo(f"Profile {prof.name!r} written to {path}")


# -- config -------------------------------------------------------------------
config_app = typer.Typer()
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show(
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Data directory holding config.json"),
) -> None:
    """Print the effective monitor configuration."""
    from behavtel.core.config import MonitorConfig

    typer.echo(json.dumps(MonitorConfig(data_dir).as_dict(), indent=2))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name, e.g. batch_size"),
    value: str = typer.Argument(..., help="New value (parsed as JSON when possible)"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Data directory holding config.json"),
) -> None:
    """Change one monitor setting."""
    from behavtel.core.config import MonitorConfig

    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    try:
        cfg = MonitorConfig(data_dir).update({key: parsed})
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(cfg, indent=2))


# -- serve --------------------------------------------------------------------


@app.command("serve")
def serve(
    host: str = typer.Option(DEFAULT_SERVER_HOST, help="Bind address"),
    port: int = typer.Option(DEFAULT_SERVER_PORT, help="Bind port"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Directory for parquet tables and config"),
    api_key: str | None = typer.Option(
        None, envvar="BEHAVTEL_API_KEY", help="REST backend key (used when rest_url is configured)",
    ),
) -> None:
    """Run the batch ingestion service.

    Rows go to the REST backend when ``rest_url`` is configured, otherwise
    to local parquet tables under *data_dir*.
    """
    import uvicorn

    from behavtel.capture.monitor import configured_profile
    from behavtel.core.config import MonitorConfig
    from behavtel.persist.gateway import ParquetGateway, PersistenceGateway, RestGateway
    from behavtel.server.app import create_app

    cfg = MonitorConfig(data_dir)
    try:
        profile = configured_profile(cfg)
    except ValueError as exc:
        typer.echo(f"Invalid configured profile: {exc}", err=True)
        raise typer.Exit(code=1)

    gateway: PersistenceGateway
    if cfg.rest_url:
        if not api_key:
            typer.echo("rest_url is configured but no API key was given (--api-key or BEHAVTEL_API_KEY)", err=True)
            raise typer.Exit(code=1)
        gateway = RestGateway(cfg.rest_url, api_key)
    else:
        gateway = ParquetGateway(data_dir)

    api = create_app(gateway, profile=profile)
    uvicorn.run(api, host=host, port=port)


if __name__ == "__main__":
    app()
