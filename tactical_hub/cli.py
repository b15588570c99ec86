"""
Tactical Analytics Hub - CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, hub run, forecast, etc.).
  5. Report result to stdout.

Install and run::

    pip install -e .
    tactical-hub --help
    tactical-hub validate-config
    tactical-hub init-db
    tactical-hub run-hub --duration 60
    tactical-hub show-snapshot --modules business
    tactical-hub forecast-csv data/revenue.csv --metric revenue --horizon 5
"""

from __future__ import annotations

import csv
import json
import platform
import signal
import time
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="tactical-hub",
    help="Tactical analytics hub: real-time metrics, forecasts and recommendations.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from tactical_hub.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from tactical_hub.utils.logging import configure_logging
    configure_logging(config.logging)


def _split_modules(modules: Optional[str]) -> Optional[list[str]]:
    if modules is None:
        return None
    return [m.strip() for m in modules.split(",") if m.strip()]


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Update interval:  {config.hub.update_interval_ms} ms")
    typer.echo(f"  Buffer / source:  {config.hub.buffer_size_per_source} points")
    typer.echo(f"  Retention:        {config.hub.retention_period_ms} ms")
    typer.echo(f"  Healthy fraction: {config.hub.min_healthy_source_fraction}")
    typer.echo(f"  Confidence floor: {config.insights.min_confidence_floor}")
    typer.echo(f"  Thresholds:       {', '.join(sorted(config.alerts.thresholds))}")
    typer.echo(f"  HTTP sources:     {len(config.connectors.sources)}")
    typer.echo(f"  Store backend:    {config.store.backend}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(mode="json"), indent=2, default=str))


@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite store and apply the schema.

    Safe to run multiple times - all DDL uses IF NOT EXISTS.
    """
    from tactical_hub.store.connection import get_connection
    from tactical_hub.store.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.store.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(config.store, target_path) as conn:
        apply_schema(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("run-hub")
def run_hub(
    sources: str = typer.Option(
        "synthetic",
        "--sources",
        help="'synthetic' for built-in demo feeds, 'http' for [[connectors.sources]] from config.",
    ),
    duration: Optional[float] = typer.Option(
        None,
        "--duration",
        help="Stop after this many seconds (default: run until Ctrl-C / SIGTERM).",
    ),
    modules: Optional[str] = typer.Option(
        None,
        "--modules",
        help="Comma-separated RBAC modules for the printed view (default: everything).",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Persist snapshots to this SQLite file.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Run the aggregation hub and print every published snapshot.

    \b
    Sources:
      synthetic - one deterministic demo feed per source kind (no network).
      http      - poll the JSON endpoints listed under [[connectors.sources]].
    """
    from tactical_hub.hub.aggregator import AggregationHub
    from tactical_hub.ingestion.http_connector import HttpJsonConnector
    from tactical_hub.ingestion.synthetic import default_synthetic_connectors
    from tactical_hub.reporting.formatters import format_snapshot
    from tactical_hub.store import SqliteStore, build_store

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if sources == "synthetic":
        connectors = default_synthetic_connectors()
    elif sources == "http":
        if not config.connectors.sources:
            typer.echo("[ERROR] No [[connectors.sources]] configured.", err=True)
            raise typer.Exit(code=1)
        connectors = [HttpJsonConnector.from_config(s) for s in config.connectors.sources]
    else:
        typer.echo(f"[ERROR] Unknown --sources '{sources}' (use 'synthetic' or 'http').", err=True)
        raise typer.Exit(code=1)

    if db_path:
        store = SqliteStore(config.store, db_path)
    else:
        store = build_store(config.store)

    hub = AggregationHub(config, connectors, store=store)
    running = True

    def _shutdown(signum, frame):  # noqa: ANN001
        nonlocal running
        typer.echo(f"Signal {signum} received - stopping hub.")
        running = False

    signal.signal(signal.SIGINT, _shutdown)
    if platform.system() != "Windows":
        signal.signal(signal.SIGTERM, _shutdown)

    typer.echo(
        f"run-hub | sources={sources} ({len(connectors)}) | "
        f"interval={config.hub.update_interval_ms}ms"
    )
    hub.start()
    subscription = hub.stream_snapshots(_split_modules(modules) or ["*"])
    deadline = time.monotonic() + duration if duration else None
    try:
        while running:
            if deadline is not None and time.monotonic() >= deadline:
                break
            snapshot = subscription.get(timeout=0.5)
            if snapshot is not None:
                typer.echo(format_snapshot(snapshot))
    finally:
        subscription.close()
        ack = hub.stop()

    typer.echo("")
    typer.echo(f"[OK] Hub {ack.state.value}.")


@app.command("show-snapshot")
def show_snapshot(
    modules: Optional[str] = typer.Option(
        None,
        "--modules",
        help="Comma-separated RBAC modules to filter by (default: everything).",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the snapshot as JSON instead of tables.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Print the latest snapshot persisted by a SQLite-backed hub run."""
    from tactical_hub.hub.rbac import filter_snapshot
    from tactical_hub.reporting.formatters import format_snapshot
    from tactical_hub.store import SqliteStore

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_db = db_path or config.store.db_path
    if not Path(target_db).exists():
        typer.echo(f"[ERROR] Database not found: {target_db}", err=True)
        raise typer.Exit(code=1)

    store = SqliteStore(config.store, target_db)
    snapshot = store.load_latest_snapshot()
    if snapshot is None:
        typer.echo("No snapshot persisted yet - run 'run-hub --db-path ...' first.")
        raise typer.Exit(code=1)

    caller = _split_modules(modules)
    if caller is not None:
        snapshot = filter_snapshot(snapshot, caller)

    if as_json:
        typer.echo(snapshot.model_dump_json(indent=2))
    else:
        typer.echo(format_snapshot(snapshot))


@app.command("forecast-csv")
def forecast_csv(
    csv_path: Path = typer.Argument(..., help="CSV file with timestamp and value columns."),
    metric: str = typer.Option("value", "--metric", help="Metric name for the series."),
    horizon: Optional[int] = typer.Option(None, "--horizon", help="Forecast steps (default from config)."),
    model_type: Optional[str] = typer.Option(
        None,
        "--model-type",
        help="ensemble | exponential_smoothing | trend | anomaly (default from config).",
    ),
    timestamp_col: str = typer.Option("timestamp", "--timestamp-col"),
    value_col: str = typer.Option("value", "--value-col"),
    source: str = typer.Option("business_analytics", "--source", help="Source kind to stamp."),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Fit a forecasting model to a CSV series and print the prediction."""
    from tactical_hub.errors import InsufficientDataError
    from tactical_hub.forecasting.engine import ForecastingEngine
    from tactical_hub.models.datapoint import MetricSeries
    from tactical_hub.reporting.formatters import format_prediction
    from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, ModelType, SourceKind
    from tactical_hub.utils.time_utils import parse_timestamp

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if not csv_path.exists():
        typer.echo(f"[ERROR] File not found: {csv_path}", err=True)
        raise typer.Exit(code=1)

    try:
        kind = SourceKind(source)
        forecast_cfg = config.forecast
        if model_type is not None:
            forecast_cfg = forecast_cfg.model_copy(update={"model_type": ModelType(model_type)})
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    stamps, values, skipped = [], [], 0
    with csv_path.open(newline="", encoding="utf-8") as fh:
        for row in csv.DictReader(fh):
            try:
                ts = parse_timestamp(row[timestamp_col])
                value = float(row[value_col])
            except (KeyError, TypeError, ValueError):
                skipped += 1
                continue
            stamps.append(ts)
            values.append(value)

    if skipped:
        typer.echo(f"  Skipped {skipped} malformed rows.")
    if not values:
        typer.echo("[ERROR] No usable rows in CSV.", err=True)
        raise typer.Exit(code=1)

    order = sorted(range(len(values)), key=lambda i: stamps[i])
    series = MetricSeries(
        source=kind,
        metric=metric,
        category=MetricCategory.BUSINESS,
        timestamps=tuple(stamps[i] for i in order),
        values=tuple(values[i] for i in order),
        out_of_order=tuple(False for _ in order),
    )

    engine = ForecastingEngine(forecast_cfg)
    model = engine.fit(series)
    try:
        prediction = engine.predict(model, horizon or forecast_cfg.default_horizon)
    except InsufficientDataError as exc:
        typer.echo(f"[INSUFFICIENT DATA] {exc}", err=True)
        raise typer.Exit(code=2)
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(format_prediction(prediction))


if __name__ == "__main__":
    app()
