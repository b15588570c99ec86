"""
CLI tests for the tactical-hub typer app.

Every command gets an explicit ``--config`` pointing at a small TOML file in
``tmp_path`` so nothing touches the repository's data/ directory.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import T0
from tactical_hub.cli import app

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "hub.toml"
    path.write_text(
        "[hub]\n"
        "update_interval_ms = 50\n"
        "shutdown_timeout_ms = 2000\n"
        "\n"
        "[connectors]\n"
        "poll_interval_ms = 20\n"
        "\n"
        "[store]\n"
        f"db_path = \"{(tmp_path / 'db' / 'hub.db').as_posix()}\"\n"
        "\n"
        "[logging]\n"
        "level = \"WARNING\"\n",
        encoding="utf-8",
    )
    return path


def _write_csv(path: Path, values: list[float]) -> Path:
    lines = ["timestamp,value"]
    for i, v in enumerate(values):
        lines.append(f"{(T0 + timedelta(minutes=i)).isoformat()},{v}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


# ── validate-config ───────────────────────────────────────────────────────────

def test_validate_config(config_file):
    result = runner.invoke(app, ["validate-config", "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert "Configuration validated successfully." in result.output
    assert "50 ms" in result.output
    assert "cpu_usage" in result.output


def test_validate_config_full(config_file):
    result = runner.invoke(app, ["validate-config", "--config", str(config_file), "--full"])
    assert result.exit_code == 0, result.output
    assert "Full config (JSON):" in result.output
    assert '"update_interval_ms": 50' in result.output


def test_validate_config_missing_file(tmp_path):
    result = runner.invoke(app, ["validate-config", "--config", str(tmp_path / "nope.toml")])
    assert result.exit_code == 1


def test_validate_config_invalid_values(tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text("[hub]\nupdate_interval_ms = 0\n", encoding="utf-8")
    result = runner.invoke(app, ["validate-config", "--config", str(path)])
    assert result.exit_code == 1
    assert "Config validation failed" in result.output


# ── init-db / show-snapshot ───────────────────────────────────────────────────

def test_init_db(config_file, tmp_path):
    db = tmp_path / "init" / "hub.db"
    result = runner.invoke(app, ["init-db", "--config", str(config_file), "--db-path", str(db)])
    assert result.exit_code == 0, result.output
    assert "[OK] Database ready." in result.output
    assert db.exists()


def test_show_snapshot_missing_db(config_file, tmp_path):
    result = runner.invoke(app, [
        "show-snapshot", "--config", str(config_file), "--db-path", str(tmp_path / "absent.db"),
    ])
    assert result.exit_code == 1
    assert "Database not found" in result.output


def test_show_snapshot_empty_db(config_file, tmp_path):
    db = tmp_path / "empty.db"
    runner.invoke(app, ["init-db", "--config", str(config_file), "--db-path", str(db)])
    result = runner.invoke(app, ["show-snapshot", "--config", str(config_file), "--db-path", str(db)])
    assert result.exit_code == 1
    assert "No snapshot persisted yet" in result.output


# ── run-hub ───────────────────────────────────────────────────────────────────

def test_run_hub_persists_snapshots(config_file, tmp_path):
    db = tmp_path / "run.db"
    result = runner.invoke(app, [
        "run-hub", "--config", str(config_file), "--duration", "1.0", "--db-path", str(db),
    ])
    assert result.exit_code == 0, result.output
    assert "=== Snapshot snap-" in result.output
    assert "[OK] Hub stopped." in result.output

    shown = runner.invoke(app, [
        "show-snapshot", "--config", str(config_file), "--db-path", str(db), "--modules", "business",
    ])
    assert shown.exit_code == 0, shown.output
    assert "[STALE]" in shown.output or "[LIVE]" in shown.output
    assert "[BUSINESS]" in shown.output
    assert "[SECURITY]" not in shown.output


def test_run_hub_http_without_sources(config_file):
    result = runner.invoke(app, ["run-hub", "--config", str(config_file), "--sources", "http"])
    assert result.exit_code == 1
    assert "No [[connectors.sources]] configured." in result.output


def test_run_hub_unknown_sources(config_file):
    result = runner.invoke(app, ["run-hub", "--config", str(config_file), "--sources", "kafka"])
    assert result.exit_code == 1


# ── forecast-csv ──────────────────────────────────────────────────────────────

def test_forecast_csv(config_file, tmp_path):
    csv_path = _write_csv(tmp_path / "revenue.csv", [1000.0 + 10.0 * i for i in range(30)])
    result = runner.invoke(app, [
        "forecast-csv", str(csv_path), "--metric", "revenue", "--horizon", "3",
        "--config", str(config_file),
    ])
    assert result.exit_code == 0, result.output
    assert "=== Forecast business_analytics/revenue (ensemble) ===" in result.output
    assert "Trend: up" in result.output


def test_forecast_csv_skips_bad_rows(config_file, tmp_path):
    csv_path = _write_csv(tmp_path / "revenue.csv", [1000.0 + 10.0 * i for i in range(30)])
    with csv_path.open("a", encoding="utf-8") as fh:
        fh.write("not-a-date,1.0\n2026-01-05T13:00:00+00:00,oops\n")
    result = runner.invoke(app, ["forecast-csv", str(csv_path), "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert "Skipped 2 malformed rows." in result.output


def test_forecast_csv_insufficient_data(config_file, tmp_path):
    csv_path = _write_csv(tmp_path / "short.csv", [1.0, 2.0, 3.0])
    result = runner.invoke(app, ["forecast-csv", str(csv_path), "--config", str(config_file)])
    assert result.exit_code == 2
    assert "[INSUFFICIENT DATA]" in result.output


def test_forecast_csv_missing_file(config_file, tmp_path):
    result = runner.invoke(app, ["forecast-csv", str(tmp_path / "nope.csv"), "--config", str(config_file)])
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_forecast_csv_bad_model_type(config_file, tmp_path):
    csv_path = _write_csv(tmp_path / "revenue.csv", [1.0] * 12)
    result = runner.invoke(app, [
        "forecast-csv", str(csv_path), "--model-type", "prophet", "--config", str(config_file),
    ])
    assert result.exit_code == 1
