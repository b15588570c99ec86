"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      - committed static defaults
  2. ``config/local.toml``        - optional local overrides (gitignored)
  3. ``.env``                     - local secrets and env overrides (gitignored)
  4. Environment variables        - ``TACTICAL_HUB_*`` prefix

Entry points:
  - ``load_config(config_path=None) -> AppConfig``
  - ``build_config(raw) -> AppConfig`` for already-parsed dicts (tests, API).

Both raise ``InvalidConfigurationError`` when the merged values fail
validation. The hub, its engines and the CLI receive an ``AppConfig``
instance - never raw dicts or scattered env var lookups.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from tactical_hub.errors import InvalidConfigurationError
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, ModelType, SourceKind

VALID_BACKOFF_STRATEGIES: frozenset[str] = frozenset({"exponential", "linear", "fixed"})

_DAY_MS = 24 * 60 * 60 * 1000

# ── Sub-config models ─────────────────────────────────────────────────────────


class HubConfig(BaseModel):
    """Aggregation cycle, buffering and lifecycle settings."""

    model_config = ConfigDict(frozen=True)

    update_interval_ms: int = 5000
    buffer_size_per_source: int = 1000
    retention_period_ms: int = _DAY_MS
    min_healthy_source_fraction: float = 0.75
    shutdown_timeout_ms: int = 10_000

    @field_validator("update_interval_ms", "buffer_size_per_source", "retention_period_ms",
                     "shutdown_timeout_ms")
    @classmethod
    def positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"must be > 0, got {v}.")
        return v

    @field_validator("min_healthy_source_fraction")
    @classmethod
    def valid_fraction(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"min_healthy_source_fraction must be in [0, 1], got {v}.")
        return v


class BackoffConfig(BaseModel):
    """Retry backoff policy for a degraded source.

    Attributes:
        strategy:     "exponential" (2^(n-1) * base), "linear" (n * base),
                      or "fixed" (always base_seconds).
        base_seconds: Delay after the first failure.
        max_seconds:  Upper cap on retry delay.
    """

    model_config = ConfigDict(frozen=True)

    strategy:     str   = "exponential"
    base_seconds: float = 1.0
    max_seconds:  float = 300.0

    @field_validator("strategy")
    @classmethod
    def valid_strategy(cls, v: str) -> str:
        if v not in VALID_BACKOFF_STRATEGIES:
            raise ValueError(
                f"BackoffConfig.strategy must be one of {sorted(VALID_BACKOFF_STRATEGIES)}, got '{v}'."
            )
        return v

    @field_validator("base_seconds", "max_seconds")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Backoff seconds must be >= 0, got {v}.")
        return v

    @model_validator(mode="after")
    def cap_not_below_base(self) -> "BackoffConfig":
        if self.max_seconds < self.base_seconds:
            raise ValueError(
                f"max_seconds ({self.max_seconds}) must be >= base_seconds ({self.base_seconds})."
            )
        return self


class SourceConfig(BaseModel):
    """One configured HTTP JSON source polled by ``HttpJsonConnector``."""

    model_config = ConfigDict(frozen=True)

    name: str
    source: SourceKind
    url: str
    default_category: MetricCategory
    module_access: list[str] = []
    poll_interval_ms: Optional[int] = None
    api_key_env: Optional[str] = None
    timeout_seconds: float = 10.0


class ConnectorConfig(BaseModel):
    """Connector polling and health-tracking settings."""

    model_config = ConfigDict(frozen=True)

    poll_interval_ms: int = 5000
    failure_threshold: int = 3
    backoff: BackoffConfig = BackoffConfig()
    sources: list[SourceConfig] = []

    @field_validator("poll_interval_ms", "failure_threshold")
    @classmethod
    def positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"must be > 0, got {v}.")
        return v


class MetricThreshold(BaseModel):
    """Warning / critical levels for one metric.

    ``direction="above"`` alerts when the value rises to a level;
    ``direction="below"`` alerts when it falls to it (e.g. success rates).
    """

    model_config = ConfigDict(frozen=True)

    warning: float
    critical: float
    direction: Literal["above", "below"] = "above"

    @model_validator(mode="after")
    def critical_beyond_warning(self) -> "MetricThreshold":
        if self.direction == "above" and self.critical < self.warning:
            raise ValueError(
                f"critical ({self.critical}) must be >= warning ({self.warning}) "
                "for direction 'above'."
            )
        if self.direction == "below" and self.critical > self.warning:
            raise ValueError(
                f"critical ({self.critical}) must be <= warning ({self.warning}) "
                "for direction 'below'."
            )
        return self


class AlertConfig(BaseModel):
    """Alert lifecycle settings."""

    model_config = ConfigDict(frozen=True)

    resolve_after_cycles: int = 3
    thresholds: dict[str, MetricThreshold] = {
        "cpu_usage":             MetricThreshold(warning=70, critical=85),
        "memory_usage":          MetricThreshold(warning=75, critical=90),
        "response_time":         MetricThreshold(warning=1000, critical=3000),
        "error_rate":            MetricThreshold(warning=5, critical=10),
        "workflow_success_rate": MetricThreshold(warning=90, critical=80, direction="below"),
        "active_users_now":      MetricThreshold(warning=100, critical=50, direction="below"),
        "failed_auth_attempts":  MetricThreshold(warning=10, critical=25),
    }

    @field_validator("resolve_after_cycles")
    @classmethod
    def positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"resolve_after_cycles must be >= 1, got {v}.")
        return v


class ForecastConfig(BaseModel):
    """Forecasting engine parameters."""

    model_config = ConfigDict(frozen=True)

    model_type: ModelType = ModelType.ENSEMBLE
    min_samples: int = 10
    alpha: float = 0.5
    beta: float = 0.3
    gamma: float = 0.1
    season_length: int = 0           # 0 disables the seasonal term
    moving_average_window: int = 10
    error_window: int = 20           # rolling MAE window for ensemble weights
    anomaly_window: int = 30
    anomaly_z_threshold: float = 2.5
    confidence_pct: float = 0.80
    horizon_decay: float = 0.05
    stable_change_pct: float = 0.01
    default_horizon: int = 5
    refit_interval_ms: int = 60_000
    refit_sample_threshold: int = 25

    @field_validator("alpha", "beta", "gamma")
    @classmethod
    def valid_smoothing(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError(f"Smoothing constants must be in (0, 1], got {v}.")
        return v

    @field_validator("min_samples")
    @classmethod
    def valid_min_samples(cls, v: int) -> int:
        if v < 3:
            raise ValueError(f"min_samples must be >= 3, got {v}.")
        return v

    @field_validator("confidence_pct")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        if not 0.0 < v < 1.0:
            raise ValueError(f"confidence_pct must be in (0.0, 1.0), got {v}.")
        return v

    @field_validator("moving_average_window", "error_window", "anomaly_window",
                     "default_horizon", "refit_interval_ms", "refit_sample_threshold")
    @classmethod
    def positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"must be > 0, got {v}.")
        return v


class InsightConfig(BaseModel):
    """Insight derivation and surfacing settings."""

    model_config = ConfigDict(frozen=True)

    min_confidence_floor: float = 60.0
    significance_threshold: float = 0.05
    window_points: int = 120
    reevaluation_interval_ms: int = 15 * 60 * 1000
    material_change_pct: float = 0.05
    min_trend_change_pct: float = 0.02
    min_correlation: float = 0.6
    holdout_fraction: float = 0.3
    audit_capacity: int = 500

    @field_validator("min_confidence_floor")
    @classmethod
    def valid_floor(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"min_confidence_floor must be in [0, 100], got {v}.")
        return v

    @field_validator("significance_threshold", "holdout_fraction")
    @classmethod
    def valid_unit_interval(cls, v: float) -> float:
        if not 0.0 < v < 1.0:
            raise ValueError(f"must be in (0, 1), got {v}.")
        return v


class RecommendationConfig(BaseModel):
    """Priority cut-offs and candidate heuristics for recommendations."""

    model_config = ConfigDict(frozen=True)

    critical_score: float = 60.0
    high_score: float = 40.0
    medium_score: float = 20.0
    revenue_decline_pct: float = 0.03
    growth_pct: float = 0.10
    cost_increase_pct: float = 0.08
    risk_increase_pct: float = 0.05
    operations_degradation_pct: float = 0.10
    volatility_change_pct: float = 0.25
    volatility_confidence: float = 60.0
    volatility_impact: float = 60.0
    max_results: int = 20

    @model_validator(mode="after")
    def descending_cutoffs(self) -> "RecommendationConfig":
        if not self.critical_score >= self.high_score >= self.medium_score >= 0:
            raise ValueError(
                "Priority cut-offs must satisfy critical >= high >= medium >= 0."
            )
        return self


class StoreConfig(BaseModel):
    """Snapshot / insight / alert persistence settings."""

    model_config = ConfigDict(frozen=True)

    backend: Literal["memory", "sqlite"] = "memory"
    db_path: str = "data/db/tactical_hub.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    memory_capacity: int = 100


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = ""
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration - the single source of truth."""

    model_config = ConfigDict(frozen=True)

    hub: HubConfig = HubConfig()
    connectors: ConnectorConfig = ConnectorConfig()
    alerts: AlertConfig = AlertConfig()
    forecast: ForecastConfig = ForecastConfig()
    insights: InsightConfig = InsightConfig()
    recommendations: RecommendationConfig = RecommendationConfig()
    store: StoreConfig = StoreConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        InvalidConfigurationError: If the TOML is malformed or merged values
            fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    raw = _read_toml(config_path)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        raw = _deep_merge(raw, _read_toml(local_config_path))

    raw = _apply_env_overrides(raw)
    return build_config(raw)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise InvalidConfigurationError(f"Malformed TOML in {path}: {exc}") from exc


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply TACTICAL_HUB_* env vars to the raw config dict.

    Supported overrides:
      TACTICAL_HUB_DB_PATH             → raw["store"]["db_path"]
      TACTICAL_HUB_LOG_LEVEL           → raw["logging"]["level"]
      TACTICAL_HUB_UPDATE_INTERVAL_MS  → raw["hub"]["update_interval_ms"]
      TACTICAL_HUB_DEBUG               → raw["debug"]
    """
    if db_path := os.environ.get("TACTICAL_HUB_DB_PATH"):
        raw.setdefault("store", {})["db_path"] = db_path

    if log_level := os.environ.get("TACTICAL_HUB_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if interval := os.environ.get("TACTICAL_HUB_UPDATE_INTERVAL_MS"):
        raw.setdefault("hub", {})["update_interval_ms"] = interval

    if debug := os.environ.get("TACTICAL_HUB_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def build_config(raw: dict[str, Any]) -> AppConfig:
    """Map a raw (TOML-shaped) dict to a validated ``AppConfig``.

    Threshold tables under ``[alerts.thresholds.<metric>]`` are merged over
    the built-in defaults rather than replacing them.

    Raises:
        InvalidConfigurationError: If any section fails validation.
    """
    raw = dict(raw)
    project = raw.pop("project", {})

    try:
        alerts_raw = dict(raw.get("alerts", {}))
        thresholds = {
            name: threshold.model_dump()
            for name, threshold in AlertConfig().thresholds.items()
        }
        thresholds.update(alerts_raw.pop("thresholds", {}))

        return AppConfig(
            hub=HubConfig(**raw.get("hub", {})),
            connectors=ConnectorConfig(**raw.get("connectors", {})),
            alerts=AlertConfig(thresholds=thresholds, **alerts_raw),
            forecast=ForecastConfig(**raw.get("forecast", {})),
            insights=InsightConfig(**raw.get("insights", {})),
            recommendations=RecommendationConfig(**raw.get("recommendations", {})),
            store=StoreConfig(**raw.get("store", {})),
            logging=LoggingConfig(**raw.get("logging", {})),
            debug=raw.get("debug", project.get("debug", False)),
        )
    except (ValidationError, TypeError) as exc:
        raise InvalidConfigurationError(f"Config validation failed: {exc}") from exc
