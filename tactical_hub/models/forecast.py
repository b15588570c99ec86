"""
Forecast models: fitted model state and the predictions it serves.

``ForecastModel`` is the engine's per-(source, metric) fitted state. It is
frozen and replaced wholesale on every refit, so a reader holding a
reference always sees a consistent model.

``Prediction`` is a multi-step forecast. Its validators enforce the two
output invariants: every point satisfies ``lower <= predicted <= upper`` and
per-point confidence never increases with horizon distance.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, ModelType, SourceKind, Trend

MODEL_READY = "ready"
MODEL_INSUFFICIENT_DATA = "insufficient_data"


class ForecastModel(BaseModel):
    """Fitted state for one (source, metric) series.

    Attributes:
        model_type: Model family served by ``predict``.
        status: ``"ready"`` or ``"insufficient_data"``.
        parameters: Smoothing constants and window sizes used for the fit.
        last_fitted: When the fit ran.
        sample_count: Clean samples used (non-finite / out-of-order excluded).
        rejected_count: Samples excluded from the fit.
        last_value / last_timestamp: Most recent clean observation.
        step_seconds: Median sampling interval, used to timestamp forecasts.
        level / trend / seasonals: Holt-Winters state after the last sample.
        season_offset: Index of the next seasonal slot.
        ols_slope / ols_intercept: Least-squares line, x = sample index.
        baseline_mean / baseline_std: Moving-average baseline over the window.
        smoothing_mae / baseline_mae / ensemble_mae: Rolling one-step MAE.
        weights: (smoothing, baseline) ensemble weights, summing to 1.
        residual_scale: Std-dev of the served model's one-step errors.
        scale: Magnitude used to normalise errors and changes.
        latest_z: Rolling z-score of the last sample.
        anomaly_count: Anomalies within the anomaly window.
    """

    model_config = ConfigDict(frozen=True)

    source: SourceKind
    metric: str
    category: MetricCategory
    model_type: ModelType
    status: str = MODEL_READY
    parameters: dict[str, float] = {}
    last_fitted: datetime
    sample_count: int
    rejected_count: int = 0
    module_access: frozenset[str] = frozenset()

    last_value: float = 0.0
    last_timestamp: Optional[datetime] = None
    step_seconds: float = 0.0

    level: float = 0.0
    trend: float = 0.0
    seasonals: tuple[float, ...] = ()
    season_offset: int = 0
    ols_slope: float = 0.0
    ols_intercept: float = 0.0
    ols_origin: int = 0
    baseline_mean: float = 0.0
    baseline_std: float = 0.0

    smoothing_mae: float = 0.0
    baseline_mae: float = 0.0
    ensemble_mae: float = 0.0
    weights: tuple[float, float] = (0.5, 0.5)
    residual_scale: float = 0.0
    scale: float = 1.0

    latest_z: float = 0.0
    anomaly_count: int = 0

    @property
    def is_ready(self) -> bool:
        return self.status == MODEL_READY

    @property
    def key(self) -> tuple[SourceKind, str]:
        return (self.source, self.metric)


class ForecastPoint(BaseModel):
    """One step of a multi-step forecast."""

    model_config = ConfigDict(frozen=True)

    step: int
    timestamp: datetime
    predicted_value: float
    lower_bound: float
    upper_bound: float
    confidence: float

    @model_validator(mode="after")
    def validate_band(self) -> "ForecastPoint":
        if not self.lower_bound <= self.predicted_value <= self.upper_bound:
            raise ValueError(
                f"Band violated at step {self.step}: "
                f"{self.lower_bound} <= {self.predicted_value} <= {self.upper_bound} is false."
            )
        if not 0.0 <= self.confidence <= 100.0:
            raise ValueError(f"confidence must be in [0, 100], got {self.confidence}.")
        return self


class Prediction(BaseModel):
    """Multi-step forecast for one (source, metric).

    Attributes:
        prediction_id: Stable id derived from the series and fit time.
        horizon: Number of forecast steps.
        points: One ``ForecastPoint`` per step, nearest first.
        confidence_score: Mean per-point confidence, 0–100.
        trend: Direction of the projected change over the horizon.
        change_pct: (last predicted − current) / scale.
        current_value: Last observed clean value.
        anomaly_score: Rolling z-score of the last observation.
        generated_at: Fit time of the model that produced the forecast.
    """

    model_config = ConfigDict(frozen=True)

    prediction_id: str
    source: SourceKind
    metric: str
    category: MetricCategory
    model_type: ModelType
    horizon: int
    points: tuple[ForecastPoint, ...]
    confidence_score: float
    trend: Trend
    change_pct: float
    current_value: float
    anomaly_score: float = 0.0
    generated_at: datetime
    module_access: frozenset[str] = frozenset()

    @field_validator("confidence_score")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"confidence_score must be in [0, 100], got {v}.")
        return v

    @model_validator(mode="after")
    def validate_points(self) -> "Prediction":
        if self.horizon < 1:
            raise ValueError(f"horizon must be >= 1, got {self.horizon}.")
        if len(self.points) != self.horizon:
            raise ValueError(
                f"Expected {self.horizon} forecast points, got {len(self.points)}."
            )
        for earlier, later in zip(self.points, self.points[1:]):
            if later.confidence > earlier.confidence:
                raise ValueError(
                    "Per-point confidence must not increase with horizon distance."
                )
        return self

    @property
    def final_value(self) -> float:
        return self.points[-1].predicted_value
