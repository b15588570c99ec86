"""
Forecasting engine: per-(source, metric) model lifecycle and prediction.

Model lifecycle
---------------
created   : lazily, the first time a series has ``min_samples`` clean samples.
refit     : when ``refit_sample_threshold`` new samples have arrived since
            the last fit, or when ``refit_interval_ms`` has elapsed and at
            least one new sample exists. No new data → no refit, so repeated
            cycles over unchanged data serve identical predictions.
discarded : when the series has produced no data for the retention window.

Every fit computes all constituents (Holt-Winters smoothing, moving-average
baseline, OLS trend line, rolling z-scores); ``model_type`` selects what
``predict`` serves:

    ensemble              : w_s * smoothing(h) + w_b * baseline,
                            weights ∝ 1 / rolling MAE (lower error wins)
    exponential_smoothing : smoothing(h)
    trend                 : OLS line extrapolated h steps
    anomaly               : baseline mean with z-score bands

Confidence (0–100)
------------------
    fit_quality   = 1 / (1 + 10 * served_mae / scale)
    sample_factor = min(1, n / (2 * min_samples))
    base          = 100 * fit_quality * (0.5 + 0.5 * sample_factor)
    confidence_h  = base / (1 + horizon_decay * (h - 1))

Bands
-----
    half_width_h = z(confidence_pct) * sigma * sqrt(h) + floor
    floor        = max(0.1% of |predicted|, 1e-6)

so a perfectly constant series gets a flat forecast with a minimal band.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

import numpy as np

from tactical_hub.config import ForecastConfig
from tactical_hub.errors import InsufficientDataError
from tactical_hub.forecasting.anomaly import anomaly_indices, rolling_zscores
from tactical_hub.forecasting.baseline import (
    inverse_mae_weights,
    moving_average_fit,
    ols_trend_fit,
    rolling_mae,
)
from tactical_hub.forecasting.smoothing import fit_holt_winters
from tactical_hub.models.datapoint import MetricSeries
from tactical_hub.models.forecast import (
    MODEL_INSUFFICIENT_DATA,
    MODEL_READY,
    ForecastModel,
    ForecastPoint,
    Prediction,
)
from tactical_hub.taxonomy.metric_taxonomy import ModelType, SourceKind, Trend
from tactical_hub.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)

SeriesKey = tuple[SourceKind, str]

# z-score for two-sided intervals: P(|Z| <= z) ≈ confidence_pct
_Z_LOOKUP: dict[float, float] = {
    0.50: 0.674,
    0.80: 1.280,
    0.90: 1.645,
    0.95: 1.960,
    0.99: 2.576,
}
_DEFAULT_Z = 1.280

_MIN_BAND_FRAC = 0.001
_MIN_BAND_ABS = 1e-6
_ERROR_SENSITIVITY = 10.0


@dataclass
class RefreshReport:
    """Outcome of one ``ForecastingEngine.refresh`` pass.

    Attributes:
        fitted:  Keys (re)fitted in this pass.
        cold:    Keys still below ``min_samples``.
        failed:  Keys whose fit raised, with the error message.
    """

    fitted: list[SeriesKey] = field(default_factory=list)
    cold:   list[SeriesKey] = field(default_factory=list)
    failed: dict[SeriesKey, str] = field(default_factory=dict)


class ForecastingEngine:
    """Fits, caches and serves statistical forecasts per (source, metric).

    Thread-safe: the hub's aggregation thread refreshes models while
    on-demand ``predict`` calls read them. Fitted models are immutable and
    swapped into the registry under a lock.

    Args:
        config: Forecast section of ``AppConfig``.
        clock: Time source for ``last_fitted``.
        default_step_seconds: Forecast step used when a series has no
            usable sampling interval (single timestamp, duplicates).
    """

    def __init__(
        self,
        config: ForecastConfig,
        clock: Clock = utcnow,
        default_step_seconds: float = 60.0,
    ) -> None:
        self.config = config
        self.clock = clock
        self.default_step_seconds = default_step_seconds
        self._models: dict[SeriesKey, ForecastModel] = {}
        self._predictions: dict[tuple[SeriesKey, int], Prediction] = {}
        self._lock = threading.RLock()

    # ── Fitting ──────────────────────────────────────────────────────────────

    def fit(self, series: MetricSeries, now: Optional[datetime] = None) -> ForecastModel:
        """Fit a model to ``series``.

        Non-finite and out-of-order samples are excluded. Below
        ``min_samples`` clean samples the returned model has
        ``status="insufficient_data"`` and cannot serve predictions.
        """
        cfg = self.config
        now = now or self.clock()
        stamps, values, rejected = series.clean()
        if rejected:
            logger.warning(
                "%s: excluded %d non-finite or out-of-order samples from fit",
                series.label, rejected,
            )

        n = len(values)
        common = dict(
            source=series.source,
            metric=series.metric,
            category=series.category,
            model_type=cfg.model_type,
            last_fitted=now,
            sample_count=n,
            rejected_count=rejected,
            module_access=series.module_access,
        )
        if n < cfg.min_samples:
            return ForecastModel(status=MODEL_INSUFFICIENT_DATA, **common)

        y = np.asarray(values, dtype=float)
        tail = y[-cfg.error_window:]
        scale = max(float(np.abs(tail).mean()), float(tail.std()), 1e-9)

        smooth = fit_holt_winters(y, cfg.alpha, cfg.beta, cfg.gamma, cfg.season_length)
        baseline = moving_average_fit(y, cfg.moving_average_window)
        ols = ols_trend_fit(y)

        smoothing_mae = rolling_mae(smooth.one_step_errors, cfg.error_window)
        baseline_mae = rolling_mae(baseline.one_step_errors, cfg.error_window)
        weights = inverse_mae_weights([smoothing_mae, baseline_mae], scale)

        errors, sigma = self._served_errors(smooth, baseline, ols, weights)
        served_mae = rolling_mae(errors, cfg.error_window)

        zs = rolling_zscores(y, cfg.anomaly_window)
        recent_anomalies = anomaly_indices(zs[-cfg.anomaly_window:], cfg.anomaly_z_threshold)

        model = ForecastModel(
            status=MODEL_READY,
            parameters={
                "alpha": cfg.alpha,
                "beta": cfg.beta,
                "gamma": cfg.gamma,
                "season_length": float(cfg.season_length),
                "moving_average_window": float(cfg.moving_average_window),
                "anomaly_window": float(cfg.anomaly_window),
                "anomaly_z_threshold": cfg.anomaly_z_threshold,
            },
            last_value=float(y[-1]),
            last_timestamp=stamps[-1],
            step_seconds=self._step_seconds(stamps),
            level=smooth.level,
            trend=smooth.trend,
            seasonals=smooth.seasonals,
            season_offset=smooth.season_offset,
            ols_slope=ols.slope,
            ols_intercept=ols.intercept,
            ols_origin=ols.origin,
            baseline_mean=baseline.mean,
            baseline_std=baseline.std,
            smoothing_mae=smoothing_mae,
            baseline_mae=baseline_mae,
            ensemble_mae=served_mae,
            weights=(weights[0], weights[1]),
            residual_scale=sigma,
            scale=scale,
            latest_z=zs[-1],
            anomaly_count=len(recent_anomalies),
            **common,
        )
        logger.debug(
            "Fitted %s | n=%d | mae=%.4g | weights=(%.3f, %.3f)",
            series.label, n, served_mae, weights[0], weights[1],
        )
        return model

    def _served_errors(self, smooth, baseline, ols, weights) -> tuple[list[float], float]:
        """One-step errors and residual sigma of the configured model type."""
        window = self.config.error_window
        model_type = self.config.model_type
        if model_type == ModelType.TREND:
            errors = list(ols.one_step_errors)
            return errors, ols.residual_std
        if model_type == ModelType.EXPONENTIAL_SMOOTHING:
            errors = list(smooth.one_step_errors)
        elif model_type == ModelType.ANOMALY:
            errors = list(baseline.one_step_errors)
            return errors, baseline.std
        elif model_type == ModelType.ENSEMBLE:
            k = min(len(smooth.one_step_errors), len(baseline.one_step_errors))
            es = smooth.one_step_errors[-k:] if k else ()
            eb = baseline.one_step_errors[-k:] if k else ()
            errors = [weights[0] * a + weights[1] * b for a, b in zip(es, eb)]
        else:
            raise ValueError(f"Unsupported model type '{model_type}'.")
        tail = np.asarray(errors[-window:], dtype=float)
        sigma = float(np.sqrt(np.mean(tail ** 2))) if len(tail) else 0.0
        return errors, sigma

    def _step_seconds(self, stamps: list[datetime]) -> float:
        if len(stamps) < 2:
            return self.default_step_seconds
        diffs = np.diff([ts.timestamp() for ts in stamps])
        step = float(np.median(diffs))
        return step if step > 0 else self.default_step_seconds

    # ── Prediction ───────────────────────────────────────────────────────────

    def predict(self, model: ForecastModel, horizon: int) -> Prediction:
        """Forecast ``horizon`` steps ahead from a fitted model.

        Raises:
            InsufficientDataError: If ``model`` is not ready.
            ValueError: If ``horizon`` < 1.
        """
        if not model.is_ready:
            raise InsufficientDataError(
                model.metric, model.sample_count, self.config.min_samples, model.source.value
            )
        if horizon < 1:
            raise ValueError(f"horizon must be >= 1, got {horizon}.")

        cache_key = (model.key, horizon)
        with self._lock:
            cached = self._predictions.get(cache_key)
            if cached is not None and cached.generated_at == model.last_fitted:
                return cached

        prediction = self._build_prediction(model, horizon)
        with self._lock:
            if self._models.get(model.key) is model:
                self._predictions[cache_key] = prediction
        return prediction

    def _build_prediction(self, model: ForecastModel, horizon: int) -> Prediction:
        cfg = self.config
        z = _Z_LOOKUP.get(cfg.confidence_pct, _DEFAULT_Z)
        fit_quality = 1.0 / (1.0 + _ERROR_SENSITIVITY * model.ensemble_mae / model.scale)
        sample_factor = min(1.0, model.sample_count / (2.0 * cfg.min_samples))
        base = 100.0 * fit_quality * (0.5 + 0.5 * sample_factor)

        points: list[ForecastPoint] = []
        assert model.last_timestamp is not None
        for h in range(1, horizon + 1):
            predicted = self._path_value(model, h)
            half = z * model.residual_scale * math.sqrt(h)
            half += max(_MIN_BAND_FRAC * abs(predicted), _MIN_BAND_ABS)
            confidence = base / (1.0 + cfg.horizon_decay * (h - 1))
            points.append(
                ForecastPoint(
                    step=h,
                    timestamp=model.last_timestamp + timedelta(seconds=model.step_seconds * h),
                    predicted_value=round(predicted, 6),
                    lower_bound=round(predicted - half, 6),
                    upper_bound=round(predicted + half, 6),
                    confidence=round(min(max(confidence, 0.0), 100.0), 2),
                )
            )

        change = (points[-1].predicted_value - model.last_value) / model.scale
        if change > cfg.stable_change_pct:
            trend = Trend.UP
        elif change < -cfg.stable_change_pct:
            trend = Trend.DOWN
        else:
            trend = Trend.STABLE

        return Prediction(
            prediction_id=(
                f"pred:{model.source.value}/{model.metric}"
                f"@{model.last_fitted:%Y%m%dT%H%M%S%f}+{horizon}"
            ),
            source=model.source,
            metric=model.metric,
            category=model.category,
            model_type=model.model_type,
            horizon=horizon,
            points=tuple(points),
            confidence_score=round(sum(p.confidence for p in points) / len(points), 2),
            trend=trend,
            change_pct=round(change, 6),
            current_value=model.last_value,
            anomaly_score=round(model.latest_z, 4),
            generated_at=model.last_fitted,
            module_access=model.module_access,
        )

    @staticmethod
    def _path_value(model: ForecastModel, steps: int) -> float:
        smoothing = model.level + steps * model.trend
        if model.seasonals:
            m = len(model.seasonals)
            smoothing += model.seasonals[(model.season_offset + steps - 1) % m]

        if model.model_type == ModelType.ENSEMBLE:
            w_smooth, w_base = model.weights
            return w_smooth * smoothing + w_base * model.baseline_mean
        if model.model_type == ModelType.EXPONENTIAL_SMOOTHING:
            return smoothing
        if model.model_type == ModelType.TREND:
            return model.ols_intercept + model.ols_slope * (model.ols_origin + steps)
        if model.model_type == ModelType.ANOMALY:
            return model.baseline_mean
        raise ValueError(f"Unsupported model type '{model.model_type}'.")

    # ── Registry / lifecycle ─────────────────────────────────────────────────

    def refresh(self, series_list: Iterable[MetricSeries], now: Optional[datetime] = None) -> RefreshReport:
        """Create or refit models whose series warrant it.

        A failure fitting one series is logged and reported; the others
        are unaffected.
        """
        now = now or self.clock()
        report = RefreshReport()
        for series in series_list:
            try:
                current = self.get_model(series.source, series.metric)
                if not self._needs_fit(current, series, now):
                    continue
                model = self.fit(series, now)
                if not model.is_ready:
                    report.cold.append(series.key)
                    continue
                with self._lock:
                    self._models[series.key] = model
                    for cache_key in [k for k in self._predictions if k[0] == series.key]:
                        del self._predictions[cache_key]
                report.fitted.append(series.key)
            except Exception as exc:
                logger.error("Model refresh failed for %s: %s", series.label, exc)
                report.failed[series.key] = str(exc)
        return report

    def _needs_fit(
        self,
        current: Optional[ForecastModel],
        series: MetricSeries,
        now: datetime,
    ) -> bool:
        if current is None:
            return True
        new_samples = sum(
            1 for ts, ooo in zip(series.timestamps, series.out_of_order)
            if not ooo and current.last_timestamp is not None and ts > current.last_timestamp
        )
        if new_samples == 0:
            return False
        if new_samples >= self.config.refit_sample_threshold:
            return True
        elapsed_ms = (now - current.last_fitted).total_seconds() * 1000.0
        return elapsed_ms >= self.config.refit_interval_ms

    def discard_inactive(self, now: datetime, retention: timedelta) -> list[SeriesKey]:
        """Drop models whose last sample is older than ``retention``."""
        dropped: list[SeriesKey] = []
        with self._lock:
            for key, model in list(self._models.items()):
                if model.last_timestamp is not None and now - model.last_timestamp > retention:
                    del self._models[key]
                    dropped.append(key)
            for cache_key in [k for k in self._predictions if k[0] in dropped]:
                del self._predictions[cache_key]
        for source, metric in dropped:
            logger.info("Discarded inactive model %s/%s", source.value, metric)
        return dropped

    def get_model(self, source: SourceKind, metric: str) -> Optional[ForecastModel]:
        with self._lock:
            return self._models.get((SourceKind(source), metric))

    def find_model(self, metric: str, source: Optional[SourceKind] = None) -> Optional[ForecastModel]:
        """Look up a model by metric name; with several sources, the one
        with the most samples wins (ties broken by source name)."""
        if source is not None:
            return self.get_model(source, metric)
        with self._lock:
            candidates = [m for (_, name), m in self._models.items() if name == metric]
        if not candidates:
            return None
        return sorted(candidates, key=lambda m: (-m.sample_count, m.source.value))[0]

    def models(self) -> list[ForecastModel]:
        with self._lock:
            return sorted(self._models.values(), key=lambda m: (m.source.value, m.metric))

    def predictions(self, horizon: Optional[int] = None) -> list[Prediction]:
        """Predictions at ``horizon`` (default from config) for every ready model."""
        horizon = horizon or self.config.default_horizon
        return [self.predict(model, horizon) for model in self.models()]
