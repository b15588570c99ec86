"""
Insight generation over recent history and predictions.

Three pattern families are examined per cycle:

trend (per metric with a prediction)
    OLS slope over the recent window; significant when the slope t-test
    p-value is below ``significance_threshold`` and the projected change
    is at least ``min_trend_change_pct``.
    impact = (500 * |projected change| + 100 * |window change|) * weight

anomaly (per metric)
    Rolling z-score breaches in the last ``anomaly_window`` samples against
    the chance rate at the configured z threshold.
    impact = (8 * max|z| + 100 * breach rate) * weight

correlation (per pair of metrics in the same category)
    Pearson r of first differences after resampling both recent windows
    onto the sparser series' timestamps where they overlap.
    impact = 80 * |r| * weight

Confidence is shared across families::

    confidence   = 100 * size_factor * holdout_factor
    size_factor  = n / (n + 10)

where ``holdout_factor`` re-derives the pattern on the first
``1 - holdout_fraction`` of the window and scores how well it holds on the
held-out tail. Insights below ``min_confidence_floor`` are returned with
``surfaced=False``.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations
from typing import Iterable, Optional

import numpy as np

from tactical_hub.config import ForecastConfig, InsightConfig
from tactical_hub.forecasting.anomaly import anomaly_indices, rolling_zscores
from tactical_hub.insights.statistics import (
    align_series,
    correlation_test,
    exceedance_test,
    slope_test,
)
from tactical_hub.models.datapoint import MetricSeries
from tactical_hub.models.forecast import Prediction
from tactical_hub.models.insight import Insight
from tactical_hub.models.recommendation import RecommendationContext
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, Trend
from tactical_hub.taxonomy.recommendation_taxonomy import InsightKind, RiskTolerance
from tactical_hub.utils.time_utils import Clock, ms, utcnow

logger = logging.getLogger(__name__)

_CATEGORY_WEIGHT: dict[MetricCategory, float] = {
    MetricCategory.BUSINESS:       1.00,
    MetricCategory.CUSTOMER:       0.90,
    MetricCategory.SECURITY:       0.90,
    MetricCategory.SYSTEM_HEALTH:  0.80,
    MetricCategory.WORKFLOW:       0.75,
    MetricCategory.INFRASTRUCTURE: 0.70,
}

_SIZE_PRIOR = 10.0
_MIN_CORRELATION_POINTS = 8
_CONSERVATIVE_ANOMALY_BOOST = 1.2


@dataclass
class InsightRun:
    """All insights of one generation pass plus per-metric failures."""

    insights: list[Insight] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def surfaced(self) -> list[Insight]:
        return [i for i in self.insights if i.surfaced]


@dataclass(frozen=True)
class _CleanSeries:
    series: MetricSeries
    times: np.ndarray
    values: np.ndarray
    scale: float

    @property
    def label(self) -> str:
        return self.series.label


class InsightGenerator:
    """Derives ranked insights from history and predictions.

    Args:
        config: Insight section of ``AppConfig``.
        forecast_config: Forecast section (min samples, anomaly window).
        clock: Time source for ``discovered_at``.
    """

    def __init__(
        self,
        config: InsightConfig,
        forecast_config: ForecastConfig,
        clock: Clock = utcnow,
    ) -> None:
        self.config = config
        self.forecast_config = forecast_config
        self.clock = clock

    def generate(
        self,
        predictions: Iterable[Prediction],
        history: Iterable[MetricSeries],
        context: Optional[RecommendationContext] = None,
        now: Optional[datetime] = None,
    ) -> list[Insight]:
        """Ranked insights, surfaced and suppressed alike."""
        return self.run(predictions, history, context, now).insights

    def run(
        self,
        predictions: Iterable[Prediction],
        history: Iterable[MetricSeries],
        context: Optional[RecommendationContext] = None,
        now: Optional[datetime] = None,
    ) -> InsightRun:
        now = now or self.clock()
        result = InsightRun()
        by_key = {p.source.value + "/" + p.metric: p for p in predictions}
        cleaned = self._clean(history)

        for item in cleaned:
            for derive in (self._trend_insight, self._anomaly_insight):
                try:
                    insight = derive(item, by_key.get(item.label), context, now)
                except Exception as exc:
                    logger.error("Insight derivation failed for %s: %s", item.label, exc)
                    result.failed[item.label] = str(exc)
                    continue
                if insight is not None:
                    result.insights.append(insight)

        by_category: dict[MetricCategory, list[_CleanSeries]] = {}
        for item in cleaned:
            by_category.setdefault(item.series.category, []).append(item)
        for items in by_category.values():
            for a, b in combinations(sorted(items, key=lambda i: i.label), 2):
                try:
                    insight = self._correlation_insight(a, b, by_key, now)
                except Exception as exc:
                    pair = f"{a.label}~{b.label}"
                    logger.error("Correlation derivation failed for %s: %s", pair, exc)
                    result.failed[pair] = str(exc)
                    continue
                if insight is not None:
                    result.insights.append(insight)

        result.insights = rank_insights(result.insights)
        logger.info(
            "Insights | derived=%d | surfaced=%d | failed=%d",
            len(result.insights), len(result.surfaced), len(result.failed),
        )
        return result

    # ── Preparation ──────────────────────────────────────────────────────────

    def _clean(self, history: Iterable[MetricSeries]) -> list[_CleanSeries]:
        out: list[_CleanSeries] = []
        for series in history:
            stamps, values, _ = series.tail(self.config.window_points).clean()
            if len(values) < self.forecast_config.min_samples:
                continue
            y = np.asarray(values, dtype=float)
            scale = max(float(np.abs(y).mean()), float(y.std()), 1e-9)
            times = np.array([ts.timestamp() for ts in stamps], dtype=float)
            out.append(_CleanSeries(series=series, times=times, values=y, scale=scale))
        return sorted(out, key=lambda i: i.label)

    def _split(self, n: int) -> int:
        return int(n * (1.0 - self.config.holdout_fraction))

    # ── Pattern families ─────────────────────────────────────────────────────

    def _trend_insight(
        self,
        item: _CleanSeries,
        prediction: Optional[Prediction],
        context: Optional[RecommendationContext],
        now: datetime,
    ) -> Optional[Insight]:
        if prediction is None or prediction.trend == Trend.STABLE:
            return None
        if abs(prediction.change_pct) < self.config.min_trend_change_pct:
            return None

        y = item.values
        n = len(y)
        test = slope_test(y, item.scale)
        if test.p_value >= self.config.significance_threshold:
            return None

        k = self._split(n)
        if k >= 3 and n - k >= 1:
            train = slope_test(y[:k], item.scale)
            held = np.array([train.fitted(i) for i in range(k, n)])
            rel_err = float(np.abs(y[k:] - held).mean()) / item.scale
            holdout_factor = 1.0 / (1.0 + 10.0 * rel_err)
        else:
            holdout_factor = 0.5

        window_change = (test.fitted(n - 1) - test.fitted(0)) / item.scale
        weight = _CATEGORY_WEIGHT[item.series.category]
        impact = (500.0 * abs(prediction.change_pct) + 100.0 * abs(window_change)) * weight
        word = "rising" if prediction.trend == Trend.UP else "falling"
        metric = item.series.metric

        return self._build(
            kind=InsightKind.TREND,
            series=[item.series],
            confidence=100.0 * (n / (n + _SIZE_PRIOR)) * holdout_factor,
            impact=impact,
            significance=test.p_value,
            direction=prediction.trend,
            title=f"{metric} {word} steadily",
            description=(
                f"{metric} is {word}: {window_change:+.1%} across the last {n} samples, "
                f"projected {prediction.change_pct:+.1%} over the next {prediction.horizon} steps."
            ),
            hints=(f"Review drivers behind the {word} {metric} trend",),
            basis=(prediction.prediction_id,),
            now=now,
        )

    def _anomaly_insight(
        self,
        item: _CleanSeries,
        prediction: Optional[Prediction],
        context: Optional[RecommendationContext],
        now: datetime,
    ) -> Optional[Insight]:
        window = self.forecast_config.anomaly_window
        threshold = self.forecast_config.anomaly_z_threshold
        zs = rolling_zscores(item.values, window)
        recent = zs[-window:]
        hits = anomaly_indices(recent, threshold)
        if not hits:
            return None

        expected, p_value = exceedance_test(len(hits), len(recent), threshold)
        if p_value >= self.config.significance_threshold:
            return None

        n = len(item.values)
        holdout_factor = max(0.0, min(1.0, 1.0 - expected / len(hits)))
        max_z = max(abs(recent[i]) for i in hits)
        weight = _CATEGORY_WEIGHT[item.series.category]
        impact = (8.0 * max_z + 100.0 * len(hits) / len(recent)) * weight
        if context is not None and context.risk_tolerance == RiskTolerance.CONSERVATIVE:
            impact *= _CONSERVATIVE_ANOMALY_BOOST
        last_z = recent[hits[-1]]
        metric = item.series.metric

        return self._build(
            kind=InsightKind.ANOMALY,
            series=[item.series],
            confidence=100.0 * (n / (n + _SIZE_PRIOR)) * holdout_factor,
            impact=impact,
            significance=p_value,
            direction=Trend.UP if last_z > 0 else Trend.DOWN,
            title=f"Unusual {metric} readings",
            description=(
                f"{len(hits)} of the last {len(recent)} {metric} samples deviate by "
                f"{threshold:g}σ or more (max {max_z:.1f}σ; ~{expected:.1f} expected by chance)."
            ),
            hints=(f"Investigate the source of {metric} spikes",),
            basis=(prediction.prediction_id,) if prediction is not None else (),
            now=now,
        )

    def _correlation_insight(
        self,
        a: _CleanSeries,
        b: _CleanSeries,
        predictions: dict[str, Prediction],
        now: datetime,
    ) -> Optional[Insight]:
        ya, yb = align_series(a.times, a.values, b.times, b.values)
        n = len(ya)
        if n < _MIN_CORRELATION_POINTS:
            return None
        da = np.diff(ya)
        db = np.diff(yb)
        tested = correlation_test(da, db)
        if tested is None:
            return None
        r, p_value = tested
        if abs(r) < self.config.min_correlation or p_value >= self.config.significance_threshold:
            return None

        k = self._split(len(da))
        train = correlation_test(da[:k], db[:k]) if k >= 3 else None
        held = correlation_test(da[k:], db[k:]) if len(da) - k >= 3 else None
        if train is None or held is None:
            holdout_factor = 0.5
        elif math.copysign(1.0, train[0]) != math.copysign(1.0, held[0]):
            holdout_factor = 0.0
        else:
            holdout_factor = max(0.0, 1.0 - abs(train[0] - held[0]))

        category = a.series.category
        sign = "positively" if r > 0 else "inversely"
        basis = tuple(
            predictions[label].prediction_id
            for label in (a.label, b.label)
            if label in predictions
        )
        return self._build(
            kind=InsightKind.CORRELATION,
            series=[a.series, b.series],
            confidence=100.0 * (n / (n + _SIZE_PRIOR)) * holdout_factor,
            impact=80.0 * abs(r) * _CATEGORY_WEIGHT[category],
            significance=p_value,
            direction=Trend.UP if r > 0 else Trend.DOWN,
            title=f"{a.series.metric} and {b.series.metric} move {sign}",
            description=(
                f"Step changes in {a.series.metric} and {b.series.metric} are "
                f"{sign} correlated (r={r:+.2f} over {n} samples)."
            ),
            hints=(f"Treat {a.series.metric} as a leading signal for {b.series.metric}",),
            basis=basis,
            now=now,
        )

    # ── Assembly ─────────────────────────────────────────────────────────────

    def _build(
        self,
        kind: InsightKind,
        series: list[MetricSeries],
        confidence: float,
        impact: float,
        significance: float,
        direction: Optional[Trend],
        title: str,
        description: str,
        hints: tuple[str, ...],
        basis: tuple[str, ...],
        now: datetime,
    ) -> Insight:
        labels = tuple(s.label for s in series)
        access: frozenset[str] = frozenset()
        for s in series:
            access |= s.module_access
        confidence = round(_clamp(confidence, 0.0, 100.0), 2)
        return Insight(
            insight_id=insight_id(kind, labels),
            kind=kind,
            category=series[0].category,
            source_metrics=labels,
            confidence_score=confidence,
            impact_score=round(_clamp(impact, 0.0, 100.0), 2),
            significance=round(significance, 6),
            direction=direction,
            title=title,
            description=description,
            recommendations=hints,
            discovered_at=now,
            next_evaluation=now + ms(self.config.reevaluation_interval_ms),
            surfaced=confidence >= self.config.min_confidence_floor,
            basis=basis,
            module_access=access,
        )


def insight_id(kind: InsightKind, labels: tuple[str, ...]) -> str:
    """Stable id for a pattern: same kind over the same metrics → same id."""
    digest = hashlib.sha1(f"{kind.value}|{'|'.join(sorted(labels))}".encode()).hexdigest()
    return f"ins-{digest[:12]}"


def rank_insights(insights: Iterable[Insight]) -> list[Insight]:
    """Order by impact desc, confidence desc, most recent, then id."""
    return sorted(
        insights,
        key=lambda i: (
            -i.impact_score,
            -i.confidence_score,
            -i.discovered_at.timestamp(),
            i.insight_id,
        ),
    )


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
