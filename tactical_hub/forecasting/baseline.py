"""
Baseline models and error metrics used alongside the smoothing model.

Baselines
---------
moving_average_fit : mean of the last ``window`` values; flat forecast.
                     One-step errors come from an expanding-then-sliding
                     window so the first error is available at t = 1.
ols_trend_fit      : least-squares line through (index, value) pairs.

Metrics
-------
rolling_mae        : mean |error| over the most recent ``window`` errors.
inverse_mae_weights: normalised 1/MAE weights; the constituent with the
                     lower recent error receives the larger weight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class MovingAverageFit:
    mean: float
    std: float
    one_step_errors: tuple[float, ...] = field(default=(), repr=False)


@dataclass(frozen=True)
class OlsTrendFit:
    slope: float
    intercept: float
    origin: int                      # index of the last fitted value
    residual_std: float
    one_step_errors: tuple[float, ...] = field(default=(), repr=False)

    def forecast(self, steps: int) -> float:
        return self.intercept + self.slope * (self.origin + steps)


def moving_average_fit(values: Sequence[float], window: int) -> MovingAverageFit:
    y = np.asarray(values, dtype=float)
    if len(y) == 0:
        raise ValueError("moving_average_fit needs at least one value.")
    errors = [
        float(y[t] - y[max(0, t - window):t].mean())
        for t in range(1, len(y))
    ]
    tail = y[-window:]
    return MovingAverageFit(
        mean=float(tail.mean()),
        std=float(tail.std()),
        one_step_errors=tuple(errors),
    )


def ols_trend_fit(values: Sequence[float]) -> OlsTrendFit:
    y = np.asarray(values, dtype=float)
    n = len(y)
    if n < 2:
        raise ValueError(f"ols_trend_fit needs at least 2 values, got {n}.")
    x = np.arange(n, dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    residuals = y - (intercept + slope * x)
    return OlsTrendFit(
        slope=float(slope),
        intercept=float(intercept),
        origin=n - 1,
        residual_std=float(residuals.std()),
        one_step_errors=tuple(float(r) for r in residuals[1:]),
    )


def rolling_mae(errors: Sequence[float], window: int) -> float:
    """Mean absolute error of the most recent ``window`` errors (0.0 if none)."""
    if not errors:
        return 0.0
    tail = np.abs(np.asarray(errors[-window:], dtype=float))
    return float(tail.mean())


def inverse_mae_weights(maes: Sequence[float], scale: float) -> tuple[float, ...]:
    """Weights proportional to 1 / MAE, normalised to sum to 1.

    A small epsilon relative to ``scale`` keeps a perfect (zero-error)
    constituent finite; equal MAEs give equal weights.
    """
    eps = 1e-9 * max(abs(scale), 1.0)
    inv = np.array([1.0 / (max(m, 0.0) + eps) for m in maes])
    weights = inv / inv.sum()
    return tuple(float(w) for w in weights)
