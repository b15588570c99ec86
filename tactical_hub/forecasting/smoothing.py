"""
Holt-Winters exponential smoothing (additive trend, optional additive season).

State update for each observation y_t with seasonal term s (0 when the
seasonal component is disabled)::

    forecast_t = level + trend + s
    level'     = alpha * (y_t - s) + (1 - alpha) * (level + trend)
    trend'     = beta  * (level' - level) + (1 - beta) * trend
    s'         = gamma * (y_t - level') + (1 - gamma) * s

Initialisation:
  - non-seasonal: level = y_0, trend = y_1 - y_0;
  - seasonal (needs two full seasons): level = mean of season 1,
    trend = (mean of season 2 - mean of season 1) / m, s_i = y_i - level.

``one_step_errors`` are y_t - forecast_t for every updated observation;
the engine turns them into a rolling MAE for ensemble weighting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class SmoothingFit:
    level: float
    trend: float
    seasonals: tuple[float, ...] = ()
    season_offset: int = 0
    one_step_errors: tuple[float, ...] = field(default=(), repr=False)

    @property
    def is_seasonal(self) -> bool:
        return bool(self.seasonals)

    def forecast(self, steps: int) -> float:
        """Point forecast ``steps`` ahead of the last fitted observation."""
        value = self.level + steps * self.trend
        if self.seasonals:
            m = len(self.seasonals)
            value += self.seasonals[(self.season_offset + steps - 1) % m]
        return value


def fit_holt_winters(
    values: Sequence[float],
    alpha: float,
    beta: float,
    gamma: float = 0.1,
    season_length: int = 0,
) -> SmoothingFit:
    """Fit Holt-Winters smoothing to ``values`` (oldest first).

    The seasonal component is used only when ``season_length >= 2`` and at
    least two full seasons are available; otherwise plain Holt smoothing.

    Raises:
        ValueError: If fewer than two values are given.
    """
    y = np.asarray(values, dtype=float)
    n = len(y)
    if n < 2:
        raise ValueError(f"Holt-Winters needs at least 2 values, got {n}.")

    m = season_length
    seasonal = m >= 2 and n >= 2 * m
    if seasonal:
        first, second = y[:m], y[m:2 * m]
        level = float(first.mean())
        trend = float((second.mean() - first.mean()) / m)
        seasonals = [float(v - level) for v in first]
        start = m
    else:
        level = float(y[0])
        trend = float(y[1] - y[0])
        seasonals = []
        start = 1

    errors: list[float] = []
    for t in range(start, n):
        s = seasonals[t % m] if seasonal else 0.0
        errors.append(float(y[t] - (level + trend + s)))
        prev_level = level
        level = alpha * (y[t] - s) + (1.0 - alpha) * (level + trend)
        trend = beta * (level - prev_level) + (1.0 - beta) * trend
        if seasonal:
            seasonals[t % m] = gamma * (y[t] - level) + (1.0 - gamma) * s

    return SmoothingFit(
        level=float(level),
        trend=float(trend),
        seasonals=tuple(seasonals),
        season_offset=n % m if seasonal else 0,
        one_step_errors=tuple(errors),
    )
