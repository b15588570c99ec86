"""
Significance surrogates for insight derivation.

All p-values use the normal approximation ``p = erfc(|t| / sqrt(2))``
(two-sided) or ``0.5 * erfc(z / sqrt(2))`` (one-sided). They are
*surrogates*: good enough to rank and gate patterns, not to publish.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

_EPS = 1e-12


def two_sided_p(t: float) -> float:
    if math.isinf(t):
        return 0.0
    return math.erfc(abs(t) / math.sqrt(2.0))


def one_sided_p(z: float) -> float:
    if math.isinf(z):
        return 0.0 if z > 0 else 1.0
    return 0.5 * math.erfc(z / math.sqrt(2.0))


@dataclass(frozen=True)
class SlopeTest:
    slope: float
    intercept: float
    t_stat: float
    p_value: float

    def fitted(self, index: float) -> float:
        return self.intercept + self.slope * index


def slope_test(values: Sequence[float], scale: float) -> SlopeTest:
    """OLS slope of ``values`` against their index, with a t-test surrogate.

    A slope below 1e-12 of ``scale`` is treated as exactly flat.
    """
    y = np.asarray(values, dtype=float)
    n = len(y)
    if n < 3:
        raise ValueError(f"slope_test needs at least 3 values, got {n}.")
    x = np.arange(n, dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    if abs(slope) < _EPS * max(abs(scale), 1.0):
        return SlopeTest(0.0, float(intercept), 0.0, 1.0)
    resid = y - (intercept + slope * x)
    s_err = math.sqrt(float(np.sum(resid ** 2)) / (n - 2))
    se = s_err / math.sqrt(float(np.sum((x - x.mean()) ** 2)))
    t = float(slope / se) if se > _EPS * max(abs(slope), 1.0) else math.copysign(math.inf, slope)
    return SlopeTest(float(slope), float(intercept), t, two_sided_p(t))


def correlation_test(a: Sequence[float], b: Sequence[float]) -> tuple[float, float] | None:
    """Pearson r of two equal-length samples and its p surrogate.

    Returns ``None`` when either sample is constant (r undefined).
    """
    xa = np.asarray(a, dtype=float)
    xb = np.asarray(b, dtype=float)
    m = len(xa)
    if m != len(xb) or m < 3:
        raise ValueError("correlation_test needs two samples of equal length >= 3.")
    if xa.std() < _EPS or xb.std() < _EPS:
        return None
    r = float(np.clip(np.corrcoef(xa, xb)[0, 1], -1.0, 1.0))
    if 1.0 - r * r < _EPS:
        return r, 0.0
    t = r * math.sqrt((m - 2) / (1.0 - r * r))
    return r, two_sided_p(t)


def exceedance_test(breaches: int, trials: int, threshold_z: float) -> tuple[float, float]:
    """Compare observed z-threshold breaches with the chance rate.

    Returns ``(expected_breaches, p_value)`` where the p-value is the
    one-sided normal approximation of seeing ``breaches`` or more.
    """
    q = math.erfc(threshold_z / math.sqrt(2.0))
    expected = trials * q
    var = trials * q * (1.0 - q)
    if var <= 0:
        return expected, 1.0
    z = (breaches - expected) / math.sqrt(var)
    return expected, one_sided_p(z)


def align_series(
    times_a: Sequence[float],
    values_a: Sequence[float],
    times_b: Sequence[float],
    values_b: Sequence[float],
) -> tuple[np.ndarray, np.ndarray]:
    """Sample two series on one time grid.

    The grid is the sparser series' own timestamps inside the span both
    series cover; the denser one is linearly interpolated onto it. Times
    are epoch seconds in non-decreasing order. Returns two empty arrays
    when the spans do not overlap.
    """
    ta = np.asarray(times_a, dtype=float)
    tb = np.asarray(times_b, dtype=float)
    ya = np.asarray(values_a, dtype=float)
    yb = np.asarray(values_b, dtype=float)
    empty = np.empty(0, dtype=float)
    if len(ta) < 2 or len(tb) < 2:
        return empty, empty
    lo, hi = max(ta[0], tb[0]), min(ta[-1], tb[-1])
    if hi <= lo:
        return empty, empty

    b_is_grid = float(np.median(np.diff(tb))) > float(np.median(np.diff(ta)))
    grid_t, grid_y, other_t, other_y = (tb, yb, ta, ya) if b_is_grid else (ta, ya, tb, yb)
    inside = (grid_t >= lo) & (grid_t <= hi)
    own = grid_y[inside]
    sampled = np.interp(grid_t[inside], other_t, other_y)
    return (sampled, own) if b_is_grid else (own, sampled)
