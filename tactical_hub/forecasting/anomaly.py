"""
Rolling z-score anomaly detection.

For each index t with at least ``min_periods`` preceding values, the score
compares y_t with the mean and population std of the preceding ``window``
values::

    z_t = (y_t - mean(y[t-window:t])) / std(y[t-window:t])

A flat reference window (std == 0) scores 0 when y_t equals the mean and
``±Z_CAP`` otherwise. Scores are clipped to ``±Z_CAP`` so that a single
spike on a flat series cannot produce an infinite value.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

Z_CAP = 10.0
_FLAT_STD = 1e-12


def rolling_zscores(
    values: Sequence[float],
    window: int,
    min_periods: int = 5,
) -> list[float]:
    """Return one z-score per value (0.0 during warm-up)."""
    y = np.asarray(values, dtype=float)
    scores = [0.0] * len(y)
    for t in range(len(y)):
        ref = y[max(0, t - window):t]
        if len(ref) < min_periods:
            continue
        mean = ref.mean()
        std = ref.std()
        dev = y[t] - mean
        if std < _FLAT_STD:
            z = 0.0 if abs(dev) < _FLAT_STD * max(1.0, abs(mean)) else float(np.sign(dev)) * Z_CAP
        else:
            z = float(dev / std)
        scores[t] = float(np.clip(z, -Z_CAP, Z_CAP))
    return scores


def anomaly_indices(scores: Sequence[float], threshold: float) -> list[int]:
    """Indices whose |z| meets or exceeds ``threshold``."""
    return [i for i, z in enumerate(scores) if abs(z) >= threshold]
