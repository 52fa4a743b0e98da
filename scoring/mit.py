"""
Movement Initiation Time
========================
MIT estimates pure motor latency from a rapid-tapping task: the mean interval
between consecutive taps. Subtracting it from an RT gives the Stimulus
Detection Time (SDT = RT - MIT).
"""
from __future__ import annotations

from typing import Any, Sequence

import numpy as np
import pandas as pd

from config import MIT_MAX_INTERVAL_MS, MIT_MIN_INTERVAL_MS


def tap_intervals(tap_timestamps: Sequence[float]) -> np.ndarray:
    """Consecutive tap intervals inside the plausible (50, 2000) ms window."""
    taps = np.asarray(tap_timestamps, dtype=float)
    if taps.size < 2:
        return np.empty(0)
    intervals = np.diff(taps)
    keep = (intervals > MIT_MIN_INTERVAL_MS) & (intervals < MIT_MAX_INTERVAL_MS)
    return intervals[keep]


def compute_mit(tap_timestamps: Sequence[float]) -> dict[str, Any]:
    """Mean MIT, its SD and a consistency score ``max(0, 1 - SD/mean)``.

    Fewer than 3 taps or 2 usable intervals give all zeros.
    """
    empty = {"average_mit_ms": 0.0, "sd_ms": 0.0, "reliability": 0.0, "n_intervals": 0}
    if len(tap_timestamps) < 3:
        return empty
    intervals = tap_intervals(tap_timestamps)
    if intervals.size < 2:
        return {**empty, "n_intervals": int(intervals.size)}
    mean = float(intervals.mean())
    sd = float(intervals.std())
    return {
        "average_mit_ms": mean,
        "sd_ms": sd,
        "reliability": max(0.0, 1.0 - sd / mean),
        "n_intervals": int(intervals.size),
    }


def stimulus_detection_time(rt: float | None, mit: float) -> float | None:
    if rt is None:
        return None
    return float(rt - mit)


def add_stimulus_detection_time(frame: pd.DataFrame, mit: float, rt_column: str = "rt_corrected") -> pd.DataFrame:
    """Copy of ``frame`` with a ``stimulus_detection_time`` column (null where RT is null)."""
    out = frame.copy()
    out["stimulus_detection_time"] = pd.to_numeric(out[rt_column], errors="coerce") - float(mit)
    return out
