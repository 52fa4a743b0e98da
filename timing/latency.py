"""
Reaction-time arithmetic
========================
Both timestamps of a trial come from the same monotonic clock. The raw RT is
their difference; the corrected RT subtracts the estimated device latency
offset and is clamped at zero.
"""
from __future__ import annotations

import logging
import time
import warnings

import numpy as np

from errors import TimingAnomaly

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    """High-resolution monotonic timestamp in milliseconds."""
    return time.perf_counter() * 1000.0


def sample_isi(min_ms: float, max_ms: float, rng: np.random.Generator | None = None) -> float:
    """Uniform inter-stimulus interval in ``[min_ms, max_ms)``."""
    if min_ms > max_ms:
        raise ValueError(f"ISI minimum {min_ms} exceeds maximum {max_ms}")
    rng = rng if rng is not None else np.random.default_rng()
    return float(min_ms + rng.random() * (max_ms - min_ms))


def device_latency_offset(refresh_rate_hz: float, touch_sampling_hz: float) -> float:
    """Half a display frame plus half a touch-sampling period, in ms."""
    if refresh_rate_hz <= 0 or touch_sampling_hz <= 0:
        raise ValueError("refresh and touch sampling rates must be positive")
    return (1000.0 / refresh_rate_hz) / 2.0 + (1000.0 / touch_sampling_hz) / 2.0


def compute_raw_rt(cue_timestamp: float, response_timestamp: float | None) -> float | None:
    if response_timestamp is None:
        return None
    return float(response_timestamp - cue_timestamp)


def apply_latency_correction(rt_raw: float | None, device_latency_offset_ms: float) -> float | None:
    """Subtract the device offset; negative results clamp to zero."""
    if rt_raw is None:
        return None
    corrected = rt_raw - device_latency_offset_ms
    if corrected < 0:
        logger.warning(
            "Corrected RT negative (raw %.2f ms, offset %.2f ms); clamped to 0",
            rt_raw,
            device_latency_offset_ms,
        )
        warnings.warn(
            f"corrected RT {corrected:.2f} ms clamped to 0",
            TimingAnomaly,
            stacklevel=2,
        )
        return 0.0
    return float(corrected)
