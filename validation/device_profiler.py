"""
Calibration transparency.

The device latency offset is an estimate derived from nominal refresh and
touch-sampling rates. This module checks those rates for plausibility, profiles
observed frame intervals, and lists what the estimate does not account for.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

import numpy as np

from config import HIGH_LATENCY_OFFSET_MS, REFRESH_RATE_RANGE_HZ, TOUCH_SAMPLING_RANGE_HZ
from schemas.session import StimulusModality
from timing.latency import device_latency_offset

logger = logging.getLogger(__name__)

NO_EXTERNAL_HARDWARE_CALIBRATION = "no_external_hardware_calibration"
CROSS_MODAL_TIMING_NOT_MEASURED = "cross_modal_timing_differences_not_measured"
SYSTEM_LATENCY_NOT_MEASURED = "system_latency_not_precisely_measured"
DISPLAY_REFRESH_ESTIMATED = "display_refresh_rate_estimation_only"
AUDIO_BUFFER_DELAY_UNKNOWN = "audio_buffer_delay_unknown"
TACTILE_MOTOR_LATENCY_UNKNOWN = "tactile_motor_startup_latency_unknown"

LIMITATION_DESCRIPTIONS: dict[str, str] = {
    NO_EXTERNAL_HARDWARE_CALIBRATION: "No external hardware used to measure actual stimulus-to-perception latency",
    CROSS_MODAL_TIMING_NOT_MEASURED: "Cannot measure timing differences between stimulus modalities",
    SYSTEM_LATENCY_NOT_MEASURED: "System-level delays are estimated, not precisely measured",
    DISPLAY_REFRESH_ESTIMATED: "Display refresh rate is estimated, not measured",
    AUDIO_BUFFER_DELAY_UNKNOWN: "Audio buffer and driver delays are not measured",
    TACTILE_MOTOR_LATENCY_UNKNOWN: "Vibration motor startup time is not characterized",
}

_MODALITY_LIMITATIONS: dict[StimulusModality, tuple[str, ...]] = {
    StimulusModality.VISUAL: (
        NO_EXTERNAL_HARDWARE_CALIBRATION,
        DISPLAY_REFRESH_ESTIMATED,
        SYSTEM_LATENCY_NOT_MEASURED,
    ),
    StimulusModality.AUDITORY: (
        NO_EXTERNAL_HARDWARE_CALIBRATION,
        AUDIO_BUFFER_DELAY_UNKNOWN,
        SYSTEM_LATENCY_NOT_MEASURED,
    ),
    StimulusModality.TACTILE: (
        NO_EXTERNAL_HARDWARE_CALIBRATION,
        TACTILE_MOTOR_LATENCY_UNKNOWN,
        SYSTEM_LATENCY_NOT_MEASURED,
    ),
}

# Typical afferent latency per modality; shown to the user, never subtracted.
NEURAL_LATENCY_RANGES: dict[StimulusModality, str] = {
    StimulusModality.VISUAL: "20-40ms",
    StimulusModality.AUDITORY: "8-10ms",
    StimulusModality.TACTILE: "15-25ms",
}


def calibration_limitations(modality: StimulusModality | str) -> list[str]:
    return list(_MODALITY_LIMITATIONS[StimulusModality(modality)])


def describe_limitations(codes: Iterable[str]) -> list[str]:
    return [LIMITATION_DESCRIPTIONS.get(code, code) for code in codes]


def check_calibration(refresh_rate_hz: float, touch_sampling_hz: float) -> dict[str, Any]:
    """Plausibility warnings for nominal device rates; ``is_valid`` when there are none."""
    warnings: list[str] = []
    lo, hi = REFRESH_RATE_RANGE_HZ
    if refresh_rate_hz < lo or refresh_rate_hz > hi:
        warnings.append(
            f"Unusual refresh rate: {refresh_rate_hz:g}Hz. Common values are 60, 90, 120, or 144Hz."
        )
    lo, hi = TOUCH_SAMPLING_RANGE_HZ
    if touch_sampling_hz < lo or touch_sampling_hz > hi:
        warnings.append(f"Unusual touch sampling: {touch_sampling_hz:g}Hz. Common values are 120-360Hz.")
    if touch_sampling_hz < refresh_rate_hz:
        warnings.append("Touch sampling rate is lower than display refresh rate. This may affect accuracy.")

    offset = device_latency_offset(refresh_rate_hz, touch_sampling_hz)
    if offset > HIGH_LATENCY_OFFSET_MS:
        warnings.append(
            f"High device latency offset: {offset:.2f}ms. "
            "Consider using a device with higher refresh and touch sampling rates."
        )

    for message in warnings:
        logger.warning("Calibration: %s", message)
    return {
        "is_valid": not warnings,
        "device_latency_offset_ms": offset,
        "warnings": warnings,
    }


class FrameIntervalProfiler:
    """Collects frame timestamps and summarises their spacing."""

    def __init__(self) -> None:
        self.timestamps: list[float] = []

    def record(self, timestamp: float) -> None:
        self.timestamps.append(float(timestamp))

    def reset(self) -> None:
        self.timestamps = []

    def analyze(self) -> dict[str, float]:
        if len(self.timestamps) < 2:
            return {"average_interval_ms": 0.0, "estimated_frame_rate_hz": 0.0, "jitter_ms": 0.0}
        intervals = np.diff(np.asarray(self.timestamps, dtype=float))
        average = float(intervals.mean())
        return {
            "average_interval_ms": average,
            "estimated_frame_rate_hz": 1000.0 / average if average > 0 else 0.0,
            "jitter_ms": float(intervals.std()),
        }


def cross_modal_warning(modalities: Iterable[StimulusModality | str]) -> str | None:
    """Warning text when results from different stimulus modalities are compared."""
    distinct = sorted({StimulusModality(m) for m in modalities}, key=lambda m: m.value)
    if len(distinct) <= 1:
        return None
    details = "; ".join(f"{m.value} ~{NEURAL_LATENCY_RANGES[m]}" for m in distinct)
    return (
        "Cross-modal comparison: reaction times from different stimulus modalities are not "
        "directly comparable. Neural transduction and device delays differ per modality "
        f"({details}) and are not corrected for. "
        + LIMITATION_DESCRIPTIONS[CROSS_MODAL_TIMING_NOT_MEASURED]
        + "."
    )
