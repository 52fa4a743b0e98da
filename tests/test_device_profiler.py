"""Tests for calibration checks, frame profiling and limitation reporting."""
from __future__ import annotations

import logging

import pytest

from validation.device_profiler import (
    AUDIO_BUFFER_DELAY_UNKNOWN,
    DISPLAY_REFRESH_ESTIMATED,
    LIMITATION_DESCRIPTIONS,
    NO_EXTERNAL_HARDWARE_CALIBRATION,
    TACTILE_MOTOR_LATENCY_UNKNOWN,
    FrameIntervalProfiler,
    calibration_limitations,
    check_calibration,
    cross_modal_warning,
    describe_limitations,
)


class TestCheckCalibration:
    def test_typical_device_is_valid(self) -> None:
        result = check_calibration(60.0, 120.0)
        assert result["is_valid"] is True
        assert result["warnings"] == []
        assert result["device_latency_offset_ms"] == pytest.approx(12.5)

    def test_unusual_refresh_rate(self) -> None:
        result = check_calibration(15.0, 120.0)
        assert result["is_valid"] is False
        assert any("Unusual refresh rate: 15Hz" in w for w in result["warnings"])

    def test_touch_slower_than_display(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="validation.device_profiler"):
            result = check_calibration(144.0, 90.0)
        assert any("lower than display refresh" in w for w in result["warnings"])
        assert "lower than display refresh" in caplog.text

    def test_high_offset(self) -> None:
        result = check_calibration(30.0, 60.0)
        # 16.67 + 8.33 stays below the 50 ms threshold
        assert not any("High device latency" in w for w in result["warnings"])
        slow = check_calibration(10.0, 20.0)
        assert any("High device latency offset: 75.00ms" in w for w in slow["warnings"])


class TestFrameIntervalProfiler:
    def test_steady_60hz(self) -> None:
        profiler = FrameIntervalProfiler()
        for i in range(61):
            profiler.record(i * 1000.0 / 60.0)
        stats = profiler.analyze()
        assert stats["average_interval_ms"] == pytest.approx(1000.0 / 60.0)
        assert stats["estimated_frame_rate_hz"] == pytest.approx(60.0)
        assert stats["jitter_ms"] == pytest.approx(0.0, abs=1e-9)

    def test_jitter(self) -> None:
        profiler = FrameIntervalProfiler()
        for t in (0.0, 15.0, 35.0, 50.0, 70.0):
            profiler.record(t)
        stats = profiler.analyze()
        assert stats["average_interval_ms"] == pytest.approx(17.5)
        assert stats["jitter_ms"] == pytest.approx(2.5)

    def test_too_few_frames(self) -> None:
        profiler = FrameIntervalProfiler()
        profiler.record(0.0)
        assert profiler.analyze()["estimated_frame_rate_hz"] == 0.0
        profiler.record(16.0)
        profiler.reset()
        assert profiler.timestamps == []


class TestLimitations:
    @pytest.mark.parametrize(
        ("modality", "specific"),
        [
            ("visual", DISPLAY_REFRESH_ESTIMATED),
            ("auditory", AUDIO_BUFFER_DELAY_UNKNOWN),
            ("tactile", TACTILE_MOTOR_LATENCY_UNKNOWN),
        ],
    )
    def test_per_modality(self, modality: str, specific: str) -> None:
        codes = calibration_limitations(modality)
        assert NO_EXTERNAL_HARDWARE_CALIBRATION in codes
        assert specific in codes

    def test_descriptions(self) -> None:
        described = describe_limitations([AUDIO_BUFFER_DELAY_UNKNOWN, "custom_code"])
        assert described == [LIMITATION_DESCRIPTIONS[AUDIO_BUFFER_DELAY_UNKNOWN], "custom_code"]


def test_cross_modal_warning() -> None:
    assert cross_modal_warning(["visual", "visual"]) is None
    message = cross_modal_warning(["visual", "auditory"])
    assert message is not None
    assert "auditory ~8-10ms" in message
    assert "visual ~20-40ms" in message
