"""Tests for the reaction-time cleaning pipeline."""
from __future__ import annotations

import math

import numpy as np
import pytest

from cleaning.outliers import (
    MAXIMUM_REMOVED_REASON,
    MINIMUM_REMOVED_REASON,
    OutlierOptions,
    clean_reaction_times,
    exclusion_counts,
    iqr_outliers,
    mad_outliers,
    percentage_trim_outliers,
    rank_quartiles,
    standard_deviation_outliers,
)
from errors import InsufficientDataWarning
from schemas.session import OutlierMethod, Paradigm, TrialRecord


def _trial(number: int, rt: float | None, raw: float | None = None) -> TrialRecord:
    if rt is None:
        return TrialRecord(session_id="s", trial_number=number, stimulus_detail="nogo", cue_timestamp=0.0)
    raw = rt + 12.5 if raw is None else raw
    return TrialRecord(
        session_id="s",
        trial_number=number,
        stimulus_detail="go",
        cue_timestamp=0.0,
        response_timestamp=raw,
        rt_raw=raw,
        rt_corrected=rt,
    )


def _excluded(verdicts) -> list[int]:
    return [i for i, v in enumerate(verdicts) if v.excluded]


class TestOptions:
    def test_defaults(self) -> None:
        options = OutlierOptions()
        assert options.min_rt == 100
        assert options.max_rt == 1500
        assert options.remove_min_max is True
        assert options.method == OutlierMethod.MAD

    def test_go_nogo_upper_bound(self) -> None:
        assert OutlierOptions.for_paradigm(Paradigm.GO_NO_GO).max_rt == 1000
        assert OutlierOptions.for_paradigm(Paradigm.CRT_4, "iqr").max_rt == 1500
        assert OutlierOptions.for_paradigm("SRT", "iqr").method == OutlierMethod.IQR

    def test_bounds_must_be_ordered(self) -> None:
        with pytest.raises(ValueError):
            OutlierOptions(min_rt=500, max_rt=400)


# ═══════════════════════════════════════════════════════════════
# Statistical methods
# ═══════════════════════════════════════════════════════════════


def test_mad_example_flags_only_800() -> None:
    options = OutlierOptions(remove_min_max=False, method=OutlierMethod.MAD)
    verdicts = clean_reaction_times([195, 200, 205, 210, 800], options)
    assert _excluded(verdicts) == [4]
    assert verdicts[4].reason == "Outlier (MAD method, 3×MAD)"


def test_sd_rule_uses_population_sd() -> None:
    d = math.sqrt(12000.0)
    values = np.array([300.0] * 13 + [300.0 + d, 300.0 - d])
    assert values.mean() == pytest.approx(300.0)
    assert values.std() == pytest.approx(40.0)
    mask = standard_deviation_outliers(values, 2.5)
    assert list(np.flatnonzero(mask)) == [13, 14]


def test_sd_rule_keeps_values_inside_band() -> None:
    values = np.array([260.0, 340.0, 260.0, 340.0, 300.0])
    assert not standard_deviation_outliers(values, 2.5).any()


def test_zero_mad_excludes_everything_off_median() -> None:
    mask = mad_outliers(np.array([300.0, 300.0, 300.0, 301.0]), 3.0)
    assert list(mask) == [False, False, False, True]


def test_percentage_trim_by_rank() -> None:
    values = np.arange(100, 140, dtype=float)[::-1]
    mask = percentage_trim_outliers(values, 2.5)
    # floor(40 * 2.5 / 100) = 1: cut points are the 2nd lowest and 2nd highest
    assert mask.sum() == 4
    assert set(values[mask]) == {100.0, 101.0, 138.0, 139.0}


def test_percentage_trim_extremes_when_floor_is_zero() -> None:
    mask = percentage_trim_outliers(np.array([200.0, 100.0, 300.0]), 2.5)
    assert list(mask) == [False, True, True]


def test_percentage_trim_ties_follow_cut_point() -> None:
    mask = percentage_trim_outliers(np.array([100.0, 100.0, 200.0, 250.0, 300.0]), 2.5)
    assert list(mask) == [True, True, False, False, True]


def test_percentage_trim_active_in_default_session() -> None:
    # 40 in-bounds trials: min/max removes 2, 38 reach the trimming stage
    rts = [300.0 + 5 * i for i in range(40)]
    verdicts = clean_reaction_times(rts, OutlierOptions(method=OutlierMethod.PERCENTAGE_TRIM))
    counts = exclusion_counts(verdicts)
    assert counts["min_max"] == 2
    assert counts["statistical"] == 2
    assert not verdicts[2].excluded
    assert verdicts[1].reason == "Outlier (2.5% trimming)"
    assert verdicts[38].reason == "Outlier (2.5% trimming)"


def test_rank_quartiles_not_interpolated() -> None:
    q1, q3 = rank_quartiles(np.array([10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0]))
    assert (q1, q3) == (30.0, 70.0)


def test_iqr_fence() -> None:
    values = np.array([300.0, 310.0, 320.0, 330.0, 340.0, 350.0, 360.0, 700.0])
    mask = iqr_outliers(values, 1.5)
    assert list(np.flatnonzero(mask)) == [7]


# ═══════════════════════════════════════════════════════════════
# Pipeline stages
# ═══════════════════════════════════════════════════════════════


class TestPipeline:
    def test_below_minimum(self) -> None:
        verdicts = clean_reaction_times([95, 300, 310, 320], OutlierOptions(remove_min_max=False))
        assert verdicts[0].excluded
        assert "below minimum" in verdicts[0].reason
        assert verdicts[0].reason == "RT below minimum (100ms)"

    def test_above_maximum_for_go_nogo(self) -> None:
        options = OutlierOptions.for_paradigm(Paradigm.GO_NO_GO)
        verdicts = clean_reaction_times([1200, 300, 310, 320, 330, 340], options)
        assert verdicts[0].reason == "RT above maximum (1000ms)"

    def test_min_max_trim_needs_five_trials(self) -> None:
        options = OutlierOptions(method=OutlierMethod.IQR)
        four = clean_reaction_times([300, 310, 320, 330], options)
        assert not any(v.stage == "min_max" for v in four)
        five = clean_reaction_times([300, 310, 320, 330, 340], options)
        assert five[0].reason == MINIMUM_REMOVED_REASON
        assert five[4].reason == MAXIMUM_REMOVED_REASON

    def test_min_max_ties_remove_two_trials(self) -> None:
        options = OutlierOptions(method=OutlierMethod.IQR)
        verdicts = clean_reaction_times([300, 300, 300, 300, 300, 300], options)
        assert exclusion_counts(verdicts)["min_max"] == 2

    def test_insufficient_data_stops_pipeline(self) -> None:
        with pytest.warns(InsufficientDataWarning):
            verdicts = clean_reaction_times([300, 5000], OutlierOptions())
        assert verdicts[0].excluded is False
        assert verdicts[1].excluded is True

    def test_no_response_trials_pass_through(self) -> None:
        trials = [_trial(1, None)] + [_trial(i, 300.0 + i) for i in range(2, 10)]
        verdicts = clean_reaction_times(trials, OutlierOptions())
        assert verdicts[0].excluded is False
        assert verdicts[0].rt is None
        assert verdicts[0].trial_id == trials[0].trial_id

    def test_uses_corrected_rt(self) -> None:
        trials = [_trial(1, 95.0, raw=107.5)] + [_trial(i, 300.0 + i) for i in range(2, 6)]
        verdicts = clean_reaction_times(trials, OutlierOptions(remove_min_max=False))
        assert verdicts[0].reason == "RT below minimum (100ms)"

    def test_zero_corrected_rt_is_kept(self) -> None:
        assert _trial(1, 0.0, raw=5.0).rt == 0.0

    @pytest.mark.parametrize("method", list(OutlierMethod))
    def test_idempotent(self, method: OutlierMethod) -> None:
        rng = np.random.default_rng(5)
        rts = list(rng.normal(350, 60, size=40)) + [90.0, 1600.0, 1100.0]
        options = OutlierOptions(method=method)
        first = clean_reaction_times(rts, options)
        second = clean_reaction_times(rts, options)
        assert first == second

    def test_index_aligned(self) -> None:
        rts = [300, None, 310, 95, 320, 330, 2000]
        verdicts = clean_reaction_times(rts, OutlierOptions(remove_min_max=False))
        assert len(verdicts) == len(rts)
        assert [v.rt for v in verdicts] == [300, None, 310, 95, 320, 330, 2000]

    @pytest.mark.parametrize(
        ("method", "reason"),
        [
            (OutlierMethod.STANDARD_DEVIATION, "Outlier (2.5σ rule)"),
            (OutlierMethod.PERCENTAGE_TRIM, "Outlier (2.5% trimming)"),
            (OutlierMethod.IQR, "Outlier (IQR method, 1.5×IQR)"),
        ],
    )
    def test_reason_strings(self, method: OutlierMethod, reason: str) -> None:
        rts = [300.0 + i for i in range(40)] + [900.0]
        verdicts = clean_reaction_times(rts, OutlierOptions(method=method, remove_min_max=False))
        assert verdicts[-1].excluded
        assert verdicts[-1].reason == reason
