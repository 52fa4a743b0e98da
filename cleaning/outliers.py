"""
Outlier cleaning
================
Classifies a batch of reaction times as valid or excluded in three stages:

1. absolute bounds (``min_rt``/``max_rt``)
2. optional removal of the single fastest and slowest remaining trial
3. one distributional method: SD rule, MAD rule, percentage trim or IQR fence

Each stage only sees trials that survived the previous ones. The pipeline is a
pure function of the batch and the options, so re-running it reproduces the
same verdicts.
"""
from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass
from typing import Callable, Sequence, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator
from scipy.stats import median_abs_deviation

from config import (
    IQR_MULTIPLIER,
    MAD_THRESHOLD,
    MAX_RT_GO_NOGO_MS,
    MAX_RT_MS,
    MIN_MAX_TRIM_MIN_TRIALS,
    MIN_RT_MS,
    REMOVE_MIN_MAX,
    SD_MULTIPLIER,
    STATISTICAL_MIN_TRIALS,
    TRIM_PERCENTAGE,
)
from errors import InsufficientDataWarning
from schemas.session import OutlierMethod, Paradigm, TrialRecord

logger = logging.getLogger(__name__)

STAGE_BOUNDS = "bounds"
STAGE_MIN_MAX = "min_max"
STAGE_STATISTICAL = "statistical"

RTInput = Union[TrialRecord, float, int, None]


class OutlierOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    min_rt: float = Field(default=MIN_RT_MS, ge=0)
    max_rt: float = Field(default=MAX_RT_MS, gt=0)
    remove_min_max: bool = REMOVE_MIN_MAX
    method: OutlierMethod = OutlierMethod.MAD
    std_deviations: float = Field(default=SD_MULTIPLIER, gt=0)
    mad_threshold: float = Field(default=MAD_THRESHOLD, gt=0)
    trim_percentage: float = Field(default=TRIM_PERCENTAGE, ge=0, lt=50)
    iqr_multiplier: float = Field(default=IQR_MULTIPLIER, ge=0)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "OutlierOptions":
        if self.min_rt >= self.max_rt:
            raise ValueError(f"min_rt ({self.min_rt}) must be below max_rt ({self.max_rt})")
        return self

    @classmethod
    def for_paradigm(
        cls,
        paradigm: Paradigm | str,
        method: OutlierMethod | str = OutlierMethod.MAD,
        **overrides,
    ) -> "OutlierOptions":
        """Defaults for a paradigm: go/no-go uses the tighter upper bound."""
        max_rt = MAX_RT_GO_NOGO_MS if Paradigm(paradigm) == Paradigm.GO_NO_GO else MAX_RT_MS
        values = {"max_rt": max_rt, "method": OutlierMethod(method)}
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class TrialVerdict:
    trial_id: str | None
    rt: float | None
    excluded: bool = False
    reason: str | None = None
    stage: str | None = None


# ── Reason strings ──────────────────────────────────────────────


def _num(value: float) -> str:
    return f"{value:g}"


def below_minimum_reason(min_rt: float) -> str:
    return f"RT below minimum ({_num(min_rt)}ms)"


def above_maximum_reason(max_rt: float) -> str:
    return f"RT above maximum ({_num(max_rt)}ms)"


MINIMUM_REMOVED_REASON = "Minimum value removed"
MAXIMUM_REMOVED_REASON = "Maximum value removed"


def method_reason(options: OutlierOptions) -> str:
    if options.method == OutlierMethod.STANDARD_DEVIATION:
        return f"Outlier ({_num(options.std_deviations)}σ rule)"
    if options.method == OutlierMethod.MAD:
        return f"Outlier (MAD method, {_num(options.mad_threshold)}×MAD)"
    if options.method == OutlierMethod.PERCENTAGE_TRIM:
        return f"Outlier ({_num(options.trim_percentage)}% trimming)"
    return f"Outlier (IQR method, {_num(options.iqr_multiplier)}×IQR)"


# ── Statistical methods (boolean mask of excluded values) ───────


def standard_deviation_outliers(values: np.ndarray, k: float = SD_MULTIPLIER) -> np.ndarray:
    """|rt - mean| > k * SD, with the population SD."""
    values = np.asarray(values, dtype=float)
    mean = float(np.mean(values))
    sd = float(np.std(values))
    return np.abs(values - mean) > k * sd


def mad_outliers(values: np.ndarray, k: float = MAD_THRESHOLD) -> np.ndarray:
    """|rt - median| > k * MAD (unscaled). A zero MAD excludes everything off the median."""
    values = np.asarray(values, dtype=float)
    median = float(np.median(values))
    mad = float(median_abs_deviation(values, scale=1.0))
    return np.abs(values - median) > k * mad


def percentage_trim_outliers(values: np.ndarray, percentage: float = TRIM_PERCENTAGE) -> np.ndarray:
    """Values at or beyond the cut points ``sorted[k]`` and ``sorted[n - 1 - k]``.

    ``k = floor(n * p / 100)``, so the extreme ranks are always trimmed, even
    when ``k`` is 0. Values tied with a cut point are trimmed with it.
    """
    values = np.asarray(values, dtype=float)
    n = len(values)
    if n == 0:
        return np.zeros(0, dtype=bool)
    n_trim = int(math.floor(n * percentage / 100.0))
    ordered = np.sort(values)
    lower = ordered[n_trim]
    upper = ordered[n - 1 - n_trim]
    return (values <= lower) | (values >= upper)


def rank_quartiles(values: np.ndarray) -> tuple[float, float]:
    """Q1/Q3 by simple rank index into the sorted sample, not interpolated."""
    ordered = np.sort(np.asarray(values, dtype=float))
    n = len(ordered)
    return float(ordered[int(math.floor(n * 0.25))]), float(ordered[int(math.floor(n * 0.75))])


def iqr_outliers(values: np.ndarray, multiplier: float = IQR_MULTIPLIER) -> np.ndarray:
    values = np.asarray(values, dtype=float)
    q1, q3 = rank_quartiles(values)
    iqr = q3 - q1
    return (values < q1 - multiplier * iqr) | (values > q3 + multiplier * iqr)


_METHODS: dict[OutlierMethod, Callable[[np.ndarray, OutlierOptions], np.ndarray]] = {
    OutlierMethod.STANDARD_DEVIATION: lambda v, o: standard_deviation_outliers(v, o.std_deviations),
    OutlierMethod.MAD: lambda v, o: mad_outliers(v, o.mad_threshold),
    OutlierMethod.PERCENTAGE_TRIM: lambda v, o: percentage_trim_outliers(v, o.trim_percentage),
    OutlierMethod.IQR: lambda v, o: iqr_outliers(v, o.iqr_multiplier),
}


# ── Pipeline ────────────────────────────────────────────────────


def _unpack(item: RTInput) -> tuple[str | None, float | None]:
    if isinstance(item, TrialRecord):
        return item.trial_id, item.rt
    if item is None:
        return None, None
    return None, float(item)


def clean_reaction_times(
    batch: Sequence[RTInput],
    options: OutlierOptions | None = None,
) -> list[TrialVerdict]:
    """Run the cleaning pipeline over one session's test batch.

    ``batch`` holds trial records or bare RTs. A record contributes its
    corrected RT, or its raw RT when no corrected value exists. Entries without
    an RT (withheld no-go responses) are not observations and come back
    unflagged. The result is index-aligned with ``batch``.
    """
    options = options or OutlierOptions()
    unpacked = [_unpack(item) for item in batch]
    ids = [trial_id for trial_id, _ in unpacked]
    rts = [rt for _, rt in unpacked]
    reasons: list[str | None] = [None] * len(rts)
    stages: list[str | None] = [None] * len(rts)

    remaining: list[int] = []
    for i, rt in enumerate(rts):
        if rt is None:
            continue
        if rt < options.min_rt:
            reasons[i], stages[i] = below_minimum_reason(options.min_rt), STAGE_BOUNDS
        elif rt > options.max_rt:
            reasons[i], stages[i] = above_maximum_reason(options.max_rt), STAGE_BOUNDS
        else:
            remaining.append(i)

    if options.remove_min_max and len(remaining) >= MIN_MAX_TRIM_MIN_TRIALS:
        values = np.array([rts[i] for i in remaining], dtype=float)
        i_min = remaining[int(np.argmin(values))]
        # last occurrence of the maximum, so ties still remove two distinct trials
        i_max = remaining[len(values) - 1 - int(np.argmax(values[::-1]))]
        reasons[i_min], stages[i_min] = MINIMUM_REMOVED_REASON, STAGE_MIN_MAX
        reasons[i_max], stages[i_max] = MAXIMUM_REMOVED_REASON, STAGE_MIN_MAX
        remaining = [i for i in remaining if i not in (i_min, i_max)]

    if len(remaining) < STATISTICAL_MIN_TRIALS:
        message = (
            f"only {len(remaining)} trials left before the {options.method.value} stage "
            f"(need {STATISTICAL_MIN_TRIALS}); remaining trials left unflagged"
        )
        logger.warning(message)
        warnings.warn(message, InsufficientDataWarning, stacklevel=2)
    else:
        values = np.array([rts[i] for i in remaining], dtype=float)
        mask = _METHODS[options.method](values, options)
        reason = method_reason(options)
        for i, flagged in zip(remaining, mask):
            if flagged:
                reasons[i], stages[i] = reason, STAGE_STATISTICAL

    verdicts = [
        TrialVerdict(trial_id=ids[i], rt=rts[i], excluded=reasons[i] is not None, reason=reasons[i], stage=stages[i])
        for i in range(len(rts))
    ]
    logger.debug(
        "Cleaning (%s): %d observations, %d excluded",
        options.method.value,
        sum(rt is not None for rt in rts),
        sum(v.excluded for v in verdicts),
    )
    return verdicts


def exclusion_counts(verdicts: Sequence[TrialVerdict]) -> dict[str, int]:
    """Excluded trials per stage, plus the total."""
    counts = {STAGE_BOUNDS: 0, STAGE_MIN_MAX: 0, STAGE_STATISTICAL: 0}
    for verdict in verdicts:
        if verdict.excluded and verdict.stage is not None:
            counts[verdict.stage] += 1
    counts["total"] = sum(counts.values())
    return counts
