from __future__ import annotations

from typing import Any, Sequence

import numpy as np
import pandas as pd

from schemas.session import Paradigm, TrialRecord

TRIAL_COLUMNS = [
    "trial_id",
    "session_id",
    "trial_number",
    "stimulus_modality",
    "stimulus_detail",
    "cue_timestamp",
    "response_timestamp",
    "rt_raw",
    "rt_corrected",
    "is_practice",
    "accuracy",
    "excluded_flag",
    "exclusion_reason",
]


def summarize_session(trials: Sequence[TrialRecord], paradigm: Paradigm | str | None = None) -> dict[str, Any]:
    """Result summary over the test trials of one session.

    Mean and SD (population) use valid trials with an RT. Accuracy covers valid
    trials with a correctness value and is ``None`` when the paradigm has none.
    """
    test_trials = [t for t in trials if not t.is_practice]
    valid = [t for t in test_trials if not t.excluded_flag]
    rts = np.array([t.rt for t in valid if t.rt is not None], dtype=float)
    scored = [t.accuracy for t in valid if t.accuracy is not None]

    accuracy_pct: float | None = None
    if scored and (paradigm is None or Paradigm(paradigm) != Paradigm.SRT):
        accuracy_pct = float(sum(scored) / len(scored) * 100.0)

    return {
        "paradigm": Paradigm(paradigm).value if paradigm is not None else None,
        "n_test_trials": len(test_trials),
        "n_valid": int(rts.size),
        "n_outliers": sum(1 for t in test_trials if t.excluded_flag),
        "n_no_response": sum(1 for t in valid if t.rt is None),
        "mean_rt": float(rts.mean()) if rts.size else 0.0,
        "sd_rt": float(rts.std()) if rts.size else 0.0,
        "median_rt": float(np.median(rts)) if rts.size else 0.0,
        "accuracy_pct": accuracy_pct,
    }


def trials_to_frame(trials: Sequence[TrialRecord]) -> pd.DataFrame:
    """One row per trial, in trial order."""
    rows = [t.model_dump(mode="json") for t in trials]
    df = pd.DataFrame(rows, columns=TRIAL_COLUMNS)
    if not df.empty:
        df = df.sort_values("trial_number").reset_index(drop=True)
    return df
