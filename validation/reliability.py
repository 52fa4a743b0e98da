"""
Test-retest reliability module.

Computes ICC, CV%, SEM and Bland-Altman agreement between two parallel RT
samples (for example two sessions of the same subject and paradigm). These are
read-only views over trial data; nothing here modifies a trial record.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

import numpy as np
import pandas as pd

from config import LIMITS_OF_AGREEMENT_Z, RESULTS_DIR
from schemas.session import TrialRecord

logger = logging.getLogger(__name__)


def _paired(session1: Sequence[float], session2: Sequence[float]) -> tuple[np.ndarray, np.ndarray]:
    s1 = np.asarray(session1, dtype=float)
    s2 = np.asarray(session2, dtype=float)
    if s1.shape != s2.shape or s1.ndim != 1:
        raise ValueError(f"sessions must be 1-D and of equal length (got {s1.shape} and {s2.shape})")
    return s1, s2


def calculate_icc(session1: Sequence[float], session2: Sequence[float]) -> float:
    """ICC(3,1), two-way mixed consistency form, clamped to [0, 1].

    Returns 0.0 when the sample has no variance at all.
    """
    s1, s2 = _paired(session1, session2)
    n = len(s1)
    if n < 2:
        raise ValueError("ICC needs at least 2 paired observations")

    grand_mean = float(np.concatenate([s1, s2]).mean())
    subject_means = (s1 + s2) / 2.0
    between_var = float(np.sum((subject_means - grand_mean) ** 2) / (n - 1))
    within_var = float(np.sum((s1 - subject_means) ** 2 + (s2 - subject_means) ** 2) / n)

    denominator = between_var + within_var / 2.0
    if denominator == 0:
        logger.debug("ICC undefined for constant samples; reporting 0")
        return 0.0
    icc = (between_var - within_var / 2.0) / denominator
    return float(np.clip(icc, 0.0, 1.0))


def calculate_cv(values: Sequence[float]) -> float:
    """Coefficient of variation in percent (population SD); 0 for an empty or zero-mean sample."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return 0.0
    mean = float(arr.mean())
    if mean == 0:
        return 0.0
    return float(arr.std() / mean * 100.0)


def calculate_sem(values: Sequence[float], icc: float) -> float:
    """Standard error of measurement: SD * sqrt(1 - ICC)."""
    if not 0.0 <= icc <= 1.0:
        raise ValueError(f"ICC must lie in [0, 1], got {icc}")
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return 0.0
    return float(arr.std() * np.sqrt(1.0 - icc))


def reliability_metrics(session1: Sequence[float], session2: Sequence[float]) -> dict[str, float]:
    """ICC on the pairs; CV, SEM, mean and SD on the pooled sample."""
    s1, s2 = _paired(session1, session2)
    pooled = np.concatenate([s1, s2])
    icc = calculate_icc(s1, s2)
    return {
        "icc": icc,
        "cv": calculate_cv(pooled),
        "sem": calculate_sem(pooled, icc),
        "mean_rt": float(pooled.mean()),
        "sd_rt": float(pooled.std()),
        "n_pairs": int(len(s1)),
    }


def bland_altman_points(session1: Sequence[float], session2: Sequence[float]) -> pd.DataFrame:
    """One row per pair: difference (s1 - s2), mean, and both observations."""
    s1, s2 = _paired(session1, session2)
    return pd.DataFrame({
        "difference": s1 - s2,
        "mean": (s1 + s2) / 2.0,
        "session1_rt": s1,
        "session2_rt": s2,
    })


def bland_altman_stats(
    session1: Sequence[float],
    session2: Sequence[float],
    z: float = LIMITS_OF_AGREEMENT_Z,
) -> dict[str, float]:
    """Mean difference, limits of agreement and the points falling outside them."""
    points = bland_altman_points(session1, session2)
    if points.empty:
        raise ValueError("Bland-Altman analysis needs at least one pair")
    diffs = points["difference"].to_numpy()
    mean_diff = float(diffs.mean())
    sd_diff = float(diffs.std())
    lower = mean_diff - z * sd_diff
    upper = mean_diff + z * sd_diff
    outliers = int(np.sum((diffs < lower) | (diffs > upper)))
    return {
        "mean_difference": mean_diff,
        "sd_difference": sd_diff,
        "lower_limit": lower,
        "upper_limit": upper,
        "outliers": outliers,
        "total_points": int(len(diffs)),
        "outlier_percentage": outliers / len(diffs) * 100.0,
    }


def paired_session_rts(
    trials_a: Sequence[TrialRecord],
    trials_b: Sequence[TrialRecord],
) -> tuple[list[float], list[float]]:
    """Valid test-trial RTs of two sessions in trial order, truncated to the shorter one."""

    def _valid(trials: Sequence[TrialRecord]) -> list[float]:
        ordered = sorted(trials, key=lambda t: t.trial_number)
        return [t.rt for t in ordered if not t.is_practice and not t.excluded_flag and t.rt is not None]

    rts_a, rts_b = _valid(trials_a), _valid(trials_b)
    n = min(len(rts_a), len(rts_b))
    if len(rts_a) != len(rts_b):
        logger.info("Pairing %d of %d/%d valid trials", n, len(rts_a), len(rts_b))
    return rts_a[:n], rts_b[:n]


def interpret_icc(icc: float) -> str:
    if icc >= 0.9:
        return "excellent"
    if icc >= 0.75:
        return "good"
    if icc >= 0.5:
        return "moderate"
    return "poor"


def build_reliability_report(
    session1: Sequence[float],
    session2: Sequence[float],
    labels: tuple[str, str] = ("session_1", "session_2"),
) -> dict[str, Any]:
    metrics = reliability_metrics(session1, session2)
    agreement = bland_altman_stats(session1, session2)
    return {
        "sessions": list(labels),
        "metrics": metrics,
        "bland_altman": agreement,
        "icc_interpretation": interpret_icc(metrics["icc"]),
        "summary": (
            f"ICC {metrics['icc']:.3f} ({interpret_icc(metrics['icc'])}), "
            f"CV {metrics['cv']:.1f}%, SEM {metrics['sem']:.1f} ms; "
            f"{agreement['outliers']}/{agreement['total_points']} pairs outside "
            f"[{agreement['lower_limit']:.1f}, {agreement['upper_limit']:.1f}] ms."
        ),
    }


def save_reliability_report(report: dict[str, Any], output_dir: Path = RESULTS_DIR) -> Path:
    """Save reliability report as JSON."""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / "reliability_report.json"

    def _default(o: Any) -> Any:
        if isinstance(o, (np.integer,)):
            return int(o)
        if isinstance(o, (np.floating,)):
            return float(o)
        if isinstance(o, np.ndarray):
            return o.tolist()
        return str(o)

    path.write_text(json.dumps(report, indent=2, default=_default), encoding="utf-8")
    logger.info("Saved reliability report: %s", path)
    return path


def plot_bland_altman(
    session1: Sequence[float],
    session2: Sequence[float],
    save_path: Path,
) -> Path:
    """Bland-Altman plot: difference against mean with the limits of agreement."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    points = bland_altman_points(session1, session2)
    stats = bland_altman_stats(session1, session2)

    fig, ax = plt.subplots(figsize=(7, 5))
    ax.scatter(points["mean"], points["difference"], s=18, color="#1f77b4", alpha=0.8)
    ax.axhline(stats["mean_difference"], color="k", linestyle="-", label=f"Mean diff {stats['mean_difference']:.1f} ms")
    ax.axhline(stats["upper_limit"], color="#d62728", linestyle="--", label=f"+{LIMITS_OF_AGREEMENT_Z} SD")
    ax.axhline(stats["lower_limit"], color="#d62728", linestyle="--", label=f"-{LIMITS_OF_AGREEMENT_Z} SD")
    ax.set_xlabel("Mean RT of pair (ms)")
    ax.set_ylabel("Difference session 1 - session 2 (ms)")
    ax.set_title("Bland-Altman Agreement")
    ax.legend(loc="upper right")

    fig.tight_layout()
    save_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(save_path, dpi=150)
    plt.close(fig)
    logger.info("Saved Bland-Altman plot: %s", save_path)
    return save_path
