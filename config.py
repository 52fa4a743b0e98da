from __future__ import annotations

import os
import random
from pathlib import Path
from typing import Final

import numpy as np

# Project paths
PROJECT_ROOT: Final[Path] = Path(__file__).resolve().parent
OUTPUT_DIR: Final[Path] = Path(os.environ.get("REFLEX_OUTPUT_DIR", PROJECT_ROOT / "outputs"))
RESULTS_DIR: Final[Path] = OUTPUT_DIR / "results"
SESSION_STORE_DIR: Final[Path] = OUTPUT_DIR / "session_store"
FIGURES_DIR: Final[Path] = OUTPUT_DIR / "figures"

# ── Session defaults ──────────────────────────────────────────
DEFAULT_TOTAL_TRIALS: Final[int] = 40
DEFAULT_PRACTICE_TRIALS: Final[int] = 5
ISI_MIN_MS: Final[float] = 1000.0
ISI_MAX_MS: Final[float] = 3000.0

# ── Calibration ───────────────────────────────────────────────
DEFAULT_REFRESH_RATE_HZ: Final[float] = 60.0
DEFAULT_TOUCH_SAMPLING_HZ: Final[float] = 120.0
REFRESH_RATE_RANGE_HZ: Final[tuple[float, float]] = (30.0, 240.0)
TOUCH_SAMPLING_RANGE_HZ: Final[tuple[float, float]] = (60.0, 1000.0)
HIGH_LATENCY_OFFSET_MS: Final[float] = 50.0

# ── Trial cycle ───────────────────────────────────────────────
NOGO_INHIBITION_TIMEOUT_MS: Final[float] = 1500.0
PRACTICE_FEEDBACK_DELAY_MS: Final[float] = 1500.0
TEST_FEEDBACK_DELAY_MS: Final[float] = 500.0
FEEDBACK_TOO_FAST_MS: Final[float] = 100.0
FEEDBACK_TOO_SLOW_MS: Final[float] = 1000.0

# Go/No-Go composition: 28 go + 12 no-go for a 40-trial main test
GO_RATIO: Final[float] = 0.7

# CRT_4 responses within this band around screen centre (both axes) are "center"
CRT4_CENTER_THRESHOLD_PX: Final[float] = 100.0
DEFAULT_VIEWPORT_PX: Final[tuple[float, float]] = (1080.0, 1920.0)

# ── Outlier cleaning ──────────────────────────────────────────
MIN_RT_MS: Final[float] = 100.0
MAX_RT_MS: Final[float] = 1500.0
MAX_RT_GO_NOGO_MS: Final[float] = 1000.0
REMOVE_MIN_MAX: Final[bool] = True
MIN_MAX_TRIM_MIN_TRIALS: Final[int] = 5
STATISTICAL_MIN_TRIALS: Final[int] = 3
SD_MULTIPLIER: Final[float] = 2.5
MAD_THRESHOLD: Final[float] = 3.0
TRIM_PERCENTAGE: Final[float] = 2.5
IQR_MULTIPLIER: Final[float] = 1.5

# ── Reliability ───────────────────────────────────────────────
LIMITS_OF_AGREEMENT_Z: Final[float] = 1.96

# ── Movement initiation time (finger tapping) ─────────────────
MIT_MIN_INTERVAL_MS: Final[float] = 50.0
MIT_MAX_INTERVAL_MS: Final[float] = 2000.0

RANDOM_STATE: Final[int] = 42


def set_global_seed(seed: int = RANDOM_STATE) -> None:
    """Set deterministic seeds for reproducible runs."""
    os.environ["PYTHONHASHSEED"] = str(seed)
    random.seed(seed)
    np.random.seed(seed)
