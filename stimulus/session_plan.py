from __future__ import annotations

import logging
from typing import Any

import numpy as np

from config import GO_RATIO
from schemas.session import Paradigm, TestConfiguration
from stimulus.classification import GO, NOGO
from stimulus.protocols import ParadigmSpec, get_paradigm

logger = logging.getLogger(__name__)


def build_go_nogo_sequence(
    n_trials: int,
    rng: np.random.Generator,
    go_ratio: float = GO_RATIO,
) -> list[str]:
    """Fixed-composition go/no-go sequence, shuffled once.

    ``round((1 - go_ratio) * n_trials)`` no-go stimuli and the rest go, so the
    split holds exactly rather than only in expectation (28/12 for 40 trials).
    """
    if n_trials <= 0:
        raise ValueError("n_trials must be positive")
    n_nogo = int(round((1.0 - go_ratio) * n_trials))
    sequence = [GO] * (n_trials - n_nogo) + [NOGO] * n_nogo
    rng.shuffle(sequence)
    return sequence


class StimulusGenerator:
    """Per-session source of stimulus identities.

    Practice stimuli are always independent draws. Main-test stimuli come from
    the paradigm's fixed-composition sequence when it has one.
    """

    def __init__(self, paradigm: Paradigm | str, total_trials: int, rng: np.random.Generator):
        self.spec: ParadigmSpec = get_paradigm(paradigm)
        self.total_trials = int(total_trials)
        self._rng = rng
        self._main_sequence: list[str] | None = None
        if self.spec.main_go_ratio is not None:
            self._main_sequence = build_go_nogo_sequence(self.total_trials, rng, self.spec.main_go_ratio)

    @property
    def main_sequence(self) -> list[str] | None:
        return list(self._main_sequence) if self._main_sequence is not None else None

    def next_stimulus(self, is_practice: bool, test_index: int = 0) -> str:
        """Identity for the next trial; ``test_index`` is the 0-based main-test trial index."""
        if is_practice or self._main_sequence is None:
            return self.spec.draw(self._rng)
        if not 0 <= test_index < len(self._main_sequence):
            raise IndexError(f"main-test index {test_index} outside 0..{len(self._main_sequence) - 1}")
        return self._main_sequence[test_index]


def build_session_plan(
    config: TestConfiguration,
    seed: int | None = None,
) -> dict[str, Any]:
    """Machine-readable preview of a session: paradigm, counts and planned main-test stimuli."""
    rng = np.random.default_rng(seed)
    generator = StimulusGenerator(config.paradigm, config.total_trials, rng)
    sequence = generator.main_sequence
    plan = {
        "paradigm": config.paradigm.value,
        "label": generator.spec.label,
        "stimulus_modality": config.stimulus_modality.value,
        "practice_trials": config.practice_trials,
        "total_trials": config.total_trials,
        "isi_range_ms": [config.isi_min_ms, config.isi_max_ms],
        "identities": list(generator.spec.identities),
        "fixed_main_sequence": sequence,
        "instructions": generator.spec.instructions,
    }
    if sequence is not None:
        logger.debug(
            "Planned %d main trials: %d go / %d nogo",
            len(sequence),
            sequence.count(GO),
            sequence.count(NOGO),
        )
    return plan
