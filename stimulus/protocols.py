from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from config import GO_RATIO
from schemas.session import Paradigm
from stimulus.classification import (
    DOWN,
    GO,
    LEFT,
    NOGO,
    RIGHT,
    UP,
    Response,
    Viewport,
    classify_four_choice,
    classify_go_nogo,
    classify_simple,
    classify_two_choice,
)

Classifier = Callable[[str, Response | None, Viewport], bool | None]

SIMPLE_STIMULUS = "stimulus"


def _draw_simple(rng: np.random.Generator) -> str:
    return SIMPLE_STIMULUS


def _draw_two_choice(rng: np.random.Generator) -> str:
    return LEFT if rng.random() < 0.5 else RIGHT


def _draw_four_choice(rng: np.random.Generator) -> str:
    options = (UP, DOWN, LEFT, RIGHT)
    return options[int(rng.integers(len(options)))]


def _draw_go_nogo(rng: np.random.Generator) -> str:
    return GO if rng.random() < GO_RATIO else NOGO


def _high_tone(identity: str) -> str:
    return "high"


def _side_tone(identity: str) -> str:
    return "low" if identity == LEFT else "high"


@dataclass(frozen=True)
class ParadigmSpec:
    """Behaviour of one test paradigm.

    ``draw`` picks an independent stimulus per trial. When ``main_go_ratio``
    is set, main-test stimuli come instead from a fixed-composition sequence
    shuffled once per session. Stimuli listed in ``inhibition_stimuli`` arm the
    no-go timeout.
    """

    paradigm: Paradigm
    label: str
    identities: tuple[str, ...]
    draw: Callable[[np.random.Generator], str]
    classify: Classifier
    instructions: str
    requires_position: bool = False
    main_go_ratio: float | None = None
    inhibition_stimuli: frozenset[str] = field(default_factory=frozenset)
    audio_tone: Callable[[str], str] = _high_tone

    @property
    def has_accuracy(self) -> bool:
        return self.classify is not classify_simple


PARADIGMS: dict[Paradigm, ParadigmSpec] = {
    Paradigm.SRT: ParadigmSpec(
        paradigm=Paradigm.SRT,
        label="Simple Reaction Time",
        identities=(SIMPLE_STIMULUS,),
        draw=_draw_simple,
        classify=classify_simple,
        instructions="Tap the screen as quickly as possible when you see, hear or feel the stimulus.",
    ),
    Paradigm.CRT_2: ParadigmSpec(
        paradigm=Paradigm.CRT_2,
        label="2-Choice Reaction Time",
        identities=(LEFT, RIGHT),
        draw=_draw_two_choice,
        classify=classify_two_choice,
        instructions=(
            "When a coloured square appears, tap the side of the screen it appears on: "
            "BLUE = left side, GREEN = right side. Wrong side is an incorrect response."
        ),
        requires_position=True,
        audio_tone=_side_tone,
    ),
    Paradigm.CRT_4: ParadigmSpec(
        paradigm=Paradigm.CRT_4,
        label="4-Choice Reaction Time",
        identities=(UP, DOWN, LEFT, RIGHT),
        draw=_draw_four_choice,
        classify=classify_four_choice,
        instructions=(
            "When a coloured square appears, tap the matching area: RED = top, BLUE = bottom, "
            "GREEN = left, YELLOW = right. Taps near the centre are incorrect."
        ),
        requires_position=True,
    ),
    Paradigm.GO_NO_GO: ParadigmSpec(
        paradigm=Paradigm.GO_NO_GO,
        label="Go/No-Go Test",
        identities=(GO, NOGO),
        draw=_draw_go_nogo,
        classify=classify_go_nogo,
        instructions=(
            "Tap immediately on GO. Do not tap on STOP. "
            "70% of signals are GO and 30% are STOP."
        ),
        main_go_ratio=GO_RATIO,
        inhibition_stimuli=frozenset({NOGO}),
    ),
}


def get_paradigm(paradigm: Paradigm | str) -> ParadigmSpec:
    """Return the paradigm definition, accepting either the enum or its value."""
    try:
        key = Paradigm(paradigm)
    except ValueError:
        available = ", ".join(p.value for p in Paradigm)
        raise ValueError(f"Unsupported paradigm '{paradigm}'. Available: {available}") from None
    return PARADIGMS[key]


def classify_response(
    paradigm: Paradigm | str,
    stimulus: str,
    response: Response | None,
    viewport: Viewport | None = None,
) -> bool | None:
    """Accuracy of ``response`` to ``stimulus``; ``None`` when the paradigm has no correctness notion."""
    spec = get_paradigm(paradigm)
    return spec.classify(stimulus, response, viewport or Viewport())
