"""Tests for stimulus generation, response classification and cue dispatch."""
from __future__ import annotations

import numpy as np
import pytest

from schemas.session import Paradigm, StimulusModality, build_configuration
from stimulus.classification import CENTER, Response, Viewport, response_direction, response_side
from stimulus.cues import LoggingCueActuator, fire_cue
from stimulus.protocols import PARADIGMS, classify_response, get_paradigm
from stimulus.session_plan import StimulusGenerator, build_go_nogo_sequence, build_session_plan

VIEWPORT = Viewport(width=1000.0, height=2000.0, center_threshold_px=100.0)


# ═══════════════════════════════════════════════════════════════
# Stimulus generation
# ═══════════════════════════════════════════════════════════════


class TestGoNoGoSequence:
    @pytest.mark.parametrize("seed", range(10))
    def test_forty_trials_have_exact_split(self, seed: int) -> None:
        sequence = build_go_nogo_sequence(40, np.random.default_rng(seed))
        assert len(sequence) == 40
        assert sequence.count("go") == 28
        assert sequence.count("nogo") == 12

    def test_generalises_to_other_lengths(self) -> None:
        sequence = build_go_nogo_sequence(10, np.random.default_rng(0))
        assert sequence.count("nogo") == 3
        assert sequence.count("go") == 7

    def test_sequence_is_shuffled(self) -> None:
        orders = {tuple(build_go_nogo_sequence(40, np.random.default_rng(s))) for s in range(5)}
        assert len(orders) > 1

    def test_rejects_empty_sequence(self) -> None:
        with pytest.raises(ValueError):
            build_go_nogo_sequence(0, np.random.default_rng(0))


class TestStimulusGenerator:
    def test_main_test_uses_fixed_sequence(self) -> None:
        generator = StimulusGenerator(Paradigm.GO_NO_GO, 40, np.random.default_rng(3))
        drawn = [generator.next_stimulus(False, i) for i in range(40)]
        assert drawn == generator.main_sequence
        assert drawn.count("nogo") == 12

    def test_practice_draws_independently(self) -> None:
        generator = StimulusGenerator(Paradigm.GO_NO_GO, 40, np.random.default_rng(3))
        practice = [generator.next_stimulus(True) for _ in range(500)]
        assert set(practice) == {"go", "nogo"}
        assert practice.count("go") / len(practice) == pytest.approx(0.7, abs=0.07)

    def test_index_outside_sequence(self) -> None:
        generator = StimulusGenerator(Paradigm.GO_NO_GO, 5, np.random.default_rng(0))
        with pytest.raises(IndexError):
            generator.next_stimulus(False, 5)

    @pytest.mark.parametrize("paradigm", list(Paradigm))
    def test_identities_come_from_paradigm(self, paradigm: Paradigm) -> None:
        generator = StimulusGenerator(paradigm, 20, np.random.default_rng(7))
        identities = set(get_paradigm(paradigm).identities)
        for i in range(20):
            assert generator.next_stimulus(False, i) in identities

    def test_crt4_covers_all_directions(self) -> None:
        generator = StimulusGenerator(Paradigm.CRT_4, 200, np.random.default_rng(11))
        drawn = {generator.next_stimulus(False, i) for i in range(200)}
        assert drawn == {"up", "down", "left", "right"}


def test_unknown_paradigm() -> None:
    with pytest.raises(ValueError, match="Unsupported paradigm"):
        get_paradigm("CRT_3")


def test_paradigm_table_is_closed() -> None:
    assert set(PARADIGMS) == set(Paradigm)


def test_session_plan_preview() -> None:
    plan = build_session_plan(build_configuration(paradigm="GO_NO_GO"), seed=1)
    assert plan["label"] == "Go/No-Go Test"
    assert plan["fixed_main_sequence"].count("go") == 28
    assert build_session_plan(build_configuration(paradigm="SRT"), seed=1)["fixed_main_sequence"] is None


# ═══════════════════════════════════════════════════════════════
# Response classification
# ═══════════════════════════════════════════════════════════════


class TestClassification:
    def test_srt_has_no_accuracy(self) -> None:
        assert classify_response(Paradigm.SRT, "stimulus", Response(10.0)) is None

    def test_two_choice_sides(self) -> None:
        assert response_side(499.0, VIEWPORT) == "left"
        assert response_side(500.0, VIEWPORT) == "right"
        assert classify_response(Paradigm.CRT_2, "left", Response(1.0, 100.0, 300.0), VIEWPORT) is True
        assert classify_response(Paradigm.CRT_2, "left", Response(1.0, 900.0, 300.0), VIEWPORT) is False

    @pytest.mark.parametrize(
        ("x", "y", "expected"),
        [
            (500.0, 100.0, "up"),
            (500.0, 1900.0, "down"),
            (50.0, 1000.0, "left"),
            (950.0, 1000.0, "right"),
            (50.0, 100.0, "up"),
            (450.0, 950.0, CENTER),
        ],
    )
    def test_four_choice_direction(self, x: float, y: float, expected: str) -> None:
        assert response_direction(x, y, VIEWPORT) == expected

    @pytest.mark.parametrize("identity", ["up", "down", "left", "right"])
    def test_center_band_is_always_incorrect(self, identity: str) -> None:
        response = Response(1.0, 520.0, 1030.0)
        assert classify_response(Paradigm.CRT_4, identity, response, VIEWPORT) is False

    @pytest.mark.parametrize(("x", "y"), [(None, None), (950.0, None), (None, 100.0)])
    def test_four_choice_needs_both_coordinates(self, x: float | None, y: float | None) -> None:
        assert classify_response(Paradigm.CRT_4, "right", Response(1.0, x, y), VIEWPORT) is False

    def test_go_nogo(self) -> None:
        assert classify_response(Paradigm.GO_NO_GO, "go", Response(1.0)) is True
        assert classify_response(Paradigm.GO_NO_GO, "nogo", Response(1.0)) is False
        assert classify_response(Paradigm.GO_NO_GO, "nogo", None) is True

    def test_invalid_viewport(self) -> None:
        with pytest.raises(ValueError):
            Viewport(width=0.0, height=100.0)


# ═══════════════════════════════════════════════════════════════
# Cue dispatch
# ═══════════════════════════════════════════════════════════════


class TestCues:
    def test_visual_only(self) -> None:
        actuator = LoggingCueActuator()
        fire_cue(actuator, StimulusModality.VISUAL, get_paradigm(Paradigm.SRT), "stimulus")
        assert actuator.events == [("visual", "stimulus")]

    def test_auditory_tone_follows_side(self) -> None:
        actuator = LoggingCueActuator()
        spec = get_paradigm(Paradigm.CRT_2)
        fire_cue(actuator, StimulusModality.AUDITORY, spec, "left")
        fire_cue(actuator, StimulusModality.AUDITORY, spec, "right")
        assert ("audio", "low") in actuator.events
        assert ("audio", "high") in actuator.events

    def test_tactile_pulse(self) -> None:
        actuator = LoggingCueActuator()
        fire_cue(actuator, StimulusModality.TACTILE, get_paradigm(Paradigm.GO_NO_GO), "go")
        assert actuator.events == [("visual", "go"), ("haptic", None)]
