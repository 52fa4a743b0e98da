"""Simulated subject for driving the engine on a virtual clock (CLI demo and tests)."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from cleaning.outliers import OutlierOptions, TrialVerdict
from schemas.session import CalibrationData, Paradigm, Session, TestConfiguration
from stimulus.classification import DOWN, LEFT, NOGO, RIGHT, UP, Viewport
from stimulus.cues import LoggingCueActuator
from storage.base import TrialStore
from storage.memory import InMemoryTrialStore
from protocol.engine import Phase, TrialProtocolEngine
from timing.scheduler import VirtualScheduler

logger = logging.getLogger(__name__)


def target_point(identity: str, viewport: Viewport) -> tuple[float, float]:
    """A pointer position that classifies as ``identity``."""
    cx, cy = viewport.center
    if identity == UP:
        return cx, cy / 2.0
    if identity == DOWN:
        return cx, cy * 1.5
    if identity == LEFT:
        return cx / 4.0, cy
    if identity == RIGHT:
        return cx * 1.75, cy
    return cx, cy


@dataclass
class SimulatedSubject:
    """Ex-Gaussian response times with occasional wrong-side taps and no-go commissions."""

    rng: np.random.Generator = field(default_factory=np.random.default_rng)
    mu_ms: float = 320.0
    sigma_ms: float = 40.0
    tau_ms: float = 60.0
    choice_cost_ms: float = 80.0
    error_rate: float = 0.05
    commission_rate: float = 0.15
    lapse_rate: float = 0.02

    def draw_rt(self, paradigm: Paradigm) -> float:
        rt = self.rng.normal(self.mu_ms, self.sigma_ms) + self.rng.exponential(self.tau_ms)
        if paradigm in (Paradigm.CRT_2, Paradigm.CRT_4):
            rt += self.choice_cost_ms
        if self.rng.random() < self.lapse_rate:
            rt += self.rng.uniform(800.0, 1500.0)
        return float(max(rt, 60.0))

    def decide(
        self,
        paradigm: Paradigm,
        stimulus: str,
        viewport: Viewport,
    ) -> tuple[float, float | None, float | None] | None:
        """``(delay_ms, x, y)`` for a tap, or ``None`` to withhold."""
        if stimulus == NOGO and self.rng.random() >= self.commission_rate:
            return None
        rt = self.draw_rt(paradigm)
        if paradigm == Paradigm.CRT_2:
            side = stimulus
            if self.rng.random() < self.error_rate:
                side = RIGHT if stimulus == LEFT else LEFT
            x, y = target_point(side, viewport)
            return rt, x, y
        if paradigm == Paradigm.CRT_4:
            direction = stimulus
            if self.rng.random() < self.error_rate:
                others = [d for d in (UP, DOWN, LEFT, RIGHT) if d != stimulus]
                direction = others[int(self.rng.integers(len(others)))]
            x, y = target_point(direction, viewport)
            return rt, x, y
        return rt, None, None


def attach_subject(engine: TrialProtocolEngine, scheduler: VirtualScheduler, subject: SimulatedSubject) -> None:
    """Make ``subject`` react to every onset and move on from the break screen."""

    def on_onset(stimulus: str, cue_timestamp: float) -> None:
        assert engine.spec is not None
        decision = subject.decide(engine.spec.paradigm, stimulus, engine.viewport)
        if decision is None:
            return
        delay, x, y = decision
        scheduler.call_later(delay, lambda: engine.respond(x, y))

    def on_phase(phase: Phase) -> None:
        if phase == Phase.BREAK:
            scheduler.call_later(0.0, engine.begin_test)

    engine.on_stimulus_onset(on_onset)
    engine.on_phase_change(on_phase)


def run_simulated_session(
    config: TestConfiguration,
    store: TrialStore | None = None,
    *,
    seed: int | None = None,
    calibration: CalibrationData | None = None,
    subject: SimulatedSubject | None = None,
    outlier_options: OutlierOptions | None = None,
) -> tuple[Session, list[TrialVerdict]]:
    """Run a whole session to completion on a :class:`VirtualScheduler`."""
    calibration = calibration or CalibrationData()
    store = store if store is not None else InMemoryTrialStore()
    scheduler = VirtualScheduler(frame_rate_hz=calibration.refresh_rate_hz)
    engine = TrialProtocolEngine(
        store,
        scheduler,
        calibration,
        cue_actuator=LoggingCueActuator(),
        seed=seed,
        outlier_options=outlier_options,
    )
    attach_subject(engine, scheduler, subject or SimulatedSubject(rng=np.random.default_rng(seed)))

    result: dict[str, Any] = {}

    @engine.on_session_complete
    def _collect(session: Session, verdicts: list[TrialVerdict]) -> None:
        result["session"] = session
        result["verdicts"] = verdicts

    engine.start_session(config)
    engine.begin()
    scheduler.run_until_idle()

    if "session" not in result:
        raise RuntimeError(f"simulated session ended in phase '{engine.phase.value}' without completing")
    logger.info(
        "Simulated %s session finished at virtual t=%.0f ms",
        config.paradigm.value,
        scheduler.now(),
    )
    return result["session"], result["verdicts"]
