"""
Trial protocol engine
=====================
Sequences a session through ``instructions -> practice -> break -> testing ->
complete``. Each trial runs the same cycle:

    ISI wait -> stimulus generation -> onset on next frame -> await response
    -> resolve (correct, classify, record) -> feedback delay -> advance

Every suspension point is a named :class:`TrialStep` backed by a single
:class:`~timing.scheduler.ScheduledCall`, so :meth:`TrialProtocolEngine.abort`
can cancel whatever is pending. Only one trial is ever in flight.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

import numpy as np

from cleaning.outliers import OutlierOptions, TrialVerdict
from cleaning.session_cleaning import clean_session as run_session_cleaning
from config import NOGO_INHIBITION_TIMEOUT_MS
from errors import ConfigurationError, NoActiveSessionError
from protocol.feedback import feedback_delay, feedback_message
from schemas.session import CalibrationData, Session, TestConfiguration, TrialRecord, build_configuration
from stimulus.classification import Response, Viewport
from stimulus.cues import CueActuator, fire_cue
from stimulus.protocols import ParadigmSpec, get_paradigm
from stimulus.session_plan import StimulusGenerator
from storage.base import TrialStore
from timing.latency import apply_latency_correction, compute_raw_rt, sample_isi
from timing.scheduler import ScheduledCall, Scheduler
from validation.device_profiler import calibration_limitations

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    INSTRUCTIONS = "instructions"
    PRACTICE = "practice"
    BREAK = "break"
    TESTING = "testing"
    COMPLETE = "complete"
    ABORTED = "aborted"


class TrialStep(str, Enum):
    IDLE = "idle"
    ISI_WAIT = "isi_wait"
    AWAITING_FRAME = "awaiting_frame"
    AWAITING_RESPONSE = "awaiting_response"
    FEEDBACK = "feedback"


TERMINAL_PHASES = frozenset({Phase.COMPLETE, Phase.ABORTED})
TRIAL_PHASES = frozenset({Phase.PRACTICE, Phase.TESTING})


@dataclass(frozen=True)
class TrialOutcome:
    record: TrialRecord
    feedback: str | None = None


class TrialProtocolEngine:
    def __init__(
        self,
        store: TrialStore,
        scheduler: Scheduler,
        calibration: CalibrationData | None = None,
        *,
        cue_actuator: CueActuator | None = None,
        viewport: Viewport | None = None,
        seed: int | None = None,
        outlier_options: OutlierOptions | None = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.calibration = calibration or CalibrationData()
        self.cue_actuator = cue_actuator
        self.viewport = viewport or Viewport()
        self.outlier_options = outlier_options
        self._rng = np.random.default_rng(seed)

        self.session: Session | None = None
        self.config: TestConfiguration | None = None
        self.spec: ParadigmSpec | None = None
        self._generator: StimulusGenerator | None = None

        self.phase = Phase.INSTRUCTIONS
        self.step = TrialStep.IDLE
        self.practice_completed = 0
        self.test_completed = 0
        self.isi_history: list[float] = []
        self._next_trial_number = 1
        self._stimulus: str | None = None
        self._cue_timestamp: float | None = None

        self._isi_call: ScheduledCall | None = None
        self._frame_call: ScheduledCall | None = None
        self._timeout_call: ScheduledCall | None = None
        self._feedback_call: ScheduledCall | None = None

        self._trial_callbacks: list[Callable[[TrialOutcome], Any]] = []
        self._complete_callbacks: list[Callable[[Session, list[TrialVerdict]], Any]] = []
        self._phase_callbacks: list[Callable[[Phase], Any]] = []
        self._onset_callbacks: list[Callable[[str, float], Any]] = []

    # ── Callback registration ───────────────────────────────────

    def on_trial_resolved(self, callback: Callable[[TrialOutcome], Any]) -> Callable[[TrialOutcome], Any]:
        self._trial_callbacks.append(callback)
        return callback

    def on_session_complete(
        self, callback: Callable[[Session, list[TrialVerdict]], Any]
    ) -> Callable[[Session, list[TrialVerdict]], Any]:
        self._complete_callbacks.append(callback)
        return callback

    def on_phase_change(self, callback: Callable[[Phase], Any]) -> Callable[[Phase], Any]:
        self._phase_callbacks.append(callback)
        return callback

    def on_stimulus_onset(self, callback: Callable[[str, float], Any]) -> Callable[[str, float], Any]:
        """Called with ``(stimulus, cue_timestamp)`` once the stimulus is on screen."""
        self._onset_callbacks.append(callback)
        return callback

    # ── State ───────────────────────────────────────────────────

    @property
    def session_id(self) -> str | None:
        return self.session.session_id if self.session is not None else None

    @property
    def current_stimulus(self) -> str | None:
        return self._stimulus

    @property
    def cue_timestamp(self) -> float | None:
        return self._cue_timestamp

    @property
    def has_pending_timers(self) -> bool:
        return any(
            call is not None and call.active
            for call in (self._isi_call, self._frame_call, self._timeout_call, self._feedback_call)
        )

    def _require_session(self) -> Session:
        if self.session is None:
            raise NoActiveSessionError("no session has been started on this engine")
        return self.session

    def _set_phase(self, phase: Phase) -> None:
        self.phase = phase
        logger.info("Session %s -> %s", self.session_id, phase.value)
        for callback in list(self._phase_callbacks):
            callback(phase)

    # ── Session control ─────────────────────────────────────────

    def start_session(self, config: TestConfiguration | dict[str, Any]) -> Session:
        """Validate the configuration and create the session in the store."""
        if self.session is not None and self.phase not in TERMINAL_PHASES:
            raise ConfigurationError(f"session {self.session_id} is still in progress on this engine")
        if not isinstance(config, TestConfiguration):
            config = build_configuration(**config)
        spec = get_paradigm(config.paradigm)

        session = self.store.create_session(
            config,
            self.calibration,
            calibration_limitations(config.stimulus_modality),
        )
        self.session = session
        self.config = config
        self.spec = spec
        self._generator = StimulusGenerator(config.paradigm, config.total_trials, self._rng)
        self.practice_completed = 0
        self.test_completed = 0
        self.isi_history = []
        self._next_trial_number = 1
        self._stimulus = None
        self._cue_timestamp = None
        self.step = TrialStep.IDLE

        logger.info(
            "Started %s session %s (%s, %d practice + %d test trials, offset %.2f ms)",
            config.paradigm.value,
            session.session_id,
            config.stimulus_modality.value,
            config.practice_trials,
            config.total_trials,
            self.calibration.device_latency_offset_ms,
        )
        self._set_phase(Phase.INSTRUCTIONS)
        return session

    def begin(self) -> None:
        """Leave the instructions screen: into practice, or straight to testing without practice."""
        self._require_session()
        if self.phase != Phase.INSTRUCTIONS:
            raise RuntimeError(f"cannot begin from phase '{self.phase.value}'")
        assert self.config is not None
        if self.config.practice_trials > 0:
            self._set_phase(Phase.PRACTICE)
        else:
            self._set_phase(Phase.TESTING)
        self._start_trial()

    def begin_test(self) -> None:
        self._require_session()
        if self.phase != Phase.BREAK:
            raise RuntimeError(f"cannot start testing from phase '{self.phase.value}'")
        self._set_phase(Phase.TESTING)
        self._start_trial()

    def abort(self) -> None:
        """Cancel every pending timer and drop the in-flight trial.

        The session is left as stored; keeping or discarding partial data is up
        to the caller (``store.abort_session`` / ``store.delete_session``).
        """
        self._require_session()
        if self.phase in TERMINAL_PHASES:
            return
        self._cancel_pending()
        if self.step == TrialStep.AWAITING_RESPONSE and self.cue_actuator is not None:
            self.cue_actuator.hide_visual_cue()
        logger.info(
            "Aborting session %s during %s/%s after %d recorded trials",
            self.session_id,
            self.phase.value,
            self.step.value,
            self._next_trial_number - 1,
        )
        self._stimulus = None
        self._cue_timestamp = None
        self.step = TrialStep.IDLE
        self._set_phase(Phase.ABORTED)

    def clean_session(self, session_id: str | None = None, options: OutlierOptions | None = None) -> list[TrialVerdict]:
        session_id = session_id or self._require_session().session_id
        return run_session_cleaning(self.store, session_id, options or self.outlier_options)

    # ── Trial cycle ─────────────────────────────────────────────

    def _start_trial(self) -> None:
        assert self.config is not None
        isi = sample_isi(self.config.isi_min_ms, self.config.isi_max_ms, self._rng)
        self.isi_history.append(isi)
        self.step = TrialStep.ISI_WAIT
        self._stimulus = None
        self._cue_timestamp = None
        logger.debug("Trial %d: ISI %.1f ms", self._next_trial_number, isi)
        self._isi_call = self.scheduler.call_later(isi, self._on_isi_elapsed)

    def _on_isi_elapsed(self) -> None:
        assert self._generator is not None
        self._isi_call = None
        is_practice = self.phase == Phase.PRACTICE
        self._stimulus = self._generator.next_stimulus(is_practice, self.test_completed)
        self.step = TrialStep.AWAITING_FRAME
        self._frame_call = self.scheduler.call_at_next_frame(self._on_frame)

    def _on_frame(self, frame_timestamp: float) -> None:
        assert self.config is not None and self.spec is not None and self._stimulus is not None
        self._frame_call = None
        self._cue_timestamp = frame_timestamp
        self.step = TrialStep.AWAITING_RESPONSE
        if self.cue_actuator is not None:
            fire_cue(self.cue_actuator, self.config.stimulus_modality, self.spec, self._stimulus)
        if self._stimulus in self.spec.inhibition_stimuli:
            self._timeout_call = self.scheduler.call_later(NOGO_INHIBITION_TIMEOUT_MS, self._on_inhibition_timeout)
        for callback in list(self._onset_callbacks):
            callback(self._stimulus, frame_timestamp)

    def respond(
        self,
        x: float | None = None,
        y: float | None = None,
        *,
        timestamp: float | None = None,
    ) -> TrialRecord | None:
        """Register the subject's input. Returns the recorded trial, or ``None`` if ignored."""
        self._require_session()
        if self.step != TrialStep.AWAITING_RESPONSE:
            logger.debug("Input ignored during step '%s'", self.step.value)
            return None
        assert self.spec is not None
        if self.spec.requires_position and (x is None or y is None):
            raise ValueError(f"{self.spec.paradigm.value} responses need pointer coordinates")
        response = Response(
            timestamp=timestamp if timestamp is not None else self.scheduler.now(),
            x=x,
            y=y,
        )
        return self._resolve(response).record

    def _on_inhibition_timeout(self) -> None:
        self._timeout_call = None
        self._resolve(None)

    def _resolve(self, response: Response | None) -> TrialOutcome:
        assert self.session is not None and self.config is not None and self.spec is not None
        assert self._stimulus is not None and self._cue_timestamp is not None
        if self._timeout_call is not None:
            self._timeout_call.cancel()
            self._timeout_call = None
        if self.cue_actuator is not None:
            self.cue_actuator.hide_visual_cue()

        is_practice = self.phase == Phase.PRACTICE
        response_timestamp = response.timestamp if response is not None else None
        rt_raw = compute_raw_rt(self._cue_timestamp, response_timestamp)
        rt_corrected = apply_latency_correction(rt_raw, self.calibration.device_latency_offset_ms)
        accuracy = self.spec.classify(self._stimulus, response, self.viewport)

        record = TrialRecord(
            session_id=self.session.session_id,
            trial_number=self._next_trial_number,
            stimulus_modality=self.config.stimulus_modality,
            stimulus_detail=self._stimulus,
            cue_timestamp=self._cue_timestamp,
            response_timestamp=response_timestamp,
            rt_raw=rt_raw,
            rt_corrected=rt_corrected,
            is_practice=is_practice,
            accuracy=accuracy,
        )
        self.store.append_trial(self.session.session_id, record)
        self._next_trial_number += 1
        logger.debug(
            "Trial %d (%s): stimulus=%s rt_raw=%s accuracy=%s",
            record.trial_number,
            "practice" if is_practice else "test",
            record.stimulus_detail,
            "none" if rt_raw is None else f"{rt_raw:.1f}",
            accuracy,
        )

        outcome = TrialOutcome(record=record, feedback=feedback_message(accuracy, record.rt) if is_practice else None)
        self.step = TrialStep.FEEDBACK
        self._feedback_call = self.scheduler.call_later(feedback_delay(is_practice), self._advance)
        for callback in list(self._trial_callbacks):
            callback(outcome)
        return outcome

    def _advance(self) -> None:
        assert self.config is not None
        self._feedback_call = None
        if self.phase == Phase.PRACTICE:
            self.practice_completed += 1
            if self.practice_completed >= self.config.practice_trials:
                self.step = TrialStep.IDLE
                self._set_phase(Phase.BREAK)
                return
        elif self.phase == Phase.TESTING:
            self.test_completed += 1
            if self.test_completed >= self.config.total_trials:
                self._complete()
                return
        self._start_trial()

    def _complete(self) -> None:
        session_id = self._require_session().session_id
        self.step = TrialStep.IDLE
        self._stimulus = None
        verdicts = self.clean_session(session_id)
        self.store.complete_session(session_id, datetime.now(timezone.utc))
        self._set_phase(Phase.COMPLETE)
        session = self.store.get_session(session_id)
        self.session = session
        for callback in list(self._complete_callbacks):
            callback(session, verdicts)

    def _cancel_pending(self) -> None:
        for call in (self._isi_call, self._frame_call, self._timeout_call, self._feedback_call):
            if call is not None:
                call.cancel()
        self._isi_call = None
        self._frame_call = None
        self._timeout_call = None
        self._feedback_call = None
