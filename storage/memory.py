from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from errors import NoActiveSessionError
from schemas.session import CalibrationData, Session, SessionStatus, TestConfiguration, TrialRecord

logger = logging.getLogger(__name__)


class InMemoryTrialStore:
    """Dict-backed trial store. Returned objects are copies; mutate through the store."""

    def __init__(self) -> None:
        self.sessions: Dict[str, Session] = {}
        self._trial_index: Dict[str, str] = {}

    def create_session(
        self,
        config: TestConfiguration,
        calibration: Optional[CalibrationData] = None,
        calibration_limitations: Optional[List[str]] = None,
    ) -> Session:
        session = Session(
            configuration=config,
            calibration=calibration or CalibrationData(),
            calibration_limitations=list(calibration_limitations or []),
        )
        self.sessions[session.session_id] = session
        self._on_change(session)
        return session.model_copy(deep=True)

    def append_trial(self, session_id: str, trial: TrialRecord) -> None:
        session = self._active_session(session_id)
        if trial.session_id != session_id:
            raise ValueError(f"trial belongs to session {trial.session_id}, not {session_id}")
        if any(t.trial_number == trial.trial_number for t in session.trials):
            raise ValueError(f"trial number {trial.trial_number} already recorded in session {session_id}")
        session.trials.append(trial)
        self._trial_index[trial.trial_id] = session_id
        self._on_change(session)

    def update_trial(self, trial_id: str, *, excluded_flag: bool, exclusion_reason: Optional[str]) -> None:
        session_id = self._trial_index.get(trial_id)
        if session_id is None:
            raise KeyError(f"unknown trial id {trial_id}")
        session = self.sessions[session_id]
        for i, trial in enumerate(session.trials):
            if trial.trial_id == trial_id:
                session.trials[i] = trial.model_copy(
                    update={"excluded_flag": excluded_flag, "exclusion_reason": exclusion_reason}
                )
                break
        self._on_change(session)

    def complete_session(self, session_id: str, completed_at: datetime) -> None:
        session = self._active_session(session_id)
        session.completed_at = completed_at
        session.status = SessionStatus.COMPLETED
        logger.info("Session %s completed with %d trials", session_id, len(session.trials))
        self._on_change(session)

    def abort_session(self, session_id: str) -> None:
        session = self._active_session(session_id)
        session.status = SessionStatus.ABORTED
        logger.info("Session %s aborted after %d trials", session_id, len(session.trials))
        self._on_change(session)

    def delete_session(self, session_id: str) -> None:
        session = self.sessions.pop(session_id, None)
        if session is None:
            raise KeyError(f"unknown session id {session_id}")
        for trial in session.trials:
            self._trial_index.pop(trial.trial_id, None)
        self._on_delete(session)

    def list_trials(self, session_id: str) -> List[TrialRecord]:
        return list(self._session(session_id).trials)

    def get_session(self, session_id: str) -> Session:
        return self._session(session_id).model_copy(deep=True)

    def list_sessions(self) -> List[Session]:
        ordered = sorted(self.sessions.values(), key=lambda s: s.started_at)
        return [s.model_copy(deep=True) for s in ordered]

    def _session(self, session_id: str) -> Session:
        try:
            return self.sessions[session_id]
        except KeyError:
            raise KeyError(f"unknown session id {session_id}") from None

    def _active_session(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None or not session.is_active:
            raise NoActiveSessionError(f"no session in progress with id {session_id}")
        return session

    def _on_change(self, session: Session) -> None:
        """Hook for persistent subclasses."""

    def _on_delete(self, session: Session) -> None:
        """Hook for persistent subclasses."""
