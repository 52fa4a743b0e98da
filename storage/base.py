from __future__ import annotations

from datetime import datetime
from typing import Protocol

from schemas.session import CalibrationData, Session, TestConfiguration, TrialRecord


class TrialStore(Protocol):
    """Session/trial persistence used by the engine and the cleaning pipeline.

    Implementations must give read-your-writes within a session. Unknown trial
    ids raise ``KeyError``; writes to a session that is missing or no longer in
    progress raise ``NoActiveSessionError``.
    """

    def create_session(
        self,
        config: TestConfiguration,
        calibration: CalibrationData | None = None,
        calibration_limitations: list[str] | None = None,
    ) -> Session:
        ...

    def append_trial(self, session_id: str, trial: TrialRecord) -> None:
        ...

    def update_trial(self, trial_id: str, *, excluded_flag: bool, exclusion_reason: str | None) -> None:
        ...

    def complete_session(self, session_id: str, completed_at: datetime) -> None:
        ...

    def abort_session(self, session_id: str) -> None:
        ...

    def delete_session(self, session_id: str) -> None:
        ...

    def list_trials(self, session_id: str) -> list[TrialRecord]:
        ...

    def get_session(self, session_id: str) -> Session:
        ...

    def list_sessions(self) -> list[Session]:
        ...
