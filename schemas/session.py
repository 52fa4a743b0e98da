from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
    model_validator,
)

from config import (
    DEFAULT_PRACTICE_TRIALS,
    DEFAULT_REFRESH_RATE_HZ,
    DEFAULT_TOTAL_TRIALS,
    DEFAULT_TOUCH_SAMPLING_HZ,
    ISI_MAX_MS,
    ISI_MIN_MS,
    SESSION_STORE_DIR,
)
from errors import ConfigurationError


class Paradigm(str, Enum):
    SRT = "SRT"
    CRT_2 = "CRT_2"
    CRT_4 = "CRT_4"
    GO_NO_GO = "GO_NO_GO"


class StimulusModality(str, Enum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    TACTILE = "tactile"


class OutlierMethod(str, Enum):
    STANDARD_DEVIATION = "standard_deviation"
    MAD = "mad"
    PERCENTAGE_TRIM = "percentage_trim"
    IQR = "iqr"


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


class TestConfiguration(BaseModel):
    """Immutable parameters of one test session."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(extra="forbid", frozen=True)

    paradigm: Paradigm
    stimulus_modality: StimulusModality = StimulusModality.VISUAL
    total_trials: int = Field(default=DEFAULT_TOTAL_TRIALS, gt=0)
    practice_trials: int = Field(default=DEFAULT_PRACTICE_TRIALS, ge=0)
    isi_min_ms: float = Field(default=ISI_MIN_MS, ge=0)
    isi_max_ms: float = Field(default=ISI_MAX_MS, ge=0)
    outlier_method: OutlierMethod = OutlierMethod.MAD

    @model_validator(mode="after")
    def _validate_isi_range(self) -> "TestConfiguration":
        if self.isi_min_ms > self.isi_max_ms:
            raise ValueError(
                f"isi_min_ms ({self.isi_min_ms}) must not exceed isi_max_ms ({self.isi_max_ms})"
            )
        return self


def build_configuration(**kwargs: Any) -> TestConfiguration:
    """Validate raw configuration values, failing fast with ConfigurationError."""
    try:
        return TestConfiguration(**kwargs)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


class CalibrationData(BaseModel):
    """Display/touch rates and the latency offset derived from them.

    The offset models the expected average queuing delay of each subsystem
    (half a frame plus half a touch-sampling period). It is an estimate, not a
    measurement, and cannot be set independently of the rates.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    refresh_rate_hz: float = Field(default=DEFAULT_REFRESH_RATE_HZ, gt=0)
    touch_sampling_hz: float = Field(default=DEFAULT_TOUCH_SAMPLING_HZ, gt=0)

    @computed_field
    @property
    def device_latency_offset_ms(self) -> float:
        return (1000.0 / self.refresh_rate_hz) / 2.0 + (1000.0 / self.touch_sampling_hz) / 2.0

    def with_rates(
        self,
        refresh_rate_hz: float | None = None,
        touch_sampling_hz: float | None = None,
    ) -> "CalibrationData":
        return CalibrationData(
            refresh_rate_hz=refresh_rate_hz if refresh_rate_hz is not None else self.refresh_rate_hz,
            touch_sampling_hz=touch_sampling_hz if touch_sampling_hz is not None else self.touch_sampling_hz,
        )


class TrialRecord(BaseModel):
    """One resolved trial.

    ``rt_raw``/``response_timestamp`` are null when no response occurred
    (correct no-go inhibition). ``accuracy`` is null for paradigms without a
    correctness notion (SRT). Only the cleaning pipeline sets the exclusion
    fields, through the store.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    trial_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    session_id: str
    trial_number: int = Field(ge=1)
    stimulus_modality: StimulusModality = StimulusModality.VISUAL
    stimulus_detail: str
    cue_timestamp: float
    response_timestamp: float | None = None
    rt_raw: float | None = None
    rt_corrected: float | None = Field(default=None, ge=0)
    is_practice: bool = False
    accuracy: bool | None = None
    excluded_flag: bool = False
    exclusion_reason: str | None = None

    @model_validator(mode="after")
    def _validate_response_fields(self) -> "TrialRecord":
        if (self.response_timestamp is None) != (self.rt_raw is None):
            raise ValueError("rt_raw must be null exactly when response_timestamp is null")
        if (self.rt_raw is None) != (self.rt_corrected is None):
            raise ValueError("rt_corrected must be null exactly when rt_raw is null")
        return self

    @property
    def rt(self) -> float | None:
        """RT used for analysis: corrected when available, raw otherwise."""
        return self.rt_corrected if self.rt_corrected is not None else self.rt_raw


class Session(BaseModel):
    """A test session and its append-only trial log."""

    model_config = ConfigDict(extra="forbid")

    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    configuration: TestConfiguration
    calibration: CalibrationData = Field(default_factory=CalibrationData)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    status: SessionStatus = SessionStatus.IN_PROGRESS
    trials: list[TrialRecord] = Field(default_factory=list)
    calibration_limitations: list[str] = Field(default_factory=list)

    @field_validator("trials")
    @classmethod
    def _validate_unique_trial_numbers(cls, value: list[TrialRecord]) -> list[TrialRecord]:
        numbers = [t.trial_number for t in value]
        if len(numbers) != len(set(numbers)):
            raise ValueError("trial numbers must be unique within a session")
        return value

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.IN_PROGRESS

    def test_trials(self) -> list[TrialRecord]:
        return [t for t in self.trials if not t.is_practice]


def save_session(session: Session, output_dir: Path = SESSION_STORE_DIR) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"session_{session.configuration.paradigm.value}_{session.session_id}.json"
    path.write_text(session.model_dump_json(indent=2), encoding="utf-8")
    return path


def load_session(path: Path) -> Session:
    data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
    return Session.model_validate(data)
