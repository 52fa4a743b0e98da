"""Error and warning types raised by the trial protocol engine."""
from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid test configuration; raised before anything is persisted."""


class NoActiveSessionError(RuntimeError):
    """A trial or completion call arrived with no session in progress."""


class InsufficientDataWarning(UserWarning):
    """Too few trials remain for a distributional outlier test."""


class TimingAnomaly(UserWarning):
    """A corrected reaction time would have been negative and was clamped to zero."""
