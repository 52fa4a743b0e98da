"""cleaning package - reaction-time outlier detection."""

from cleaning.outliers import OutlierOptions, TrialVerdict, clean_reaction_times
from cleaning.session_cleaning import clean_session

__all__ = ["OutlierOptions", "TrialVerdict", "clean_reaction_times", "clean_session"]
