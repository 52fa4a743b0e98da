"""scoring package - session result summaries and movement initiation time."""

from scoring.mit import add_stimulus_detection_time, compute_mit, stimulus_detection_time
from scoring.summary import summarize_session, trials_to_frame

__all__ = [
    "summarize_session",
    "trials_to_frame",
    "compute_mit",
    "stimulus_detection_time",
    "add_stimulus_detection_time",
]
