"""stimulus package - paradigm definitions, stimulus generation, response classification and cues."""

from stimulus.classification import Response, Viewport, response_direction, response_side
from stimulus.cues import CueActuator, LoggingCueActuator, fire_cue
from stimulus.protocols import ParadigmSpec, classify_response, get_paradigm
from stimulus.session_plan import StimulusGenerator, build_go_nogo_sequence, build_session_plan

__all__ = [
    "Response",
    "Viewport",
    "response_direction",
    "response_side",
    "CueActuator",
    "LoggingCueActuator",
    "fire_cue",
    "ParadigmSpec",
    "classify_response",
    "get_paradigm",
    "StimulusGenerator",
    "build_go_nogo_sequence",
    "build_session_plan",
]
