"""protocol package - trial state machine, feedback and simulated sessions."""

from protocol.engine import Phase, TrialOutcome, TrialProtocolEngine, TrialStep
from protocol.simulation import SimulatedSubject, run_simulated_session

__all__ = [
    "Phase",
    "TrialOutcome",
    "TrialProtocolEngine",
    "TrialStep",
    "SimulatedSubject",
    "run_simulated_session",
]
