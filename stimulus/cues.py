"""Device cue actuators fired at stimulus onset."""
from __future__ import annotations

import logging
from typing import Protocol

from schemas.session import StimulusModality
from stimulus.protocols import ParadigmSpec

logger = logging.getLogger(__name__)


class CueActuator(Protocol):
    def show_visual_cue(self, identity: str) -> None:
        ...

    def hide_visual_cue(self) -> None:
        ...

    def play_audio_cue(self, frequency: str) -> None:
        ...

    def trigger_haptic_pulse(self) -> None:
        ...


class LoggingCueActuator:
    """Actuator that only records what it was asked to do."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str | None]] = []

    def show_visual_cue(self, identity: str) -> None:
        self.events.append(("visual", identity))
        logger.debug("visual cue: %s", identity)

    def hide_visual_cue(self) -> None:
        self.events.append(("hide", None))

    def play_audio_cue(self, frequency: str) -> None:
        self.events.append(("audio", frequency))
        logger.debug("audio cue: %s tone", frequency)

    def trigger_haptic_pulse(self) -> None:
        self.events.append(("haptic", None))
        logger.debug("haptic pulse")


def fire_cue(
    actuator: CueActuator,
    modality: StimulusModality,
    spec: ParadigmSpec,
    identity: str,
) -> None:
    """Fire-and-forget onset side effects for one stimulus.

    The visual cue always carries the stimulus identity on screen; auditory and
    tactile modalities add a tone or a haptic pulse.
    """
    actuator.show_visual_cue(identity)
    if modality == StimulusModality.AUDITORY:
        actuator.play_audio_cue(spec.audio_tone(identity))
    elif modality == StimulusModality.TACTILE:
        actuator.trigger_haptic_pulse()
