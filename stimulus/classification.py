"""Response classification: map a pointer event to a response identity and score it."""
from __future__ import annotations

from dataclasses import dataclass

from config import CRT4_CENTER_THRESHOLD_PX, DEFAULT_VIEWPORT_PX

LEFT = "left"
RIGHT = "right"
UP = "up"
DOWN = "down"
CENTER = "center"
GO = "go"
NOGO = "nogo"


@dataclass(frozen=True)
class Viewport:
    """Response surface in pixels, origin top-left, y growing downwards."""

    width: float = DEFAULT_VIEWPORT_PX[0]
    height: float = DEFAULT_VIEWPORT_PX[1]
    center_threshold_px: float = CRT4_CENTER_THRESHOLD_PX

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("viewport dimensions must be positive")
        if self.center_threshold_px < 0:
            raise ValueError("center threshold must be non-negative")

    @property
    def center(self) -> tuple[float, float]:
        return self.width / 2.0, self.height / 2.0


@dataclass(frozen=True)
class Response:
    """A qualifying input event. Coordinates are optional for paradigms without spatial mapping."""

    timestamp: float
    x: float | None = None
    y: float | None = None


def response_side(x: float, viewport: Viewport) -> str:
    """Screen half under the pointer."""
    return LEFT if x < viewport.width / 2.0 else RIGHT


def response_direction(x: float, y: float, viewport: Viewport) -> str:
    """Quadrant of a 4-choice response.

    The vertical axis is checked first. A pointer inside the threshold band on
    both axes falls in the ``"center"`` bucket, which matches no stimulus.
    """
    cx, cy = viewport.center
    threshold = viewport.center_threshold_px
    if y < cy - threshold:
        return UP
    if y > cy + threshold:
        return DOWN
    if x < cx - threshold:
        return LEFT
    if x > cx + threshold:
        return RIGHT
    return CENTER


def classify_simple(stimulus: str, response: Response | None, viewport: Viewport) -> bool | None:
    return None


def classify_two_choice(stimulus: str, response: Response | None, viewport: Viewport) -> bool | None:
    if response is None or response.x is None:
        return False
    return response_side(response.x, viewport) == stimulus


def classify_four_choice(stimulus: str, response: Response | None, viewport: Viewport) -> bool | None:
    if response is None or response.x is None or response.y is None:
        return False
    return response_direction(response.x, response.y, viewport) == stimulus


def classify_go_nogo(stimulus: str, response: Response | None, viewport: Viewport) -> bool | None:
    # respond to go, withhold on no-go
    if response is None:
        return stimulus == NOGO
    return stimulus == GO
