from __future__ import annotations

from config import (
    FEEDBACK_TOO_FAST_MS,
    FEEDBACK_TOO_SLOW_MS,
    PRACTICE_FEEDBACK_DELAY_MS,
    TEST_FEEDBACK_DELAY_MS,
)

INCORRECT = "Incorrect! Try again."
TOO_FAST = "Too fast!"
TOO_SLOW = "Too slow!"
GOOD = "Good!"
CORRECT_INHIBITION = "Good! You correctly avoided tapping on STOP."


def feedback_message(accuracy: bool | None, rt: float | None) -> str:
    """Practice feedback for one resolved trial. Incorrect responses win over speed."""
    if accuracy is False:
        return INCORRECT
    if rt is None:
        return CORRECT_INHIBITION
    if rt < FEEDBACK_TOO_FAST_MS:
        return TOO_FAST
    if rt > FEEDBACK_TOO_SLOW_MS:
        return TOO_SLOW
    return GOOD


def feedback_delay(is_practice: bool) -> float:
    return PRACTICE_FEEDBACK_DELAY_MS if is_practice else TEST_FEEDBACK_DELAY_MS
