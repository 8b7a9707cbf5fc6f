"""Small helpers shared across services."""
import math


def percent(part: int, whole: int) -> int:
    """Whole-number percentage of part in whole, rounding halves up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return math.floor(100 * part / whole + 0.5)


def truncate_text(text: str, max_length: int) -> str:
    """Shorten text to max_length characters, marking the cut with an ellipsis."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."
