import math


def round_half_up(value: float) -> int:
    """Rounds to the nearest integer, halves going up (2.5 -> 3, 58.33 -> 58)."""
    return int(math.floor(value + 0.5))


def clamp_percent(value: int) -> int:
    return max(0, min(100, value))
