"""Small numeric helpers shared by the engine modules."""

import math


def round_half_up(value: float, ndigits: int = 1) -> float:
    """
    Round with ties going up (toward +inf), e.g. 0.25 -> 0.3, -0.25 -> -0.2.
    Not round(): that one rounds ties to even.
    """
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
