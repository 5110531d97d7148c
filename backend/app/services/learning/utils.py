"""Small numeric helpers shared by the learning services."""
import math
from typing import Iterable


def round_half_up(value: float) -> int:
    """Round .5 toward +infinity (Python's round() is banker's rounding)."""
    return int(math.floor(value + 0.5))


def mean(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)
