"""Overall score recomputation from section scores."""

import math
from typing import Iterable


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive scores (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def recompute_overall(scores: Iterable[int], previous: int) -> int:
    """Rounded arithmetic mean of ``scores``.

    An empty list keeps ``previous`` instead of dividing by zero.
    """
    values = list(scores)
    if not values:
        return previous
    return round_half_up(sum(values) / len(values))
