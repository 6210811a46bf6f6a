"""Wall-clock helpers. Components take a clock callable so tests can pin time."""
import time
from typing import Callable

Clock = Callable[[], int]

MS_PER_SECOND = 1000
MS_PER_HOUR = 3600 * MS_PER_SECOND


def epoch_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * MS_PER_SECOND)


def hours_to_ms(hours: float) -> int:
    return int(hours * MS_PER_HOUR)
