"""Signal-preserving downsampling for chart series."""

import math
from collections.abc import Callable, Sequence

from ledger_analytics.models import SeriesPoint


def _has_activity(point: SeriesPoint) -> bool:
    return point.has_activity


def downsample(
    points: Sequence[SeriesPoint],
    target: int,
    is_signal: Callable[[SeriesPoint], bool] = _has_activity,
) -> list[SeriesPoint]:
    """Reduce a series towards ``target`` points without losing activity.

    Every signal point is kept. Zero points are stride-sampled into whatever
    budget is left, then the result is re-sorted by period. When the signal
    points alone exceed the target the output exceeds it too.
    """
    if len(points) <= target:
        return list(points)

    signal: list[SeriesPoint] = []
    zero: list[SeriesPoint] = []
    for point in points:
        if is_signal(point):
            signal.append(point)
        else:
            zero.append(point)

    result = list(signal)
    remaining_slots = target - len(signal)
    if remaining_slots > 0 and zero:
        step = math.ceil(len(zero) / remaining_slots)
        result.extend(zero[::step])

    result.sort(key=lambda point: point.period_key)
    return result
