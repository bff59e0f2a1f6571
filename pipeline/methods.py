"""
Reduction methods used by the distiller to turn a series into one observable.

Every series is ordered newest-first (index 0 is the live period). Methods are
total over their input domain: insufficient data yields None (0 for `streak`)
instead of raising, so one sparse source never breaks a read.

Usage:
    from pipeline.methods import resolve

    fn = resolve("rate", interval_minutes=60)
    fn([100.0, 80.0])  # 20 / 3600 per second
"""

from __future__ import annotations

import math
from functools import partial
from typing import Any, Callable, Mapping, Optional, Sequence

Series = Sequence[Any]


def twa(series: Sequence[Mapping[str, float]]) -> Optional[float]:
    """
    Time-weighted average of {value, start, end} samples.

    Each sample is weighted by `end - start`.

    Returns:
        Weighted mean, or None if the series is empty or total weight <= 0
    """
    if len(series) < 1:
        return None

    total = 0.0
    weight = 0.0
    for sample in series:
        duration = sample["end"] - sample["start"]
        total += sample["value"] * duration
        weight += duration

    return total / weight if weight > 0 else None


def slope(series: Series) -> Optional[float]:
    """
    OLS slope of value vs chronological index, divided by the series mean.

    The result is a relative trend: 0.01 means the fitted line rises by 1% of
    the mean per period.

    Returns:
        Relative slope, or None with fewer than 2 points or a zero mean
    """
    chronological = list(reversed(series))
    n = len(chronological)
    if n < 2:
        return None

    x_mean = (n - 1) / 2
    y_mean = sum(chronological) / n

    numerator = 0.0
    denominator = 0.0
    for i, y in enumerate(chronological):
        numerator += (i - x_mean) * (y - y_mean)
        denominator += (i - x_mean) ** 2

    if denominator == 0 or y_mean == 0:
        return None
    return (numerator / denominator) / y_mean


def lret(series: Series) -> Optional[float]:
    """Log return between the oldest and newest sample: log(1 + (newest - oldest) / oldest)."""
    if len(series) < 2:
        return None
    oldest = series[-1]
    newest = series[0]
    if oldest == 0:
        return None
    try:
        return math.log1p((newest - oldest) / oldest)
    except ValueError:
        # Sign flip between oldest and newest: log of a non-positive ratio
        return None


def rate(series: Series, interval_minutes: float = 60) -> Optional[float]:
    """
    Change per second between the oldest and newest sample.

    Samples are assumed equally spaced by `interval_minutes` (n - 1 intervals).
    """
    if len(series) < 2:
        return None
    elapsed = interval_minutes * 60 * (len(series) - 1)
    if elapsed <= 0:
        return None
    return (series[0] - series[-1]) / elapsed


def streak(series: Series) -> int:
    """Number of leading samples equal to the newest one (0 with fewer than 2 points)."""
    if len(series) < 2:
        return 0
    count = 1
    for value in series[1:]:
        if value != series[0]:
            break
        count += 1
    return count


def raw(series: Series) -> Any:
    return series[0] if len(series) >= 1 else None


def sum_(series: Series) -> Optional[float]:
    if len(series) < 1:
        return None
    return sum(series)


METHODS: dict[str, Callable[..., Any]] = {
    "twa": twa,
    "slope": slope,
    "lret": lret,
    "rate": rate,
    "streak": streak,
    "raw": raw,
    "sum": sum_,
}

# Methods that need the archive interval bound before use
_INTERVAL_AWARE = frozenset({"rate"})


def resolve(name: str, *, interval_minutes: float) -> Callable[[Series], Any]:
    """Look up a method by name.

    Raises:
        ValueError: If the method is unknown (an adapter configuration error)
    """
    fn = METHODS.get(name)
    if fn is None:
        raise ValueError(f"Unknown method: {name}. Supported: {', '.join(sorted(METHODS))}")
    if name in _INTERVAL_AWARE:
        return partial(fn, interval_minutes=interval_minutes)
    return fn
