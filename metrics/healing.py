"""Healing trends and effect sizes across captures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple, Union

import numpy as np

from configs.settings import HealingConfig
from contracts import TrackedFeature
from log_config.logger import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class TimedMeasurement:
    taken_at: datetime
    value: float


SeriesPoint = Union[TimedMeasurement, Tuple[datetime, float]]
Window = Tuple[datetime, datetime]


@dataclass(frozen=True)
class HealingRate:
    """Linear trend of one metric over a time window.

    ``percent_per_day`` is relative to the fitted value at the first
    measurement, so shrinking lesions report a negative rate.
    """

    percent_per_day: float
    confidence: float  # R^2 of the fit
    slope_per_day: float
    intercept: float
    window: Window
    measurements: Tuple[TimedMeasurement, ...]

    @property
    def is_improving(self) -> bool:
        return self.percent_per_day < 0

    @property
    def span_days(self) -> float:
        if len(self.measurements) < 2:
            return 0.0
        delta = self.measurements[-1].taken_at - self.measurements[0].taken_at
        return delta.total_seconds() / SECONDS_PER_DAY


def _as_measurement(point: SeriesPoint) -> TimedMeasurement:
    if isinstance(point, TimedMeasurement):
        return point
    taken_at, value = point
    return TimedMeasurement(taken_at=taken_at, value=float(value))


def estimate(series: Iterable[SeriesPoint], window: Window, min_points: int = 3) -> Optional[HealingRate]:
    """Fit value against elapsed days inside ``window`` (inclusive).

    Returns None with fewer than ``min_points`` measurements in the window,
    when every measurement shares one timestamp, or when the fitted initial
    value is zero.
    """
    start, end = window
    points = sorted(
        (m for m in map(_as_measurement, series) if start <= m.taken_at <= end),
        key=lambda m: m.taken_at,
    )
    if len(points) < max(min_points, 2):
        logger.debug(f"Healing rate unavailable: {len(points)} points in window")
        return None

    first = points[0].taken_at
    x = np.array([(m.taken_at - first).total_seconds() / SECONDS_PER_DAY for m in points])
    y = np.array([m.value for m in points], dtype=np.float64)

    x_mean = x.mean()
    y_mean = y.mean()
    sxx = float(np.sum((x - x_mean) ** 2))
    if sxx == 0.0:
        logger.debug("Healing rate unavailable: no time spread")
        return None

    ss_total = float(np.sum((y - y_mean) ** 2))
    if ss_total == 0.0:
        # flat series; polyfit can leave a round-off slope
        slope, intercept = 0.0, float(y_mean)
    else:
        slope, intercept = np.polyfit(x, y, 1)
        slope, intercept = float(slope), float(intercept)
    if np.isclose(intercept, 0.0, atol=1e-12):
        logger.debug("Healing rate unavailable: zero initial value")
        return None

    ss_residual = float(np.sum((y - (slope * x + intercept)) ** 2))
    r_squared = 1.0 if ss_total == 0.0 else float(np.clip(1.0 - ss_residual / ss_total, 0.0, 1.0))

    return HealingRate(
        percent_per_day=slope / intercept * 100.0,
        confidence=r_squared,
        slope_per_day=slope,
        intercept=intercept,
        window=(start, end),
        measurements=tuple(points),
    )


class HealingRateEstimator:
    def __init__(self, config: Optional[HealingConfig] = None) -> None:
        self._config = config or HealingConfig()

    def estimate(self, series: Iterable[SeriesPoint], window: Window) -> Optional[HealingRate]:
        return estimate(series, window, self._config.min_points)

    def default_window(self, end: datetime) -> Window:
        return (end - timedelta(days=self._config.window_days), end)

    def from_history(
        self,
        tracked: TrackedFeature,
        window: Optional[Window] = None,
        metric: Optional[str] = None,
    ) -> Optional[HealingRate]:
        """Healing rate of one metric over a tracked feature's history.

        History entries without a capture timestamp are ignored. The window
        defaults to the configured number of days ending at ``last_seen``.
        """
        field_name = metric or self._config.metric
        series = [
            (entry.captured_at, float(getattr(entry, field_name)))
            for entry in tracked.history
            if entry.captured_at is not None
        ]
        return self.estimate(series, window or self.default_window(tracked.last_seen))


class EffectMagnitude(str, Enum):
    NEGLIGIBLE = "negligible"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

    @classmethod
    def from_delta(cls, delta: float) -> "EffectMagnitude":
        size = abs(delta)
        if size < 0.15:
            return cls.NEGLIGIBLE
        if size < 0.33:
            return cls.SMALL
        if size < 0.47:
            return cls.MEDIUM
        return cls.LARGE


@dataclass(frozen=True)
class EffectSize:
    delta: float
    magnitude: EffectMagnitude


def cliffs_delta(group_a: Sequence[float], group_b: Sequence[float]) -> EffectSize:
    """Cliff's delta: P(a > b) - P(a < b) over all cross-group pairs."""
    a = np.asarray(group_a, dtype=np.float64).reshape(-1)
    b = np.asarray(group_b, dtype=np.float64).reshape(-1)
    if a.size == 0 or b.size == 0:
        return EffectSize(delta=0.0, magnitude=EffectMagnitude.NEGLIGIBLE)
    greater = np.count_nonzero(a[:, None] > b[None, :])
    less = np.count_nonzero(a[:, None] < b[None, :])
    delta = float(greater - less) / (a.size * b.size)
    return EffectSize(delta=delta, magnitude=EffectMagnitude.from_delta(delta))
