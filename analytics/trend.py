"""
analytics/trend.py

Trend statistics for aggregated time series, in plain Python.

The least-squares line is computed from closed-form sums over
x = [0, 1, ..., n-1]:

    slope     = (n*Sxy - Sx*Sy) / (n*Sxx - Sx^2)
    intercept = (Sy - slope*Sx) / n

The confidence band is the fitted line plus or minus z times the sample
standard deviation (n - 1 denominator) of the residuals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal, Sequence

TrendDirection = Literal["up", "down", "flat", "insufficient_data"]

DEFAULT_Z_SCORE: float = 1.96
_FLAT_TOLERANCE: float = 1e-9


@dataclass(frozen=True)
class TrendLine:
    slope: float
    intercept: float

    def value_at(self, x: float) -> float:
        return self.slope * x + self.intercept

    def fitted(self, n: int) -> list[float]:
        return [self.value_at(i) for i in range(n)]


@dataclass(frozen=True)
class TrendAnalysis:
    """
    Series plus its trend line, moving average and confidence band.

    Every per-point list has the same length as ``values``.
    """

    values: tuple[float, ...]
    trend: TrendLine | None
    fitted: tuple[float, ...] | None
    moving_average: tuple[float | None, ...]
    lower_band: tuple[float, ...] | None
    upper_band: tuple[float, ...] | None
    direction: TrendDirection
    window: int


def trend_line(values: Sequence[float]) -> TrendLine | None:
    """
    Least-squares line through ``(i, values[i])``. None for fewer than two points.
    """

    n = len(values)
    if n < 2:
        return None

    sum_x = 0.0
    sum_y = 0.0
    sum_xy = 0.0
    sum_xx = 0.0
    for x, y in enumerate(values):
        y = float(y)
        sum_x += x
        sum_y += y
        sum_xy += x * y
        sum_xx += x * x

    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return None
    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return TrendLine(slope=slope, intercept=intercept)


def moving_average(values: Sequence[float], window: int) -> list[float | None]:
    """
    Trailing moving average. Positions before the window fills are None.
    """

    if window < 1:
        raise ValueError("window must be at least 1.")

    points = [float(value) for value in values]
    return [
        math.fsum(points[i - window + 1 : i + 1]) / window if i >= window - 1 else None
        for i in range(len(points))
    ]


def confidence_band(
    values: Sequence[float],
    line: TrendLine | None = None,
    *,
    z: float = DEFAULT_Z_SCORE,
) -> tuple[list[float], list[float]] | None:
    """
    Lower and upper band around the trend line. None for fewer than two
    points or when no line exists.
    """

    n = len(values)
    if n < 2:
        return None
    line = line or trend_line(values)
    if line is None:
        return None

    fitted = line.fitted(n)
    residuals = [float(values[i]) - fitted[i] for i in range(n)]
    mean_residual = math.fsum(residuals) / n
    variance = math.fsum((r - mean_residual) ** 2 for r in residuals) / (n - 1)
    margin = z * math.sqrt(variance)
    return [value - margin for value in fitted], [value + margin for value in fitted]


def trend_direction(line: TrendLine | None) -> TrendDirection:
    if line is None:
        return "insufficient_data"
    if abs(line.slope) <= _FLAT_TOLERANCE:
        return "flat"
    return "up" if line.slope > 0 else "down"


def analyze_series(
    values: Sequence[float],
    *,
    window: int = 3,
    z: float = DEFAULT_Z_SCORE,
) -> TrendAnalysis:
    line = trend_line(values)
    band = confidence_band(values, line, z=z) if line is not None else None
    return TrendAnalysis(
        values=tuple(float(value) for value in values),
        trend=line,
        fitted=tuple(line.fitted(len(values))) if line is not None else None,
        moving_average=tuple(moving_average(values, window)),
        lower_band=tuple(band[0]) if band is not None else None,
        upper_band=tuple(band[1]) if band is not None else None,
        direction=trend_direction(line),
        window=window,
    )
