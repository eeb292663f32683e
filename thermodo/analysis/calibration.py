"""
Trendline calibration for thermodo.
Turns the cells of a frame into a balance point and a resistance.
"""

import math
from typing import List, Optional, Sequence

from thermodo.audio.synth import WaveformConfig
from thermodo.core import constants as C
from thermodo.core.models import Cell, Trendline

# Empirical correction tying the regression zero to the sweep's amplitude range
INTERSECTION_OFFSET = 1.0 / 18.0
INTERSECTION_SCALE = 1.0 - 1.0 / 9.0


def median(values: Sequence[float]) -> float:
    """
    Robust median used throughout the decoder.

    Returns 0 for no values and the first value when there are one or two,
    otherwise the upper median of the sorted values.
    """
    if len(values) == 0:
        return 0
    if len(values) <= 2:
        return values[0]
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


def round_to_multiple(value: int, base: int) -> int:
    """Round ``value`` half-up to the nearest multiple of ``base``."""
    return int(math.floor(value / base + 0.5)) * base


class Calibrator:
    """Maps frame cells to a resistance through a least-squares trendline."""

    def __init__(
        self,
        config: Optional[WaveformConfig] = None,
        ref_resistance: float = C.REF_RESISTANCE,
    ):
        self.config = config or WaveformConfig()
        self.ref_resistance = ref_resistance

    def fit(self, cells: Sequence[Cell]) -> Trendline:
        """
        Fit a trendline over cell amplitudes placed at cell centres.

        Args:
            cells: Cells of one frame

        Returns:
            Fitted trendline (NaN slope if the fit is degenerate)
        """
        samples_per_cell = self.config.samples_per_cell
        n = len(cells)
        sum_x = sum_y = sum_xy = sum_xx = 0.0
        for cell in cells:
            x = cell.index * samples_per_cell + samples_per_cell // 2
            y = cell.amplitude
            sum_x += x
            sum_y += y
            sum_xx += x * x
            sum_xy += x * y

        denominator = n * sum_xx - sum_x ** 2
        if n == 0 or denominator == 0:
            return Trendline(slope=math.nan, intercept=math.nan)

        slope = (n * sum_xy - sum_x * sum_y) / denominator
        intercept = (sum_y - slope * sum_x) / n
        return Trendline(slope=slope, intercept=intercept)

    def x_intersection(self, trendline: Trendline) -> float:
        """
        Normalized position where the trendline crosses the x axis.

        Returns NaN for a horizontal or degenerate trendline.
        """
        if trendline.slope == 0 or math.isnan(trendline.slope):
            return math.nan
        intersection = -trendline.intercept / trendline.slope
        local = intersection / self.config.samples_per_frame
        return (local - INTERSECTION_OFFSET) / INTERSECTION_SCALE

    def cancellation_amplitude(self, intersection: float) -> float:
        upper = self.config.upper_amplitude
        lower = self.config.lower_amplitude
        return upper - intersection * (upper - lower)

    def resistance(self, cancellation_amplitude: float) -> float:
        return cancellation_amplitude / self.config.reference_amplitude * self.ref_resistance

    def frame_intersections(self, frames) -> List[float]:
        """Intersection of every frame's trendline."""
        return [self.x_intersection(self.fit(frame.cells)) for frame in frames]

    def resistance_from_intersections(self, intersections: Sequence[float]) -> float:
        """
        Median the per-frame intersections and map the result to a resistance.

        Frames without a finite intersection are left out; if none remain
        the resistance is NaN.
        """
        finite = [value for value in intersections if math.isfinite(value)]
        if not finite:
            return math.nan
        return self.resistance(self.cancellation_amplitude(median(finite)))
