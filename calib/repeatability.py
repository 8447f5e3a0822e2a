"""Repeatability statistics for repeated measurements of the same feature."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

# Acceptance: diameter repeatability within +/-0.6mm
MAX_DIAMETER_STD_MM = 0.6


@dataclass(frozen=True)
class ScaleRepeatability:
    measurements: Tuple[float, ...]

    @classmethod
    def from_measurements(cls, measurements: Sequence[float]) -> "ScaleRepeatability":
        return cls(measurements=tuple(float(m) for m in measurements))

    @property
    def mean(self) -> float:
        if not self.measurements:
            return 0.0
        return float(np.mean(self.measurements))

    @property
    def standard_deviation(self) -> float:
        if not self.measurements:
            return 0.0
        return float(np.std(self.measurements))

    @property
    def coefficient_of_variation(self) -> float:
        mean = self.mean
        if mean == 0.0:
            return 0.0
        return self.standard_deviation / mean

    @property
    def meets_acceptance_criteria(self) -> bool:
        return bool(self.measurements) and self.standard_deviation <= MAX_DIAMETER_STD_MM
