"""Feature measurement, healing trends and region summaries."""

from .color import delta_e76, rgb_to_lab, rgb_to_xyz, srgb_to_linear, xyz_to_lab
from .engine import MetricsEngine, compute
from .healing import (
    EffectMagnitude,
    EffectSize,
    HealingRate,
    HealingRateEstimator,
    TimedMeasurement,
    cliffs_delta,
    estimate,
)
from .summary import FaceRegion, RegionSummary, summarize_region

__all__ = [
    "EffectMagnitude",
    "EffectSize",
    "FaceRegion",
    "HealingRate",
    "HealingRateEstimator",
    "MetricsEngine",
    "RegionSummary",
    "TimedMeasurement",
    "cliffs_delta",
    "compute",
    "delta_e76",
    "estimate",
    "rgb_to_lab",
    "rgb_to_xyz",
    "srgb_to_linear",
    "summarize_region",
    "xyz_to_lab",
]
