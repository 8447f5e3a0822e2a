"""Per-region aggregation of one capture's feature metrics."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import numpy as np

from contracts import FeatureMetrics, LesionClass


class FaceRegion(str, Enum):
    T_ZONE = "T-zone"  # forehead, nose
    U_ZONE = "U-zone"  # cheeks, chin
    LEFT_CHEEK = "Left Cheek"
    RIGHT_CHEEK = "Right Cheek"
    FOREHEAD = "Forehead"
    CHIN = "Chin"


@dataclass(frozen=True)
class RegionSummary:
    region: FaceRegion
    papule_count: int
    pustule_count: int
    nodule_count: int
    comedone_count: int
    pih_pie_count: int
    scar_count: int
    mole_count: int
    inflamed_area_mm2: float
    mean_diameter_mm: float
    mean_elevation_mm: float
    mean_redness_delta: float

    @property
    def total_lesion_count(self) -> int:
        return (
            self.papule_count
            + self.pustule_count
            + self.nodule_count
            + self.comedone_count
            + self.pih_pie_count
            + self.scar_count
            + self.mole_count
        )

    @property
    def inflamed_count(self) -> int:
        return self.papule_count + self.pustule_count + self.nodule_count


def summarize_region(metrics: Iterable[FeatureMetrics], region: FaceRegion) -> RegionSummary:
    items = list(metrics)

    def count(*classes: LesionClass) -> int:
        return sum(1 for m in items if m.lesion_class in classes)

    inflamed = [m for m in items if m.lesion_class.is_inflamed]
    return RegionSummary(
        region=FaceRegion(region),
        papule_count=count(LesionClass.PAPULE),
        pustule_count=count(LesionClass.PUSTULE),
        nodule_count=count(LesionClass.NODULE),
        comedone_count=count(LesionClass.COMEDONE_OPEN, LesionClass.COMEDONE_CLOSED),
        pih_pie_count=count(LesionClass.PIH, LesionClass.PIE),
        scar_count=count(LesionClass.SCAR),
        mole_count=count(LesionClass.MOLE),
        inflamed_area_mm2=float(sum(m.area_mm2 for m in inflamed)),
        mean_diameter_mm=float(np.mean([m.diameter_mm for m in items])) if items else 0.0,
        mean_elevation_mm=float(np.mean([m.elevation_mm for m in items])) if items else 0.0,
        mean_redness_delta=float(np.mean([m.redness_delta for m in inflamed])) if inflamed else 0.0,
    )
