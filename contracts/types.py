"""Core data contracts for calibration, plane fitting, metrics and re-identification."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from contracts.classes import LesionClass
from exceptions import ConfigurationError

Point2D = Tuple[float, float]


def _readonly(array: Any, dtype: Any) -> np.ndarray:
    view = np.asarray(array, dtype=dtype).view()
    view.setflags(write=False)
    return view


@dataclass(frozen=True)
class IntrinsicCameraModel:
    fx: float
    fy: float
    cx: float
    cy: float
    width: int
    height: int

    @classmethod
    def from_matrix(cls, matrix: Any, width: int, height: int) -> "IntrinsicCameraModel":
        """Build from a 3x3 pinhole matrix [[fx, 0, cx], [0, fy, cy], [0, 0, 1]]."""
        k = np.asarray(matrix, dtype=float)
        if k.shape != (3, 3):
            raise ConfigurationError(f"Intrinsic matrix must be 3x3, got {k.shape}", field="matrix")
        return cls(
            fx=float(k[0, 0]),
            fy=float(k[1, 1]),
            cx=float(k[0, 2]),
            cy=float(k[1, 2]),
            width=int(width),
            height=int(height),
        )

    @property
    def mean_focal_length_px(self) -> float:
        return (self.fx + self.fy) / 2.0

    def validate(self) -> "IntrinsicCameraModel":
        for name in ("fx", "fy"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise ConfigurationError(f"Focal length {name} must be positive, got {value}", field=name)
        for name in ("cx", "cy"):
            if not math.isfinite(getattr(self, name)):
                raise ConfigurationError(f"Principal point {name} must be finite", field=name)
        for name in ("width", "height"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(f"Image {name} must be positive, got {value}", field=name)
        return self

    def px_to_mm(self, pixels: float, depth_mm: float) -> float:
        if depth_mm <= 0:
            raise ConfigurationError(f"Depth must be positive, got {depth_mm}", field="depth_mm")
        return pixels * depth_mm / self.mean_focal_length_px

    def mm_to_px(self, mm: float, depth_mm: float) -> float:
        if depth_mm <= 0:
            raise ConfigurationError(f"Depth must be positive, got {depth_mm}", field="depth_mm")
        return mm * self.mean_focal_length_px / depth_mm

    def pixel_area_mm2(self, depth_mm: float) -> float:
        scale = depth_mm / self.mean_focal_length_px
        return scale * scale


class ScaleMethod(str, Enum):
    INTRINSICS = "intrinsics"  # sensor depth + camera intrinsics (preferred)
    MARKER = "marker"  # 10mm reference marker (fallback)

    @property
    def description(self) -> str:
        if self is ScaleMethod.INTRINSICS:
            return "Sensor depth with camera intrinsics (preferred)"
        return "Reference marker"


@dataclass(frozen=True, eq=False)
class CalibratedDepthField:
    """Millimeter depth grid for one capture. ``depth_mm == 0`` means no data."""

    depth_mm: np.ndarray
    confidence: np.ndarray
    method: ScaleMethod
    focal_length_px: float
    intrinsics: Optional[IntrinsicCameraModel] = None
    pixels_per_mm: Optional[float] = None

    def __post_init__(self) -> None:
        depth = _readonly(self.depth_mm, np.float64)
        confidence = _readonly(self.confidence, np.float32)
        if depth.ndim != 2 or depth.shape != confidence.shape:
            raise ConfigurationError(
                f"Depth {depth.shape} and confidence {confidence.shape} grids must be matching 2-D arrays"
            )
        object.__setattr__(self, "depth_mm", depth)
        object.__setattr__(self, "confidence", confidence)

    @classmethod
    def empty(
        cls,
        width: int,
        height: int,
        method: ScaleMethod = ScaleMethod.INTRINSICS,
        intrinsics: Optional[IntrinsicCameraModel] = None,
    ) -> "CalibratedDepthField":
        shape = (max(int(height), 0), max(int(width), 0))
        return cls(
            depth_mm=np.zeros(shape, dtype=np.float64),
            confidence=np.zeros(shape, dtype=np.float32),
            method=method,
            focal_length_px=intrinsics.mean_focal_length_px if intrinsics is not None else 0.0,
            intrinsics=intrinsics,
        )

    @property
    def width(self) -> int:
        return int(self.depth_mm.shape[1])

    @property
    def height(self) -> int:
        return int(self.depth_mm.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def valid_mask(self) -> np.ndarray:
        return self.depth_mm > 0

    @property
    def mean_confidence(self) -> float:
        valid = self.valid_mask
        if not valid.any():
            return 0.0
        return float(self.confidence[valid].mean())

    def depth_at(self, x: float, y: float) -> Optional[float]:
        col = int(x)
        row = int(y)
        if col < 0 or row < 0 or col >= self.width or row >= self.height:
            return None
        return float(self.depth_mm[row, col])

    def px_to_mm(self, pixels: float, depth_mm: float) -> float:
        if depth_mm <= 0 or self.focal_length_px <= 0:
            return 0.0
        return pixels * depth_mm / self.focal_length_px

    def pixel_area_mm2(self, depth_mm: Any) -> Any:
        if self.focal_length_px <= 0:
            return np.zeros_like(np.asarray(depth_mm, dtype=float))
        scale = np.asarray(depth_mm, dtype=float) / self.focal_length_px
        return scale * scale


@dataclass(frozen=True)
class ReferenceMarker:
    center: Point2D
    radius_px: float
    confidence: float
    known_diameter_mm: float = 10.0

    @property
    def pixels_per_mm(self) -> float:
        return self.radius_px * 2.0 / self.known_diameter_mm


@dataclass(frozen=True, eq=False)
class LocalPlane:
    """Reference plane in (pixel x, pixel y, depth mm) space.

    The normal is unit length and points toward the camera (non-positive z),
    so a positive signed distance means the point sits above the surface.
    """

    normal: np.ndarray
    point: np.ndarray
    inliers: int
    rmse: float

    def __post_init__(self) -> None:
        normal = np.asarray(self.normal, dtype=float).reshape(3)
        length = float(np.linalg.norm(normal))
        if length == 0.0 or not math.isfinite(length):
            raise ConfigurationError("Plane normal must be a non-zero finite vector", field="normal")
        normal = normal / length
        if normal[2] > 0:
            normal = -normal
        object.__setattr__(self, "normal", _readonly(normal, float))
        object.__setattr__(self, "point", _readonly(np.asarray(self.point, dtype=float).reshape(3), float))
        object.__setattr__(self, "rmse", max(0.0, float(self.rmse)))

    def signed_distance(self, point: Any) -> Any:
        """Signed distance for one point (3,) or many points (N, 3)."""
        offset = np.asarray(point, dtype=float) - self.point
        return offset @ self.normal

    def elevation(self, point: Any) -> Any:
        return np.abs(self.signed_distance(point))

    def height_above(self, point: Any) -> Any:
        """Height toward the camera; negative below the surface."""
        return self.signed_distance(point)

    def project(self, point: Any) -> np.ndarray:
        p = np.asarray(point, dtype=float)
        d = self.signed_distance(p)
        return p - np.multiply.outer(d, self.normal)


@dataclass(frozen=True)
class DepthQuality:
    mean_confidence: float
    valid_ratio: float
    uniformity: float
    noise_mm: float

    @classmethod
    def empty(cls) -> "DepthQuality":
        return cls(mean_confidence=0.0, valid_ratio=0.0, uniformity=0.0, noise_mm=0.0)

    @property
    def is_high_quality(self) -> bool:
        return (
            self.mean_confidence > 0.7
            and self.valid_ratio > 0.9
            and self.uniformity > 0.8
            and self.noise_mm < 2.0
        )

    @property
    def description(self) -> str:
        if self.is_high_quality:
            return "High quality"
        if self.mean_confidence < 0.5:
            return "Low confidence"
        if self.valid_ratio < 0.7:
            return "Sparse depth data"
        if self.uniformity < 0.6:
            return "Inconsistent depth"
        return "Moderate quality"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mean_confidence": self.mean_confidence,
            "valid_ratio": self.valid_ratio,
            "uniformity": self.uniformity,
            "noise_mm": self.noise_mm,
            "is_high_quality": self.is_high_quality,
        }


@dataclass(frozen=True)
class BoundingBox:
    """Inclusive pixel bounds."""

    x_min: int
    y_min: int
    x_max: int
    y_max: int

    @property
    def width(self) -> int:
        return self.x_max - self.x_min + 1

    @property
    def height(self) -> int:
        return self.y_max - self.y_min + 1


@dataclass(frozen=True, eq=False)
class FeatureCandidate:
    """Segmentation output for one feature. Read-only to this package."""

    mask: np.ndarray
    bbox: BoundingBox
    centroid: Point2D
    pixel_count: int
    lesion_class: LesionClass
    confidence: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "mask", _readonly(self.mask, bool))
        object.__setattr__(self, "lesion_class", LesionClass.parse(self.lesion_class))

    @classmethod
    def from_mask(
        cls,
        mask: Any,
        lesion_class: LesionClass | str,
        confidence: float = 1.0,
    ) -> "FeatureCandidate":
        grid = np.asarray(mask, dtype=bool)
        rows, cols = np.nonzero(grid)
        if rows.size == 0:
            return cls(
                mask=grid,
                bbox=BoundingBox(0, 0, 0, 0),
                centroid=(0.0, 0.0),
                pixel_count=0,
                lesion_class=lesion_class,
                confidence=confidence,
            )
        return cls(
            mask=grid,
            bbox=BoundingBox(int(cols.min()), int(rows.min()), int(cols.max()), int(rows.max())),
            centroid=(float(cols.mean()), float(rows.mean())),
            pixel_count=int(rows.size),
            lesion_class=lesion_class,
            confidence=confidence,
        )


@dataclass(frozen=True)
class FeatureMetrics:
    diameter_mm: float
    equivalent_diameter_mm: float
    area_mm2: float
    elevation_mm: float
    max_elevation_mm: float
    volume_mm3: float
    redness_delta: float
    lightness: float
    delta_e: float
    specular_ratio: float
    perimeter: float
    circularity: float
    aspect_ratio: float
    confidence: float
    depth_quality: DepthQuality
    scale_method: ScaleMethod
    lesion_class: LesionClass
    plane_rmse_mm: Optional[float] = None
    captured_at: Optional[datetime] = None

    @classmethod
    def zero(
        cls,
        lesion_class: LesionClass,
        scale_method: ScaleMethod,
        depth_quality: Optional[DepthQuality] = None,
        captured_at: Optional[datetime] = None,
    ) -> "FeatureMetrics":
        return cls(
            diameter_mm=0.0,
            equivalent_diameter_mm=0.0,
            area_mm2=0.0,
            elevation_mm=0.0,
            max_elevation_mm=0.0,
            volume_mm3=0.0,
            redness_delta=0.0,
            lightness=0.0,
            delta_e=0.0,
            specular_ratio=0.0,
            perimeter=0.0,
            circularity=0.0,
            aspect_ratio=0.0,
            confidence=0.0,
            depth_quality=depth_quality or DepthQuality.empty(),
            scale_method=scale_method,
            lesion_class=lesion_class,
            captured_at=captured_at,
        )

    @property
    def meets_quality_standards(self) -> bool:
        return self.confidence >= 0.7 and self.depth_quality.is_high_quality

    def to_dict(self) -> Dict[str, Any]:
        return {
            "diameter_mm": self.diameter_mm,
            "equivalent_diameter_mm": self.equivalent_diameter_mm,
            "area_mm2": self.area_mm2,
            "elevation_mm": self.elevation_mm,
            "max_elevation_mm": self.max_elevation_mm,
            "volume_mm3": self.volume_mm3,
            "redness_delta": self.redness_delta,
            "lightness": self.lightness,
            "delta_e": self.delta_e,
            "specular_ratio": self.specular_ratio,
            "perimeter": self.perimeter,
            "circularity": self.circularity,
            "aspect_ratio": self.aspect_ratio,
            "confidence": self.confidence,
            "depth_quality": self.depth_quality.to_dict(),
            "scale_method": self.scale_method.value,
            "lesion_class": self.lesion_class.value,
            "plane_rmse_mm": self.plane_rmse_mm,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
        }


@dataclass(frozen=True, eq=False)
class FeatureObservation:
    """A current-capture feature as seen by the matcher."""

    surface_uv: Point2D
    lesion_class: LesionClass
    appearance: np.ndarray
    confidence: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "appearance", _readonly(self.appearance, np.float64).reshape(-1))
        object.__setattr__(self, "lesion_class", LesionClass.parse(self.lesion_class))


@dataclass(frozen=True, eq=False)
class TrackedFeature:
    """Cross-capture identity. Instances are replaced, never mutated."""

    id: str
    lesion_class: LesionClass
    surface_uv: Point2D
    appearance: np.ndarray
    first_seen: datetime
    last_seen: datetime
    consecutive_captures: int = 1
    history: Tuple[FeatureMetrics, ...] = field(default_factory=tuple)
    name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "appearance", _readonly(self.appearance, np.float64).reshape(-1))
        object.__setattr__(self, "lesion_class", LesionClass.parse(self.lesion_class))
        object.__setattr__(self, "history", tuple(self.history))

    @property
    def is_consistently_tracked(self) -> bool:
        return self.consecutive_captures >= 3

    def weekly_continuity(self, weeks: int = 1) -> float:
        """Share of expected daily captures covered by the current streak."""
        expected = max(weeks, 1) * 7
        return min(1.0, self.consecutive_captures / expected)


class MatchOutcome(str, Enum):
    TRACKED = "tracked"
    NEW = "new"
    # never produced by the matcher; absences are reported by track.lost_ids
    LOST = "lost"


@dataclass(frozen=True)
class MatchResult:
    observation_index: int
    observation: FeatureObservation
    tracked_id: Optional[str]
    assigned_id: str
    score: float
    outcome: MatchOutcome

    @property
    def is_tracked(self) -> bool:
        return self.outcome is MatchOutcome.TRACKED


def stable_feature_id(lesion_class: LesionClass, surface_uv: Sequence[float]) -> str:
    """Deterministic id for a newly seen feature from its class and surface position."""
    u, v = float(surface_uv[0]), float(surface_uv[1])
    return f"{LesionClass.parse(lesion_class).value}_{u:.3f}_{v:.3f}"
