"""Per-feature measurements from a calibrated depth field and a color image.

Each measurement group degrades on its own: a feature without centroid depth
still gets shape and color, a feature without a boundary plane still gets
size. Only an empty or misaligned mask zeroes everything.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Optional, Tuple

import cv2
import numpy as np
from scipy.spatial.distance import pdist

from configs.settings import MetricsConfig, PlaneConfig
from contracts import CalibratedDepthField, DepthQuality, FeatureCandidate, FeatureMetrics
from detect.utils import boundary_mask, to_uint8_image
from log_config.logger import get_logger
from metrics.color import delta_e76, rgb_to_lab
from surface import DepthQualityEvaluator, PlaneFitter

logger = get_logger(__name__)


class MetricsEngine:
    def __init__(
        self,
        config: Optional[MetricsConfig] = None,
        plane_config: Optional[PlaneConfig] = None,
    ) -> None:
        self._config = config or MetricsConfig()
        self._plane_config = plane_config or PlaneConfig()
        self._fitter = PlaneFitter(self._plane_config)
        self._quality = DepthQualityEvaluator()

    def compute(
        self,
        feature: FeatureCandidate,
        depth_field: CalibratedDepthField,
        color_image: Any,
        mask: Any = None,
        captured_at: Optional[datetime] = None,
    ) -> FeatureMetrics:
        """Measure one feature.

        Args:
            feature: Segmentation candidate (class, detection confidence)
            depth_field: Calibrated depth for the capture
            color_image: RGB image aligned to the depth grid
            mask: Optional override for ``feature.mask``
            captured_at: Capture timestamp carried into the result

        Returns:
            FeatureMetrics; zero-valued where a measurement is unavailable
        """
        grid = feature.mask if mask is None else np.asarray(mask, dtype=bool)
        zero = FeatureMetrics.zero(feature.lesion_class, depth_field.method, captured_at=captured_at)
        if grid.shape != depth_field.shape:
            logger.warning(f"Mask shape {grid.shape} does not match depth field {depth_field.shape}")
            return zero

        rows, cols = np.nonzero(grid)
        pixel_count = int(rows.size)
        if pixel_count == 0:
            logger.debug(f"Empty mask for {feature.lesion_class.value}, returning zero metrics")
            return zero

        quality = self._quality.evaluate(depth_field, grid)
        centroid = (float(cols.mean()), float(rows.mean()))
        boundary = boundary_mask(grid)
        perimeter, circularity, aspect_ratio = _shape(boundary, pixel_count, rows, cols)

        diameter_mm = equivalent_diameter_mm = area_mm2 = 0.0
        centroid_depth = depth_field.depth_at(round(centroid[0]), round(centroid[1])) or 0.0
        if centroid_depth > 0 and depth_field.focal_length_px > 0:
            diameter_mm = depth_field.px_to_mm(_max_feret(boundary), centroid_depth)
            area_mm2 = pixel_count * float(depth_field.pixel_area_mm2(centroid_depth))
            equivalent_diameter_mm = 2.0 * math.sqrt(area_mm2 / math.pi)
        else:
            logger.debug(f"No depth at centroid ({centroid[0]:.1f}, {centroid[1]:.1f})")

        elevation_mm, max_elevation_mm, volume_mm3, plane_rmse = self._elevation(depth_field, grid)
        redness, lightness, delta_e, specular_ratio = self._color(color_image, grid, centroid, pixel_count)

        return FeatureMetrics(
            diameter_mm=float(diameter_mm),
            equivalent_diameter_mm=float(equivalent_diameter_mm),
            area_mm2=float(area_mm2),
            elevation_mm=elevation_mm,
            max_elevation_mm=max_elevation_mm,
            volume_mm3=volume_mm3,
            redness_delta=redness,
            lightness=lightness,
            delta_e=delta_e,
            specular_ratio=specular_ratio,
            perimeter=float(perimeter),
            circularity=circularity,
            aspect_ratio=aspect_ratio,
            confidence=self._confidence(feature.confidence, quality),
            depth_quality=quality,
            scale_method=depth_field.method,
            lesion_class=feature.lesion_class,
            plane_rmse_mm=plane_rmse,
            captured_at=captured_at,
        )

    def _elevation(
        self, depth_field: CalibratedDepthField, grid: np.ndarray
    ) -> Tuple[float, float, float, Optional[float]]:
        """Mean, max and volume of height above the boundary plane.

        Heights below the plane are clamped to zero before every aggregate.
        """
        plane = self._fitter.fit_boundary_plane(depth_field, grid, self._plane_config.ring_width_px)
        if plane is None:
            return 0.0, 0.0, 0.0, None

        heights = np.clip(self._fitter.elevation_map(depth_field, plane, grid), 0.0, None)
        measured = grid & depth_field.valid_mask
        if not measured.any():
            return 0.0, 0.0, 0.0, plane.rmse

        values = heights[measured]
        raised = values[values > 0]
        mean_elevation = float(raised.mean()) if raised.size else 0.0
        max_elevation = float(values.max())
        areas = depth_field.pixel_area_mm2(depth_field.depth_mm[measured])
        volume = float(np.sum(values * areas))
        return mean_elevation, max_elevation, volume, plane.rmse

    def _color(
        self,
        color_image: Any,
        grid: np.ndarray,
        centroid: Tuple[float, float],
        pixel_count: int,
    ) -> Tuple[float, float, float, float]:
        """Redness delta, mean L*, CIE76 delta E and specular ratio."""
        image = to_uint8_image(color_image)
        if image is None or image.shape[:2] != grid.shape:
            logger.warning("Color image missing or misaligned, skipping color metrics")
            return 0.0, 0.0, 0.0, 0.0
        if image.ndim == 2:
            rgb = np.repeat(image[:, :, None], 3, axis=2)
        elif image.shape[2] == 1:
            rgb = np.repeat(image, 3, axis=2)
        else:
            rgb = image[:, :, :3]

        specular = np.all(rgb >= self._config.specular_threshold, axis=2)
        specular_ratio = float(np.count_nonzero(specular & grid)) / pixel_count

        eq_radius = math.sqrt(pixel_count / math.pi)
        ys, xs = np.ogrid[: grid.shape[0], : grid.shape[1]]
        dist = np.hypot(xs - centroid[0], ys - centroid[1])
        ring = (dist > eq_radius) & (dist < eq_radius + self._config.skin_ring_px) & ~grid & ~specular
        lesion = grid & ~specular

        if not lesion.any():
            return 0.0, 0.0, 0.0, specular_ratio
        lesion_lab = rgb_to_lab(rgb[lesion]).mean(axis=0)
        lightness = float(lesion_lab[0])
        if not ring.any():
            return 0.0, lightness, 0.0, specular_ratio

        skin_lab = rgb_to_lab(rgb[ring]).mean(axis=0)
        redness = float(lesion_lab[1] - skin_lab[1])
        return redness, lightness, float(delta_e76(lesion_lab, skin_lab)), specular_ratio

    def _confidence(self, detection: float, quality: DepthQuality) -> float:
        w_detection, w_depth, w_valid, w_uniformity = self._config.confidence_weights
        score = (
            w_detection * detection
            + w_depth * quality.mean_confidence
            + w_valid * quality.valid_ratio
            + w_uniformity * quality.uniformity
        )
        return float(np.clip(score, 0.0, 1.0))


def _max_feret(boundary: np.ndarray) -> float:
    """Largest distance between two boundary pixels, in pixels."""
    rows, cols = np.nonzero(boundary)
    if rows.size < 2:
        return 0.0
    points = np.column_stack((cols, rows)).astype(np.int32)
    hull = cv2.convexHull(points).reshape(-1, 2)
    if hull.shape[0] < 2:
        return 0.0
    return float(pdist(hull.astype(np.float64)).max())


def _shape(
    boundary: np.ndarray, pixel_count: int, rows: np.ndarray, cols: np.ndarray
) -> Tuple[int, float, float]:
    perimeter = int(np.count_nonzero(boundary))
    circularity = 4.0 * math.pi * pixel_count / (perimeter * perimeter) if perimeter else 0.0
    width = int(cols.max() - cols.min() + 1)
    height = int(rows.max() - rows.min() + 1)
    return perimeter, float(circularity), width / height


_default_engine = MetricsEngine()


def compute(
    feature: FeatureCandidate,
    depth_field: CalibratedDepthField,
    color_image: Any,
    mask: Any = None,
    captured_at: Optional[datetime] = None,
) -> FeatureMetrics:
    return _default_engine.compute(feature, depth_field, color_image, mask, captured_at)
