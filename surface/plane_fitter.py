"""Local reference plane around a feature.

Points live in (pixel x, pixel y, depth mm) space. The plane is fitted to a
ring of skin just outside the feature mask, so a raised lesion shows up as
positive height above it.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

from configs.settings import PlaneConfig
from contracts import CalibratedDepthField, LocalPlane
from detect.utils import ring_mask
from log_config.logger import get_logger

logger = get_logger(__name__)


class PlaneFitter:
    def __init__(self, config: Optional[PlaneConfig] = None) -> None:
        self._config = config or PlaneConfig()

    def fit_boundary_plane(
        self,
        depth_field: CalibratedDepthField,
        mask: Any,
        ring_width: Optional[int] = None,
    ) -> Optional[LocalPlane]:
        """Fit a plane to valid depth samples in the ring around ``mask``.

        Returns:
            The fitted plane, or None when fewer than three ring samples have
            depth or every sample is degenerate.
        """
        grid = np.asarray(mask, dtype=bool)
        if grid.shape != depth_field.shape:
            logger.warning(f"Mask shape {grid.shape} does not match depth field {depth_field.shape}")
            return None

        width = self._config.ring_width_px if ring_width is None else int(ring_width)
        ring = ring_mask(grid, width) & depth_field.valid_mask
        rows, cols = np.nonzero(ring)
        if rows.size < 3:
            logger.debug(f"Plane fit skipped: {rows.size} valid ring samples")
            return None

        points = np.column_stack((cols, rows, depth_field.depth_mm[rows, cols])).astype(np.float64)
        return self.fit_plane(points)

    def fit_plane(self, points: Any) -> Optional[LocalPlane]:
        """RANSAC plane through (N, 3) points with least-squares refinement."""
        cfg = self._config
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        n = pts.shape[0]
        if n < 3:
            return None

        rng = np.random.default_rng(cfg.seed)
        best_normal: Optional[np.ndarray] = None
        best_point: Optional[np.ndarray] = None
        best_count = 0
        best_rmse = float("inf")
        degenerate = 0

        for _ in range(cfg.iterations):
            p0, p1, p2 = pts[rng.choice(n, size=3, replace=False)]
            cross = np.cross(p1 - p0, p2 - p0)
            length = float(np.linalg.norm(cross))
            if length < cfg.min_sample_cross:
                degenerate += 1
                continue
            normal = cross / length
            count, rmse = _score(pts, normal, p0, cfg.inlier_tolerance_mm)
            if count > best_count or (count == best_count and rmse < best_rmse):
                best_normal, best_point = normal, p0
                best_count, best_rmse = count, rmse

        if best_normal is None or best_point is None:
            logger.debug(f"Plane fit failed: all {cfg.iterations} samples degenerate")
            return None

        # refine on the consensus set
        distances = np.abs((pts - best_point) @ best_normal)
        inliers = pts[distances <= cfg.inlier_tolerance_mm]
        if inliers.shape[0] >= 3:
            centroid = inliers.mean(axis=0)
            _, _, vt = np.linalg.svd(inliers - centroid, full_matrices=False)
            refined = vt[-1]
            count, rmse = _score(pts, refined, centroid, cfg.inlier_tolerance_mm)
            if count >= best_count:
                best_normal, best_point = refined, centroid
                best_count, best_rmse = count, rmse

        logger.debug(
            f"Plane fit: {best_count}/{n} inliers, rmse {best_rmse:.3f}mm, "
            f"{degenerate} degenerate samples"
        )
        return LocalPlane(normal=best_normal, point=best_point, inliers=best_count, rmse=best_rmse)

    def elevation_map(
        self,
        depth_field: CalibratedDepthField,
        plane: LocalPlane,
        mask: Any,
    ) -> np.ndarray:
        """Signed height above ``plane`` for masked valid pixels, 0 elsewhere."""
        grid = np.asarray(mask, dtype=bool)
        heights = np.zeros(depth_field.shape, dtype=np.float64)
        if grid.shape != depth_field.shape:
            return heights
        rows, cols = np.nonzero(grid & depth_field.valid_mask)
        if rows.size == 0:
            return heights
        points = np.column_stack((cols, rows, depth_field.depth_mm[rows, cols])).astype(np.float64)
        heights[rows, cols] = plane.height_above(points)
        return heights


def _score(points: np.ndarray, normal: np.ndarray, origin: np.ndarray, tolerance: float) -> tuple[int, float]:
    distances = np.abs((points - origin) @ normal)
    within = distances[distances <= tolerance]
    if within.size == 0:
        return 0, float("inf")
    return int(within.size), float(np.sqrt(np.mean(within**2)))


_default_fitter = PlaneFitter()


def fit_boundary_plane(
    depth_field: CalibratedDepthField,
    mask: Any,
    ring_width: Optional[int] = None,
) -> Optional[LocalPlane]:
    return _default_fitter.fit_boundary_plane(depth_field, mask, ring_width)
