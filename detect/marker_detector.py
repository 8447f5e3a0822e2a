"""Reference marker detection for the depth-scale fallback path.

The marker is a flat, high-contrast disk of known physical diameter placed on
the skin. Detection is a coarse Hough-style search: every edge pixel votes for
centers at each candidate radius, then strong centers are checked against the
edge map and the local contrast.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Optional

import cv2
import numpy as np

from configs.settings import MarkerConfig
from contracts import ReferenceMarker
from detect.utils import canny_edges, to_grayscale
from log_config.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CircleCandidate:
    center: tuple[int, int]
    radius_px: int
    votes: float
    circularity: float = 0.0
    contrast: float = 0.0
    confidence: float = 0.0


class MarkerDetector:
    def __init__(self, config: Optional[MarkerConfig] = None) -> None:
        self._config = config or MarkerConfig()

    def detect(self, color_image: Any) -> Optional[ReferenceMarker]:
        """Locate the reference marker in a color image.

        Returns:
            The best marker passing the size, circularity and contrast
            thresholds, or None when no marker is visible.
        """
        cfg = self._config
        gray = to_grayscale(color_image)
        if gray is None:
            logger.warning("Marker detection skipped: unreadable color image")
            return None

        edges = canny_edges(gray, cfg.canny_low, cfg.canny_high)
        ys, xs = np.nonzero(edges)
        if xs.size < cfg.min_edge_pixels:
            logger.debug(f"Marker detection: only {xs.size} edge pixels")
            return None

        # distance from every pixel to the nearest edge pixel
        edge_distance = cv2.distanceTransform((~edges).astype(np.uint8), cv2.DIST_L2, 3)
        luminance = gray.astype(np.float32) / 255.0

        best: Optional[CircleCandidate] = None
        radii = list(range(cfg.min_radius_px, cfg.max_radius_px + 1, cfg.radius_step_px))
        if radii and radii[-1] != cfg.max_radius_px:
            radii.append(cfg.max_radius_px)
        for radius in radii:
            for candidate in self._vote(xs, ys, radius, gray.shape):
                scored = self._score(candidate, edge_distance, luminance)
                if not self._is_valid(scored):
                    continue
                if best is None or scored.confidence > best.confidence:
                    best = scored

        if best is None:
            logger.debug("Marker detection: no candidate passed thresholds")
            return None

        logger.info(
            f"Marker found at {best.center} r={best.radius_px}px "
            f"(circularity {best.circularity:.2f}, contrast {best.contrast:.2f}, confidence {best.confidence:.2f})"
        )
        return ReferenceMarker(
            center=(float(best.center[0]), float(best.center[1])),
            radius_px=float(best.radius_px),
            confidence=float(best.confidence),
            known_diameter_mm=cfg.known_diameter_mm,
        )

    def _vote(
        self,
        xs: np.ndarray,
        ys: np.ndarray,
        radius: int,
        shape: tuple[int, int],
    ) -> List[CircleCandidate]:
        cfg = self._config
        height, width = shape
        angles = np.linspace(0.0, 2.0 * math.pi, cfg.angle_steps, endpoint=False)
        centers_x = np.rint(xs[:, None] - radius * np.cos(angles)[None, :]).astype(np.int64).ravel()
        centers_y = np.rint(ys[:, None] - radius * np.sin(angles)[None, :]).astype(np.int64).ravel()
        inside = (centers_x >= 0) & (centers_x < width) & (centers_y >= 0) & (centers_y < height)
        flat = centers_y[inside] * width + centers_x[inside]
        accumulator = np.bincount(flat, minlength=height * width).reshape(height, width).astype(np.float32)
        # votes scatter by up to a pixel from angular quantization
        accumulator = cv2.boxFilter(
            accumulator, -1, (3, 3), normalize=False, borderType=cv2.BORDER_CONSTANT
        )

        threshold = cfg.vote_threshold_ratio * 2.0 * math.pi * radius
        local_max = cv2.dilate(accumulator, np.ones((5, 5), np.uint8))
        peak_rows, peak_cols = np.nonzero((accumulator >= threshold) & (accumulator >= local_max))
        if peak_rows.size == 0:
            return []

        votes = accumulator[peak_rows, peak_cols]
        order = np.argsort(-votes, kind="stable")[: cfg.max_candidates_per_radius]
        return [
            CircleCandidate(
                center=(int(peak_cols[i]), int(peak_rows[i])),
                radius_px=radius,
                votes=float(votes[i]),
            )
            for i in order
        ]

    def _score(
        self,
        candidate: CircleCandidate,
        edge_distance: np.ndarray,
        luminance: np.ndarray,
    ) -> CircleCandidate:
        circularity = self._circularity(candidate, edge_distance)
        contrast = _contrast(luminance, candidate.center, candidate.radius_px)
        support = min(1.0, candidate.votes / (2.0 * math.pi * candidate.radius_px))
        confidence = min(1.0, 0.7 * circularity + 0.3 * support)
        return CircleCandidate(
            center=candidate.center,
            radius_px=candidate.radius_px,
            votes=candidate.votes,
            circularity=circularity,
            contrast=contrast,
            confidence=confidence,
        )

    def _circularity(self, candidate: CircleCandidate, edge_distance: np.ndarray) -> float:
        """Fraction of the predicted boundary that lies on detected edges."""
        height, width = edge_distance.shape
        cx, cy = candidate.center
        r = candidate.radius_px
        samples = max(8, int(math.ceil(2.0 * math.pi * r)))
        angles = np.linspace(0.0, 2.0 * math.pi, samples, endpoint=False)
        px = np.rint(cx + r * np.cos(angles)).astype(np.int64)
        py = np.rint(cy + r * np.sin(angles)).astype(np.int64)
        inside = (px >= 0) & (px < width) & (py >= 0) & (py < height)
        hits = edge_distance[py[inside], px[inside]] <= self._config.circularity_tolerance_px
        return float(np.count_nonzero(hits)) / samples

    def _is_valid(self, candidate: CircleCandidate) -> bool:
        cfg = self._config
        return (
            cfg.min_radius_px <= candidate.radius_px <= cfg.max_radius_px
            and candidate.circularity >= cfg.min_circularity
            and candidate.contrast >= cfg.min_contrast
        )


def _contrast(luminance: np.ndarray, center: tuple[int, int], radius: int) -> float:
    """Mean luminance difference between the marker core and a surrounding annulus.

    The core is a disk of half the marker radius; the annulus spans 1.2r to
    1.6r so it samples the background just outside the marker.
    """
    height, width = luminance.shape
    cx, cy = center
    core_r = max(1.0, 0.5 * radius)
    inner_r = 1.2 * radius
    outer_r = 1.6 * radius
    if cx - core_r < 0 or cy - core_r < 0 or cx + core_r >= width or cy + core_r >= height:
        return 0.0

    reach = int(math.ceil(outer_r))
    x0, x1 = max(0, cx - reach), min(width, cx + reach + 1)
    y0, y1 = max(0, cy - reach), min(height, cy + reach + 1)
    rows, cols = np.mgrid[y0:y1, x0:x1]
    dist = np.hypot(cols - cx, rows - cy)
    window = luminance[y0:y1, x0:x1]

    core = window[dist <= core_r]
    annulus = window[(dist > inner_r) & (dist <= outer_r)]
    if core.size == 0 or annulus.size == 0:
        return 0.0
    return float(abs(core.mean() - annulus.mean()))


_default_detector = MarkerDetector()


def detect(color_image: Any) -> Optional[ReferenceMarker]:
    return _default_detector.detect(color_image)
