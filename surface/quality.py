"""Depth quality scoring over a feature mask."""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from contracts import CalibratedDepthField, DepthQuality
from log_config.logger import get_logger

logger = get_logger(__name__)

# a 3x3 window needs this many valid samples for a noise estimate
MIN_NOISE_NEIGHBOURS = 5


class DepthQualityEvaluator:
    def evaluate(self, depth_field: CalibratedDepthField, mask: Any) -> DepthQuality:
        """Score the depth samples inside ``mask``.

        An empty mask, or one that does not match the depth grid, scores zero
        everywhere. Uniformity is 1.0 for a single valid sample and 0 when no
        sample is valid.
        """
        grid = np.asarray(mask, dtype=bool)
        if grid.shape != depth_field.shape:
            logger.warning(f"Mask shape {grid.shape} does not match depth field {depth_field.shape}")
            return DepthQuality.empty()

        total = int(np.count_nonzero(grid))
        if total == 0:
            return DepthQuality.empty()

        valid = grid & depth_field.valid_mask
        n_valid = int(np.count_nonzero(valid))
        valid_ratio = n_valid / total
        if n_valid == 0:
            return DepthQuality(mean_confidence=0.0, valid_ratio=0.0, uniformity=0.0, noise_mm=0.0)

        depths = depth_field.depth_mm[valid]
        mean_confidence = float(depth_field.confidence[valid].mean())
        if n_valid == 1:
            uniformity = 1.0
        else:
            cv = float(depths.std() / depths.mean())
            uniformity = float(np.clip(1.0 - cv, 0.0, 1.0))

        return DepthQuality(
            mean_confidence=mean_confidence,
            valid_ratio=float(valid_ratio),
            uniformity=uniformity,
            noise_mm=_local_noise(depth_field, valid),
        )


def _local_noise(depth_field: CalibratedDepthField, valid: np.ndarray) -> float:
    """Median 3x3 standard deviation over interior pixels of the region."""
    height, width = depth_field.shape
    if height < 3 or width < 3:
        return 0.0

    depth = np.where(depth_field.valid_mask, depth_field.depth_mm, np.nan)
    windows = sliding_window_view(depth, (3, 3)).reshape(height - 2, width - 2, 9)
    centers = windows[valid[1:-1, 1:-1]]
    if centers.shape[0] == 0:
        return 0.0

    counts = np.count_nonzero(np.isfinite(centers), axis=1)
    usable = centers[counts >= MIN_NOISE_NEIGHBOURS]
    if usable.shape[0] == 0:
        return 0.0
    return float(np.median(np.nanstd(usable, axis=1)))
