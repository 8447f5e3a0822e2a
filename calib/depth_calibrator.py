"""Raw sensor depth to millimeter depth with per-pixel confidence.

Two scale sources are supported. The intrinsics path trusts the sensor's
metric depth and uses the camera focal length for pixel to millimeter
conversion. The marker path is the fallback when no intrinsics are available:
a 10mm reference marker of known size fixes the pixel scale at the marker's
depth.

Depth loss is routine for short-range sensors, so unreadable buffers produce
an empty field instead of an exception. Only malformed intrinsics raise.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

from configs.settings import CalibrationConfig
from contracts import CalibratedDepthField, IntrinsicCameraModel, ReferenceMarker, ScaleMethod
from log_config.logger import get_logger

logger = get_logger(__name__)

METERS_TO_MM = 1000.0


class DepthCalibrator:
    def __init__(self, config: Optional[CalibrationConfig] = None) -> None:
        self._config = config or CalibrationConfig()

    def calibrate(self, raw_depth: Any, intrinsics: IntrinsicCameraModel) -> CalibratedDepthField:
        """Convert a depth buffer in meters using sensor intrinsics.

        Args:
            raw_depth: 2-D buffer of depth samples in meters
            intrinsics: Camera model for this capture

        Returns:
            Calibrated field; empty when the buffer cannot be read

        Raises:
            ConfigurationError: If the intrinsic model is malformed
        """
        intrinsics.validate()
        raw = _read_buffer(raw_depth)
        if raw is None:
            logger.warning("Depth buffer unreadable, returning empty field")
            return CalibratedDepthField.empty(intrinsics.width, intrinsics.height, intrinsics=intrinsics)

        valid = self._valid_samples(raw)
        depth_mm = np.where(valid, raw * METERS_TO_MM, 0.0)
        confidence = np.where(valid, self.confidence_for_depth(raw), 0.0).astype(np.float32)

        field = CalibratedDepthField(
            depth_mm=depth_mm,
            confidence=confidence,
            method=ScaleMethod.INTRINSICS,
            focal_length_px=intrinsics.mean_focal_length_px,
            intrinsics=intrinsics,
        )
        logger.debug(
            f"Calibrated {field.width}x{field.height} depth via intrinsics: "
            f"{int(valid.sum())} valid samples, mean confidence {field.mean_confidence:.3f}"
        )
        return field

    def calibrate_with_marker(self, raw_depth: Any, marker: ReferenceMarker) -> CalibratedDepthField:
        """Convert a depth buffer in meters using a detected reference marker.

        Every sample is scaled by its depth relative to the marker depth, and
        all valid samples share the marker detection confidence.
        """
        raw = _read_buffer(raw_depth)
        if raw is None:
            logger.warning("Depth buffer unreadable, returning empty field")
            return CalibratedDepthField.empty(0, 0, method=ScaleMethod.MARKER)

        height, width = raw.shape
        col = int(marker.center[0])
        row = int(marker.center[1])
        if not (0 <= col < width and 0 <= row < height):
            logger.warning(f"Marker center ({col}, {row}) outside {width}x{height} depth buffer")
            return CalibratedDepthField.empty(width, height, method=ScaleMethod.MARKER)

        valid = self._valid_samples(raw)
        marker_raw = float(raw[row, col])
        if not valid[row, col]:
            logger.warning(f"No depth at marker center ({col}, {row})")
            return CalibratedDepthField.empty(width, height, method=ScaleMethod.MARKER)

        relative = raw / marker_raw
        depth_mm = np.where(valid, raw * METERS_TO_MM * relative, 0.0)
        confidence = np.where(valid, float(marker.confidence), 0.0).astype(np.float32)
        marker_depth_mm = marker_raw * METERS_TO_MM

        field = CalibratedDepthField(
            depth_mm=depth_mm,
            confidence=confidence,
            method=ScaleMethod.MARKER,
            focal_length_px=marker.pixels_per_mm * marker_depth_mm,
            pixels_per_mm=marker.pixels_per_mm,
        )
        logger.debug(
            f"Calibrated {width}x{height} depth via marker at {marker_depth_mm:.1f}mm "
            f"({marker.pixels_per_mm:.2f} px/mm)"
        )
        return field

    def confidence_for_depth(self, depth_m: Any) -> np.ndarray:
        """Piecewise-linear confidence for depths in meters.

        1.0 inside the optimal band, rising from the near floor below it and
        falling to the far floor at the edge of the valid range. Zero outside
        the valid range.
        """
        cfg = self._config
        d = np.asarray(depth_m, dtype=np.float64)
        near = cfg.near_confidence_floor + (1.0 - cfg.near_confidence_floor) * (d / cfg.optimal_min_m)
        far_span = cfg.max_valid_depth_m - cfg.optimal_max_m
        far = 1.0 - (1.0 - cfg.far_confidence_floor) * ((d - cfg.optimal_max_m) / far_span)
        confidence = np.where(d < cfg.optimal_min_m, near, np.where(d <= cfg.optimal_max_m, 1.0, far))
        with np.errstate(invalid="ignore"):
            in_range = np.isfinite(d) & (d > 0) & (d < cfg.max_valid_depth_m)
        return np.where(in_range, np.clip(confidence, 0.0, 1.0), 0.0)

    def _valid_samples(self, raw: np.ndarray) -> np.ndarray:
        with np.errstate(invalid="ignore"):
            return np.isfinite(raw) & (raw > 0) & (raw < self._config.max_valid_depth_m)


def _read_buffer(raw_depth: Any) -> Optional[np.ndarray]:
    try:
        raw = np.asarray(raw_depth, dtype=np.float64)
    except (TypeError, ValueError) as e:
        logger.debug(f"Depth buffer conversion failed: {e}")
        return None
    if raw.ndim != 2 or raw.size == 0:
        logger.debug(f"Depth buffer has unusable shape {raw.shape}")
        return None
    return raw


_default_calibrator = DepthCalibrator()


def calibrate(raw_depth: Any, intrinsics: IntrinsicCameraModel) -> CalibratedDepthField:
    return _default_calibrator.calibrate(raw_depth, intrinsics)


def calibrate_with_marker(raw_depth: Any, marker: ReferenceMarker) -> CalibratedDepthField:
    return _default_calibrator.calibrate_with_marker(raw_depth, marker)
