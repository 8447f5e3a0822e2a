"""Per-capture orchestration: calibrate once, then measure features in parallel."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence, Tuple

import cv2
import numpy as np

from calib import DepthCalibrator
from configs.settings import AppConfig
from contracts import (
    CalibratedDepthField,
    FeatureCandidate,
    FeatureMetrics,
    IntrinsicCameraModel,
    ReferenceMarker,
    ScaleMethod,
)
from detect import MarkerDetector
from log_config.logger import get_logger, log_performance
from metrics import MetricsEngine

logger = get_logger(__name__)

# sensor and numeric failures that must not abort the rest of the batch
_FEATURE_ERRORS = (ValueError, ArithmeticError, np.linalg.LinAlgError, cv2.error)


@dataclass(frozen=True, eq=False)
class CaptureInput:
    raw_depth: Any
    color_image: Any
    intrinsics: Optional[IntrinsicCameraModel] = None
    captured_at: Optional[datetime] = None


@dataclass(frozen=True, eq=False)
class CaptureResult:
    depth_field: CalibratedDepthField
    metrics: Tuple[FeatureMetrics, ...]
    marker: Optional[ReferenceMarker] = None
    duration_ms: float = 0.0

    @property
    def scale_method(self) -> ScaleMethod:
        return self.depth_field.method


class CaptureProcessor:
    def __init__(self, config: Optional[AppConfig] = None) -> None:
        self._config = config or AppConfig()
        self._calibrator = DepthCalibrator(self._config.calibration)
        self._detector = MarkerDetector(self._config.marker)
        self._engine = MetricsEngine(self._config.metrics, self._config.plane)

    def process(self, capture: CaptureInput, candidates: Sequence[FeatureCandidate]) -> CaptureResult:
        """Calibrate one capture and measure every candidate.

        Metrics are returned in candidate order. A candidate that fails to
        measure is logged and reported as zero metrics.

        Raises:
            ConfigurationError: If the capture's intrinsics are malformed
        """
        start = time.perf_counter()
        depth_field, marker = self.calibrate(capture)

        metrics: Tuple[FeatureMetrics, ...] = ()
        if candidates and not depth_field.valid_mask.any():
            logger.warning(f"No usable depth; reporting zero metrics for {len(candidates)} features")
            metrics = tuple(
                FeatureMetrics.zero(c.lesion_class, depth_field.method, captured_at=capture.captured_at)
                for c in candidates
            )
        elif candidates:
            workers = max(1, min(self._config.pipeline.max_workers, len(candidates)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="skinmetrics") as executor:
                futures = [
                    executor.submit(self._measure, index, candidate, depth_field, capture)
                    for index, candidate in enumerate(candidates)
                ]
                metrics = tuple(future.result() for future in futures)

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        log_performance(
            f"capture with {len(candidates)} features ({depth_field.method.value})",
            elapsed_ms,
            threshold_ms=self._config.pipeline.slow_capture_ms,
        )
        return CaptureResult(depth_field=depth_field, metrics=metrics, marker=marker, duration_ms=elapsed_ms)

    def calibrate(self, capture: CaptureInput) -> Tuple[CalibratedDepthField, Optional[ReferenceMarker]]:
        """Intrinsics when available, otherwise the reference marker."""
        if capture.intrinsics is not None:
            return self._calibrator.calibrate(capture.raw_depth, capture.intrinsics), None

        marker = self._detector.detect(capture.color_image)
        if marker is not None:
            return self._calibrator.calibrate_with_marker(capture.raw_depth, marker), marker

        logger.warning("No intrinsics and no reference marker; depth scale unavailable")
        shape = np.shape(capture.raw_depth)
        height, width = shape if len(shape) == 2 else (0, 0)
        return CalibratedDepthField.empty(width, height, method=ScaleMethod.MARKER), None

    def _measure(
        self,
        index: int,
        candidate: FeatureCandidate,
        depth_field: CalibratedDepthField,
        capture: CaptureInput,
    ) -> FeatureMetrics:
        try:
            return self._engine.compute(
                candidate, depth_field, capture.color_image, captured_at=capture.captured_at
            )
        except _FEATURE_ERRORS as e:
            logger.error(f"Feature {index} ({candidate.lesion_class.value}) failed to measure: {e}")
            return FeatureMetrics.zero(
                candidate.lesion_class, depth_field.method, captured_at=capture.captured_at
            )
