"""Depth calibration module."""

from .depth_calibrator import DepthCalibrator, calibrate, calibrate_with_marker
from .repeatability import ScaleRepeatability

__all__ = ["DepthCalibrator", "ScaleRepeatability", "calibrate", "calibrate_with_marker"]
