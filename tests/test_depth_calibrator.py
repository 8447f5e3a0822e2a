"""Tests for depth calibration (intrinsics and marker paths)."""

from __future__ import annotations

import math

import numpy as np
import pytest

from calib import DepthCalibrator, ScaleRepeatability, calibrate, calibrate_with_marker
from configs.settings import CalibrationConfig
from contracts import IntrinsicCameraModel, ReferenceMarker, ScaleMethod
from exceptions import ConfigurationError

INTRINSICS = IntrinsicCameraModel(fx=1000.0, fy=1000.0, cx=32.0, cy=24.0, width=64, height=48)


def test_confidence_is_maximal_in_optimal_band():
    calibrator = DepthCalibrator()
    assert float(calibrator.confidence_for_depth(0.275)) == pytest.approx(1.0)
    assert float(calibrator.confidence_for_depth(0.20)) == pytest.approx(1.0)
    assert float(calibrator.confidence_for_depth(0.35)) == pytest.approx(1.0)
    assert calibrator.confidence_for_depth(0.05) < calibrator.confidence_for_depth(0.275)


def test_confidence_degrades_linearly_outside_band():
    calibrator = DepthCalibrator()
    assert float(calibrator.confidence_for_depth(0.10)) == pytest.approx(0.75)
    midpoint = 0.35 + (5.0 - 0.35) / 2.0
    assert float(calibrator.confidence_for_depth(midpoint)) == pytest.approx(0.65)
    assert float(calibrator.confidence_for_depth(4.999)) == pytest.approx(0.3, abs=1e-3)


@pytest.mark.parametrize("depth_m", [0.0, -0.5, 5.0, 7.5, math.nan, math.inf])
def test_confidence_zero_outside_valid_range(depth_m):
    assert float(DepthCalibrator().confidence_for_depth(depth_m)) == 0.0


def test_calibrate_scales_meters_to_millimeters():
    raw = np.full((48, 64), 0.28)
    field = calibrate(raw, INTRINSICS)

    assert field.method is ScaleMethod.INTRINSICS
    assert field.focal_length_px == pytest.approx(1000.0)
    assert field.depth_mm[10, 10] == pytest.approx(280.0)
    assert field.confidence[10, 10] == pytest.approx(1.0)
    assert field.mean_confidence == pytest.approx(1.0)


def test_calibrate_zeroes_invalid_samples():
    raw = np.full((48, 64), 0.28)
    raw[0, 0] = 0.0
    raw[0, 1] = 6.0
    raw[0, 2] = np.nan
    raw[0, 3] = -1.0
    field = calibrate(raw, INTRINSICS)

    for col in range(4):
        assert field.depth_mm[0, col] == 0.0
        assert field.confidence[0, col] == 0.0
    assert not field.valid_mask[0, :4].any()
    assert field.valid_mask[1:, :].all()


def test_calibrated_field_is_read_only():
    field = calibrate(np.full((48, 64), 0.3), INTRINSICS)
    with pytest.raises(ValueError):
        field.depth_mm[0, 0] = 1.0
    with pytest.raises(ValueError):
        field.confidence[0, 0] = 0.0


@pytest.mark.parametrize("buffer", [np.zeros(5), np.zeros((2, 3, 4)), np.zeros((0, 0)), "not a buffer", None])
def test_malformed_buffer_returns_empty_field(buffer):
    field = calibrate(buffer, INTRINSICS)
    assert field.shape == (48, 64)
    assert not field.valid_mask.any()
    assert field.mean_confidence == 0.0


def test_malformed_intrinsics_raise():
    bad = IntrinsicCameraModel(fx=0.0, fy=1000.0, cx=32.0, cy=24.0, width=64, height=48)
    with pytest.raises(ConfigurationError):
        calibrate(np.full((48, 64), 0.3), bad)

    no_size = IntrinsicCameraModel(fx=1000.0, fy=1000.0, cx=32.0, cy=24.0, width=0, height=48)
    with pytest.raises(ConfigurationError):
        calibrate(np.full((48, 64), 0.3), no_size)


def test_custom_valid_range():
    calibrator = DepthCalibrator(CalibrationConfig(max_valid_depth_m=1.0))
    raw = np.full((48, 64), 0.28)
    raw[5, 5] = 2.0
    field = calibrator.calibrate(raw, INTRINSICS)
    assert field.depth_mm[5, 5] == 0.0
    assert field.depth_mm[6, 6] == pytest.approx(280.0)


class TestMarkerPath:
    marker = ReferenceMarker(center=(10.0, 10.0), radius_px=20.0, confidence=0.9)

    def test_depth_is_scaled_relative_to_marker(self):
        raw = np.full((48, 64), 0.3)
        raw[5, 5] = 0.6
        field = calibrate_with_marker(raw, self.marker)

        assert field.method is ScaleMethod.MARKER
        assert field.depth_mm[10, 10] == pytest.approx(300.0)
        assert field.depth_mm[5, 5] == pytest.approx(1200.0)
        assert field.confidence[20, 20] == pytest.approx(0.9)
        assert field.pixels_per_mm == pytest.approx(4.0)

    def test_marker_diameter_converts_back_to_known_size(self):
        field = calibrate_with_marker(np.full((48, 64), 0.3), self.marker)
        assert field.focal_length_px == pytest.approx(1200.0)
        assert field.px_to_mm(2 * self.marker.radius_px, 300.0) == pytest.approx(10.0)

    def test_invalid_samples_have_zero_confidence(self):
        raw = np.full((48, 64), 0.3)
        raw[30, 30] = 0.0
        field = calibrate_with_marker(raw, self.marker)
        assert field.depth_mm[30, 30] == 0.0
        assert field.confidence[30, 30] == 0.0

    def test_marker_outside_buffer_gives_empty_field(self):
        marker = ReferenceMarker(center=(200.0, 10.0), radius_px=20.0, confidence=0.9)
        field = calibrate_with_marker(np.full((48, 64), 0.3), marker)
        assert field.shape == (48, 64)
        assert not field.valid_mask.any()

    def test_marker_without_depth_gives_empty_field(self):
        raw = np.full((48, 64), 0.3)
        raw[10, 10] = 0.0
        field = calibrate_with_marker(raw, self.marker)
        assert not field.valid_mask.any()
        assert field.mean_confidence == 0.0


@pytest.mark.parametrize("depth_mm", [0.5, 120.0, 280.0, 4999.0])
@pytest.mark.parametrize("pixels", [0.0, 1.0, 37.5, 640.0])
def test_pixel_millimeter_round_trip(depth_mm, pixels):
    mm = INTRINSICS.px_to_mm(pixels, depth_mm)
    assert INTRINSICS.mm_to_px(mm, depth_mm) == pytest.approx(pixels)


def test_pixel_conversion_rejects_non_positive_depth():
    with pytest.raises(ConfigurationError):
        INTRINSICS.px_to_mm(10.0, 0.0)
    with pytest.raises(ConfigurationError):
        INTRINSICS.mm_to_px(10.0, -1.0)


def test_scale_repeatability():
    stable = ScaleRepeatability.from_measurements([5.0, 5.2, 4.8])
    assert stable.mean == pytest.approx(5.0)
    assert stable.standard_deviation == pytest.approx(0.1633, abs=1e-3)
    assert stable.meets_acceptance_criteria

    unstable = ScaleRepeatability.from_measurements([3.0, 7.0])
    assert unstable.standard_deviation == pytest.approx(2.0)
    assert not unstable.meets_acceptance_criteria

    empty = ScaleRepeatability.from_measurements([])
    assert empty.mean == 0.0
    assert empty.coefficient_of_variation == 0.0
    assert not empty.meets_acceptance_criteria
