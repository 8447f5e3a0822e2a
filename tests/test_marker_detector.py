"""Tests for reference marker detection on synthetic images."""

from __future__ import annotations

import numpy as np
import pytest

from configs.settings import MarkerConfig
from detect import MarkerDetector, detect
from detect.utils import boundary_mask, canny_edges, dilate_disk, ring_mask, to_grayscale

SKIN = (200, 150, 130)


def _disk_image(size, center, radius, disk_color, background=SKIN):
    image = np.empty((size, size, 3), dtype=np.uint8)
    image[:] = background
    yy, xx = np.mgrid[:size, :size]
    inside = (xx - center[0]) ** 2 + (yy - center[1]) ** 2 <= radius**2
    image[inside] = disk_color
    return image


def test_detects_dark_marker():
    image = _disk_image(200, (100, 100), 30, (20, 20, 20))
    marker = detect(image)

    assert marker is not None
    assert marker.center[0] == pytest.approx(100, abs=2)
    assert marker.center[1] == pytest.approx(100, abs=2)
    assert marker.radius_px == 30
    assert marker.known_diameter_mm == 10.0
    assert marker.pixels_per_mm == pytest.approx(6.0)
    assert 0.6 < marker.confidence <= 1.0


def test_detects_bright_marker_on_dark_background():
    image = _disk_image(160, (70, 90), 20, (250, 250, 250), background=(30, 30, 30))
    marker = detect(image)

    assert marker is not None
    assert marker.radius_px == 20
    assert marker.center[0] == pytest.approx(70, abs=2)
    assert marker.center[1] == pytest.approx(90, abs=2)


def test_uniform_image_has_no_marker():
    image = np.full((120, 120, 3), 128, dtype=np.uint8)
    assert detect(image) is None


def test_low_contrast_disk_rejected():
    image = _disk_image(200, (100, 100), 30, (100, 100, 100), background=(120, 120, 120))
    assert detect(image) is None


def test_square_is_not_a_marker():
    image = np.empty((200, 200, 3), dtype=np.uint8)
    image[:] = SKIN
    image[60:140, 60:140] = (20, 20, 20)
    assert detect(image) is None


def test_marker_outside_radius_range_is_ignored():
    image = _disk_image(200, (100, 100), 30, (20, 20, 20))
    detector = MarkerDetector(MarkerConfig(min_radius_px=40, max_radius_px=80))
    assert detector.detect(image) is None


def test_marker_at_max_radius_is_detected():
    image = _disk_image(200, (100, 100), 40, (20, 20, 20))
    detector = MarkerDetector(MarkerConfig(min_radius_px=10, max_radius_px=40))
    marker = detector.detect(image)

    assert marker is not None
    assert marker.radius_px == 40


def test_max_radius_tried_when_step_does_not_divide_range():
    image = _disk_image(200, (100, 100), 37, (20, 20, 20))
    detector = MarkerDetector(MarkerConfig(min_radius_px=10, max_radius_px=37, radius_step_px=20))
    marker = detector.detect(image)

    assert marker is not None
    assert marker.radius_px == 37


@pytest.mark.parametrize("image", [np.zeros((0, 0)), "not an image", np.zeros((10, 10, 7))])
def test_unreadable_image_returns_none(image):
    assert detect(image) is None


def test_float_images_are_rescaled():
    image = _disk_image(200, (100, 100), 30, (20, 20, 20)).astype(np.float32) / 255.0
    marker = detect(image)
    assert marker is not None
    assert marker.radius_px == 30


class TestImageHelpers:
    def test_grayscale_of_rgb_and_rgba(self):
        rgb = np.zeros((4, 4, 3), dtype=np.uint8)
        rgb[..., 0] = 255
        assert to_grayscale(rgb).shape == (4, 4)
        rgba = np.dstack([rgb, np.full((4, 4), 255, dtype=np.uint8)])
        assert np.array_equal(to_grayscale(rgba), to_grayscale(rgb))

    def test_edges_found_on_step(self):
        gray = np.zeros((40, 40), dtype=np.uint8)
        gray[:, 20:] = 255
        edges = canny_edges(gray, 50, 150)
        assert edges.dtype == bool
        assert edges[:, 18:22].any()
        assert not edges[:, :10].any()

    def test_boundary_of_square(self):
        mask = np.zeros((10, 10), dtype=bool)
        mask[2:7, 2:7] = True
        boundary = boundary_mask(mask)
        assert np.count_nonzero(boundary) == 16
        assert not boundary[4, 4]

    def test_boundary_counts_image_edge(self):
        mask = np.ones((3, 3), dtype=bool)
        boundary = boundary_mask(mask)
        assert np.count_nonzero(boundary) == 8
        assert not boundary[1, 1]

    def test_ring_excludes_mask(self):
        mask = np.zeros((21, 21), dtype=bool)
        mask[10, 10] = True
        ring = ring_mask(mask, 3)
        assert not ring[10, 10]
        assert ring[10, 13]
        assert not ring[10, 14]
        assert np.array_equal(dilate_disk(mask, 3), ring | mask)
