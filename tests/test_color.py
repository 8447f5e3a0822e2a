"""Tests for sRGB to L*a*b* conversion."""

import numpy as np
import pytest

from metrics.color import delta_e76, rgb_to_lab, rgb_to_xyz, srgb_to_linear


def test_pure_red_is_strongly_positive_a():
    lab = rgb_to_lab(np.array([255, 0, 0]))
    assert lab[1] > 50
    assert lab[0] == pytest.approx(53.2, abs=0.5)


@pytest.mark.parametrize("level", [0, 64, 128, 200, 255])
def test_neutral_colors_have_zero_chroma(level):
    lab = rgb_to_lab(np.array([level, level, level]))
    assert lab[1] == pytest.approx(0.0, abs=0.05)
    assert lab[2] == pytest.approx(0.0, abs=0.05)


def test_white_and_black_lightness():
    assert rgb_to_lab(np.array([255, 255, 255]))[0] == pytest.approx(100.0, abs=0.01)
    assert rgb_to_lab(np.array([0, 0, 0]))[0] == pytest.approx(0.0, abs=1e-9)


def test_lightness_always_in_range():
    rng = np.random.default_rng(0)
    colors = rng.integers(0, 256, size=(500, 3))
    lab = rgb_to_lab(colors)
    assert lab.shape == (500, 3)
    assert np.all(lab[:, 0] >= 0.0)
    assert np.all(lab[:, 0] <= 100.0)


def test_transfer_curve_breakpoint():
    assert srgb_to_linear(0.04045) == pytest.approx(0.04045 / 12.92)
    assert srgb_to_linear(1.0) == pytest.approx(1.0)
    assert srgb_to_linear(0.5) == pytest.approx(((0.5 + 0.055) / 1.055) ** 2.4)


def test_white_maps_to_d65():
    xyz = rgb_to_xyz(np.array([255, 255, 255]))
    assert np.allclose(xyz, [0.95047, 1.0, 1.08883], atol=1e-3)


def test_delta_e76():
    assert delta_e76(np.array([50.0, 0.0, 0.0]), np.array([50.0, 3.0, 4.0])) == pytest.approx(5.0)
    pairs = delta_e76(np.zeros((2, 3)), np.array([[0.0, 0.0, 1.0], [2.0, 0.0, 0.0]]))
    assert np.allclose(pairs, [1.0, 2.0])
