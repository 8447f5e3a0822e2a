"""sRGB to CIE L*a*b* conversion (D65 white point)."""

from __future__ import annotations

from typing import Any

import numpy as np

# sRGB primaries to XYZ, D65
_RGB_TO_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ]
)
D65_WHITE = np.array([0.95047, 1.00000, 1.08883])

_LAB_EPSILON = 0.008856
_LAB_KAPPA = 7.787


def srgb_to_linear(channels: Any) -> np.ndarray:
    """Undo the sRGB transfer curve for channel values in [0, 1]."""
    c = np.asarray(channels, dtype=np.float64)
    return np.where(c <= 0.04045, c / 12.92, ((c + 0.055) / 1.055) ** 2.4)


def rgb_to_xyz(rgb: Any) -> np.ndarray:
    """8-bit RGB values of shape (..., 3) to CIE XYZ."""
    linear = srgb_to_linear(np.asarray(rgb, dtype=np.float64) / 255.0)
    return linear @ _RGB_TO_XYZ.T


def xyz_to_lab(xyz: Any) -> np.ndarray:
    ratio = np.asarray(xyz, dtype=np.float64) / D65_WHITE
    f = np.where(ratio > _LAB_EPSILON, np.cbrt(ratio), _LAB_KAPPA * ratio + 16.0 / 116.0)
    fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]
    lightness = np.clip(116.0 * fy - 16.0, 0.0, 100.0)
    a = 500.0 * (fx - fy)
    b = 200.0 * (fy - fz)
    return np.stack((lightness, a, b), axis=-1)


def rgb_to_lab(rgb: Any) -> np.ndarray:
    return xyz_to_lab(rgb_to_xyz(rgb))


def delta_e76(lab_a: Any, lab_b: Any) -> Any:
    """CIE76 color difference (Euclidean distance in L*a*b*)."""
    diff = np.asarray(lab_a, dtype=np.float64) - np.asarray(lab_b, dtype=np.float64)
    return np.sqrt(np.sum(diff * diff, axis=-1))
