from __future__ import annotations

from typing import Any, Optional

import cv2
import numpy as np


def to_uint8_image(image: Any) -> Optional[np.ndarray]:
    """Coerce an image buffer to uint8. Float images in [0, 1] are rescaled."""
    try:
        array = np.asarray(image)
    except (TypeError, ValueError):
        return None
    if array.ndim not in (2, 3) or array.size == 0:
        return None
    if array.ndim == 3 and array.shape[2] not in (1, 3, 4):
        return None
    if array.dtype == np.uint8:
        return array
    if not np.issubdtype(array.dtype, np.number):
        return None
    values = array.astype(np.float64)
    if np.issubdtype(array.dtype, np.floating) and np.nanmax(values) <= 1.0:
        values = values * 255.0
    return np.clip(np.nan_to_num(values), 0, 255).astype(np.uint8)


def to_grayscale(image: Any) -> Optional[np.ndarray]:
    """Luminance of an RGB(A) or single-channel image as uint8."""
    frame = to_uint8_image(image)
    if frame is None:
        return None
    if frame.ndim == 2:
        return frame
    channels = frame.shape[2]
    if channels == 1:
        return frame[:, :, 0]
    if channels == 4:
        return cv2.cvtColor(frame, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(frame, cv2.COLOR_RGB2GRAY)


def canny_edges(gray: np.ndarray, low: float, high: float) -> np.ndarray:
    """Binary edge map (True on edges) of a blurred grayscale image."""
    blurred = cv2.GaussianBlur(gray, (5, 5), 0)
    return cv2.Canny(blurred, low, high) > 0


def boundary_mask(mask: Any) -> np.ndarray:
    """Mask pixels with at least one 4-neighbour outside the mask.

    Pixels on the image border count as boundary because their outside
    neighbour is not part of the mask.
    """
    grid = np.asarray(mask, dtype=bool)
    padded = np.pad(grid, 1, mode="constant", constant_values=False)
    interior = padded[:-2, 1:-1] & padded[2:, 1:-1] & padded[1:-1, :-2] & padded[1:-1, 2:]
    return grid & ~interior


def disk_kernel(radius: int) -> np.ndarray:
    r = max(int(radius), 0)
    dy, dx = np.mgrid[-r : r + 1, -r : r + 1]
    return ((dx * dx + dy * dy) <= r * r).astype(np.uint8)


def dilate_disk(mask: Any, radius: int) -> np.ndarray:
    """Dilate a boolean mask by a Euclidean disk of ``radius`` pixels."""
    grid = np.asarray(mask, dtype=bool)
    if radius <= 0 or not grid.any():
        return grid.copy()
    dilated = cv2.dilate(
        grid.astype(np.uint8),
        disk_kernel(radius),
        borderType=cv2.BORDER_CONSTANT,
        borderValue=0,
    )
    return dilated.astype(bool)


def ring_mask(mask: Any, width: int) -> np.ndarray:
    """Pixels within ``width`` of the mask but outside it."""
    grid = np.asarray(mask, dtype=bool)
    return dilate_disk(grid, width) & ~grid
