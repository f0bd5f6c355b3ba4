"""Unit conversion and even-spacing helpers.

Pixel conversions always use ``FORMAT_DPI``; no function takes a DPI.
"""
from __future__ import annotations

from typing import Tuple

from omr_config import FORMAT_DPI, MM_PER_INCH

POINTS_PER_INCH = 72.0
CSS_PX_PER_INCH = 96.0


def mm_to_px(value: float) -> float:
    return value * FORMAT_DPI / MM_PER_INCH


def px_to_mm(value: float) -> float:
    return value * MM_PER_INCH / FORMAT_DPI


def mm_to_pt(value: float) -> float:
    return value * POINTS_PER_INCH / MM_PER_INCH


def css_px_to_mm(value: float) -> float:
    return value * MM_PER_INCH / CSS_PX_PER_INCH


def css_px_to_pt(value: float) -> float:
    return value * POINTS_PER_INCH / CSS_PX_PER_INCH


def distribute(extent: float, count: int) -> Tuple[float, ...]:
    """Return ``count`` evenly spaced anchors spanning ``[0, extent]``.

    A single anchor sits in the middle. The result is symmetric:
    ``p[i] + p[count - 1 - i] == extent``.
    """
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    if count == 0:
        return ()
    if count == 1:
        return (extent / 2,)
    step = extent / (count - 1)
    positions = [i * step for i in range(count)]
    positions[-1] = float(extent)
    return tuple(positions)


def cell_centers(extent: float, count: int) -> Tuple[float, ...]:
    """Centres of ``count`` equal cells laid side by side across ``extent``."""
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    if count == 0:
        return ()
    cell = extent / count
    return tuple((i + 0.5) * cell for i in range(count))
