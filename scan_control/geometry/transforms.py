"""Pixel-space to device-space coordinate transforms.

Camera images address the stimulation field in **pixels** (top-left
origin, +Y down).  The galvo DSP addresses mirror positions in
**microcounts**, a signed 36-bit position unit.  This module is the only
place where one becomes the other.

Device axis convention:
    Both galvo axes are inverted relative to the image, so the device
    coordinate is the *negated* scaled offset from the optical centre::

        t = scale * exp(i * theta) * ((px + i*py) - (cx + i*cy))
        device = (-round(Re t), -round(Im t))

Rounding:
    All integer results use half-away-from-zero rounding (C ``round``),
    not Python's banker's rounding, so that protocols match what the
    DSP tooling has always produced.
"""

from __future__ import annotations

import cmath
import math
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

# ---------------------------------------------------------------------------
# Coordinate types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PixelCoord:
    """Integer position in image (pixel) space."""

    x: int
    y: int


@dataclass(frozen=True, slots=True)
class DeviceCoord:
    """Galvo position in device microcounts (signed 64-bit)."""

    x: int
    y: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero."""
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


def _as_array(points: Iterable[PixelCoord]) -> np.ndarray:
    return np.array([(p.x, p.y) for p in points], dtype=np.float64).reshape(-1, 2)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def to_device_space(
    pixel: PixelCoord,
    scale: int,
    center: PixelCoord,
    rotation: float = 0.0,
) -> DeviceCoord:
    """Convert a pixel coordinate to galvo microcounts.

    Parameters
    ----------
    pixel : PixelCoord
        Position in the camera image.
    scale : int
        Device units per pixel (see ``calibration.estimate_scale``).
    center : PixelCoord
        Pixel position of the optical axis (device origin).
    rotation : float
        Rotation of the image relative to the galvo axes, in radians.

    Returns
    -------
    DeviceCoord
        Negated, scaled and rotated offset from *center*.
    """
    offset = complex(pixel.x - center.x, pixel.y - center.y)
    t = scale * cmath.exp(1j * rotation) * offset
    return DeviceCoord(x=-round_half_away(t.real), y=-round_half_away(t.imag))


def rotate(pixel: PixelCoord, center: PixelCoord, angle: float) -> PixelCoord:
    """Rotate *pixel* about *center* by *angle* radians in pixel space.

    The result is absolute (the pivot is added back) and rounded to whole
    pixels, so ``rotate(p, c, 0.0) == p``.
    """
    dx = float(pixel.x - center.x)
    dy = float(pixel.y - center.y)
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    rx = dx * cos_a - dy * sin_a
    ry = dx * sin_a + dy * cos_a
    return PixelCoord(
        x=center.x + round_half_away(rx),
        y=center.y + round_half_away(ry),
    )


def rotate_all(
    points: Sequence[PixelCoord],
    center: PixelCoord,
    angle: float,
) -> list[PixelCoord]:
    """Rotate a whole point set about a common pivot.

    Parameters
    ----------
    points : Sequence[PixelCoord]
        Points in visitation order.  Order is preserved.
    center : PixelCoord
        Pivot, usually ``centroid(points)``.
    angle : float
        Rotation in radians.

    Returns
    -------
    list[PixelCoord]
        Rotated points, rounded to whole pixels.
    """
    if angle == 0:
        return list(points)
    return [rotate(p, center, angle) for p in points]


def centroid(points: Sequence[PixelCoord]) -> PixelCoord:
    """Arithmetic mean of *points*, rounded to the nearest pixel.

    Raises
    ------
    ValueError
        If *points* is empty.
    """
    if len(points) == 0:
        raise ValueError("centroid requires at least one point")
    mean_x, mean_y = _as_array(points).mean(axis=0)
    return PixelCoord(x=round_half_away(mean_x), y=round_half_away(mean_y))
