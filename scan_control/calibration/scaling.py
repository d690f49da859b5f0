"""Scale-factor estimation from paired galvo / camera calibration points.

A calibration session drives the galvos to a handful of known device
positions and records where the spot lands in the camera image.  Every
pair of points gives one slope (device units per pixel) per axis; the
slopes are folded into a single integer scale factor.

Averaging is a *running pairwise* average in enumeration order::

    avg = first
    avg = (avg + next) / 2     for each further estimate

which weights late estimates more heavily than early ones.  Downstream
protocols depend on the exact value, so the order is fixed: point pairs
``i < j`` lexicographically, axis X before axis Y within a pair.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from scan_control.geometry.transforms import round_half_away

logger = logging.getLogger(__name__)


class CalibrationError(Exception):
    """Raised when no scale factor can be derived from the calibration data."""

    pass


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CalibrationPoint:
    """One calibration sample.

    Parameters
    ----------
    device_x, device_y : float
        Commanded galvo position (microcounts).
    pixel_x, pixel_y : float
        Observed spot position in the camera image (pixels).
    """

    device_x: float
    device_y: float
    pixel_x: float
    pixel_y: float


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------


def pairwise_slopes(points: Sequence[CalibrationPoint]) -> list[float]:
    """Per-pair, per-axis ``|d_device| / |d_pixel|`` in enumeration order.

    Axes where the device positions coincide carry no information and are
    skipped, as are axes where the pixel positions coincide (undefined
    slope).
    """
    data = np.array(
        [(p.device_x, p.device_y, p.pixel_x, p.pixel_y) for p in points],
        dtype=np.float64,
    ).reshape(-1, 4)

    slopes: list[float] = []
    n = len(data)
    for i in range(n):
        for j in range(i + 1, n):
            d_device = np.abs(data[i, :2] - data[j, :2])
            d_pixel = np.abs(data[i, 2:] - data[j, 2:])
            for axis in (0, 1):
                if d_device[axis] == 0:
                    continue
                if d_pixel[axis] == 0:
                    logger.debug(
                        "Skipping pair (%d, %d) axis %d: zero pixel delta", i, j, axis,
                    )
                    continue
                slopes.append(float(d_device[axis] / d_pixel[axis]))
    return slopes


def running_average(values: Sequence[float]) -> float:
    """Fold *values* with ``avg = (avg + next) / 2``, seeded with the first."""
    avg = values[0]
    for value in values[1:]:
        avg = (avg + value) / 2
    return avg


def estimate_scale(points: Sequence[CalibrationPoint]) -> int:
    """Derive the device-units-per-pixel scale factor.

    Parameters
    ----------
    points : Sequence[CalibrationPoint]
        At least two calibration samples.

    Returns
    -------
    int
        Running pairwise average of all valid slopes, rounded half away
        from zero.

    Raises
    ------
    CalibrationError
        If fewer than two points are given, or every pair is degenerate.
    """
    if len(points) < 2:
        raise CalibrationError(
            f"Need at least 2 calibration points, got {len(points)}"
        )

    slopes = pairwise_slopes(points)
    if not slopes:
        raise CalibrationError(
            "All calibration point pairs are degenerate (no usable deltas)"
        )

    scale = round_half_away(running_average(slopes))
    logger.info(
        "Scale factor %d from %d points (%d slope estimates)",
        scale, len(points), len(slopes),
    )
    return scale
