"""
Calibration module.

Derives the pixel to device scale factor from paired calibration points.
"""

from scan_control.calibration.scaling import (
    CalibrationError,
    CalibrationPoint,
    estimate_scale,
    pairwise_slopes,
    running_average,
)

__all__ = [
    "CalibrationError",
    "CalibrationPoint",
    "estimate_scale",
    "pairwise_slopes",
    "running_average",
]
