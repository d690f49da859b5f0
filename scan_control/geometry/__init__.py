"""
Geometry module.

Pixel-space to galvo device-space transforms, rotation and centroids.
"""

from scan_control.geometry.transforms import (
    DeviceCoord,
    PixelCoord,
    centroid,
    rotate,
    rotate_all,
    round_half_away,
    to_device_space,
)

__all__ = [
    "DeviceCoord",
    "PixelCoord",
    "centroid",
    "rotate",
    "rotate_all",
    "round_half_away",
    "to_device_space",
]
