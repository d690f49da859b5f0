"""Tests for pixel to device coordinate transforms.

Validates the inverted-axis scale-and-offset mapping, half-away-from-zero
rounding, rotation about a pivot, and centroid computation.
"""

from __future__ import annotations

import math

import pytest

from scan_control.geometry.transforms import (
    DeviceCoord,
    PixelCoord,
    centroid,
    rotate,
    rotate_all,
    round_half_away,
    to_device_space,
)


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------


class TestRounding:
    def test_ties_go_away_from_zero(self) -> None:
        assert round_half_away(2.5) == 3
        assert round_half_away(-2.5) == -3
        assert round_half_away(0.5) == 1

    def test_non_ties(self) -> None:
        assert round_half_away(0.49) == 0
        assert round_half_away(-1.6) == -2
        assert round_half_away(7.0) == 7


# ---------------------------------------------------------------------------
# Device space conversion
# ---------------------------------------------------------------------------


class TestToDeviceSpace:
    def test_reference_spot(self) -> None:
        dev = to_device_space(PixelCoord(450, 400), 100, PixelCoord(716, 206))
        assert dev == DeviceCoord(26600, -19400)

    def test_unrotated_is_negated_scaled_offset(self) -> None:
        center = PixelCoord(300, 250)
        for px, py in [(0, 0), (300, 250), (512, 17), (-4, 999)]:
            dev = to_device_space(PixelCoord(px, py), 37, center)
            assert dev.x == -37 * (px - center.x)
            assert dev.y == -37 * (py - center.y)

    def test_center_maps_to_origin(self) -> None:
        c = PixelCoord(10, 20)
        assert to_device_space(c, 500, c, rotation=1.2) == DeviceCoord(0, 0)

    def test_quarter_turn(self) -> None:
        dev = to_device_space(PixelCoord(1, 0), 10, PixelCoord(0, 0), math.pi / 2)
        assert dev == DeviceCoord(0, -10)


# ---------------------------------------------------------------------------
# Rotation
# ---------------------------------------------------------------------------


class TestRotate:
    def test_zero_angle_is_identity(self) -> None:
        for p in [PixelCoord(0, 0), PixelCoord(13, -7), PixelCoord(640, 480)]:
            assert rotate(p, PixelCoord(100, 100), 0.0) == p

    def test_quarter_turn_about_origin(self) -> None:
        assert rotate(PixelCoord(5, 0), PixelCoord(0, 0), math.pi / 2) == PixelCoord(0, 5)

    def test_result_is_absolute(self) -> None:
        out = rotate(PixelCoord(15, 10), PixelCoord(10, 10), math.pi / 2)
        assert out == PixelCoord(10, 15)

    def test_rotate_all_preserves_order(self) -> None:
        pts = [PixelCoord(1, 2), PixelCoord(3, 4)]
        out = rotate_all(pts, PixelCoord(0, 0), math.pi)
        assert out == [PixelCoord(-1, -2), PixelCoord(-3, -4)]

    def test_rotate_all_zero_angle(self) -> None:
        pts = [PixelCoord(1, 2), PixelCoord(3, 4)]
        assert rotate_all(pts, PixelCoord(50, 50), 0.0) == pts


# ---------------------------------------------------------------------------
# Centroid
# ---------------------------------------------------------------------------


class TestCentroid:
    def test_mean_rounded(self) -> None:
        pts = [PixelCoord(0, 0), PixelCoord(2, 0), PixelCoord(2, 3)]
        assert centroid(pts) == PixelCoord(1, 1)

    def test_half_rounds_away(self) -> None:
        assert centroid([PixelCoord(0, 0), PixelCoord(1, 1)]) == PixelCoord(1, 1)

    def test_empty_raises(self) -> None:
        with pytest.raises(ValueError, match="at least one point"):
            centroid([])
