"""Tests for scale-factor estimation.

The running pairwise average is order sensitive, so the expected values
below depend on the enumeration order (pairs i < j, X before Y).
"""

from __future__ import annotations

import pytest

from scan_control.calibration.scaling import (
    CalibrationError,
    CalibrationPoint,
    estimate_scale,
    pairwise_slopes,
    running_average,
)


def _pt(dx: float, dy: float, px: float, py: float) -> CalibrationPoint:
    return CalibrationPoint(device_x=dx, device_y=dy, pixel_x=px, pixel_y=py)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def three_points() -> list[CalibrationPoint]:
    # Slopes in order: X(0,1)=100, Y(0,2)=300, X(1,2)=100, Y(1,2)=300
    return [
        _pt(0, 0, 0, 0),
        _pt(100, 0, 1, 0),
        _pt(0, 300, 0, 1),
    ]


# ---------------------------------------------------------------------------
# Slopes and averaging
# ---------------------------------------------------------------------------


class TestSlopes:
    def test_enumeration_order(self, three_points: list[CalibrationPoint]) -> None:
        assert pairwise_slopes(three_points) == [100.0, 300.0, 100.0, 300.0]

    def test_zero_pixel_delta_skipped(self) -> None:
        pts = [_pt(0, 0, 0, 0), _pt(100, 50, 2, 0)]
        assert pairwise_slopes(pts) == [50.0]

    def test_equal_device_axis_skipped(self) -> None:
        pts = [_pt(0, 10, 0, 0), _pt(0, 10, 4, 4)]
        assert pairwise_slopes(pts) == []

    def test_running_average_weights_late_values(self) -> None:
        assert running_average([100.0, 300.0, 100.0, 300.0]) == 225.0


# ---------------------------------------------------------------------------
# estimate_scale
# ---------------------------------------------------------------------------


class TestEstimateScale:
    def test_single_pair_is_rounded_ratio(self) -> None:
        pts = [_pt(0, 0, 0, 0), _pt(1000, 0, 7, 3)]
        assert estimate_scale(pts) == round(1000 / 7)

    def test_running_average_not_mean(self, three_points: list[CalibrationPoint]) -> None:
        assert estimate_scale(three_points) == 225

    def test_half_rounds_away_from_zero(self) -> None:
        assert estimate_scale([_pt(0, 0, 0, 0), _pt(5, 0, 2, 0)]) == 3

    def test_both_axes(self) -> None:
        pts = [_pt(0, 0, 0, 0), _pt(1000, 500, 10, 5)]
        assert estimate_scale(pts) == 100

    def test_fewer_than_two_points(self) -> None:
        with pytest.raises(CalibrationError, match="at least 2"):
            estimate_scale([_pt(0, 0, 0, 0)])

    def test_all_degenerate(self) -> None:
        pts = [_pt(5, 5, 1, 1), _pt(5, 5, 2, 2), _pt(5, 5, 3, 3)]
        with pytest.raises(CalibrationError, match="degenerate"):
            estimate_scale(pts)
