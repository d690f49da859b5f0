"""Tests for calibration, target and pattern file readers."""

from __future__ import annotations

from pathlib import Path

import pytest

from scan_control.calibration.scaling import CalibrationPoint
from scan_control.geometry.transforms import PixelCoord
from scan_control.sources.readers import (
    SourceError,
    read_calibration,
    read_pattern,
    read_targets,
)


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text)
    return path


# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------


class TestCalibration:
    def test_reads_tab_separated_floats(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "calib.txt", "0\t0\t10.5\t20\n1000.0\t-500\t20.5\t15\n")
        assert read_calibration(path) == [
            CalibrationPoint(0.0, 0.0, 10.5, 20.0),
            CalibrationPoint(1000.0, -500.0, 20.5, 15.0),
        ]

    def test_reads_only_requested_points(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "calib.txt", "0 0 0 0\n1 1 1 1\n2 2 2 2\n")
        assert len(read_calibration(path, num_points=2)) == 2

    def test_short_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "calib.txt", "0 0 0 0\n")
        with pytest.raises(SourceError, match="declares 3 points"):
            read_calibration(path, num_points=3)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SourceError, match="Cannot read"):
            read_calibration(tmp_path / "nope.txt", num_points=2)

    def test_malformed_value(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "calib.txt", "0 0 0 0\n1 x 1 1\n")
        with pytest.raises(SourceError, match=":2:"):
            read_calibration(path)

    def test_too_few_columns(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "calib.txt", "0 0 0\n")
        with pytest.raises(SourceError, match="expected 4 columns"):
            read_calibration(path)


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


class TestTargets:
    def test_visit_order_and_blank_lines(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "targets.txt", "# cells\n450\t400\n\n12\t7\n")
        assert read_targets(path) == [PixelCoord(450, 400), PixelCoord(12, 7)]

    def test_non_integer_rejected(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "targets.txt", "1.5\t2\n")
        with pytest.raises(SourceError):
            read_targets(path)

    def test_short_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "targets.txt", "1\t2\n")
        with pytest.raises(SourceError, match="target file"):
            read_targets(path, num_points=2)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------


class TestPattern:
    def test_header_with_dims(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "pattern.txt", "3\t4\t4\n1\t1\n2\t3\n4\t4\n")
        pattern = read_pattern(path)
        assert pattern.count == 3
        assert pattern.dims == PixelCoord(4, 4)
        assert pattern.indices == ((1, 1), (2, 3), (4, 4))

    def test_header_count_only(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "pattern.txt", "1\n2\t2\n9\t9\n")
        pattern = read_pattern(path)
        assert pattern.dims is None
        assert pattern.indices == ((2, 2),)

    def test_short_pattern(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "pattern.txt", "3\n1\t1\n")
        with pytest.raises(SourceError, match="declares 3 points"):
            read_pattern(path)

    def test_empty_pattern_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "pattern.txt", "\n\n")
        with pytest.raises(SourceError, match="empty"):
            read_pattern(path)
