"""Flat-file sources for calibration points, targets and patterns.

All three formats are whitespace-separated columns, one record per line
(tabs in files written by the acquisition software).  Blank lines and
lines starting with ``#`` are ignored.

Calibration file::

    <device_x> <device_y> <pixel_x> <pixel_y>      (floats)

Target file::

    <pixel_x> <pixel_y>                            (integers, visit order)

Pattern file::

    <count> [<dims_x> <dims_y>]                    (header)
    <index_x> <index_y>                            (1-based, count lines)

A file that cannot be read, has a malformed line, or holds fewer records
than requested raises ``SourceError``.  Nothing is read past a failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, TypeVar, Union

from scan_control.calibration.scaling import CalibrationPoint
from scan_control.geometry.transforms import PixelCoord
from scan_control.utils.fs import read_lines

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SourceError(Exception):
    """Raised when a coordinate source is missing, short or malformed."""

    pass


@dataclass(frozen=True, slots=True)
class PatternDefinition:
    """Indexed stimulation pattern.

    Parameters
    ----------
    count : int
        Number of pattern points.
    dims : PixelCoord | None
        Lattice size the indices refer to, when the header declares it.
    indices : tuple[tuple[int, int], ...]
        1-based ``(column, row)`` lattice indices, in visit order.
    """

    count: int
    dims: PixelCoord | None
    indices: tuple[tuple[int, int], ...]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _records(path: Union[str, Path]) -> list[tuple[int, list[str]]]:
    """Return ``(line_number, fields)`` for every non-blank line."""
    try:
        lines = read_lines(path)
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceError(f"Cannot read {path}: {exc}") from exc
    out = []
    for number, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        out.append((number, stripped.split()))
    return out


def _parse_row(
    path: Union[str, Path],
    number: int,
    fields: list[str],
    width: int,
    convert: Callable[[str], T],
) -> list[T]:
    if len(fields) < width:
        raise SourceError(
            f"{path}:{number}: expected {width} columns, got {len(fields)}"
        )
    try:
        return [convert(f) for f in fields[:width]]
    except ValueError as exc:
        raise SourceError(f"{path}:{number}: {exc}") from exc


def _take(
    path: Union[str, Path],
    rows: list[tuple[int, list[str]]],
    num_points: int | None,
    what: str,
) -> list[tuple[int, list[str]]]:
    if num_points is None:
        return rows
    if len(rows) < num_points:
        raise SourceError(
            f"{path}: {what} file declares {num_points} points, holds {len(rows)}"
        )
    return rows[:num_points]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def read_calibration(
    path: Union[str, Path], num_points: int | None = None,
) -> list[CalibrationPoint]:
    """Read calibration samples.

    Parameters
    ----------
    path : str | Path
        Calibration file.
    num_points : int | None
        Number of samples to read.  ``None`` reads the whole file.

    Returns
    -------
    list[CalibrationPoint]

    Raises
    ------
    SourceError
        If the file is unreadable, malformed, or shorter than *num_points*.
    """
    rows = _take(path, _records(path), num_points, "calibration")
    points = []
    for number, fields in rows:
        dx, dy, px, py = _parse_row(path, number, fields, 4, float)
        points.append(CalibrationPoint(device_x=dx, device_y=dy, pixel_x=px, pixel_y=py))
    logger.debug("Read %d calibration points from %s", len(points), path)
    return points


def read_targets(
    path: Union[str, Path], num_points: int | None = None,
) -> list[PixelCoord]:
    """Read target pixel coordinates in visitation order."""
    rows = _take(path, _records(path), num_points, "target")
    targets = []
    for number, fields in rows:
        x, y = _parse_row(path, number, fields, 2, int)
        targets.append(PixelCoord(x=x, y=y))
    logger.debug("Read %d targets from %s", len(targets), path)
    return targets


def read_pattern(path: Union[str, Path]) -> PatternDefinition:
    """Read an indexed pattern (header line, then *count* index pairs).

    Raises
    ------
    SourceError
        If the header is missing or the file holds fewer pairs than the
        header declares.
    """
    rows = _records(path)
    if not rows:
        raise SourceError(f"{path}: empty pattern file")

    number, header = rows[0]
    try:
        values = [int(f) for f in header]
    except ValueError as exc:
        raise SourceError(f"{path}:{number}: bad pattern header: {exc}") from exc
    count = values[0]
    if count < 0:
        raise SourceError(f"{path}:{number}: negative point count {count}")
    dims = PixelCoord(x=values[1], y=values[2]) if len(values) >= 3 else None

    body = _take(path, rows[1:], count, "pattern")
    indices = tuple(
        tuple(_parse_row(path, n, fields, 2, int)) for n, fields in body
    )
    if dims is not None:
        for ix, iy in indices:
            if not (1 <= ix <= dims.x and 1 <= iy <= dims.y):
                logger.warning(
                    "%s: index (%d, %d) outside declared %dx%d lattice",
                    path, ix, iy, dims.x, dims.y,
                )
    return PatternDefinition(count=count, dims=dims, indices=indices)
