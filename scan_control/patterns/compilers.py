"""Pattern compilers -- stimulation patterns to DSP protocol text.

Six entry points, one per pattern type:

    build_spot          one position, optional pulse train
    build_grid          Dx x Dy lattice, full episode per cell
    build_target        arbitrary point list, full episode per point
    build_rapid_grid    lattice, one pulse per cell every ISI
    build_rapid_target  point list, one pulse per point every ISI
    build_pattern       indexed pattern mapped onto a lattice, then as target

Every compiler coerces its timing, converts each point to device space,
fills a fresh ``Protocol`` and returns ``serialize(protocol)``.  The
protocol never outlives the call.

Timeline of a protocol (cycles)::

    0            master loop start, initial moves
    time_offset  first episode (trigger events avoid cycle zero)
    ...          episodes / cells
    span         last episode ends
    reps * (span + protocol_period)   master loop end
"""

from __future__ import annotations

import functools
import logging
import math
from typing import Sequence

from scan_control.configs.loader import DEFAULT_DEVICE, DeviceConfig
from scan_control.geometry.transforms import (
    DeviceCoord,
    PixelCoord,
    centroid,
    rotate,
    rotate_all,
    round_half_away,
    to_device_space,
)
from scan_control.patterns.params import DeviceTransform, StimulusTiming, Trigger
from scan_control.patterns.scheduler import (
    emit_episode,
    emit_lattice,
    emit_move,
    emit_point_list,
    emit_pulse,
    emit_trigger,
    loop,
)
from scan_control.patterns.timing import resolve_timing
from scan_control.protocol.commands import Protocol, ProtocolError
from scan_control.protocol.serializer import serialize
from scan_control.sources.readers import PatternDefinition

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _render(protocol: Protocol, device: DeviceConfig) -> str:
    """Serialize and release *protocol*."""
    try:
        protocol.check_nesting()
        return serialize(protocol, device)
    finally:
        protocol.clear()


def _check_range(positions: Sequence[DeviceCoord], device: DeviceConfig) -> None:
    """Warn about positions the galvo channels cannot represent."""
    low, high = device.position_range
    for p in positions:
        if not (low <= p.x <= high and low <= p.y <= high):
            logger.warning(
                "Device position (%d, %d) outside %d-bit channel range [%d, %d]",
                p.x, p.y, device.position_bits, low, high,
            )


def _to_device(
    points: Sequence[PixelCoord],
    transform: DeviceTransform,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> list[DeviceCoord]:
    """Rotate *points* as a set (pixel space), then convert each one."""
    if transform.rotation != 0:
        pivot = transform.pivot if transform.pivot is not None else centroid(points)
        points = rotate_all(points, pivot, transform.rotation)
    positions = [
        to_device_space(p, transform.scale, transform.center_offset, 0.0)
        for p in points
    ]
    _check_range(positions, device)
    return positions


def _lattice_geometry(
    dims: PixelCoord,
    start: PixelCoord,
    spacing: PixelCoord,
    transform: DeviceTransform,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> tuple[DeviceCoord, DeviceCoord, DeviceCoord]:
    """Device start position and per-cell / per-row steps of a lattice.

    Columns advance by ``+spacing.x`` and rows by ``-spacing.y`` in pixel
    space.  With a rotation, the start corner is rotated about the centre
    of the lattice and each step vector is rotated and rounded to whole
    pixels before scaling.  The four lattice corners are range-checked
    against the device.
    """
    theta = transform.rotation
    scale = transform.scale
    if theta != 0:
        far = PixelCoord(
            x=start.x + spacing.x * (dims.x - 1),
            y=start.y - spacing.y * (dims.y - 1),
        )
        corners = [
            start,
            PixelCoord(x=far.x, y=start.y),
            far,
            PixelCoord(x=start.x, y=far.y),
        ]
        pivot = transform.pivot if transform.pivot is not None else centroid(corners)
        start = rotate(start, pivot, theta)

    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    col_px = (round_half_away(spacing.x * cos_t), round_half_away(spacing.x * sin_t))
    row_px = (round_half_away(spacing.y * sin_t), -round_half_away(spacing.y * cos_t))

    # Device axes are inverted relative to pixel axes.
    column_step = DeviceCoord(x=-col_px[0] * scale, y=-col_px[1] * scale)
    row_step = DeviceCoord(x=-row_px[0] * scale, y=-row_px[1] * scale)
    origin = to_device_space(start, scale, transform.center_offset, 0.0)

    nx, ny = dims.x - 1, dims.y - 1
    _check_range(
        [
            DeviceCoord(
                x=origin.x + i * nx * column_step.x + j * ny * row_step.x,
                y=origin.y + i * nx * column_step.y + j * ny * row_step.y,
            )
            for i in (0, 1)
            for j in (0, 1)
        ],
        device,
    )
    return origin, column_step, row_step


def pattern_to_pixels(
    pattern: PatternDefinition, start: PixelCoord, spacing: PixelCoord,
) -> list[PixelCoord]:
    """Map 1-based pattern indices onto a pixel lattice (Y inverted)."""
    return [
        PixelCoord(
            x=start.x + (ix - 1) * spacing.x,
            y=start.y - (iy - 1) * spacing.y,
        )
        for ix, iy in pattern.indices
    ]


def _compile_point_list(
    name: str,
    timing: StimulusTiming,
    targets: Sequence[PixelCoord],
    transform: DeviceTransform,
    trigger: Trigger,
    device: DeviceConfig,
) -> str:
    t = resolve_timing(timing, device=device)
    positions = _to_device(targets, transform, device)
    first = device.timing.time_offset
    span = first + len(positions) * t.episode_span + device.timing.protocol_period

    protocol = Protocol()
    with loop(protocol, 0, t.reps, span):
        emit_point_list(protocol, positions, first, t, trigger, device)

    logger.debug("%s: %d points, %d commands", name, len(positions), len(protocol))
    return _render(protocol, device)


def _guard(name: str):
    """Turn allocation failure during compilation into ``ProtocolError``."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except MemoryError as exc:
                raise ProtocolError(f"{name}: out of memory building protocol") from exc

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Compilers
# ---------------------------------------------------------------------------


@_guard("build_spot")
def build_spot(
    timing: StimulusTiming,
    position: PixelCoord,
    transform: DeviceTransform,
    trigger: Trigger = Trigger.NONE,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> str:
    """Stimulate a single spot.

    The galvos are positioned once, before the master loop; the episode
    starts at cycle zero.

    Parameters
    ----------
    timing : StimulusTiming
        Episode timing (ms).
    position : PixelCoord
        Spot position in pixels.
    transform : DeviceTransform
        Pixel to device mapping.  A rotation only moves the spot when an
        explicit pivot is given.
    trigger : Trigger
        Episode start event.
    device : DeviceConfig
        DSP constants.

    Returns
    -------
    str
        Protocol text starting with the clear directive.
    """
    t = resolve_timing(timing, device=device)
    (spot,) = _to_device([position], transform, device)
    span = t.episode_span + device.timing.protocol_period

    protocol = Protocol()
    emit_move(protocol, 0, spot)
    with loop(protocol, 0, t.reps, span):
        emit_episode(protocol, 0, t, trigger, device)
    return _render(protocol, device)


@_guard("build_grid")
def build_grid(
    timing: StimulusTiming,
    dims: PixelCoord,
    start: PixelCoord,
    spacing: PixelCoord,
    transform: DeviceTransform,
    trigger: Trigger = Trigger.NONE,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> str:
    """Stimulate every cell of a rectangular lattice, row by row.

    Parameters
    ----------
    timing : StimulusTiming
        Per-cell episode timing (ms); ``iterations`` repeats the episode
        at each cell.
    dims : PixelCoord
        Cells per row (``x``) and rows (``y``).
    start : PixelCoord
        First cell (top-left corner of the lattice), pixels.
    spacing : PixelCoord
        Cell pitch in pixels.  Rows advance towards smaller pixel Y.
    transform : DeviceTransform
        Pixel to device mapping; ``rotation`` rotates the lattice about
        its centre.
    trigger : Trigger
        Event at the start of every cell episode.
    device : DeviceConfig
        DSP constants.

    Returns
    -------
    str
        Protocol text.
    """
    t = resolve_timing(timing, device=device)
    origin, column_step, row_step = _lattice_geometry(dims, start, spacing, transform, device)
    first = device.timing.time_offset
    span = (
        first + dims.x * dims.y * t.episode_span + device.timing.protocol_period
    )

    def cell(protocol: Protocol, cycle: int) -> None:
        emit_episode(protocol, cycle, t, trigger, device)

    protocol = Protocol()
    with loop(protocol, 0, t.reps, span):
        emit_move(protocol, 0, origin)
        emit_lattice(
            protocol, first, (dims.x, dims.y), t.episode_span,
            column_step, row_step, cell,
            axis_aligned=transform.rotation == 0,
        )
    return _render(protocol, device)


@_guard("build_target")
def build_target(
    timing: StimulusTiming,
    targets: Sequence[PixelCoord],
    transform: DeviceTransform,
    trigger: Trigger = Trigger.NONE,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> str:
    """Stimulate a list of target points, one full episode each, in order."""
    return _compile_point_list("build_target", timing, targets, transform, trigger, device)


@_guard("build_rapid_grid")
def build_rapid_grid(
    timing: StimulusTiming,
    dims: PixelCoord,
    start: PixelCoord,
    spacing: PixelCoord,
    transform: DeviceTransform,
    trigger: Trigger = Trigger.NONE,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> str:
    """Sweep a lattice with one pulse per cell, moving on every ISI.

    The trigger event and the baseline occur once per repetition, before
    the sweep.  ``pulse_count`` and ``iterations`` are ignored.
    """
    cells = dims.x * dims.y
    t = resolve_timing(timing, train_length=cells, device=device)
    origin, column_step, row_step = _lattice_geometry(dims, start, spacing, transform, device)
    first = device.timing.time_offset
    span = first + t.episode_period + device.timing.protocol_period

    def cell(protocol: Protocol, cycle: int) -> None:
        emit_pulse(protocol, cycle, t.pulse_width)

    protocol = Protocol()
    with loop(protocol, 0, t.reps, span):
        emit_move(protocol, 0, origin)
        emit_trigger(protocol, first, trigger, device)
        emit_lattice(
            protocol, first + t.baseline, (dims.x, dims.y), t.isi,
            column_step, row_step, cell,
            axis_aligned=transform.rotation == 0,
        )
    return _render(protocol, device)


@_guard("build_rapid_target")
def build_rapid_target(
    timing: StimulusTiming,
    targets: Sequence[PixelCoord],
    transform: DeviceTransform,
    trigger: Trigger = Trigger.NONE,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> str:
    """Visit target points back to back, one pulse each, every ISI."""
    t = resolve_timing(timing, train_length=len(targets), device=device)
    positions = _to_device(targets, transform, device)
    first = device.timing.time_offset
    pulse_start = first + t.baseline
    span = first + t.episode_period + device.timing.protocol_period

    protocol = Protocol()
    with loop(protocol, 0, t.reps, span):
        emit_trigger(protocol, first, trigger, device)
        for m, position in enumerate(positions):
            cycle = pulse_start + m * t.isi
            emit_move(protocol, cycle, position)
            emit_pulse(protocol, cycle, t.pulse_width)
    return _render(protocol, device)


@_guard("build_pattern")
def build_pattern(
    timing: StimulusTiming,
    pattern: PatternDefinition,
    start: PixelCoord,
    spacing: PixelCoord,
    transform: DeviceTransform,
    trigger: Trigger = Trigger.NONE,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> str:
    """Stimulate an indexed pattern laid out on a lattice.

    Pattern index ``(1, 1)`` lands on *start*; index ``(i, j)`` lands on
    ``start + ((i-1) * spacing.x, -(j-1) * spacing.y)``.  The resulting
    points are compiled exactly like ``build_target``.
    """
    targets = pattern_to_pixels(pattern, start, spacing)
    return _compile_point_list("build_pattern", timing, targets, transform, trigger, device)


__all__ = [
    "build_grid",
    "build_pattern",
    "build_rapid_grid",
    "build_rapid_target",
    "build_spot",
    "build_target",
    "pattern_to_pixels",
]
