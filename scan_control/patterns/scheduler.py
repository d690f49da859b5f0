"""Episode scheduler -- the skeleton shared by all pattern compilers.

Compilers differ in *where* they stimulate (spot, lattice, point list);
the temporal building blocks are the same and live here:

    loop             bracketed loop with computed end cycle
    emit_trigger     episode start event (none / wait for input / output)
    emit_pulses      one pulse or a pulse-train loop
    emit_episode     optional iteration loop around trigger + pulses
    emit_point_list  one episode slot per point, visited in order
    emit_lattice     Y/X loops over a grid with relative steps per cell

All cycle arguments are absolute DSP cycles.
"""

from __future__ import annotations

from contextlib import contextmanager, nullcontext
from typing import Callable, ContextManager, Iterator, Sequence

from scan_control.configs.loader import DEFAULT_DEVICE, DeviceConfig
from scan_control.geometry.transforms import DeviceCoord
from scan_control.patterns.params import Trigger
from scan_control.patterns.timing import EpisodeTiming
from scan_control.protocol.commands import Channel, Protocol, TriggerEdge, TriggerLevel

CellBody = Callable[[Protocol, int], None]


# ---------------------------------------------------------------------------
# Loops
# ---------------------------------------------------------------------------


@contextmanager
def loop(
    protocol: Protocol, start: int, repetitions: int, period: int,
) -> Iterator[None]:
    """Open a loop at *start*; close it at ``start + repetitions * period``.

    Commands appended inside the ``with`` block form the loop body, so
    loop starts and ends always nest.
    """
    protocol.append_loop_start(start, repetitions)
    yield
    protocol.append_loop_end(start + repetitions * period, repetitions)


def loop_if_repeated(
    protocol: Protocol, start: int, repetitions: int, period: int,
) -> ContextManager[None]:
    """Like ``loop`` but emits nothing for a single repetition."""
    if repetitions > 1:
        return loop(protocol, start, repetitions, period)
    return nullcontext()


# ---------------------------------------------------------------------------
# Episode building blocks
# ---------------------------------------------------------------------------


def emit_trigger(
    protocol: Protocol,
    cycle: int,
    trigger: Trigger,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> None:
    """Emit the episode start event selected by *trigger*."""
    if trigger == Trigger.WAIT_FOR_INPUT:
        protocol.append_trigger_in(cycle, TriggerEdge.RISING)
    elif trigger == Trigger.EMIT_OUTPUT:
        protocol.append_trigger_out(cycle, TriggerLevel.TRIGGER_HIGH)
        protocol.append_trigger_out(
            cycle + device.timing.trigger_length, TriggerLevel.BOTH_LOW,
        )


def emit_pulse(protocol: Protocol, cycle: int, width: int) -> None:
    protocol.append_trigger_out(cycle, TriggerLevel.LASER_HIGH)
    protocol.append_trigger_out(cycle + width, TriggerLevel.BOTH_LOW)


def emit_pulses(protocol: Protocol, start: int, timing: EpisodeTiming) -> None:
    """Emit a single pulse, or a loop of ``pulse_count`` pulses every ISI."""
    if timing.pulse_count == 1:
        emit_pulse(protocol, start, timing.pulse_width)
        return
    with loop(protocol, start, timing.pulse_count, timing.isi):
        emit_pulse(protocol, start, timing.pulse_width)


def emit_episode(
    protocol: Protocol,
    start: int,
    timing: EpisodeTiming,
    trigger: Trigger,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> None:
    """Emit one dwell at the current position.

    Layout::

        [iteration loop start]          (iterations > 1)
        trigger event                   at start
        pulse / pulse-train loop        at start + baseline
        [iteration loop end]            at start + iterations * period
    """
    with loop_if_repeated(
        protocol, start, timing.iterations, timing.episode_period,
    ):
        emit_trigger(protocol, start, trigger, device)
        emit_pulses(protocol, start + timing.baseline, timing)


# ---------------------------------------------------------------------------
# Spatial traversals
# ---------------------------------------------------------------------------


def emit_move(protocol: Protocol, cycle: int, position: DeviceCoord) -> None:
    """Absolute move of both galvos (X first)."""
    protocol.append_move(Channel.POSITION_X, cycle, position.x)
    protocol.append_move(Channel.POSITION_Y, cycle, position.y)


def emit_point_list(
    protocol: Protocol,
    positions: Sequence[DeviceCoord],
    first_episode: int,
    timing: EpisodeTiming,
    trigger: Trigger,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> int:
    """Give every position its own episode slot, in order.

    Returns
    -------
    int
        Cycle at which the last slot ends.
    """
    span = timing.episode_span
    for k, position in enumerate(positions):
        slot = first_episode + k * span
        emit_move(protocol, slot, position)
        emit_episode(protocol, slot, timing, trigger, device)
    return first_episode + len(positions) * span


def _emit_step(
    protocol: Protocol,
    cycle: int,
    step: DeviceCoord,
    axis_aligned: bool,
    channel: Channel,
) -> None:
    if not axis_aligned:
        protocol.append_relative(cycle, Channel.POSITION_X, step.x)
        protocol.append_relative(cycle, Channel.POSITION_Y, step.y)
    elif channel == Channel.POSITION_X:
        protocol.append_relative(cycle, Channel.POSITION_X, step.x)
    else:
        protocol.append_relative(cycle, Channel.POSITION_Y, step.y)


def emit_lattice(
    protocol: Protocol,
    start: int,
    dims: tuple[int, int],
    cell_duration: int,
    column_step: DeviceCoord,
    row_step: DeviceCoord,
    body: CellBody,
    axis_aligned: bool = True,
) -> int:
    """Sweep a ``dims[0] x dims[1]`` lattice with nested Y/X loops.

    Parameters
    ----------
    protocol : Protocol
        Target command list.  The galvos must already sit on the first cell.
    start : int
        Cycle at which the first cell begins.
    dims : tuple[int, int]
        Cells per row (X) and number of rows (Y).
    cell_duration : int
        Cycles spent on one cell.
    column_step, row_step : DeviceCoord
        Relative device move to the next cell in a row, and to the next
        row.
    body : CellBody
        Called once with ``(protocol, start)`` to emit the per-cell content.
    axis_aligned : bool
        ``True`` emits only the X component of column steps and the Y
        component of row steps (unrotated lattice).

    Returns
    -------
    int
        Cycle at which the whole sweep ends.
    """
    nx, ny = dims
    row_duration = nx * cell_duration
    row_return = DeviceCoord(x=-column_step.x * nx, y=-column_step.y * nx)

    with loop(protocol, start, ny, row_duration):
        with loop(protocol, start, nx, cell_duration):
            body(protocol, start)
            _emit_step(
                protocol, start + cell_duration, column_step,
                axis_aligned, Channel.POSITION_X,
            )
        row_end = start + row_duration
        _emit_step(protocol, row_end, row_step, axis_aligned, Channel.POSITION_Y)
        _emit_step(protocol, row_end, row_return, axis_aligned, Channel.POSITION_X)
    return start + ny * row_duration
