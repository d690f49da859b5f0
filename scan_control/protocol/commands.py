"""Scan commands -- the vocabulary between pattern compilers and the DSP.

A *protocol* is an ordered list of command lines uploaded to the scan
control DSP.  Every line carries a single-character DSP control command,
a single-character scan command, and three numeric fields::

    <control><scan>,<cycle>,<channel>,<value>

Only the ``A`` (add to scan list) control command is ever stored in a
protocol; ``C`` (clear) is prepended by the serializer and ``X``
(execute) is left to whoever owns the serial link.

Loops
-----
Loop start and end lines both carry the iteration count as value and
``Channel.LOOP`` as channel.  For a loop starting at ``t0`` with ``n``
iterations of duration ``dt`` the end line is at ``t0 + n * dt``.  Loops
nest like brackets: the most recently opened loop is the next to close.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterator

logger = logging.getLogger(__name__)

_UINT32_MAX = 2**32 - 1
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class ProtocolError(Exception):
    """Raised when a protocol cannot be built or rendered."""

    pass


# ---------------------------------------------------------------------------
# Wire codes
# ---------------------------------------------------------------------------


class ControlKind(str, Enum):
    """DSP control command stored in a protocol line."""

    ADD = "A"


class ScanKind(str, Enum):
    """Scan command codes understood by the DSP."""

    SET_VALUE = "V"
    SET_RELATIVE = "R"
    SET_INCREMENT = "I"
    SET_OFFSET = "O"
    LOOP_START = "S"
    LOOP_END = "E"
    WAIT_RISING = "U"
    WAIT_FALLING = "D"
    NOOP = "0"


class Channel(IntEnum):
    """TMSI channels used for the two-mirror system."""

    NONE = 0
    POSITION_Y = 3
    POSITION_X = 4
    TRIGGER = 7
    LOOP = 9


class TriggerLevel(IntEnum):
    """Digital output levels on ``Channel.TRIGGER``.

    ``T-OUT`` triggers another device, ``D-OUT`` gates the laser.
    """

    BOTH_LOW = 0
    TRIGGER_HIGH = 2
    LASER_HIGH = 4
    BOTH_HIGH = 6


class TriggerEdge(IntEnum):
    """Input trigger edge to wait for."""

    RISING = 1
    FALLING = 2


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CommandRecord:
    """One protocol line.

    Parameters
    ----------
    scan : ScanKind
        Scan command.
    cycle : int
        Absolute 10 us cycle at which the command executes (unsigned 32-bit).
    channel : int
        Target channel (see ``Channel``).
    value : int
        Command value (signed 64-bit).
    control : ControlKind
        Always ``ControlKind.ADD`` for stored lines.
    """

    scan: ScanKind
    cycle: int
    channel: int
    value: int
    control: ControlKind = ControlKind.ADD

    def __post_init__(self) -> None:
        if not 0 <= self.cycle <= _UINT32_MAX:
            raise ProtocolError(
                f"cycle {self.cycle} outside unsigned 32-bit range"
            )
        if not _INT64_MIN <= self.value <= _INT64_MAX:
            raise ProtocolError(
                f"value {self.value} outside signed 64-bit range"
            )


# ---------------------------------------------------------------------------
# Protocol (append-only command list)
# ---------------------------------------------------------------------------


class Protocol:
    """Ordered, append-only list of ``CommandRecord``.

    Each ``append_*`` method adds exactly one record at the end.  Records
    are never reordered or deduplicated.
    """

    def __init__(self) -> None:
        self._records: list[CommandRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CommandRecord]:
        return iter(self._records)

    @property
    def records(self) -> tuple[CommandRecord, ...]:
        """Snapshot of the records in insertion order."""
        return tuple(self._records)

    def clear(self) -> None:
        """Release all records."""
        self._records.clear()

    # ------------------------------------------------------------------
    # Append primitives
    # ------------------------------------------------------------------

    def _append(self, scan: ScanKind, cycle: int, channel: int, value: int) -> None:
        self._records.append(
            CommandRecord(scan=scan, cycle=int(cycle), channel=int(channel), value=int(value))
        )

    def append_move(self, channel: Channel, cycle: int, position: int) -> None:
        """Set an absolute galvo position (one axis) in microcounts."""
        self._append(ScanKind.SET_VALUE, cycle, channel, position)

    def append_loop_start(self, cycle: int, repetitions: int) -> None:
        # No limit checking on repetitions.
        self._append(ScanKind.LOOP_START, cycle, Channel.LOOP, repetitions)

    def append_loop_end(self, cycle: int, repetitions: int) -> None:
        self._append(ScanKind.LOOP_END, cycle, Channel.LOOP, repetitions)

    def append_trigger_out(self, cycle: int, level: TriggerLevel) -> None:
        """Set the digital output lines to *level*."""
        self._append(ScanKind.SET_VALUE, cycle, Channel.TRIGGER, level)

    def append_trigger_in(
        self, cycle: int, edge: TriggerEdge = TriggerEdge.RISING,
    ) -> None:
        """Pause execution until the input trigger sees *edge*."""
        scan = (
            ScanKind.WAIT_FALLING
            if edge == TriggerEdge.FALLING
            else ScanKind.WAIT_RISING
        )
        self._append(scan, cycle, Channel.TRIGGER, 0)

    def append_relative(self, cycle: int, channel: Channel, delta: int) -> None:
        """Move *channel* by *delta* microcounts from its current value."""
        self._append(ScanKind.SET_RELATIVE, cycle, channel, delta)

    def append_offset(self, cycle: int, channel: Channel, offset: int) -> None:
        self._append(ScanKind.SET_OFFSET, cycle, channel, offset)

    def append_increment(self, cycle: int, channel: Channel, increment: int) -> None:
        """Set the per-cycle increment of *channel*."""
        self._append(ScanKind.SET_INCREMENT, cycle, channel, increment)

    def append_wait(self, cycle: int) -> None:
        """No-op line at *cycle* (keeps the DSP busy until then)."""
        self._append(ScanKind.NOOP, cycle, Channel.NONE, 0)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def check_nesting(self) -> None:
        """Verify loop start/end records pair like brackets.

        Raises
        ------
        ProtocolError
            If a loop end has no open loop, or loops are left open.
        """
        depth = 0
        for index, rec in enumerate(self._records):
            if rec.scan == ScanKind.LOOP_START:
                depth += 1
            elif rec.scan == ScanKind.LOOP_END:
                depth -= 1
                if depth < 0:
                    raise ProtocolError(
                        f"loop end at line {index} closes no open loop"
                    )
        if depth != 0:
            raise ProtocolError(f"{depth} loop(s) left open")
