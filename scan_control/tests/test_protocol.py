"""Tests for scan command records, the command list and the serializer.

Validates the exact wire text of every append primitive, record range
checks, loop-nesting validation and the clear-directive prefix.
"""

from __future__ import annotations

import logging

import pytest

from scan_control.configs.loader import DeviceConfig
from scan_control.protocol.commands import (
    Channel,
    CommandRecord,
    Protocol,
    ProtocolError,
    ScanKind,
    TriggerEdge,
    TriggerLevel,
)
from scan_control.protocol.serializer import format_record, serialize


def _lines(protocol: Protocol) -> list[str]:
    return serialize(protocol).splitlines()


# ---------------------------------------------------------------------------
# Append primitives
# ---------------------------------------------------------------------------


class TestAppend:
    def test_move(self) -> None:
        p = Protocol()
        p.append_move(Channel.POSITION_X, 0, 26600)
        p.append_move(Channel.POSITION_Y, 0, -19400)
        assert _lines(p) == ["C", "AV,0,4,26600", "AV,0,3,-19400"]

    def test_loop_records_carry_repetitions(self) -> None:
        p = Protocol()
        p.append_loop_start(10, 5)
        p.append_loop_end(510, 5)
        assert _lines(p)[1:] == ["AS,10,9,5", "AE,510,9,5"]

    def test_trigger_out_levels(self) -> None:
        p = Protocol()
        for level in TriggerLevel:
            p.append_trigger_out(7, level)
        assert _lines(p)[1:] == ["AV,7,7,0", "AV,7,7,2", "AV,7,7,4", "AV,7,7,6"]

    def test_trigger_in_edges(self) -> None:
        p = Protocol()
        p.append_trigger_in(10)
        p.append_trigger_in(20, TriggerEdge.FALLING)
        assert _lines(p)[1:] == ["AU,10,7,0", "AD,20,7,0"]

    def test_relative_offset_increment_wait(self) -> None:
        p = Protocol()
        p.append_relative(100, Channel.POSITION_X, -50)
        p.append_offset(100, Channel.POSITION_Y, 12)
        p.append_increment(100, Channel.POSITION_X, 3)
        p.append_wait(250)
        assert _lines(p)[1:] == [
            "AR,100,4,-50",
            "AO,100,3,12",
            "AI,100,4,3",
            "A0,250,0,0",
        ]

    def test_each_append_adds_one_record(self) -> None:
        p = Protocol()
        p.append_move(Channel.POSITION_X, 0, 1)
        p.append_wait(1)
        p.append_trigger_in(2)
        assert len(p) == 3
        assert [r.scan for r in p] == [ScanKind.SET_VALUE, ScanKind.NOOP, ScanKind.WAIT_RISING]

    def test_records_snapshot_and_clear(self) -> None:
        p = Protocol()
        p.append_wait(1)
        snap = p.records
        p.clear()
        assert len(p) == 0
        assert len(snap) == 1


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class TestCommandRecord:
    def test_format(self) -> None:
        rec = CommandRecord(ScanKind.LOOP_END, 200050, Channel.LOOP, 1)
        assert format_record(rec) == "AE,200050,9,1\n"

    def test_negative_cycle_rejected(self) -> None:
        with pytest.raises(ProtocolError, match="unsigned 32-bit"):
            CommandRecord(ScanKind.SET_VALUE, -1, Channel.TRIGGER, 0)

    def test_cycle_overflow_rejected(self) -> None:
        with pytest.raises(ProtocolError, match="unsigned 32-bit"):
            CommandRecord(ScanKind.SET_VALUE, 2**32, Channel.TRIGGER, 0)

    def test_value_overflow_rejected(self) -> None:
        with pytest.raises(ProtocolError, match="signed 64-bit"):
            CommandRecord(ScanKind.SET_VALUE, 0, Channel.POSITION_X, 2**63)


# ---------------------------------------------------------------------------
# Loop nesting
# ---------------------------------------------------------------------------


class TestNesting:
    def test_balanced(self) -> None:
        p = Protocol()
        p.append_loop_start(0, 2)
        p.append_loop_start(10, 3)
        p.append_loop_end(40, 3)
        p.append_loop_end(100, 2)
        p.check_nesting()

    def test_left_open(self) -> None:
        p = Protocol()
        p.append_loop_start(0, 2)
        with pytest.raises(ProtocolError, match="left open"):
            p.check_nesting()

    def test_underflow(self) -> None:
        p = Protocol()
        p.append_loop_end(10, 1)
        with pytest.raises(ProtocolError, match="closes no open loop"):
            p.check_nesting()


# ---------------------------------------------------------------------------
# Serializer
# ---------------------------------------------------------------------------


class TestSerialize:
    def test_empty_protocol(self) -> None:
        assert serialize(Protocol()) == "C\n"

    def test_no_execute_directive(self) -> None:
        p = Protocol()
        p.append_wait(5)
        text = serialize(p)
        assert text.startswith("C\n")
        assert text.endswith("A0,5,0,0\n")
        assert "X" not in text.splitlines()

    def test_does_not_modify_protocol(self) -> None:
        p = Protocol()
        p.append_wait(5)
        assert serialize(p) == serialize(p)
        assert len(p) == 1

    def test_oversize_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        p = Protocol()
        for c in range(3):
            p.append_wait(c)
        with caplog.at_level(logging.WARNING):
            serialize(p, DeviceConfig(max_commands=2))
        assert "at most 2" in caplog.text
