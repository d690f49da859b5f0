"""
Protocol module.

Typed scan command records, the append-only command list, and the
serializer that renders it into DSP wire text.
"""

from scan_control.protocol.commands import (
    Channel,
    CommandRecord,
    ControlKind,
    Protocol,
    ProtocolError,
    ScanKind,
    TriggerEdge,
    TriggerLevel,
)
from scan_control.protocol.serializer import CLEAR, format_record, serialize

__all__ = [
    "CLEAR",
    "Channel",
    "CommandRecord",
    "ControlKind",
    "Protocol",
    "ProtocolError",
    "ScanKind",
    "TriggerEdge",
    "TriggerLevel",
    "format_record",
    "serialize",
]
