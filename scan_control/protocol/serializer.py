"""Protocol serializer -- command records to DSP wire text.

The rendered document starts with the clear directive and then holds one
line per record, in list order::

    C
    AV,0,4,26600
    AV,0,3,-19400
    AS,0,9,1
    ...

No execute directive (``X``) is appended; issuing execution belongs to
the serial transport.
"""

from __future__ import annotations

import logging
from io import StringIO

from scan_control.configs.loader import DEFAULT_DEVICE, DeviceConfig
from scan_control.protocol.commands import CommandRecord, Protocol, ProtocolError

logger = logging.getLogger(__name__)

CLEAR = "C\n"


def format_record(rec: CommandRecord) -> str:
    """Render a single record as ``<control><scan>,<cycle>,<channel>,<value>``."""
    return f"{rec.control.value}{rec.scan.value},{rec.cycle},{rec.channel},{rec.value}\n"


def serialize(protocol: Protocol, device: DeviceConfig = DEFAULT_DEVICE) -> str:
    """Render *protocol* into the DSP text format.

    Parameters
    ----------
    protocol : Protocol
        Records to render.  Not modified.
    device : DeviceConfig
        Device limits; used only to warn about oversize protocols.

    Returns
    -------
    str
        ``"C\\n"`` followed by one line per record.

    Raises
    ------
    ProtocolError
        If memory runs out while rendering.  No partial text is returned.
    """
    if len(protocol) > device.max_commands:
        logger.warning(
            "Protocol has %d commands; device accepts at most %d",
            len(protocol),
            device.max_commands,
        )

    buf = StringIO()
    try:
        buf.write(CLEAR)
        for rec in protocol:
            buf.write(format_record(rec))
        return buf.getvalue()
    except MemoryError as exc:
        raise ProtocolError(
            f"Out of memory rendering protocol ({len(protocol)} commands)"
        ) from exc
    finally:
        buf.close()
