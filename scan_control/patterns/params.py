"""Parameter bundles accepted by the pattern compilers.

Every compiler takes the same two immutable bundles:

``StimulusTiming``
    What happens in time, in **milliseconds** (whole ms, as entered by
    the experimenter).
``DeviceTransform``
    How pixel coordinates map onto galvo microcounts.

plus a ``Trigger`` selection that decides what marks the start of each
episode.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from scan_control.geometry.transforms import PixelCoord


class Trigger(str, Enum):
    """Episode start event, chosen once per protocol."""

    NONE = "none"
    WAIT_FOR_INPUT = "in"
    EMIT_OUTPUT = "out"


@dataclass(frozen=True, slots=True)
class StimulusTiming:
    """Timing of a stimulation protocol (milliseconds).

    Parameters
    ----------
    baseline_ms : int
        Delay from episode start to the first pulse.
    pulse_width_ms : int
        Laser on-time of one pulse.
    pulse_count : int
        Pulses per episode.  Ignored by the rapid compilers (one pulse
        per point).
    isi_ms : int
        Pulse-to-pulse interval.  Raised to ``pulse_width_ms`` if shorter.
    episode_period_ms : int
        Duration of one episode.  Raised to fit baseline + pulse train.
    reps : int
        Repetitions of the whole protocol (master loop).
    iterations : int
        Repetitions of the episode at each spot before moving on.
    """

    baseline_ms: int
    pulse_width_ms: int
    pulse_count: int = 1
    isi_ms: int = 0
    episode_period_ms: int = 0
    reps: int = 1
    iterations: int = 1


@dataclass(frozen=True, slots=True)
class DeviceTransform:
    """Pixel to device mapping shared by every point of a protocol.

    Parameters
    ----------
    scale : int
        Device microcounts per pixel.
    center_offset : PixelCoord
        Pixel position of the optical axis.
    rotation : float
        Rotation of the pattern in radians, applied in pixel space.
    pivot : PixelCoord | None
        Rotation pivot.  ``None`` uses the centroid of the pattern.
    """

    scale: int
    center_offset: PixelCoord
    rotation: float = 0.0
    pivot: PixelCoord | None = None
