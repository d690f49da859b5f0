"""Timing coercion and millisecond to cycle conversion.

Shared by all pattern compilers.  Coercions are silent corrections, not
errors: a pulse interval shorter than the pulse is stretched to the pulse
width, and an episode too short for its pulse train is stretched to fit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from scan_control.configs.loader import DEFAULT_DEVICE, DeviceConfig
from scan_control.patterns.params import StimulusTiming

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EpisodeTiming:
    """Coerced timing in DSP cycles.

    ``episode_period`` is one iteration of the episode; ``episode_span``
    is the whole dwell at one spot (all iterations).
    """

    baseline: int
    pulse_width: int
    pulse_count: int
    isi: int
    episode_period: int
    iterations: int
    reps: int

    @property
    def episode_span(self) -> int:
        return self.episode_period * self.iterations


def coerce_isi(pulse_width_ms: int, isi_ms: int) -> int:
    """Return an interval no shorter than the pulse width."""
    return pulse_width_ms if isi_ms < pulse_width_ms else isi_ms


def coerce_period(
    baseline_ms: int, train_length: int, isi_ms: int, period_ms: int,
) -> int:
    """Return a period long enough for baseline + *train_length* intervals."""
    minimum = baseline_ms + train_length * isi_ms
    return minimum if period_ms < minimum else period_ms


def resolve_timing(
    timing: StimulusTiming,
    train_length: int | None = None,
    device: DeviceConfig = DEFAULT_DEVICE,
) -> EpisodeTiming:
    """Coerce *timing* and convert it to cycles.

    Parameters
    ----------
    timing : StimulusTiming
        Experimenter-facing timing in ms.
    train_length : int | None
        Number of intervals the period must accommodate.  Defaults to
        the pulse count; the rapid compilers pass their point count.
    device : DeviceConfig
        Supplies ``cycles_per_ms``.

    Returns
    -------
    EpisodeTiming
    """
    if train_length is None:
        train_length = timing.pulse_count

    isi_ms = coerce_isi(timing.pulse_width_ms, timing.isi_ms)
    period_ms = coerce_period(
        timing.baseline_ms, train_length, isi_ms, timing.episode_period_ms,
    )
    if isi_ms != timing.isi_ms:
        logger.debug("ISI raised from %d to %d ms", timing.isi_ms, isi_ms)
    if period_ms != timing.episode_period_ms:
        logger.debug(
            "Episode period raised from %d to %d ms",
            timing.episode_period_ms,
            period_ms,
        )

    return EpisodeTiming(
        baseline=device.ms_to_cycles(timing.baseline_ms),
        pulse_width=device.ms_to_cycles(timing.pulse_width_ms),
        pulse_count=timing.pulse_count,
        isi=device.ms_to_cycles(isi_ms),
        episode_period=device.ms_to_cycles(period_ms),
        iterations=timing.iterations,
        reps=timing.reps,
    )
