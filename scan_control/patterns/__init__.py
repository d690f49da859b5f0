"""
Pattern compilers.

Turn stimulation patterns (spot, grid, target list, rapid sweeps, indexed
patterns) into DSP protocol text.
"""

from scan_control.patterns.compilers import (
    build_grid,
    build_pattern,
    build_rapid_grid,
    build_rapid_target,
    build_spot,
    build_target,
    pattern_to_pixels,
)
from scan_control.patterns.params import DeviceTransform, StimulusTiming, Trigger
from scan_control.patterns.timing import EpisodeTiming, resolve_timing

__all__ = [
    "DeviceTransform",
    "EpisodeTiming",
    "StimulusTiming",
    "Trigger",
    "build_grid",
    "build_pattern",
    "build_rapid_grid",
    "build_rapid_target",
    "build_spot",
    "build_target",
    "pattern_to_pixels",
    "resolve_timing",
]
