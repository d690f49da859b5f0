"""
Coordinate sources.

Readers for calibration, target and pattern files.
"""

from scan_control.sources.readers import (
    PatternDefinition,
    SourceError,
    read_calibration,
    read_pattern,
    read_targets,
)

__all__ = [
    "PatternDefinition",
    "SourceError",
    "read_calibration",
    "read_pattern",
    "read_targets",
]
