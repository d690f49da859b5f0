"""Configuration loader for the scan control DSP.

Loads and validates ``device.yaml`` into typed, frozen dataclasses.  All
timing constants (cycle length, trigger pulse length, episode offset,
inter-repetition pause) come from the config.  ``DEFAULT_DEVICE`` mirrors
the shipped YAML so that compilers never need to touch the filesystem.

Durations are stored in **cycles** (10 us) unless the field name says
otherwise.  Millisecond to cycle conversion happens only in the pattern
compilers via ``DeviceConfig.ms_to_cycles``.

Usage::

    from scan_control.configs.loader import load_config
    cfg = load_config()                      # default path
    cfg = load_config("/custom/device.yaml") # explicit path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from scan_control.utils.fs import load_yaml

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# ---------------------------------------------------------------------------
# Dataclasses -- mirror the YAML structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimingConfig:
    """DSP timing constants.

    Parameters
    ----------
    cycle_length_us : int
        Length of one DSP cycle in microseconds.
    cycles_per_ms : int
        Cycles per millisecond.  Must equal ``1000 / cycle_length_us``.
    trigger_length : int
        Width of the output trigger pulse emitted before an episode.
    time_offset : int
        Start of the first episode.  Triggers set in cycle zero are
        ignored by the firmware, so episodes start after this offset.
    protocol_period : int
        Pause appended after each master-loop repetition.
    """

    cycle_length_us: int = 10
    cycles_per_ms: int = 100
    trigger_length: int = 10
    time_offset: int = 10
    protocol_period: int = 50


@dataclass(frozen=True)
class DeviceConfig:
    """Complete DSP configuration loaded from ``device.yaml``."""

    timing: TimingConfig = field(default_factory=TimingConfig)
    max_commands: int = 10000
    position_bits: int = 36

    # -- Convenience helpers ------------------------------------------------

    def ms_to_cycles(self, ms: int) -> int:
        """Convert a whole-millisecond duration to DSP cycles."""
        return int(ms) * self.timing.cycles_per_ms

    @property
    def position_range(self) -> tuple[int, int]:
        """Inclusive microcount range of a galvo position channel."""
        half = 2 ** (self.position_bits - 1)
        return -half, half - 1


DEFAULT_DEVICE = DeviceConfig()


# ---------------------------------------------------------------------------
# Internal parsing helpers
# ---------------------------------------------------------------------------


def _parse_timing(data: dict[str, Any]) -> TimingConfig:
    """Parse the ``timing`` section."""
    defaults = TimingConfig()
    return TimingConfig(
        cycle_length_us=int(data.get("cycle_length_us", defaults.cycle_length_us)),
        cycles_per_ms=int(data.get("cycles_per_ms", defaults.cycles_per_ms)),
        trigger_length=int(data.get("trigger_length_cycles", defaults.trigger_length)),
        time_offset=int(data.get("time_offset_cycles", defaults.time_offset)),
        protocol_period=int(
            data.get("protocol_period_cycles", defaults.protocol_period)
        ),
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_config(cfg: DeviceConfig) -> None:
    """Validate cross-field consistency.

    Raises
    ------
    ConfigError
        On any invalid combination.
    """
    t = cfg.timing
    if t.cycle_length_us <= 0:
        raise ConfigError(
            f"cycle_length_us must be > 0, got {t.cycle_length_us}"
        )
    if t.cycles_per_ms * t.cycle_length_us != 1000:
        raise ConfigError(
            f"cycles_per_ms ({t.cycles_per_ms}) * cycle_length_us "
            f"({t.cycle_length_us}) must equal 1000"
        )
    for name in ("trigger_length", "time_offset", "protocol_period"):
        if getattr(t, name) < 0:
            raise ConfigError(f"{name} must be >= 0, got {getattr(t, name)}")
    if t.time_offset == 0:
        logger.warning(
            "time_offset is 0: triggers in cycle zero are ignored by the DSP"
        )
    if cfg.max_commands <= 0:
        raise ConfigError(f"max_commands must be > 0, got {cfg.max_commands}")
    if not 2 <= cfg.position_bits <= 64:
        raise ConfigError(
            f"position_bits must be in [2, 64], got {cfg.position_bits}"
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(path: str | Path | None = None) -> DeviceConfig:
    """Load and validate the DSP configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``device.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    DeviceConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If the YAML is malformed, or any field is missing or fails
        validation.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = Path(__file__).parent / "device.yaml"
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading device configuration from %s", path)

    try:
        data: dict[str, Any] = load_yaml(path)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed configuration file {path}: {exc}") from exc
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")

    try:
        dsp = data["dsp"]
        config = DeviceConfig(
            timing=_parse_timing(data["timing"]),
            max_commands=int(dsp["max_commands"]),
            position_bits=int(dsp.get("position_bits", 36)),
        )
        _validate_config(config)
        logger.info("Device configuration loaded successfully")
        return config

    except KeyError as exc:
        raise ConfigError(
            f"Missing required configuration key: {exc}"
        ) from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"Invalid configuration value: {exc}"
        ) from exc
