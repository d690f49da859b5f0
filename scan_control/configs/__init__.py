"""DSP configuration loading and validation."""

from scan_control.configs.loader import (
    DEFAULT_DEVICE,
    ConfigError,
    DeviceConfig,
    TimingConfig,
    load_config,
)

__all__ = [
    "DEFAULT_DEVICE",
    "ConfigError",
    "DeviceConfig",
    "TimingConfig",
    "load_config",
]
