"""YAML schema validation for stimulation job files.

A job file describes one protocol to compile: the pattern type, its
timing (ms), its geometry (pixels), the trigger mode, and where the
calibration / target / pattern sources live.  Validation is done with
pydantic so that a bad job fails before any file is read, with the
offending key in the message.

Example (``grid_job.yaml``)::

    schema: stim_job.v1
    pattern: grid
    trigger: out
    timing:
      baseline_ms: 100
      pulse_width_ms: 5
      pulse_count: 3
      isi_ms: 50
      episode_period_ms: 1000
      reps: 2
    geometry:
      center_offset: [716, 206]
      dims: [4, 3]
      start: [400, 300]
      spacing: [20, 20]
    sources:
      calibration: calib.txt
      calibration_points: 4
    output: grid.prot

Units:
    - Timing: whole milliseconds
    - Geometry: pixels; rotation in radians

Usage:
    from scan_control.utils.validators import load_job
    job = load_job("grid_job.yaml")
"""

from pathlib import Path
from typing import List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from scan_control.configs.loader import ConfigError

PATTERN_KINDS = ("spot", "grid", "target", "rapid-grid", "rapid-target", "pattern")
TRIGGER_MODES = ("none", "in", "out")


# ============================================================================
# JOB SCHEMA V1
# ============================================================================

class JobTiming(BaseModel):
    """Stimulus timing in milliseconds."""
    baseline_ms: int = Field(..., ge=0, description="Delay before the first pulse")
    pulse_width_ms: int = Field(..., ge=0, description="Laser on-time per pulse")
    pulse_count: int = Field(1, ge=0, description="Pulses per episode")
    isi_ms: int = Field(0, ge=0, description="Inter-pulse interval")
    episode_period_ms: int = Field(0, ge=0, description="Episode duration")
    reps: int = Field(1, ge=0, description="Master loop repetitions")
    iterations: int = Field(1, ge=1, description="Episodes per spot")


class JobGeometry(BaseModel):
    """Pattern geometry in pixels."""
    center_offset: Tuple[int, int] = Field(..., description="Optical axis position in the image")
    scale: Optional[int] = Field(None, description="Device units per pixel; estimated from calibration if omitted")
    rotation: float = Field(0.0, description="Pattern rotation (radians)")
    pivot: Optional[Tuple[int, int]] = Field(None, description="Rotation pivot; pattern centroid if omitted")
    position: Optional[Tuple[int, int]] = Field(None, description="Spot position")
    dims: Optional[Tuple[int, int]] = Field(None, description="Lattice cells per row and rows")
    start: Optional[Tuple[int, int]] = Field(None, description="First lattice cell")
    spacing: Optional[Tuple[int, int]] = Field(None, description="Lattice pitch")

    @field_validator('dims')
    @classmethod
    def validate_dims(cls, v: Optional[Tuple[int, int]]) -> Optional[Tuple[int, int]]:
        if v is not None and (v[0] < 1 or v[1] < 1):
            raise ValueError(f"dims must be at least 1x1, got {v[0]}x{v[1]}")
        return v


class JobSources(BaseModel):
    """Source file paths (relative paths resolve against the job file)."""
    calibration: Optional[str] = Field(None, description="Calibration point file")
    calibration_points: Optional[int] = Field(None, ge=2, description="Calibration samples to read")
    targets: Optional[str] = Field(None, description="Target coordinate file")
    target_points: Optional[int] = Field(None, ge=0, description="Targets to read")
    pattern: Optional[str] = Field(None, description="Indexed pattern file")


class JobV1(BaseModel):
    """Stimulation job schema v1."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    schema_version: str = Field("stim_job.v1", alias="schema", description="Schema version")
    pattern: str = Field(..., description="Pattern type")
    trigger: str = Field("none", description="Episode start event")
    timing: JobTiming
    geometry: JobGeometry
    sources: JobSources = Field(default_factory=JobSources)
    device_config: Optional[str] = Field(None, description="device.yaml override")
    output: Optional[str] = Field(None, description="Protocol output path")

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "stim_job.v1":
            raise ValueError(f"Expected schema 'stim_job.v1', got '{v}'")
        return v

    @field_validator('pattern')
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        if v not in PATTERN_KINDS:
            raise ValueError(f"pattern must be one of {', '.join(PATTERN_KINDS)}, got '{v}'")
        return v

    @field_validator('trigger')
    @classmethod
    def validate_trigger(cls, v: str) -> str:
        if v not in TRIGGER_MODES:
            raise ValueError(f"trigger must be one of {', '.join(TRIGGER_MODES)}, got '{v}'")
        return v

    @model_validator(mode='after')
    def validate_pattern_inputs(self) -> 'JobV1':
        """Check that every input the chosen pattern needs is present."""
        geo = self.geometry
        src = self.sources

        if geo.scale is None and src.calibration is None:
            raise ValueError("geometry.scale or sources.calibration is required")

        missing: List[str] = []
        if self.pattern == "spot" and geo.position is None:
            missing.append("geometry.position")
        if self.pattern in ("grid", "rapid-grid"):
            missing += [f"geometry.{k}" for k in ("dims", "start", "spacing") if getattr(geo, k) is None]
        if self.pattern in ("target", "rapid-target") and src.targets is None:
            missing.append("sources.targets")
        if self.pattern == "pattern":
            missing += [f"geometry.{k}" for k in ("start", "spacing") if getattr(geo, k) is None]
            if src.pattern is None:
                missing.append("sources.pattern")
        if missing:
            raise ValueError(f"pattern '{self.pattern}' requires: {', '.join(missing)}")
        return self


# ============================================================================
# PUBLIC API
# ============================================================================

def _resolve(base: Path, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    p = Path(value)
    return str(p if p.is_absolute() else base / p)


def load_job(path: Union[str, Path]) -> JobV1:
    """Load and validate a stimulation job from YAML.

    Relative source, device-config and output paths are resolved against
    the directory holding the job file.

    Parameters
    ----------
    path : Union[str, Path]
        Path to the job YAML file

    Returns
    -------
    JobV1
        Validated job

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ConfigError
        If the YAML is malformed, empty, or fails validation
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Job file not found: {path}")

    try:
        data = fs.load_yaml(path)
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed job file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Job file {path} must contain a mapping")

    try:
        job = JobV1(**data)
    except ValidationError as e:
        raise ConfigError(f"Job validation failed at {path}: {e}") from e

    base = path.parent
    sources = job.sources.model_copy(update={
        'calibration': _resolve(base, job.sources.calibration),
        'targets': _resolve(base, job.sources.targets),
        'pattern': _resolve(base, job.sources.pattern),
    })
    return job.model_copy(update={
        'sources': sources,
        'device_config': _resolve(base, job.device_config),
        'output': _resolve(base, job.output),
    })
