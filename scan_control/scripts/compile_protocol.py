#!/usr/bin/env python3
"""
Compile Protocol Script.

Compile a photostimulation pattern into DSP protocol text, from a job
file or from command-line parameters.

Usage:
    python -m scan_control.scripts.compile_protocol --job grid_job.yaml
    python -m scan_control.scripts.compile_protocol --pattern spot \\
        --position 450 400 --center 716 206 --scale 100 \\
        --baseline 400 --pulse-width 200 --isi 400 --period 2000
    python -m scan_control.scripts.compile_protocol --pattern target \\
        --targets cells.txt --calibration calib.txt --calibration-points 4 \\
        --center 716 206 --baseline 100 --pulse-width 5 --output cells.prot

Available patterns:
    spot, grid, target, rapid-grid, rapid-target, pattern

The protocol is printed to stdout unless --output is given.  Exit status
is 1 when the job, a source file, the calibration or the protocol is
invalid, or when the output file cannot be written.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable

from pydantic import ValidationError

from scan_control.calibration.scaling import CalibrationError, estimate_scale
from scan_control.configs.loader import DEFAULT_DEVICE, ConfigError, DeviceConfig, load_config
from scan_control.geometry.transforms import PixelCoord
from scan_control.patterns import compilers
from scan_control.patterns.params import DeviceTransform, StimulusTiming, Trigger
from scan_control.protocol.commands import ProtocolError
from scan_control.sources.readers import SourceError, read_calibration, read_pattern, read_targets
from scan_control.utils.fs import atomic_write_text
from scan_control.utils.logging_config import install_excepthook, log_context, setup_logging
from scan_control.utils.validators import PATTERN_KINDS, JobV1, load_job

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job -> protocol
# ---------------------------------------------------------------------------


def _pixel(pair: tuple[int, int] | None) -> PixelCoord | None:
    return None if pair is None else PixelCoord(x=pair[0], y=pair[1])


def _device(job: JobV1) -> DeviceConfig:
    if job.device_config is None:
        return DEFAULT_DEVICE
    return load_config(job.device_config)


def _scale(job: JobV1) -> int:
    if job.geometry.scale is not None:
        return job.geometry.scale
    points = read_calibration(job.sources.calibration, job.sources.calibration_points)
    return estimate_scale(points)


def _spot(job, timing, transform, trigger, device):
    return compilers.build_spot(
        timing, _pixel(job.geometry.position), transform, trigger, device,
    )


def _grid(job, timing, transform, trigger, device):
    geo = job.geometry
    return compilers.build_grid(
        timing, _pixel(geo.dims), _pixel(geo.start), _pixel(geo.spacing),
        transform, trigger, device,
    )


def _rapid_grid(job, timing, transform, trigger, device):
    geo = job.geometry
    return compilers.build_rapid_grid(
        timing, _pixel(geo.dims), _pixel(geo.start), _pixel(geo.spacing),
        transform, trigger, device,
    )


def _target(job, timing, transform, trigger, device):
    targets = read_targets(job.sources.targets, job.sources.target_points)
    return compilers.build_target(timing, targets, transform, trigger, device)


def _rapid_target(job, timing, transform, trigger, device):
    targets = read_targets(job.sources.targets, job.sources.target_points)
    return compilers.build_rapid_target(timing, targets, transform, trigger, device)


def _pattern(job, timing, transform, trigger, device):
    pattern = read_pattern(job.sources.pattern)
    geo = job.geometry
    return compilers.build_pattern(
        timing, pattern, _pixel(geo.start), _pixel(geo.spacing),
        transform, trigger, device,
    )


PATTERN_MAP: dict[str, Callable[..., str]] = {
    "spot": _spot,
    "grid": _grid,
    "target": _target,
    "rapid-grid": _rapid_grid,
    "rapid-target": _rapid_target,
    "pattern": _pattern,
}


def compile_job(job: JobV1) -> str:
    """Read the job's sources and compile its protocol text.

    Raises
    ------
    ConfigError, SourceError, CalibrationError, ProtocolError
    """
    device = _device(job)
    t = job.timing
    timing = StimulusTiming(
        baseline_ms=t.baseline_ms,
        pulse_width_ms=t.pulse_width_ms,
        pulse_count=t.pulse_count,
        isi_ms=t.isi_ms,
        episode_period_ms=t.episode_period_ms,
        reps=t.reps,
        iterations=t.iterations,
    )
    transform = DeviceTransform(
        scale=_scale(job),
        center_offset=_pixel(job.geometry.center_offset),
        rotation=job.geometry.rotation,
        pivot=_pixel(job.geometry.pivot),
    )
    logger.info(
        "Compiling %s pattern (scale=%d, rotation=%.4f rad, trigger=%s)",
        job.pattern, transform.scale, transform.rotation, job.trigger,
    )
    return PATTERN_MAP[job.pattern](job, timing, transform, Trigger(job.trigger), device)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def _job_from_args(args: argparse.Namespace) -> JobV1:
    """Build a job from --pattern mode flags (same validation as job files)."""
    geometry = {
        "center_offset": args.center,
        "scale": args.scale,
        "rotation": args.rotation,
        "pivot": args.pivot,
        "position": args.position,
        "dims": args.dims,
        "start": args.start,
        "spacing": args.spacing,
    }
    sources = {
        "calibration": args.calibration,
        "calibration_points": args.calibration_points,
        "targets": args.targets,
        "target_points": args.target_points,
        "pattern": args.pattern_file,
    }
    data = {
        "pattern": args.pattern,
        "trigger": args.trigger,
        "timing": {
            "baseline_ms": args.baseline,
            "pulse_width_ms": args.pulse_width,
            "pulse_count": args.pulses,
            "isi_ms": args.isi,
            "episode_period_ms": args.period,
            "reps": args.reps,
            "iterations": args.iterations,
        },
        "geometry": {k: v for k, v in geometry.items() if v is not None},
        "sources": {k: v for k, v in sources.items() if v is not None},
        "device_config": args.config,
        "output": args.output,
    }
    try:
        return JobV1(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid parameters: {e}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compile a photostimulation pattern into DSP protocol text",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"Available patterns: {', '.join(PATTERN_KINDS)}",
    )

    # Job source
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--job", "-j", type=str, help="Job file (YAML)")
    source.add_argument(
        "--pattern", "-p", type=str, choices=list(PATTERN_KINDS),
        help="Pattern type to compile from command-line parameters",
    )

    parser.add_argument("--config", "-c", type=str, help="Device configuration file")
    parser.add_argument("--output", "-o", type=str, help="Write protocol to this file")
    parser.add_argument(
        "--trigger", choices=["none", "in", "out"], default="none",
        help="Episode start event",
    )

    # Timing (ms)
    timing = parser.add_argument_group("timing (ms)")
    timing.add_argument("--baseline", type=int, default=0)
    timing.add_argument("--pulse-width", type=int, default=0)
    timing.add_argument("--pulses", type=int, default=1)
    timing.add_argument("--isi", type=int, default=0)
    timing.add_argument("--period", type=int, default=0)
    timing.add_argument("--reps", type=int, default=1)
    timing.add_argument("--iterations", type=int, default=1)

    # Geometry (pixels)
    geometry = parser.add_argument_group("geometry (pixels)")
    geometry.add_argument("--center", type=int, nargs=2, metavar=("X", "Y"))
    geometry.add_argument("--scale", type=int, help="Device units per pixel")
    geometry.add_argument("--rotation", type=float, default=0.0, help="Radians")
    geometry.add_argument("--pivot", type=int, nargs=2, metavar=("X", "Y"))
    geometry.add_argument("--position", type=int, nargs=2, metavar=("X", "Y"))
    geometry.add_argument("--dims", type=int, nargs=2, metavar=("NX", "NY"))
    geometry.add_argument("--start", type=int, nargs=2, metavar=("X", "Y"))
    geometry.add_argument("--spacing", type=int, nargs=2, metavar=("X", "Y"))

    # Sources
    files = parser.add_argument_group("sources")
    files.add_argument("--calibration", type=str)
    files.add_argument("--calibration-points", type=int)
    files.add_argument("--targets", type=str)
    files.add_argument("--target-points", type=int)
    files.add_argument("--pattern-file", type=str)

    # Logging
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", type=str)
    parser.add_argument("--json-logs", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file, json_format=args.json_logs)
    install_excepthook()

    try:
        job = load_job(args.job) if args.job else _job_from_args(args)
        with log_context(pattern=job.pattern):
            text = compile_job(job)
            if job.output:
                atomic_write_text(job.output, text)
                logger.info("Wrote %d lines to %s", text.count("\n"), job.output)
            else:
                sys.stdout.write(text)
    except FileNotFoundError as e:
        logger.error("%s", e)
        return 1
    except RuntimeError as e:
        # atomic_write_text failure (unwritable or directory target)
        logger.error("%s", e)
        return 1
    except (ConfigError, SourceError, CalibrationError, ProtocolError) as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
