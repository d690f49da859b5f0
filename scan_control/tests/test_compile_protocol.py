"""Tests for the compile_protocol command-line driver."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import yaml

from scan_control.scripts.compile_protocol import main
from scan_control.utils.logging_config import ContextFormatter, log_context

SPOT_ARGS = [
    "--pattern", "spot",
    "--position", "450", "400",
    "--center", "716", "206",
    "--scale", "100",
    "--baseline", "400",
    "--pulse-width", "200",
    "--isi", "400",
    "--period", "2000",
]

SPOT_TEXT = (
    "C\n"
    "AV,0,4,26600\n"
    "AV,0,3,-19400\n"
    "AS,0,9,1\n"
    "AV,40000,7,4\n"
    "AV,60000,7,0\n"
    "AE,200050,9,1\n"
)


@pytest.fixture(autouse=True)
def restore_root_handlers():
    """main() installs handlers on the root logger; put the old ones back."""
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in saved_handlers:
            root.removeHandler(handler)
    root.setLevel(saved_level)


# ---------------------------------------------------------------------------
# Command-line mode
# ---------------------------------------------------------------------------


class TestCommandLine:
    def test_spot_to_stdout(self, capsys: pytest.CaptureFixture) -> None:
        assert main(SPOT_ARGS) == 0
        assert capsys.readouterr().out == SPOT_TEXT

    def test_spot_to_file(self, tmp_path: Path) -> None:
        out = tmp_path / "spot.prot"
        assert main(SPOT_ARGS + ["--output", str(out)]) == 0
        assert out.read_text() == SPOT_TEXT

    def test_missing_geometry_fails(self) -> None:
        assert main(["--pattern", "grid", "--center", "0", "0", "--scale", "1"]) == 1

    def test_missing_source_fails(self, tmp_path: Path) -> None:
        args = [
            "--pattern", "target",
            "--center", "0", "0",
            "--scale", "1",
            "--targets", str(tmp_path / "absent.txt"),
        ]
        assert main(args) == 1

    def test_output_is_directory(self, tmp_path: Path) -> None:
        assert main(SPOT_ARGS + ["--output", str(tmp_path)]) == 1
        assert tmp_path.is_dir()
        assert list(tmp_path.iterdir()) == []

    def test_output_under_file_fails(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        assert main(SPOT_ARGS + ["--output", str(blocker / "spot.prot")]) == 1


# ---------------------------------------------------------------------------
# Job-file mode
# ---------------------------------------------------------------------------


class TestJobFile:
    def test_target_job_with_calibration(self, tmp_path: Path) -> None:
        (tmp_path / "calib.txt").write_text("0\t0\t0\t0\n1000\t500\t10\t5\n")
        (tmp_path / "targets.txt").write_text("0\t0\n1\t0\n")
        job = {
            "pattern": "target",
            "timing": {"baseline_ms": 1, "pulse_width_ms": 1, "isi_ms": 1, "episode_period_ms": 2},
            "geometry": {"center_offset": [0, 0]},
            "sources": {"calibration": "calib.txt", "calibration_points": 2, "targets": "targets.txt"},
            "output": "target.prot",
        }
        (tmp_path / "job.yaml").write_text(yaml.safe_dump(job))

        assert main(["--job", str(tmp_path / "job.yaml")]) == 0
        lines = (tmp_path / "target.prot").read_text().splitlines()
        # Scale 100 from calibration: second target one pixel right
        assert "AV,210,4,-100" in lines
        assert lines[-1] == "AE,460,9,1"

    def test_degenerate_calibration_fails(self, tmp_path: Path) -> None:
        (tmp_path / "calib.txt").write_text("5\t5\t0\t0\n5\t5\t1\t1\n")
        job = {
            "pattern": "spot",
            "timing": {"baseline_ms": 1, "pulse_width_ms": 1},
            "geometry": {"center_offset": [0, 0], "position": [1, 1]},
            "sources": {"calibration": "calib.txt"},
        }
        (tmp_path / "job.yaml").write_text(yaml.safe_dump(job))
        assert main(["--job", str(tmp_path / "job.yaml")]) == 1

    def test_missing_job_file(self, tmp_path: Path) -> None:
        assert main(["--job", str(tmp_path / "absent.yaml")]) == 1

    def test_malformed_job_file(self, tmp_path: Path) -> None:
        (tmp_path / "job.yaml").write_text("timing: [unclosed\n")
        assert main(["--job", str(tmp_path / "job.yaml")]) == 1

    def test_malformed_device_config(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        (tmp_path / "device.yaml").write_text("dsp: {max_commands: 10000\n")
        assert main(SPOT_ARGS + ["--config", str(tmp_path / "device.yaml")]) == 1
        assert capsys.readouterr().out == ""


# ---------------------------------------------------------------------------
# Logging format
# ---------------------------------------------------------------------------


class TestLogFormat:
    def _record(self) -> logging.LogRecord:
        return logging.LogRecord("scan", logging.INFO, __file__, 1, "compiled %d", (3,), None)

    def test_human_includes_context(self) -> None:
        fmt = ContextFormatter("human", use_color=False)
        with log_context(pattern="grid"):
            line = fmt.format(self._record())
        assert "pattern=grid" in line
        assert line.endswith("compiled 3")

    def test_json_line(self) -> None:
        fmt = ContextFormatter("json")
        with log_context(pattern="spot"):
            payload = json.loads(fmt.format(self._record()))
        assert payload["pattern"] == "spot"
        assert payload["msg"] == "compiled 3"

    def test_context_scoped(self) -> None:
        fmt = ContextFormatter("human", use_color=False)
        with log_context(pattern="grid"):
            pass
        assert "pattern=" not in fmt.format(self._record())
