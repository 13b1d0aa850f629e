from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from ventsim.cli import app
from ventsim.telemetry.frames import Sample, encode_frame

runner = CliRunner()

PASSTHROUGH = [
    "--set", "filters.alpha_pressure=1",
    "--set", "filters.alpha_flow=1",
    "--set", "filters.alpha_volume=1",
    "--set", "filters.window_size=2",
    "--set", "settings.peak_pressure=25",
]


def _frames(breaths: int) -> str:
    lines = []
    for _ in range(breaths):
        lines.append(encode_frame(Sample(5.0, -10.0, 500.0)))
        lines.append(encode_frame(Sample(20.0, 30.0, 500.0)))
    return "\n".join(lines) + "\n"


def test_decode_command() -> None:
    result = runner.invoke(app, ["decode", "P12.5F30.2V480.0?"])
    assert result.exit_code == 0
    assert "pressure=12.5 flow=30.2 volume=480.0" in result.output


def test_decode_command_reports_bad_frame() -> None:
    result = runner.invoke(app, ["decode", "P12.5F30.2?"])
    assert result.exit_code == 1
    assert "volume" in result.output


def test_timing_command_from_slider() -> None:
    result = runner.invoke(app, ["timing", "-f", "12", "--slider", "10", "--vt", "500"])
    assert result.exit_code == 0
    assert "Ratio 1:2 (cycle 5.000 s)" in result.output
    assert "Inspiratory time: 1.667 s" in result.output
    assert "I:E 1:2.0" in result.output


def test_timing_command_rejects_zero_frequency() -> None:
    result = runner.invoke(app, ["timing", "-f", "0", "--ti", "1"])
    assert result.exit_code != 0


def test_validate_command_exit_codes() -> None:
    ok = runner.invoke(
        app,
        ["validate", "-f", "12", "--ti", "0.8", "--vt", "450", "--peak", "25", "--peep", "5", "--fio2", "40"],
    )
    assert ok.exit_code == 0
    assert "Severity: safe (patient: adult)" in ok.output

    blocked = runner.invoke(
        app,
        ["validate", "-f", "20", "--ti", "1", "--te", "2", "--vt", "500", "--peak", "15", "--peep", "20"],
    )
    assert blocked.exit_code == 1
    assert "[critical]" in blocked.output


def test_run_command_reads_stdin() -> None:
    result = runner.invoke(app, ["run", "--windows", *PASSTHROUGH], input=_frames(5))
    assert result.exit_code == 0, result.output
    assert "Processed 10 samples (0 undecodable, 5 windows)" in result.output
    assert "Compliance: 0.03333 L/cmH2O (1 recalibrations)" in result.output
    assert "pressure_max" in result.output


def test_run_command_reads_file(tmp_path: Path) -> None:
    log = tmp_path / "session.log"
    log.write_text(_frames(2), encoding="utf-8")
    result = runner.invoke(app, ["run", "--in", str(log), "--preset", "adult-pcv"])
    assert result.exit_code == 0, result.output
    assert "Processed 4 samples" in result.output


def test_run_command_blocks_invalid_configuration() -> None:
    result = runner.invoke(app, ["run", "--set", "settings.peep=25"], input="")
    assert result.exit_code == 1


def test_run_command_unknown_preset() -> None:
    result = runner.invoke(app, ["run", "--preset", "neonatal"], input="")
    assert result.exit_code == 2


def test_demo_command_runs_synthetic_session(tmp_path: Path) -> None:
    out = tmp_path / "demo.log"
    result = runner.invoke(
        app,
        ["demo", "--profile", "copd", "--preset", "adult-pcv", "--breaths", "10", "--out", str(out)],
    )
    assert result.exit_code == 0, result.output
    assert "Simulated 10 breaths for profile copd in pressure mode" in result.output
    assert "(0 recalibrations)" not in result.output
    assert out.exists()


def test_demo_command_unknown_profile() -> None:
    result = runner.invoke(app, ["demo", "--profile", "asthma"])
    assert result.exit_code == 2
