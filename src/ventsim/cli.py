"""Command line interface for the ventsim package."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .compliance import DEFAULT_COMPLIANCE
from .config import load_config
from .demo import PATIENT_PROFILES, profile_overrides, run_demo
from .errors import FrameDecodeError, PreconditionError
from .telemetry.frames import decode_frame
from .telemetry.processing import window_table
from .telemetry.runner import PRESETS, VentilatorSession, preset_overrides
from .timing import (
    expiratory_time,
    ie_ratio,
    max_flow,
    tank_pressure,
    tidal_volume_pressure_control,
    timing_from_ratio_slider,
)
from .validation import ValidationResult, validate_pressure_control, validate_volume_control

app = typer.Typer(
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
    help="Mechanical ventilation calculation and safety-validation engine.",
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def timing(
    frequency: float = typer.Option(..., "--frequency", "-f", help="Breaths per minute."),
    ti: Optional[float] = typer.Option(None, "--ti", help="Inspiratory time (s); overrides --slider."),
    slider: int = typer.Option(0, "--slider", help="Signed I:E slider (0 -> 1:1, 10 -> 1:2, -10 -> 2:1)."),
    inspiratory_pause: float = typer.Option(0.0, "--inspiratory-pause", help="Inspiratory pause (s)."),
    exp_pause_1: float = typer.Option(0.0, "--exp-pause-1", help="First expiratory pause (s)."),
    exp_pause_2: float = typer.Option(0.0, "--exp-pause-2", help="Second expiratory pause (s)."),
    vt: Optional[float] = typer.Option(None, "--vt", help="Tidal volume (mL) for volume control."),
    peak: Optional[float] = typer.Option(None, "--peak", help="Peak pressure (cmH2O) for pressure control."),
    peep: float = typer.Option(5.0, "--peep", help="PEEP (cmH2O)."),
    compliance: float = typer.Option(DEFAULT_COMPLIANCE, "--compliance", help="Compliance (L/cmH2O)."),
) -> None:
    """Derive breath timing, I:E ratio, flow and tank pressure."""

    try:
        if ti is not None:
            te = expiratory_time(frequency, ti, inspiratory_pause)
            typer.echo(f"Inspiratory time: {ti:.3f} s")
            typer.echo(f"Expiratory time: {te:.3f} s")
        else:
            result = timing_from_ratio_slider(frequency, slider, exp_pause_1, exp_pause_2)
            ti, te = result.inspiratory_time, result.expiratory_time
            typer.echo(f"Ratio {result.ratio_label} (cycle {result.cycle_time:.3f} s)")
            typer.echo(f"Inspiratory time: {ti:.3f} s")
            typer.echo(f"Expiratory time: {te:.3f} s")
        ratio = ie_ratio(ti, te)
        typer.echo(f"I:E {ratio.label}{' (inverted)' if ratio.inverted else ''}")
        if vt is not None:
            flow = max_flow(vt, ti)
            typer.echo(f"Max flow: {flow:.1f} L/min")
            typer.echo(f"Tank pressure: {tank_pressure(flow):.1f}")
        if peak is not None:
            derived = tidal_volume_pressure_control(peak, peep, ti, compliance)
            typer.echo(f"Tidal volume: {derived.tidal_volume:.0f} mL")
            typer.echo(f"Max flow: {derived.max_flow:.1f} L/min")
            typer.echo(f"Tank pressure: {derived.tank_pressure:.1f}")
    except PreconditionError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _echo_validation(result: ValidationResult) -> None:
    typer.echo(f"Severity: {result.severity.value} (patient: {result.patient_type.value})")
    for message in result.critical_errors:
        typer.echo(f"[critical] {message}")
    for message in result.warnings:
        typer.echo(f"[warning] {message}")


@app.command()
def validate(
    mode: str = typer.Option("volume", "--mode", "-m", help="Ventilation mode: volume|pressure."),
    frequency: float = typer.Option(..., "--frequency", "-f", help="Breaths per minute."),
    ti: float = typer.Option(..., "--ti", help="Inspiratory time (s)."),
    te: Optional[float] = typer.Option(None, "--te", help="Expiratory time (s); derived when omitted."),
    vt: float = typer.Option(..., "--vt", help="Tidal volume (mL)."),
    peak: float = typer.Option(..., "--peak", help="Peak pressure (cmH2O)."),
    peep: float = typer.Option(5.0, "--peep", help="PEEP (cmH2O)."),
    fio2: float = typer.Option(21.0, "--fio2", help="FiO2 (%)."),
    slider: int = typer.Option(0, "--slider", help="Signed I:E slider value."),
) -> None:
    """Check a configuration; exits with status 1 on critical errors."""

    key = mode.lower()
    if key not in {"volume", "pressure"}:
        raise typer.BadParameter("--mode must be volume or pressure", param_hint="--mode")
    if te is None:
        try:
            te = expiratory_time(frequency, ti)
        except PreconditionError as exc:
            raise typer.BadParameter(str(exc), param_hint="--frequency") from exc
    check = validate_volume_control if key == "volume" else validate_pressure_control
    result = check(frequency, ti, te, vt, peak, peep, fio2, slider)
    _echo_validation(result)
    if not result.valid:
        raise typer.Exit(code=1)


@app.command()
def decode(
    frame: str = typer.Argument(..., help="Telemetry frame, e.g. P12.5F30.2V480.0?"),
    lenient: bool = typer.Option(False, "--lenient", help="Report bad fields as nan instead of failing."),
) -> None:
    """Decode one sensor telemetry frame."""

    try:
        sample = decode_frame(frame, strict=not lenient)
    except FrameDecodeError as exc:
        typer.echo(f"Decode failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"pressure={sample.pressure} flow={sample.flow} volume={sample.volume}")


@app.command()
def run(
    input_path: Path = typer.Option(Path("-"), "--in", help="Frame log to replay; '-' reads stdin."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to session config JSON."),
    preset: Optional[str] = typer.Option(
        None, "--preset", "-P", help=f"Apply preset ({'|'.join(PRESETS)}) before other overrides."
    ),
    override: Optional[list[str]] = typer.Option(
        None, "--set", help="Override config keys, e.g. --set mode=volume --set settings.peep=8"
    ),
    show_windows: bool = typer.Option(False, "--windows", help="Print the per-window statistics table."),
) -> None:
    """Replay telemetry frames through a session and report compliance updates."""

    preset_overrides_list: list[str] = []
    if preset:
        key = preset.lower()
        if key not in PRESETS:
            raise typer.BadParameter(f"Unknown preset '{preset}'. Expected one of {list(PRESETS)}")
        preset_overrides_list = preset_overrides(key)
    try:
        cfg = load_config(config_path, preset_overrides_list + (override or []) or None)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Invalid configuration: {exc}") from exc

    session = VentilatorSession(cfg)
    validation = session.validate()
    _echo_validation(validation)
    if not validation.valid:
        raise typer.Exit(code=1)

    if str(input_path) == "-":
        summary = session.run(sys.stdin)
    else:
        with input_path.open("r", encoding="utf-8") as handle:
            summary = session.run(handle)

    typer.echo(
        f"Processed {summary.processed} samples "
        f"({summary.decode_errors} undecodable, {summary.windows} windows)"
    )
    typer.echo(f"Compliance: {summary.compliance:.5f} L/cmH2O ({summary.recalibrations} recalibrations)")
    typer.echo(f"Deviations flagged: {summary.deviations}")
    if show_windows:
        typer.echo(window_table(session.pipeline.windows).to_string(index=False))


@app.command()
def demo(
    profile: str = typer.Option(
        "copd", "--profile", "-p", help=f"Simulated patient ({'|'.join(PATIENT_PROFILES)})."
    ),
    preset: Optional[str] = typer.Option(
        None, "--preset", "-P", help="Ventilate with a preset instead of the clinical case settings."
    ),
    override: Optional[list[str]] = typer.Option(None, "--set", help="Override config keys."),
    breaths: int = typer.Option(30, "--breaths", min=1, help="Number of breaths to generate."),
    seed: int = typer.Option(42, "--seed", help="Noise generator seed."),
    out_path: Optional[Path] = typer.Option(None, "--out", help="Also write the generated frames here."),
) -> None:
    """Generate a synthetic patient recording and run it through a session."""

    key = profile.lower()
    if key not in PATIENT_PROFILES:
        raise typer.BadParameter(
            f"Unknown profile '{profile}'. Expected one of {list(PATIENT_PROFILES)}", param_hint="--profile"
        )
    overrides = profile_overrides(key)
    if preset:
        if preset.lower() not in PRESETS:
            raise typer.BadParameter(f"Unknown preset '{preset}'. Expected one of {list(PRESETS)}")
        overrides += preset_overrides(preset.lower())
    try:
        cfg = load_config(None, overrides + (override or []))
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid configuration: {exc}") from exc

    validation = VentilatorSession(cfg).validate()
    _echo_validation(validation)
    if not validation.valid:
        raise typer.Exit(code=1)

    summary = run_demo(cfg, PATIENT_PROFILES[key], breaths=breaths, seed=seed, out_path=out_path)
    typer.echo(f"Simulated {breaths} breaths for profile {key} in {cfg.mode} mode")
    typer.echo(f"Processed {summary.processed} samples ({summary.windows} windows)")
    typer.echo(f"Compliance: {summary.compliance:.5f} L/cmH2O ({summary.recalibrations} recalibrations)")
    typer.echo(f"Deviations flagged: {summary.deviations}")
    if out_path is not None:
        typer.echo(f"Frames written to {out_path}")


def run_cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run_cli()
