"""
Command-line interface for gutsense.

Provides commands for scoring recordings, tracing event rejections, heart
rate extraction, ambient calibration and configuration management.
"""

import json
import logging

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

import click

from gutsense.analysis.accelerometer import analyze_accelerometer_samples
from gutsense.analysis.analytics import calculate_rhythmicity_index, calculate_session_pfhs
from gutsense.analysis.calibration import run_acoustic_isolation
from gutsense.analysis.config import DetectionConfig
from gutsense.analysis.heart import analyze_heart_rate, check_heart_signal_presence
from gutsense.analysis.pipeline import AnalysisOptions, MotilityAnalyzer
from gutsense.analysis.types import (
    AccelerometerContactResult,
    DebugAnalysisResult,
    HeartAnalytics,
    SessionAnalytics,
)
from gutsense.audio import Recording, load_accelerometer_csv, load_recording
from gutsense.config import (
    effective_analysis_settings,
    get_config_path,
    load_config,
    load_detection_config,
    parse_config_value,
    set_config_value,
    unset_config_value,
)
from gutsense.constants import VetoFilter
from gutsense.logging_config import setup_logging

logger = logging.getLogger(__name__)

try:
    __version__ = get_version("gutsense")
except PackageNotFoundError:
    __version__ = "dev"

RULE = "=" * 60
THIN_RULE = "─" * 60


def _load(path: str, sample_rate: float | None) -> Recording:
    try:
        return load_recording(path, sample_rate)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Cannot read {path}: {e}") from e


def _detection_config() -> DetectionConfig:
    try:
        return load_detection_config()
    except ValueError as e:
        raise click.ClickException(f"{e}\nFix the [analysis] tables in {get_config_path()}") from e


def _accelerometer_result(
    path: str | None, config: DetectionConfig
) -> AccelerometerContactResult | None:
    if path is None:
        return None
    try:
        samples = load_accelerometer_csv(path)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Cannot read {path}: {e}") from e
    return analyze_accelerometer_samples(samples, config.accelerometer)


def _echo_json(payload: dict) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


sample_rate_option = click.option(
    "--sample-rate",
    "-r",
    type=click.FloatRange(min=0, min_open=True),
    help="Sample rate (Hz), required for .npy input",
)
json_option = click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a report")
accelerometer_option = click.option(
    "--accelerometer",
    "-a",
    type=click.Path(exists=True, dir_okay=False),
    help="CSV of accelerometer readings (timestamp_ms,x,y,z) for the contact gate",
)


@click.group()
@click.version_option(__version__, prog_name="gutsense")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool) -> None:
    """gutsense: bowel sound and heart rate analysis"""
    setup_logging(verbose=verbose, console_format="%(levelname)s: %(message)s")


# ============================================================================
# Analysis Commands
# ============================================================================


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@sample_rate_option
@click.option("--no-bird-filter", is_flag=True, help="Keep frames dominated by >1200 Hz energy")
@click.option("--humming", is_flag=True, help="Analyze with the 80-500 Hz humming band")
@click.option("--heart", "include_heart", is_flag=True, help="Also extract heart rate and HRV")
@accelerometer_option
@json_option
def analyze(
    path: str,
    sample_rate: float | None,
    no_bird_filter: bool,
    humming: bool,
    include_heart: bool,
    accelerometer: str | None,
    as_json: bool,
) -> None:
    """Score gut motility in a recording."""
    recording = _load(path, sample_rate)
    config = _detection_config()
    analyzer = MotilityAnalyzer(config)
    options = AnalysisOptions(
        apply_bird_filter=not no_bird_filter,
        is_humming_phase=humming,
        include_heart_rate=include_heart,
        accelerometer_result=_accelerometer_result(accelerometer, config),
    )

    try:
        analytics = analyzer.analyze(
            recording.samples, recording.duration_seconds, recording.sample_rate, options
        )
    except ValueError as e:
        raise click.ClickException(f"Analysis failed: {e}") from e

    if as_json:
        payload = analytics.model_dump(mode="json")
        payload["rhythmicity_index"] = calculate_rhythmicity_index(analytics).index
        _echo_json(payload)
        return
    _display_analytics(recording, analytics)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@sample_rate_option
@click.option(
    "--bypass",
    "-b",
    multiple=True,
    type=click.Choice([f.value for f in VetoFilter], case_sensitive=False),
    help="Veto filter to exclude from the accept decision (repeatable)",
)
@click.option("--no-bird-filter", is_flag=True, help="Keep frames dominated by >1200 Hz energy")
@accelerometer_option
@json_option
def debug(
    path: str,
    sample_rate: float | None,
    bypass: tuple[str, ...],
    no_bird_filter: bool,
    accelerometer: str | None,
    as_json: bool,
) -> None:
    """Show why each candidate event was accepted or rejected."""
    recording = _load(path, sample_rate)
    config = _detection_config()
    analyzer = MotilityAnalyzer(config)
    options = AnalysisOptions(
        apply_bird_filter=not no_bird_filter,
        accelerometer_result=_accelerometer_result(accelerometer, config),
    )
    bypassed = [VetoFilter(name.upper()) for name in bypass]

    try:
        result = analyzer.analyze_with_debug(
            recording.samples,
            recording.duration_seconds,
            recording.sample_rate,
            options,
            bypass=bypassed,
        )
    except ValueError as e:
        raise click.ClickException(f"Analysis failed: {e}") from e

    if as_json:
        _echo_json(result.model_dump(mode="json"))
        return
    _display_debug(recording, result)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@sample_rate_option
@json_option
def heart(path: str, sample_rate: float | None, as_json: bool) -> None:
    """Extract heart rate and HRV from a recording."""
    recording = _load(path, sample_rate)
    config = _detection_config()

    has_signal, strength = check_heart_signal_presence(recording.samples, recording.sample_rate)
    try:
        result = analyze_heart_rate(
            recording.samples, recording.duration_seconds, recording.sample_rate, config
        )
    except ValueError as e:
        raise click.ClickException(f"Analysis failed: {e}") from e

    if as_json:
        payload = result.model_dump(mode="json")
        payload["heart_band_strength"] = strength
        _echo_json(payload)
        return
    _display_heart(result, has_signal, strength)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@sample_rate_option
def calibrate(path: str, sample_rate: float | None) -> None:
    """Check ambient noise and hum before recording."""
    recording = _load(path, sample_rate)
    config = _detection_config()
    result = run_acoustic_isolation(recording.samples, recording.sample_rate, config.quality)
    calibration = result.calibration

    click.echo(RULE)
    click.echo("ACOUSTIC ISOLATION")
    click.echo(RULE)
    click.echo(f"\nRecording: {recording.path.name} ({recording.duration_seconds:.1f}s)")
    click.echo(f"  Noise RMS (median): {calibration.noise_rms:.5f}")
    click.echo(f"  Adaptive threshold: {calibration.adaptive_threshold:.5f}")
    click.echo(f"  SNR: {calibration.snr_db:.1f} dB ({calibration.signal_quality.value})")

    hums = calibration.hum_frequencies
    if hums:
        click.echo(f"  Hum detected: {', '.join(f'{h:g} Hz' for h in hums)}")
    else:
        click.echo("  Hum detected: none")

    marker = "✓" if result.is_suitable else "✗"
    click.echo(f"\n{marker} {result.recommendation}")


# ============================================================================
# Report Rendering
# ============================================================================


def _display_analytics(recording: Recording, analytics: SessionAnalytics) -> None:
    click.echo("✓ Analysis complete\n")
    click.echo(RULE)
    click.echo("MOTILITY SUMMARY")
    click.echo(RULE)

    click.echo(f"\nRecording: {recording.path.name} ({recording.duration_seconds:.1f}s)")
    click.echo(
        f"Signal Quality: {analytics.signal_quality.value} (SNR {analytics.snr_db:.1f} dB)"
    )

    if analytics.gated:
        reason = analytics.gating_reason.value if analytics.gating_reason else "unknown"
        click.echo(f"\n✗ Recording gated: {reason}")
        click.echo("  No gut sounds were counted.")
    else:
        click.echo(
            f"\nMotility Index: {analytics.motility_index} ({analytics.motility_category.value})"
        )
        click.echo(f"  Events/min: {analytics.events_per_minute:.1f}")
        click.echo(
            f"  Accepted Events: {analytics.accepted_events}/{analytics.candidate_events} candidates"
        )
        click.echo(f"  Active: {analytics.total_active_seconds}s")
        click.echo(f"  Quiet: {analytics.total_quiet_seconds}s")
        click.echo(f"  Timeline: {' '.join(str(v) for v in analytics.activity_timeline)}")

        pfhs = calculate_session_pfhs(analytics)
        rhythm = calculate_rhythmicity_index(analytics)
        click.echo(f"  PFHS: {pfhs.score} (r={pfhs.correlation:.2f})")
        click.echo(f"  Rhythmicity: {rhythm.index}")

    if analytics.heart_bpm is not None:
        click.echo("\n" + THIN_RULE)
        click.echo("HEART")
        bpm = f"{analytics.heart_bpm} bpm" if analytics.heart_bpm else "not detected"
        click.echo(f"  Heart Rate: {bpm}")
        click.echo(f"  RMSSD: {analytics.heart_rmssd:.1f} ms")
        click.echo(f"  Vagal Tone: {analytics.vagal_tone_score}")

    click.echo("\n" + RULE)


def _format_value(value: object) -> str:
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


def _display_debug(recording: Recording, result: DebugAnalysisResult) -> None:
    analytics = result.analytics
    summary = result.summary

    click.echo(RULE)
    click.echo("REJECTION TRACE")
    click.echo(RULE)
    click.echo(f"\nRecording: {recording.path.name} ({recording.duration_seconds:.1f}s)")
    if result.bypassed_filters:
        click.echo(f"Bypassed: {', '.join(f.value for f in result.bypassed_filters)}")

    if result.ambient:
        click.echo(
            f"ANF: SNR {result.ambient.snr_db:.1f} dB ({result.ambient.signal_quality.value})"
        )
    if result.noise_floor:
        click.echo(
            f"Event threshold: {result.noise_floor.event_threshold:.5f} "
            f"(x{result.noise_floor.multiplier:g}, "
            f"{'air-noise' if result.noise_floor.is_air_noise_baseline else 'clean'} baseline)"
        )
    if result.contact:
        click.echo(f"Contact: {result.contact.reason}")
    if analytics.gated and analytics.gating_reason:
        click.echo(f"\n✗ Recording gated: {analytics.gating_reason.value}")

    for trace in result.events:
        click.echo("\n" + THIN_RULE)
        status = "ACCEPTED" if trace.accepted else f"REJECTED by {trace.rejected_by.value}"
        click.echo(
            f"Event {trace.event_id}: {trace.start_ms:.0f}-{trace.end_ms:.0f} ms "
            f"({trace.duration_ms:.0f} ms) {status}"
        )
        for verdict in trace.verdicts:
            if verdict.skipped:
                mark = "-"
            elif verdict.rejected:
                mark = "✗"
            else:
                mark = "✓"
            suffix = " [bypassed]" if verdict.bypassed else ""
            click.echo(f"  {mark} {verdict.filter.value}{suffix}: {verdict.reason}")
            for name, value in verdict.values.items():
                threshold = verdict.thresholds.get(name)
                limit = f" (threshold {_format_value(threshold)})" if threshold is not None else ""
                click.echo(f"      {name} = {_format_value(value)}{limit}")

    click.echo("\n" + RULE)
    click.echo(
        f"Candidates: {summary.total_candidates}  Accepted: {summary.accepted}  "
        f"Rejected: {summary.rejected}"
    )
    for veto_filter, count in summary.rejections_by_filter.items():
        click.echo(f"  - {veto_filter.value}: {count}")
    click.echo(f"Motility Index: {analytics.motility_index}")


def _display_heart(result: HeartAnalytics, has_signal: bool, strength: float) -> None:
    click.echo(RULE)
    click.echo("HEART RATE")
    click.echo(RULE)
    click.echo(f"\nHeart-band strength: {strength:.3f} ({'present' if has_signal else 'weak'})")
    if result.bpm:
        click.echo(f"  Heart Rate: {result.bpm} bpm")
    else:
        click.echo("  Heart Rate: not detected")
    click.echo(f"  Beats: {result.beat_count}")
    click.echo(f"  Confidence: {result.confidence:.2f}")
    if result.hrv_valid:
        click.echo(f"  RMSSD: {result.rmssd:.1f} ms")
        click.echo(f"  Vagal Tone: {result.vagal_tone_score}")
    else:
        click.echo("  HRV: not enough clean intervals")


# ============================================================================
# Configuration Commands
# ============================================================================


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command("show")
@click.option(
    "--thresholds",
    is_flag=True,
    help="List every detection threshold in effect; * marks values set in config",
)
def show_config_cmd(thresholds: bool) -> None:
    """Show all configuration settings."""
    if thresholds:
        _echo_thresholds()
        return

    config_path = get_config_path()
    if not config_path.exists():
        click.echo(f"No config file: {config_path}")
        return

    click.echo(f"Config file: {config_path}\n")
    config_data = load_config()
    if not config_data:
        click.echo("Configuration is empty.")
        return

    click.echo("Settings:")
    _echo_table(config_data, [])


def _echo_thresholds() -> None:
    try:
        rows = effective_analysis_settings()
    except ValueError as e:
        raise click.ClickException(f"{e}\nFix the [analysis] tables in {get_config_path()}") from e

    click.echo("Detection thresholds (* = set in config):")
    section = None
    for key, value, overridden in rows:
        table, name = key.rsplit(".", 1)
        if table != section:
            click.echo(f"  [{table}]")
            section = table
        marker = "*" if overridden else " "
        click.echo(f"  {marker} {name} = {json.dumps(value)}")


def _echo_table(table: dict, prefix: list[str]) -> None:
    values = {k: v for k, v in table.items() if not isinstance(v, dict)}
    if values:
        click.echo(f"  [{'.'.join(prefix)}]")
        for key, value in values.items():
            click.echo(f"    {key} = {json.dumps(value)}")
    for key, value in table.items():
        if isinstance(value, dict):
            _echo_table(value, prefix + [key])


@config.command("set")
@click.argument("key")
@click.argument("value")
def set_config_cmd(key: str, value: str) -> None:
    """Set a value, e.g. analysis.burst.max_duration_ms 1200."""
    parsed = parse_config_value(value)
    try:
        set_config_value(key, parsed)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"✓ {key} = {json.dumps(parsed)}")
    click.echo(f"  Config: {get_config_path()}")


@config.command("unset")
@click.argument("key")
def unset_config_cmd(key: str) -> None:
    """Remove a setting."""
    try:
        removed = unset_config_value(key)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    if removed:
        click.echo(f"✓ Removed {key}")
    else:
        click.echo(f"{key} was not set.")


@config.command("path")
def config_path_cmd() -> None:
    """Print the config file location."""
    click.echo(str(get_config_path()))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
