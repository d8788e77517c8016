"""
Motility analysis pipeline.

One parameterized run serves both entry points: `analyze` returns the
SessionAnalytics record a caller stores, and `analyze_with_debug` returns
the same record plus every calibration, gate and per-event verdict as data.
Both read thresholds from the same DetectionConfig and walk the same veto
cascade, so the two can never disagree about which events count.

Stages:

1. Ambient calibration (cached per recording content)
2. Psychoacoustic gating and the air-noise check on the raw recording
3. Hum subtraction and band-pass filtering
4. Body contact (accelerometer, else audio)
5. Noise floor calibration and event segmentation
6. Per-event veto cascade
7. Aggregation into SessionAnalytics
"""

import logging

from collections.abc import Iterable

import numpy as np

from pydantic import BaseModel, ConfigDict, Field

from gutsense.analysis.analytics import (
    build_activity_timeline,
    build_frequency_histogram,
    categorize_motility,
    compute_motility_index,
    compute_pfhs,
    estimate_peak_frequency,
)
from gutsense.analysis.calibration import (
    CalibrationCache,
    calibrate_noise_floor,
    subtract_hum,
)
from gutsense.analysis.config import DEFAULT_CONFIG, DetectionConfig
from gutsense.analysis.contact import resolve_contact
from gutsense.analysis.filters import FilterCache, apply_bird_filter, apply_zero_phase_filter
from gutsense.analysis.heart import analyze_heart_rate
from gutsense.analysis.psychoacoustic import (
    check_air_noise_domination,
    evaluate_psychoacoustic_gating,
)
from gutsense.analysis.segmentation import (
    compute_window_energies,
    event_sample_bounds,
    segment_events,
    window_size_samples,
)
from gutsense.analysis.types import (
    AccelerometerContactResult,
    AmbientNoiseCalibration,
    DebugAnalysisResult,
    EventTrace,
    HeartAnalytics,
    RejectionSummary,
    SessionAnalytics,
)
from gutsense.analysis.vetoes import first_rejection, run_veto_cascade
from gutsense.constants import (
    MILLISECONDS_PER_SECOND,
    SECONDS_PER_MINUTE,
    GatingReason,
    MotilityCategory,
    SignalQuality,
    VetoFilter,
)
from gutsense.constants import AnalyticsConstants as ANC

logger = logging.getLogger(__name__)


class AnalysisOptions(BaseModel):
    """
    Per-call analysis options.

    Attributes:
        apply_bird_filter: Suppress frames dominated by energy above 1200 Hz
            (motility phase only)
        is_humming_phase: Use the wider 80-500 Hz humming band and skip the
            bird filter
        accelerometer_result: Pre-computed contact result; when confident it
            replaces the audio contact gate
        include_heart_rate: Also extract heart rate and HRV
    """

    model_config = ConfigDict(frozen=True)

    apply_bird_filter: bool = True
    is_humming_phase: bool = False
    accelerometer_result: AccelerometerContactResult | None = None
    include_heart_rate: bool = Field(default=False)


DEFAULT_OPTIONS = AnalysisOptions()


class AnalysisContext:
    """
    Caches that live for one recording session.

    Holds the designed filters and the ambient calibrations. Call
    start_session() when a new recording session begins so that nothing
    calibrated for one session leaks into the next.
    """

    def __init__(
        self,
        filter_cache: FilterCache | None = None,
        calibration_cache: CalibrationCache | None = None,
    ):
        self.filter_cache = filter_cache if filter_cache is not None else FilterCache()
        self.calibration_cache = (
            calibration_cache if calibration_cache is not None else CalibrationCache()
        )

    def start_session(self) -> None:
        self.filter_cache.invalidate()
        self.calibration_cache.invalidate()
        logger.debug("Analysis context reset for new session")


class MotilityAnalyzer:
    """
    Gut motility analysis over one recording at a time.

    Example:
        >>> analyzer = MotilityAnalyzer()
        >>> result = analyzer.analyze(samples, 30.0, 44100)
        >>> print(f"Motility Index: {result.motility_index}")
    """

    def __init__(
        self,
        config: DetectionConfig = DEFAULT_CONFIG,
        context: AnalysisContext | None = None,
    ):
        self.config = config
        self.context = context if context is not None else AnalysisContext()

    def analyze(
        self,
        samples: np.ndarray,
        duration_seconds: float,
        sample_rate: float,
        options: AnalysisOptions | None = None,
    ) -> SessionAnalytics:
        """
        Score a recording.

        Args:
            samples: Raw audio samples normalized to [-1, 1] (not modified)
            duration_seconds: Recording duration (s)
            sample_rate: Sample rate (Hz)
            options: Analysis options (defaults to AnalysisOptions())

        Returns:
            SessionAnalytics

        Raises:
            ValueError: If sample_rate is not positive or the configured
                bands do not fit the sample rate
        """
        return self._run(samples, duration_seconds, sample_rate, options, (), False).analytics

    def analyze_with_debug(
        self,
        samples: np.ndarray,
        duration_seconds: float,
        sample_rate: float,
        options: AnalysisOptions | None = None,
        bypass: Iterable[VetoFilter] = (),
    ) -> DebugAnalysisResult:
        """
        Score a recording and return the full rejection trace.

        Every filter runs on every event so the trace shows all measured
        values. Bypassed filters are still measured but never reject; with
        no bypass the analytics are identical to analyze().

        Args:
            samples: Raw audio samples normalized to [-1, 1]
            duration_seconds: Recording duration (s)
            sample_rate: Sample rate (Hz)
            options: Analysis options
            bypass: Veto filters excluded from the accept decision

        Returns:
            DebugAnalysisResult
        """
        return self._run(samples, duration_seconds, sample_rate, options, bypass, True)

    def analyze_heart_rate(
        self, samples: np.ndarray, duration_seconds: float, sample_rate: float
    ) -> HeartAnalytics:
        return analyze_heart_rate(
            samples, duration_seconds, sample_rate, self.config, self.context.filter_cache
        )

    # ========================================================================
    # Internal run
    # ========================================================================

    def _run(
        self,
        samples: np.ndarray,
        duration_seconds: float,
        sample_rate: float,
        options: AnalysisOptions | None,
        bypass: Iterable[VetoFilter],
        full_trace: bool,
    ) -> DebugAnalysisResult:
        options = options or DEFAULT_OPTIONS
        bypassed = sorted(set(bypass), key=list(VetoFilter).index)
        config = self.config
        x = np.asarray(samples, dtype=np.float64)

        if len(x) == 0:
            logger.warning("Empty recording; returning zero analytics")
            return DebugAnalysisResult(
                analytics=self._empty_analytics(duration_seconds, None, None),
                summary=RejectionSummary(total_candidates=0, accepted=0, rejected=0),
                bypassed_filters=bypassed,
            )
        if sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {sample_rate}")

        heart = (
            self.analyze_heart_rate(x, duration_seconds, sample_rate)
            if options.include_heart_rate
            else None
        )

        ambient = self.context.calibration_cache.get_or_calibrate(x, sample_rate, config.quality)

        def gated(reason: GatingReason, **trace) -> DebugAnalysisResult:
            logger.info(f"Recording gated: {reason.value}")
            return DebugAnalysisResult(
                analytics=self._empty_analytics(duration_seconds, ambient, heart, reason),
                ambient=ambient,
                summary=RejectionSummary(total_candidates=0, accepted=0, rejected=0),
                bypassed_filters=bypassed,
                **trace,
            )

        # Recording-level gates on the raw audio
        psychoacoustic = evaluate_psychoacoustic_gating(x, sample_rate, config)
        if psychoacoustic.should_gate:
            return gated(psychoacoustic.gating_reason, psychoacoustic=psychoacoustic)

        air_noise = check_air_noise_domination(x, sample_rate, config)
        if air_noise.is_dominated:
            return gated(
                GatingReason.AIR_NOISE, psychoacoustic=psychoacoustic, air_noise=air_noise
            )

        filtered = self._band_filter(
            subtract_hum(x, sample_rate, ambient.hum_frequencies), sample_rate, options
        )
        energies = compute_window_energies(filtered, sample_rate, config.energy.window_ms)

        contact = resolve_contact(
            options.accelerometer_result, filtered, energies, sample_rate, config
        )
        if not contact.is_on_body:
            reason = (
                GatingReason.NO_CONTACT_ACCELEROMETER
                if contact.source == "accelerometer"
                else GatingReason.NO_CONTACT_AUDIO
            )
            return gated(
                reason, psychoacoustic=psychoacoustic, air_noise=air_noise, contact=contact
            )

        noise_floor = calibrate_noise_floor(filtered, energies, sample_rate, config)
        candidates = segment_events(
            energies,
            noise_floor.event_threshold,
            config.energy.min_gap_windows,
            config.energy.min_event_windows,
        )

        window = window_size_samples(sample_rate, config.energy.window_ms)
        traces: list[EventTrace] = []
        accepted_windows = 0
        peak_frequencies: list[float] = []
        rejections: dict[VetoFilter, int] = {}

        for event_id, event in enumerate(candidates):
            start, end = event_sample_bounds(event, window, len(filtered))
            event_samples = filtered[start:end]
            verdicts = run_veto_cascade(
                event_samples, sample_rate, config, bypassed, stop_at_first=not full_trace
            )
            rejected_by = first_rejection(verdicts)

            if rejected_by is None:
                accepted_windows += event.window_count
                peak = estimate_peak_frequency(event_samples, sample_rate)
                if peak is not None:
                    peak_frequencies.append(peak)
            else:
                rejections[rejected_by] = rejections.get(rejected_by, 0) + 1

            traces.append(
                EventTrace(
                    event_id=event_id,
                    start_ms=start / sample_rate * MILLISECONDS_PER_SECOND,
                    end_ms=end / sample_rate * MILLISECONDS_PER_SECOND,
                    duration_ms=(end - start) / sample_rate * MILLISECONDS_PER_SECOND,
                    peak_energy=event.peak_energy,
                    accepted=rejected_by is None,
                    rejected_by=rejected_by,
                    verdicts=verdicts,
                )
            )

        accepted = sum(1 for t in traces if t.accepted)
        analytics = self._aggregate(
            duration_seconds=duration_seconds,
            energies=energies,
            accepted=accepted,
            accepted_windows=accepted_windows,
            candidates=len(candidates),
            peak_frequencies=peak_frequencies,
            ambient=ambient,
            heart=heart,
        )
        logger.info(
            f"Analysis: {accepted}/{len(candidates)} events accepted, "
            f"motility index {analytics.motility_index} ({ambient.signal_quality.value})"
        )

        return DebugAnalysisResult(
            analytics=analytics,
            ambient=ambient,
            noise_floor=noise_floor,
            psychoacoustic=psychoacoustic,
            air_noise=air_noise,
            contact=contact,
            events=traces,
            summary=RejectionSummary(
                total_candidates=len(candidates),
                accepted=accepted,
                rejected=len(candidates) - accepted,
                rejections_by_filter=rejections,
            ),
            bypassed_filters=bypassed,
        )

    def _band_filter(
        self, samples: np.ndarray, sample_rate: float, options: AnalysisOptions
    ) -> np.ndarray:
        bands = self.config.bands
        cache = self.context.filter_cache
        if options.is_humming_phase:
            bandpass = cache.get(
                bands.humming_low_hz, bands.humming_high_hz, sample_rate, bands.order
            )
            return apply_zero_phase_filter(bandpass, samples)

        bandpass = cache.get(bands.gut_low_hz, bands.gut_high_hz, sample_rate, bands.order)
        filtered = apply_zero_phase_filter(bandpass, samples)
        if options.apply_bird_filter:
            filtered = apply_bird_filter(filtered, sample_rate)
        return filtered

    def _aggregate(
        self,
        duration_seconds: float,
        energies: np.ndarray,
        accepted: int,
        accepted_windows: int,
        candidates: int,
        peak_frequencies: list[float],
        ambient: AmbientNoiseCalibration,
        heart: HeartAnalytics | None,
    ) -> SessionAnalytics:
        duration_minutes = duration_seconds / SECONDS_PER_MINUTE
        events_per_minute = accepted / duration_minutes if duration_minutes > 0 else 0.0
        active_seconds = accepted_windows * self.config.energy.window_ms / MILLISECONDS_PER_SECOND
        active_fraction = accepted_windows / len(energies) if len(energies) else 0.0

        motility_index = compute_motility_index(
            events_per_minute, active_fraction, ambient.signal_quality
        )
        histogram = build_frequency_histogram(peak_frequencies)
        pfhs = compute_pfhs(histogram, peak_frequencies) if peak_frequencies else None

        return SessionAnalytics(
            events_per_minute=round(events_per_minute, 1),
            total_active_seconds=round(active_seconds),
            total_quiet_seconds=round(max(0.0, duration_seconds - active_seconds)),
            motility_index=motility_index,
            motility_category=categorize_motility(motility_index),
            activity_timeline=build_activity_timeline(energies),
            signal_quality=ambient.signal_quality,
            snr_db=ambient.snr_db,
            candidate_events=candidates,
            accepted_events=accepted,
            frequency_histogram=histogram,
            peak_frequencies=peak_frequencies,
            pfhs_score=pfhs.score if pfhs else 0,
            **_heart_fields(heart),
        )

    def _empty_analytics(
        self,
        duration_seconds: float,
        ambient: AmbientNoiseCalibration | None,
        heart: HeartAnalytics | None,
        reason: GatingReason | None = None,
    ) -> SessionAnalytics:
        return SessionAnalytics(
            events_per_minute=0.0,
            total_active_seconds=0,
            total_quiet_seconds=round(max(0.0, duration_seconds)),
            motility_index=0,
            motility_category=MotilityCategory.QUIET,
            activity_timeline=[0] * ANC.TIMELINE_SEGMENTS,
            signal_quality=ambient.signal_quality if ambient else SignalQuality.POOR,
            snr_db=ambient.snr_db if ambient else 0.0,
            gated=reason is not None,
            gating_reason=reason,
            frequency_histogram=[0.0] * ANC.HISTOGRAM_BINS,
            **_heart_fields(heart),
        )


def _heart_fields(heart: HeartAnalytics | None) -> dict:
    if heart is None:
        return {}
    return {
        "heart_bpm": heart.bpm,
        "heart_rmssd": heart.rmssd,
        "vagal_tone_score": heart.vagal_tone_score,
    }


# ============================================================================
# Module-level entry points
# ============================================================================


def analyze(
    samples: np.ndarray,
    duration_seconds: float,
    sample_rate: float,
    options: AnalysisOptions | None = None,
    config: DetectionConfig = DEFAULT_CONFIG,
    context: AnalysisContext | None = None,
) -> SessionAnalytics:
    """
    Score one recording.

    Without a context, a fresh one is used for this call only; pass a shared
    AnalysisContext to reuse calibrations across calls within a session.
    """
    return MotilityAnalyzer(config, context).analyze(
        samples, duration_seconds, sample_rate, options
    )


def analyze_with_debug(
    samples: np.ndarray,
    duration_seconds: float,
    sample_rate: float,
    options: AnalysisOptions | None = None,
    bypass: Iterable[VetoFilter] = (),
    config: DetectionConfig = DEFAULT_CONFIG,
    context: AnalysisContext | None = None,
) -> DebugAnalysisResult:
    """Score one recording and return the full rejection trace."""
    return MotilityAnalyzer(config, context).analyze_with_debug(
        samples, duration_seconds, sample_rate, options, bypass
    )
