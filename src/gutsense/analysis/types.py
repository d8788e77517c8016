"""Analysis type definitions: calibration, gating, veto and session results."""

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from gutsense.constants import (
    GatingReason,
    MotilityCategory,
    SignalQuality,
    VetoFilter,
)

TraceValue = float | int | bool | str | None

# ============================================================================
# Calibration Types
# ============================================================================


class AmbientNoiseCalibration(BaseModel):
    """
    Ambient noise floor (ANF) estimated from the start of the raw recording.

    Attributes:
        anf_mean: Mean window RMS over the calibration span
        anf_std: Standard deviation of window RMS
        noise_rms: Median window RMS, the noise term used for SNR
        adaptive_threshold: anf_mean + 1.5 * anf_std
        snr_db: Estimated SNR against a reference gut-sound level
        signal_quality: Quality class derived from snr_db
        hum_frequencies: Mains/fan frequencies detected by autocorrelation
        calibration_windows: Number of 100 ms windows used
    """

    model_config = ConfigDict(frozen=True)

    anf_mean: float = Field(ge=0, description="Mean calibration window RMS")
    anf_std: float = Field(ge=0, description="Std dev of calibration window RMS")
    noise_rms: float = Field(ge=0, description="Median calibration window RMS")
    adaptive_threshold: float = Field(ge=0, description="ANF event threshold")
    snr_db: float = Field(description="Estimated SNR (dB)")
    signal_quality: SignalQuality = Field(description="Quality class from SNR")
    hum_frequencies: list[float] = Field(
        default_factory=list, description="Detected hum frequencies (Hz)"
    )
    calibration_windows: int = Field(ge=0, description="Windows analyzed")


class NoiseFloorCalibration(BaseModel):
    """
    Noise floor of the band-passed recording that sets the event threshold.

    Invariant: base_noise_floor <= event_threshold <= 5 * base_noise_floor,
    where base_noise_floor = max(mean_rms, frequency_weighted_floor).
    """

    model_config = ConfigDict(frozen=True)

    mean_rms: float = Field(ge=0, description="Mean calibration window RMS")
    std_dev_rms: float = Field(ge=0, description="Std dev of calibration window RMS")
    event_threshold: float = Field(ge=0, description="Window RMS event threshold")
    frequency_weighted_floor: float = Field(
        ge=0, description="Band-weighted RMS floor of the calibration audio"
    )
    baseline_sfm: float = Field(ge=0, le=1, description="Calibration audio SFM")
    is_air_noise_baseline: bool = Field(
        description="Calibration audio classified as white noise"
    )
    multiplier: float = Field(gt=0, description="Std dev multiplier applied")
    calibration_windows: int = Field(ge=0, description="Windows analyzed")

    @property
    def base_noise_floor(self) -> float:
        return max(self.mean_rms, self.frequency_weighted_floor)


class SignalQualityAssessment(BaseModel):
    """Signal vs noise comparison with a user-facing message."""

    snr_db: float = Field(description="10*log10(signal/noise) (dB)")
    quality: SignalQuality = Field(description="Quality class")
    is_suitable: bool = Field(description="SNR high enough to analyze")
    message: str = Field(description="Human-readable assessment")


class AcousticIsolationResult(BaseModel):
    """Outcome of the pre-recording isolation check."""

    calibration: AmbientNoiseCalibration
    is_suitable: bool = Field(description="Environment quiet enough to record")
    recommendation: str = Field(description="What the user should do next")


# ============================================================================
# Contact Types
# ============================================================================


class AccelerometerSample(BaseModel):
    """One tri-axial acceleration reading (g)."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float
    timestamp_ms: float = Field(description="Capture time (ms)")


class AccelerometerContactResult(BaseModel):
    """
    Accelerometer variance gate outcome.

    Only the first four fields are needed by the analysis pipeline; the rest
    are diagnostics.
    """

    model_config = ConfigDict(frozen=True)

    no_contact: bool = Field(description="Device judged off-body")
    variance_in_body_range: bool = Field(description="Variance inside body range")
    total_variance: float = Field(ge=0, description="Sum of per-axis variances")
    confidence: float = Field(ge=0, le=1, description="Gate confidence (0-1)")
    rejection_reason: (
        Literal["too_still", "too_much_motion", "insufficient_samples"] | None
    ) = Field(default=None, description="Why contact was not confirmed")
    high_motion_warning: bool = Field(default=False)
    sample_count: int = Field(default=0, ge=0, description="Samples analyzed")
    avg_x: float = 0.0
    avg_y: float = 0.0
    avg_z: float = 0.0


class ContactAssessment(BaseModel):
    """
    Combined body-contact decision.

    Audio measurements are None when the accelerometer decided.
    """

    is_on_body: bool = Field(description="Device judged to be on the body")
    source: Literal["accelerometer", "audio"] = Field(description="Deciding gate")
    reason: str = Field(description="Summary of the decision")
    average_rms: float | None = None
    low_freq_ratio: float | None = None
    high_freq_ratio: float | None = None
    rolloff_hz: float | None = None
    spectral_passes: int | None = None
    coefficient_of_variation: float | None = None
    burst_count: int | None = None
    max_min_ratio: float | None = None
    silent_fraction: float | None = None
    temporal_passes: int | None = None
    is_ambient_signature: bool | None = None
    accelerometer_confidence: float | None = None


# ============================================================================
# Gating Types
# ============================================================================


class PsychoacousticGating(BaseModel):
    """Recording-level stationarity and mechanical rhythm gate."""

    should_gate: bool = Field(description="Zero the whole recording")
    gating_reason: GatingReason | None = Field(default=None)
    is_stationary: bool = Field(description="Spectral entropy barely varies")
    entropy_variance: float = Field(ge=0, description="Variance of window entropy")
    entropy_windows: int = Field(ge=0, description="400 ms windows analyzed")
    is_rhythmic: bool = Field(description="Periodicity matches a mechanical source")
    detected_period_ms: float | None = Field(
        default=None, description="Matched mechanical period (ms)"
    )


class AirNoiseCheck(BaseModel):
    """Fraction of analysis windows that classify as white noise."""

    is_dominated: bool
    white_noise_windows: int = Field(ge=0)
    windows_analyzed: int = Field(ge=0)
    white_noise_fraction: float = Field(ge=0, le=1)


# ============================================================================
# Segmentation and Veto Types
# ============================================================================


@dataclass
class CandidateEvent:
    """Run of above-threshold 100 ms windows, inclusive on both ends."""

    start_window: int
    end_window: int
    peak_energy: float

    @property
    def window_count(self) -> int:
        return self.end_window - self.start_window + 1


class VetoVerdict(BaseModel):
    """
    Result of one veto filter on one event.

    Attributes:
        filter: Which filter produced the verdict
        rejected: Whether the filter rejects the event
        skipped: Filter did not apply to this event
        bypassed: Filter ran but was excluded from the accept decision
        reason: Human-readable explanation
        values: Measured features
        thresholds: Thresholds the features were compared against
    """

    filter: VetoFilter
    rejected: bool
    skipped: bool = False
    bypassed: bool = False
    reason: str = ""
    values: dict[str, TraceValue] = Field(default_factory=dict)
    thresholds: dict[str, TraceValue] = Field(default_factory=dict)


class EventTrace(BaseModel):
    """Everything the cascade measured for one candidate event."""

    event_id: int = Field(ge=0)
    start_ms: float = Field(ge=0)
    end_ms: float = Field(ge=0)
    duration_ms: float = Field(ge=0)
    peak_energy: float = Field(ge=0)
    accepted: bool
    rejected_by: VetoFilter | None = Field(
        default=None, description="First non-bypassed filter that rejected"
    )
    verdicts: list[VetoVerdict] = Field(default_factory=list)


class RejectionSummary(BaseModel):
    """Counts over all candidate events."""

    total_candidates: int = Field(ge=0)
    accepted: int = Field(ge=0)
    rejected: int = Field(ge=0)
    rejections_by_filter: dict[VetoFilter, int] = Field(default_factory=dict)


# ============================================================================
# Session Results
# ============================================================================


class SessionAnalytics(BaseModel):
    """
    Per-recording output handed to the caller's storage layer.

    Immutable once built.
    """

    model_config = ConfigDict(frozen=True)

    events_per_minute: float = Field(ge=0, description="Accepted events per minute")
    total_active_seconds: int = Field(ge=0, description="Seconds covered by events")
    total_quiet_seconds: int = Field(ge=0, description="Remaining seconds")
    motility_index: int = Field(ge=0, le=100, description="Motility Index (0-100)")
    motility_category: MotilityCategory
    activity_timeline: list[int] = Field(
        default_factory=list, description="Relative activity per segment (0-100)"
    )
    signal_quality: SignalQuality
    snr_db: float = Field(description="Estimated SNR (dB)")
    candidate_events: int = Field(default=0, ge=0)
    accepted_events: int = Field(default=0, ge=0)
    gated: bool = Field(default=False, description="Whole recording zeroed")
    gating_reason: GatingReason | None = None
    frequency_histogram: list[float] = Field(
        default_factory=list, description="Normalized 8-bin peak histogram"
    )
    peak_frequencies: list[float] = Field(
        default_factory=list, description="Dominant frequency per accepted event"
    )
    pfhs_score: int = Field(default=0, ge=0, le=100)
    heart_bpm: int | None = None
    heart_rmssd: float | None = None
    vagal_tone_score: int | None = None


class DebugAnalysisResult(BaseModel):
    """Scoring output plus the full rejection trace."""

    analytics: SessionAnalytics
    ambient: AmbientNoiseCalibration | None = None
    noise_floor: NoiseFloorCalibration | None = None
    psychoacoustic: PsychoacousticGating | None = None
    air_noise: AirNoiseCheck | None = None
    contact: ContactAssessment | None = None
    events: list[EventTrace] = Field(default_factory=list)
    summary: RejectionSummary
    bypassed_filters: list[VetoFilter] = Field(default_factory=list)


class PFHSResult(BaseModel):
    """Peak-Frequency Histogram Similarity against the healthy reference."""

    score: int = Field(ge=0, le=100)
    correlation: float = Field(ge=-1, le=1)
    peak_bonus: int = Field(ge=0)
    detected_peaks: list[int] = Field(default_factory=list)
    is_healthy_pattern: bool
    input_histogram: list[float]
    reference_histogram: list[float]


class RhythmicityAnalysis(BaseModel):
    """Consistency of gut activity over the session."""

    index: int = Field(ge=0, le=100)
    activity_cv: float = Field(ge=0)
    frequency_consistency: int = Field(ge=0, le=100)
    ratio_stability: int = Field(ge=0, le=100)


class HeartAnalytics(BaseModel):
    """Heart rate and HRV extracted from the 20-80 Hz band."""

    model_config = ConfigDict(frozen=True)

    bpm: int = Field(default=0, ge=0, description="Beats per minute, 0 if invalid")
    rmssd: float = Field(default=0.0, ge=0, description="RMSSD (ms)")
    vagal_tone_score: int = Field(default=0, ge=0, le=100)
    confidence: float = Field(default=0.0, ge=0, le=1)
    beat_count: int = Field(default=0, ge=0)
    avg_interval_ms: float = Field(default=0.0, ge=0)
    interval_std_dev: float = Field(default=0.0, ge=0)
    hrv_valid: bool = False
    peak_timestamps: list[float] = Field(
        default_factory=list, description="Beat times (ms from start)"
    )
