"""
Detection threshold configuration.

Every threshold the scoring and debug paths compare against lives here as
data. Defaults come from the constant classes in gutsense.constants, and
user overrides are applied from the [analysis] tables of the config file.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gutsense.constants import AccelerometerConstants as AC
from gutsense.constants import BreathConstants as BC
from gutsense.constants import BurstConstants as BUC
from gutsense.constants import CalibrationConstants as CC
from gutsense.constants import ContactConstants as CTC
from gutsense.constants import EnergyConstants as EC
from gutsense.constants import FilterConstants as FC
from gutsense.constants import HarmonicConstants as HC
from gutsense.constants import HeartConstants as HRC
from gutsense.constants import PsychoacousticConstants as PC
from gutsense.constants import SpectralNoiseConstants as SNC
from gutsense.constants import TransientConstants as TC

__all__ = [
    "DetectionConfig",
    "DEFAULT_CONFIG",
    "build_detection_config",
]


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class BandConfig(_Section):
    """Band-pass edges for the motility path."""

    gut_low_hz: float = Field(default=FC.GUT_LOW_HZ, gt=0)
    gut_high_hz: float = Field(default=FC.GUT_HIGH_HZ, gt=0)
    humming_low_hz: float = Field(default=FC.HUMMING_LOW_HZ, gt=0)
    humming_high_hz: float = Field(default=FC.HUMMING_HIGH_HZ, gt=0)
    order: int = Field(default=FC.DEFAULT_ORDER, ge=1, le=8)


class EnergyConfig(_Section):
    """Windowing and event grouping."""

    window_ms: float = Field(default=EC.WINDOW_MS, gt=0)
    min_gap_windows: int = Field(
        default=EC.MIN_GAP_WINDOWS, ge=0, description="Gap tolerated inside an event"
    )
    min_event_windows: int = Field(default=EC.MIN_EVENT_WINDOWS, ge=1)


class QualityConfig(_Section):
    """SNR boundaries for the signal quality classes (dB)."""

    excellent_db: float = CC.SNR_EXCELLENT_DB
    good_db: float = CC.SNR_GOOD_DB
    fair_db: float = CC.SNR_FAIR_DB


class NoiseFloorConfig(_Section):
    """Event threshold calibration on the band-passed recording."""

    calibration_seconds: float = Field(default=CC.NOISE_FLOOR_DURATION_S, gt=0)
    min_windows: int = Field(default=CC.MIN_CALIBRATION_WINDOWS, ge=1)
    calibrated_multiplier: float = Field(default=CC.CALIBRATED_MULTIPLIER, gt=0)
    fallback_multiplier: float = Field(default=CC.FALLBACK_MULTIPLIER, gt=0)
    air_noise_boost: float = Field(default=CC.AIR_NOISE_MULTIPLIER_BOOST, ge=1)
    max_threshold_ratio: float = Field(default=CC.MAX_THRESHOLD_RATIO, ge=1)


class AccelerometerConfig(_Section):
    """Accelerometer variance gate."""

    min_samples_for_detection: int = Field(default=AC.MIN_SAMPLES_FOR_DETECTION, ge=1)
    settled_sample_count: int = Field(default=AC.SETTLED_SAMPLE_COUNT, ge=1)
    min_settled_samples: int = Field(default=AC.MIN_SETTLED_SAMPLES, ge=1)
    min_variance: float = Field(default=AC.MIN_VARIANCE_FOR_BODY, ge=0)
    max_variance: float = Field(default=AC.MAX_VARIANCE_FOR_BODY, gt=0)
    high_motion_warning: float = Field(default=AC.HIGH_MOTION_WARNING, ge=0)
    max_buffered_samples: int = Field(default=AC.MAX_BUFFERED_SAMPLES, ge=1)
    confident_threshold: float = Field(default=AC.CONFIDENT_THRESHOLD, ge=0, le=1)


class ContactConfig(_Section):
    """Audio-only body contact gate."""

    min_rms: float = Field(default=CTC.MIN_RMS, ge=0)
    min_low_freq_ratio: float = Field(default=CTC.MIN_LOW_FREQ_RATIO, ge=0, le=1)
    max_high_freq_ratio: float = Field(default=CTC.MAX_HIGH_FREQ_RATIO, ge=0, le=1)
    max_rolloff_hz: float = Field(default=CTC.MAX_ROLLOFF_HZ, gt=0)
    min_spectral_passes: int = Field(default=CTC.MIN_SPECTRAL_PASSES, ge=0, le=3)
    min_cv: float = Field(default=CTC.MIN_CV, ge=0)
    burst_multiplier: float = Field(default=CTC.BURST_MULTIPLIER, gt=0)
    min_bursts: int = Field(default=CTC.MIN_BURSTS, ge=0)
    min_max_min_ratio: float = Field(default=CTC.MIN_MAX_MIN_RATIO, ge=1)
    silence_ratio: float = Field(default=CTC.SILENCE_RATIO, ge=0, le=1)
    min_silent_fraction: float = Field(default=CTC.MIN_SILENT_FRACTION, ge=0, le=1)
    min_temporal_passes: int = Field(default=CTC.MIN_TEMPORAL_PASSES, ge=0, le=4)


class BreathConfig(_Section):
    """Breath-shape veto."""

    min_duration_ms: float = BC.MIN_DURATION_MS
    max_duration_ms: float = BC.MAX_DURATION_MS
    gradual_onset_ratio: float = Field(default=BC.GRADUAL_ONSET_RATIO, ge=0, le=1)
    low_freq_emphasis: float = Field(default=BC.LOW_FREQ_EMPHASIS, ge=0, le=1)
    artifact_confidence: float = Field(default=BC.ARTIFACT_CONFIDENCE, ge=0, le=1)


class SpectralNoiseConfig(_Section):
    """Per-event white-noise classifier."""

    auto_reject_sfm: float = Field(default=SNC.AUTO_REJECT_SFM, ge=0, le=1)
    auto_reject_zcr: float = Field(default=SNC.AUTO_REJECT_ZCR, ge=0, le=1)
    combined_sfm: float = Field(default=SNC.COMBINED_SFM, ge=0, le=1)
    combined_bowel_ratio: float = Field(default=SNC.COMBINED_BOWEL_RATIO, ge=0, le=1)
    combined_zcr: float = Field(default=SNC.COMBINED_ZCR, ge=0, le=1)
    soft_sfm: float = Field(default=SNC.SOFT_SFM, ge=0, le=1)
    soft_bowel_ratio: float = Field(default=SNC.SOFT_BOWEL_RATIO, ge=0, le=1)
    gut_min_contrast: float = Field(default=SNC.GUT_MIN_CONTRAST, ge=0, le=1)


class BurstConfig(_Section):
    """Burst duration fingerprint."""

    min_duration_ms: float = Field(default=BUC.MIN_DURATION_MS, ge=0)
    max_duration_ms: float = Field(default=BUC.MAX_DURATION_MS, gt=0)
    constant_noise_variance: float = Field(default=BUC.CONSTANT_NOISE_VARIANCE, ge=0)
    constant_noise_min_windows: int = Field(default=BUC.CONSTANT_NOISE_MIN_WINDOWS, ge=2)


class TransientConfig(_Section):
    """Click and clatter suppression."""

    min_slope: float = Field(default=TC.MIN_SLOPE, gt=0)
    min_energy_ratio: float = Field(default=TC.MIN_ENERGY_RATIO, gt=0)
    max_duration_ms: float = Field(default=TC.MAX_DURATION_MS, gt=0)


class HarmonicConfig(_Section):
    """Speech and music veto."""

    min_f0_hz: float = Field(default=HC.MIN_F0_HZ, gt=0)
    max_f0_hz: float = Field(default=HC.MAX_F0_HZ, gt=0)
    min_correlation: float = Field(default=HC.MIN_CORRELATION, ge=0, le=1)
    min_harmonics: int = Field(default=HC.MIN_HARMONICS, ge=1)
    min_hnr_db: float = HC.MIN_HNR_DB


class PsychoacousticConfig(_Section):
    """Recording-level stationarity, rhythm and air-noise gates."""

    min_stationary_windows: int = Field(default=PC.MIN_STATIONARY_WINDOWS, ge=2)
    entropy_variance_threshold: float = Field(
        default=PC.ENTROPY_VARIANCE_THRESHOLD, ge=0
    )
    periodicity_threshold: float = Field(default=PC.PERIODICITY_THRESHOLD, ge=0, le=1)
    period_tolerance: float = Field(default=PC.PERIOD_TOLERANCE, ge=0, le=1)
    air_noise_dominance: float = Field(default=PC.AIR_NOISE_DOMINANCE, ge=0, le=1)


class HeartConfig(_Section):
    """Physiological bounds for heart rate and HRV."""

    min_bpm: float = Field(default=HRC.MIN_BPM, gt=0)
    max_bpm: float = Field(default=HRC.MAX_BPM, gt=0)
    min_beats_for_bpm: int = Field(default=HRC.MIN_BEATS_FOR_BPM, ge=2)
    min_beats_for_hrv: int = Field(default=HRC.MIN_BEATS_FOR_HRV, ge=2)
    min_autocorr_confidence: float = Field(
        default=HRC.MIN_AUTOCORR_CONFIDENCE, ge=0, le=1
    )


class DetectionConfig(_Section):
    """
    Complete threshold set for one analysis run.

    The scoring path and the debug path both read thresholds from the same
    instance, so the two can never disagree.

    Example:
        >>> config = build_detection_config({"burst": {"max_duration_ms": 1200}})
        >>> config.burst.max_duration_ms
        1200.0
    """

    bands: BandConfig = Field(default_factory=BandConfig)
    energy: EnergyConfig = Field(default_factory=EnergyConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    noise_floor: NoiseFloorConfig = Field(default_factory=NoiseFloorConfig)
    accelerometer: AccelerometerConfig = Field(default_factory=AccelerometerConfig)
    contact: ContactConfig = Field(default_factory=ContactConfig)
    breath: BreathConfig = Field(default_factory=BreathConfig)
    spectral_noise: SpectralNoiseConfig = Field(default_factory=SpectralNoiseConfig)
    burst: BurstConfig = Field(default_factory=BurstConfig)
    transient: TransientConfig = Field(default_factory=TransientConfig)
    harmonic: HarmonicConfig = Field(default_factory=HarmonicConfig)
    psychoacoustic: PsychoacousticConfig = Field(default_factory=PsychoacousticConfig)
    heart: HeartConfig = Field(default_factory=HeartConfig)


DEFAULT_CONFIG = DetectionConfig()


def build_detection_config(overrides: dict[str, Any] | None = None) -> DetectionConfig:
    """
    Build a DetectionConfig from nested override tables.

    Args:
        overrides: Mapping of section name to {field: value}, as read from
            the [analysis] table of the config file

    Returns:
        DetectionConfig with overrides applied on top of the defaults

    Raises:
        ValueError: If a section or field is unknown or a value is out of range
    """
    if not overrides:
        return DEFAULT_CONFIG

    try:
        return DetectionConfig.model_validate(overrides)
    except ValidationError as e:
        raise ValueError(f"Invalid analysis configuration: {e}") from e
