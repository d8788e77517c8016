"""
Constants for bowel sound and heart rate analysis.

Threshold values here are the defaults for DetectionConfig
(gutsense.analysis.config). Change detection behavior HERE, not inline in
the analysis modules.
"""

from enum import Enum
from pathlib import Path

# ============================================================================
# Signal Quality
# ============================================================================


class SignalQuality(str, Enum):
    """Recording quality derived from estimated SNR."""

    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"


class MotilityCategory(str, Enum):
    """Coarse motility bucket for display."""

    QUIET = "quiet"
    NORMAL = "normal"
    ACTIVE = "active"


class VetoFilter(str, Enum):
    """Per-event rejection filters, in cascade order."""

    BREATH_ARTIFACT = "BREATH_ARTIFACT"
    SPECTRAL_NOISE = "SPECTRAL_NOISE"
    BURST_VALIDATION = "BURST_VALIDATION"
    TRANSIENT = "TRANSIENT"
    HARMONIC_SPEECH = "HARMONIC_SPEECH"


class GatingReason(str, Enum):
    """Recording-level reasons for zeroing the whole analysis."""

    STATIONARY_NOISE = "stationary_noise"
    MECHANICAL_RHYTHM = "mechanical_rhythm"
    AIR_NOISE = "air_noise"
    NO_CONTACT_ACCELEROMETER = "no_contact_accelerometer"
    NO_CONTACT_AUDIO = "no_contact_audio"


# ============================================================================
# Band Definitions
# ============================================================================


class FilterConstants:
    """
    Band-pass definitions for the filter engine.

    Bowel sounds concentrate in 100-450 Hz; heart sounds in 20-80 Hz. The
    humming band is used while the user hums (vagal priming) so the voice
    fundamental stays measurable.
    """

    GUT_LOW_HZ = 100.0
    GUT_HIGH_HZ = 450.0
    HEART_LOW_HZ = 20.0
    HEART_HIGH_HZ = 80.0
    HUMMING_LOW_HZ = 80.0
    HUMMING_HIGH_HZ = 500.0
    DEFAULT_ORDER = 3

    BUTTERWORTH_Q = 0.7071
    ORDER3_Q_VALUES = (0.5, 1.0, 0.5)

    ATTENUATION_TEST_DURATION_S = 0.1
    ATTENUATION_SETTLE_FRACTION = 0.5

    BIRD_IN_BAND_LOW_HZ = 150.0
    BIRD_IN_BAND_HIGH_HZ = 1000.0
    BIRD_OUT_OF_BAND_HZ = 1200.0
    BIRD_FRAME_SIZE = 1024
    BIRD_HOP_SIZE = 512
    BIRD_SUPPRESSION_RATIO = 0.5


# ============================================================================
# Spectral Analysis
# ============================================================================


class SpectralConstants:
    """Constants shared by the spectral primitives and classifiers."""

    MAGNITUDE_FLOOR = 1e-10
    CONTRAST_MIN_BINS = 10
    CONTRAST_PEAK_FRACTION = 0.1
    CONTRAST_VALLEY_FRACTION = 0.5
    FFT_SIZE = 2048


class EnergyConstants:
    """Constants for windowed RMS energy."""

    WINDOW_MS = 100
    MIN_GAP_WINDOWS = 3
    MIN_EVENT_WINDOWS = 2


# ============================================================================
# Calibration
# ============================================================================


class CalibrationConstants:
    """
    Constants for ambient noise floor (ANF) and noise floor calibration.

    ANF runs on the raw recording; the noise floor runs on the band-passed
    recording and sets the event threshold.
    """

    ANF_DURATION_S = 5.0
    ANF_THRESHOLD_MULTIPLIER = 1.5
    ANF_FALLBACK_THRESHOLD = 0.01
    REFERENCE_SIGNAL_RMS = 0.02
    MAX_SNR_DB = 30.0

    SNR_EXCELLENT_DB = 20.0
    SNR_GOOD_DB = 12.0
    SNR_FAIR_DB = 6.0

    HUM_FREQUENCIES_HZ = (50.0, 60.0, 100.0, 120.0, 180.0, 240.0, 300.0)
    HUM_ANALYSIS_SAMPLES = 4096
    HUM_CORRELATION_THRESHOLD = 0.7
    HUM_SUBTRACTION_STRENGTH = 0.8

    ISOLATION_MIN_SNR_DB = 6.0

    CACHE_TTL_S = 60.0

    NOISE_FLOOR_DURATION_S = 3.0
    MIN_CALIBRATION_WINDOWS = 5
    CALIBRATED_MULTIPLIER = 2.0
    FALLBACK_MULTIPLIER = 2.5
    AIR_NOISE_MULTIPLIER_BOOST = 1.5
    MAX_THRESHOLD_RATIO = 5.0
    FALLBACK_BASELINE_SFM = 0.5
    FREQUENCY_WEIGHT_MIN_SAMPLES = 256
    FREQUENCY_WEIGHT_BANDS = (
        (100.0, 300.0, 0.6),
        (300.0, 600.0, 0.3),
        (600.0, 1000.0, 0.1),
    )


# ============================================================================
# Contact Detection
# ============================================================================


class AccelerometerConstants:
    """
    Constants for the accelerometer variance gate.

    Breathing micro-motion of a phone resting on the abdomen lands between
    MIN_VARIANCE and MAX_VARIANCE (g^2, summed over axes). Below is a table
    or pillow; above is walking or handling.
    """

    SAMPLE_RATE_HZ = 20
    MIN_SAMPLES_FOR_DETECTION = 40
    SETTLED_SAMPLE_COUNT = 400
    MIN_SETTLED_SAMPLES = 100
    MIN_VARIANCE_FOR_BODY = 0.00003
    MAX_VARIANCE_FOR_BODY = 0.02
    HIGH_MOTION_WARNING = 0.005
    MAX_BUFFERED_SAMPLES = 2400
    CONFIDENT_THRESHOLD = 0.5
    STILL_VARIANCE_FLOOR = 1e-7


class ContactConstants:
    """Constants for the audio-only contact gate."""

    MIN_SAMPLES = 1024
    MIN_RMS = 0.005
    SPECTRUM_FRAMES = 8

    LOW_FREQ_CUTOFF_HZ = 200.0
    HIGH_FREQ_CUTOFF_HZ = 400.0
    MIN_LOW_FREQ_RATIO = 0.45
    MAX_HIGH_FREQ_RATIO = 0.15
    ROLLOFF_FRACTION = 0.85
    MAX_ROLLOFF_HZ = 350.0
    MIN_SPECTRAL_PASSES = 2

    MIN_CV = 0.12
    BURST_MULTIPLIER = 2.0
    MIN_BURSTS = 2
    MIN_MAX_MIN_RATIO = 3.0
    MIN_ENERGY_FLOOR = 1e-4
    SILENCE_RATIO = 0.3
    MIN_SILENT_FRACTION = 0.05
    MIN_TEMPORAL_PASSES = 2


# ============================================================================
# Veto Filters
# ============================================================================


class BreathConstants:
    """Constants for the breath-shape veto."""

    MIN_DURATION_MS = 400.0
    MAX_DURATION_MS = 3000.0
    ENVELOPE_FRAME_MS = 50.0
    ENVELOPE_HOP_MS = 25.0
    MIN_ENVELOPE_FRAMES = 4
    ONSET_FRACTION = 0.2
    GRADUAL_ONSET_RATIO = 0.3
    LOW_FREQ_CUTOFF_HZ = 200.0
    LOW_FREQ_EMPHASIS = 0.6
    DURATION_WEIGHT = 0.3
    ONSET_WEIGHT = 0.4
    EMPHASIS_WEIGHT = 0.3
    ARTIFACT_CONFIDENCE = 0.6


class SpectralNoiseConstants:
    """Constants for the per-event white-noise classifier."""

    MIN_SAMPLES = 512
    BOWEL_LOW_HZ = 100.0
    BOWEL_HIGH_HZ = 450.0
    AUTO_REJECT_SFM = 0.75
    AUTO_REJECT_ZCR = 0.35
    COMBINED_SFM = 0.55
    COMBINED_BOWEL_RATIO = 0.40
    COMBINED_ZCR = 0.22
    SOFT_SFM = 0.55
    SOFT_BOWEL_RATIO = 0.32
    GUT_MIN_CONTRAST = 0.3


class BurstConstants:
    """
    Constants for the burst/duration fingerprint.

    Gut sounds last 10-1500 ms. Longer sounds are breathing artifacts.
    """

    MIN_DURATION_MS = 10.0
    MAX_DURATION_MS = 1500.0
    CONSTANT_NOISE_WINDOW_MS = 100.0
    CONSTANT_NOISE_MIN_WINDOWS = 3
    CONSTANT_NOISE_VARIANCE = 0.05


class TransientConstants:
    """Constants for click/clatter suppression."""

    FRAME_MS = 5.0
    SLOPE_FLOOR_FRACTION = 0.05
    MIN_SLOPE = 10.0
    MIN_ENERGY_RATIO = 5.0
    HIGH_ENERGY_FRACTION = 0.5
    MAX_DURATION_MS = 25.0


class HarmonicConstants:
    """Constants for the harmonic/speech veto."""

    MIN_DURATION_S = 0.1
    MIN_F0_HZ = 80.0
    MAX_F0_HZ = 400.0
    MIN_CORRELATION = 0.3
    MAX_HARMONICS = 8
    HARMONIC_TOLERANCE = 0.05
    LOCAL_WINDOW_BINS = 5
    PEAK_RATIO = 2.0
    MIN_HARMONICS = 3
    MIN_HNR_DB = 8.0


class PsychoacousticConstants:
    """Constants for recording-level stationarity and rhythm gating."""

    ENTROPY_WINDOW_MS = 400.0
    MIN_STATIONARY_WINDOWS = 4
    ENTROPY_VARIANCE_THRESHOLD = 0.001

    RHYTHM_SEGMENT_SAMPLES = 8192
    RHYTHM_MAX_SEGMENTS = 5
    RHYTHM_MIN_HZ = 40.0
    RHYTHM_MAX_HZ = 400.0
    PERIODICITY_THRESHOLD = 0.7
    PERIOD_TOLERANCE = 0.05
    MECHANICAL_FREQUENCIES_HZ = (50.0, 60.0, 100.0, 120.0, 180.0, 240.0, 300.0)

    AIR_NOISE_MAX_WINDOWS = 10
    AIR_NOISE_DOMINANCE = 0.7


# ============================================================================
# Analytics
# ============================================================================


class AnalyticsConstants:
    """Constants for the Motility Index, timeline and PFHS."""

    MAX_EVENTS_PER_MINUTE = 20.0
    EPM_WEIGHT = 0.7
    ACTIVE_WEIGHT = 0.3
    FAIR_QUALITY_WEIGHT = 0.5
    TIMELINE_SEGMENTS = 10
    QUIET_BELOW = 33
    ACTIVE_FROM = 67

    HISTOGRAM_BINS = 8
    HISTOGRAM_LOW_HZ = 100.0
    HISTOGRAM_HIGH_HZ = 450.0
    HEALTHY_GUT_HISTOGRAM = (0.08, 0.15, 0.22, 0.25, 0.15, 0.08, 0.05, 0.02)
    REFERENCE_PEAKS_HZ = (200.0, 250.0)
    PEAK_TOLERANCE_HZ = 30.0
    PEAK_BONUS = 5
    MAX_PEAK_BONUS = 20
    MAX_CORRELATION_SCORE = 80.0
    HEALTHY_CORRELATION = 0.5
    HEALTHY_SCORE = 50

    RHYTHM_CV_WEIGHT = 0.5
    RHYTHM_FREQUENCY_WEIGHT = 0.25
    RHYTHM_RATIO_WEIGHT = 0.25


class HeartConstants:
    """
    Constants for heart rate and HRV extraction.

    Physiological bounds: 40-150 bpm, beat intervals 400-1500 ms.
    """

    MIN_DURATION_S = 5.0
    ENVELOPE_SMOOTHING_MS = 50.0
    ENVELOPE_RATE_HZ = 1000
    MIN_INTERVAL_MS = 400.0
    MAX_INTERVAL_MS = 1500.0
    MIN_AUTOCORR_CONFIDENCE = 0.5
    PEAK_PERCENTILE = 75.0
    PROMINENCE_WINDOW_MS = 250.0
    PROMINENCE_RATIO = 1.5
    PERIOD_TOLERANCE = 0.15
    OUTLIER_TOLERANCE = 0.3
    MIN_BPM = 40.0
    MAX_BPM = 150.0
    MIN_BEATS_FOR_BPM = 10
    MIN_BEATS_FOR_HRV = 20
    VAGAL_RMSSD_LOW = 20.0
    VAGAL_RMSSD_HIGH = 80.0
    EXPECTED_BPM = 75.0
    PRESENCE_MIN_DURATION_S = 3.0
    PRESENCE_RMS_RATIO = 0.01


# ============================================================================
# Application Defaults
# ============================================================================

DEFAULT_CONFIG_DIR = Path.home() / ".gutsense"
DEFAULT_LOG_DIR = DEFAULT_CONFIG_DIR / "logs"
DEFAULT_LOG_FILE = "gutsense.log"
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_LOG_BACKUP_COUNT = 5
DEFAULT_TRACE_LOG_FILE = "analysis-trace.log"
ANALYSIS_LOGGER = "gutsense.analysis"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

MILLISECONDS_PER_SECOND = 1000
SECONDS_PER_MINUTE = 60
