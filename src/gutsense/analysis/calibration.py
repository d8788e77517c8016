"""
Noise and signal quality calibration.

Two calibrations run per recording:

- Ambient noise floor (ANF) on the raw audio: baseline level, mains/fan hum
  detection and an SNR estimate that drives the signal quality class.
- Noise floor on the band-passed audio: the event threshold used by
  segmentation, with a frequency-weighted floor and a white-noise baseline
  check.

ANF results are cached per recording content by CalibrationCache so that
the scoring and debug passes over one recording calibrate once.
"""

import hashlib
import logging
import math
import time

from collections.abc import Callable

import numpy as np

from gutsense.analysis.config import DEFAULT_CONFIG, DetectionConfig, QualityConfig
from gutsense.analysis.segmentation import compute_window_energies, window_size_samples
from gutsense.analysis.spectral import fft, hann_window
from gutsense.analysis.types import (
    AcousticIsolationResult,
    AmbientNoiseCalibration,
    NoiseFloorCalibration,
    SignalQualityAssessment,
)
from gutsense.analysis.vetoes import classify_spectral_noise
from gutsense.constants import CalibrationConstants as CC
from gutsense.constants import SignalQuality

logger = logging.getLogger(__name__)


def classify_signal_quality(
    snr_db: float, quality: QualityConfig | None = None
) -> SignalQuality:
    """Map an SNR estimate to a SignalQuality class."""
    bounds = quality or DEFAULT_CONFIG.quality
    if snr_db >= bounds.excellent_db:
        return SignalQuality.EXCELLENT
    if snr_db >= bounds.good_db:
        return SignalQuality.GOOD
    if snr_db >= bounds.fair_db:
        return SignalQuality.FAIR
    return SignalQuality.POOR


# ============================================================================
# Ambient Noise Floor
# ============================================================================


def detect_hum_frequencies(samples: np.ndarray, sample_rate: float) -> list[float]:
    """
    Detect constant mains or fan hums by autocorrelation at their periods.

    Uses the first 4096 samples. A frequency is reported when the lag-one-
    period correlation, normalized by the energy of the leading part, is
    above 0.7.

    Args:
        samples: Raw audio samples
        sample_rate: Sample rate (Hz)

    Returns:
        Detected hum frequencies (Hz), ascending
    """
    x = np.asarray(samples, dtype=np.float64)[: CC.HUM_ANALYSIS_SAMPLES]
    n = len(x)
    hums: list[float] = []

    for frequency in CC.HUM_FREQUENCIES_HZ:
        lag = int(round(sample_rate / frequency))
        if lag <= 0 or lag >= n:
            continue
        lead = x[: n - lag]
        energy = float(np.dot(lead, lead))
        if energy <= 0:
            continue
        correlation = float(np.dot(lead, x[lag:])) / energy
        if correlation > CC.HUM_CORRELATION_THRESHOLD:
            hums.append(frequency)

    if hums:
        logger.debug(f"Detected hum frequencies: {hums}")
    return hums


def subtract_hum(
    samples: np.ndarray, sample_rate: float, hum_frequencies: list[float]
) -> np.ndarray:
    """
    Attenuate detected hums by subtracting a fitted sinusoid per frequency.

    The sinusoid's amplitude and phase are least-squares fitted to the whole
    recording, then removed at 80% strength.

    Returns:
        New array; the input is returned as a copy when there is nothing to do
    """
    x = np.asarray(samples, dtype=np.float64)
    result = x.copy()
    if not hum_frequencies or len(x) == 0:
        return result

    t = np.arange(len(x)) / sample_rate
    for frequency in hum_frequencies:
        sine = np.sin(2.0 * np.pi * frequency * t)
        cosine = np.cos(2.0 * np.pi * frequency * t)
        sine_energy = float(np.dot(sine, sine))
        cosine_energy = float(np.dot(cosine, cosine))
        a = float(np.dot(result, sine)) / sine_energy if sine_energy > 0 else 0.0
        b = float(np.dot(result, cosine)) / cosine_energy if cosine_energy > 0 else 0.0
        result -= CC.HUM_SUBTRACTION_STRENGTH * (a * sine + b * cosine)

    return result


def calibrate_ambient_noise(
    samples: np.ndarray,
    sample_rate: float,
    quality: QualityConfig | None = None,
) -> AmbientNoiseCalibration:
    """
    Estimate the ambient noise floor from the first 5 seconds.

    SNR is measured against a reference gut-sound level of 0.02 RMS using
    the median window RMS, so a burst inside the calibration span does not
    drag the estimate down.

    Args:
        samples: Raw audio samples
        sample_rate: Sample rate (Hz)
        quality: SNR class boundaries (defaults to DEFAULT_CONFIG)

    Returns:
        AmbientNoiseCalibration. Recordings shorter than one window return a
        poor-quality result with a 0.01 fallback threshold.
    """
    x = np.asarray(samples, dtype=np.float64)
    calibration = x[: int(CC.ANF_DURATION_S * sample_rate)]
    window = window_size_samples(sample_rate)

    if len(calibration) < window:
        logger.warning(
            f"Recording too short for ambient calibration "
            f"({len(calibration)} samples < {window})"
        )
        return AmbientNoiseCalibration(
            anf_mean=0.0,
            anf_std=0.0,
            noise_rms=0.0,
            adaptive_threshold=CC.ANF_FALLBACK_THRESHOLD,
            snr_db=0.0,
            signal_quality=SignalQuality.POOR,
            hum_frequencies=[],
            calibration_windows=0,
        )

    energies = compute_window_energies(calibration, sample_rate)
    anf_mean = float(np.mean(energies))
    anf_std = float(np.std(energies))
    noise_rms = float(np.median(energies))

    if noise_rms > 0:
        snr_db = 20.0 * math.log10(CC.REFERENCE_SIGNAL_RMS / noise_rms)
    else:
        snr_db = CC.MAX_SNR_DB

    result = AmbientNoiseCalibration(
        anf_mean=anf_mean,
        anf_std=anf_std,
        noise_rms=noise_rms,
        adaptive_threshold=anf_mean + CC.ANF_THRESHOLD_MULTIPLIER * anf_std,
        snr_db=snr_db,
        signal_quality=classify_signal_quality(snr_db, quality),
        hum_frequencies=detect_hum_frequencies(calibration, sample_rate),
        calibration_windows=len(energies),
    )
    logger.debug(
        f"ANF: mean={anf_mean:.6f}, median={noise_rms:.6f}, "
        f"SNR={snr_db:.1f} dB ({result.signal_quality.value})"
    )
    return result


def assess_signal_quality(
    signal_rms: float,
    noise_rms: float,
    quality: QualityConfig | None = None,
) -> SignalQualityAssessment:
    """
    Compare a live signal level against the calibrated noise floor.

    Args:
        signal_rms: RMS of the current signal window
        noise_rms: RMS of the noise floor

    Returns:
        SignalQualityAssessment with a message suitable for display
    """
    if noise_rms <= 0:
        snr_db = 0.0
    elif signal_rms <= 0:
        snr_db = -CC.MAX_SNR_DB
    else:
        snr_db = 10.0 * math.log10(signal_rms / noise_rms)

    signal_quality = classify_signal_quality(snr_db, quality)
    messages = {
        SignalQuality.EXCELLENT: "Excellent signal quality - ideal for recording",
        SignalQuality.GOOD: "Good signal quality - suitable for recording",
        SignalQuality.FAIR: "Fair signal quality - consider quieter environment",
        SignalQuality.POOR: "Poor signal quality - too much background noise",
    }
    return SignalQualityAssessment(
        snr_db=snr_db,
        quality=signal_quality,
        is_suitable=snr_db >= CC.ISOLATION_MIN_SNR_DB,
        message=messages[signal_quality],
    )


def run_acoustic_isolation(
    samples: np.ndarray,
    sample_rate: float,
    quality: QualityConfig | None = None,
) -> AcousticIsolationResult:
    """
    Check whether the recording environment is quiet enough.

    Meant for the calibration seconds captured before a session starts.

    Returns:
        AcousticIsolationResult with a recommendation for the user
    """
    calibration = calibrate_ambient_noise(samples, sample_rate, quality)
    signal_quality = calibration.signal_quality

    if signal_quality == SignalQuality.EXCELLENT:
        recommendation = "Environment is ideal. Begin recording."
    elif signal_quality == SignalQuality.GOOD:
        recommendation = "Environment is suitable. Begin recording."
    elif signal_quality == SignalQuality.FAIR:
        if calibration.hum_frequencies:
            hums = ", ".join(f"{f:g}" for f in calibration.hum_frequencies)
            recommendation = (
                f"Background hum detected ({hums} Hz). "
                "Consider moving away from appliances."
            )
        else:
            recommendation = "Some background noise detected. Consider a quieter location."
    else:
        recommendation = (
            "Environment too noisy for reliable recording. "
            "Please find a quieter location."
        )

    return AcousticIsolationResult(
        calibration=calibration,
        is_suitable=signal_quality != SignalQuality.POOR,
        recommendation=recommendation,
    )


class CalibrationCache:
    """
    ANF results keyed by recording content.

    Keys are a SHA-1 of the sample bytes plus the sample rate. Entries expire
    after ttl_seconds. Call invalidate() when a new recording session starts.
    """

    def __init__(
        self,
        ttl_seconds: float = CC.CACHE_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, AmbientNoiseCalibration]] = {}

    @staticmethod
    def content_key(samples: np.ndarray, sample_rate: float) -> str:
        digest = hashlib.sha1(
            np.ascontiguousarray(samples, dtype=np.float64).tobytes()
        ).hexdigest()
        return f"{digest}:{float(sample_rate)}"

    def get(self, samples: np.ndarray, sample_rate: float) -> AmbientNoiseCalibration | None:
        key = self.content_key(samples, sample_rate)
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, calibration = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return calibration

    def put(
        self,
        samples: np.ndarray,
        sample_rate: float,
        calibration: AmbientNoiseCalibration,
    ) -> None:
        self._entries[self.content_key(samples, sample_rate)] = (
            self._clock(),
            calibration,
        )

    def get_or_calibrate(
        self,
        samples: np.ndarray,
        sample_rate: float,
        quality: QualityConfig | None = None,
    ) -> AmbientNoiseCalibration:
        """Cached ANF calibration, computing and storing it on a miss."""
        cached = self.get(samples, sample_rate)
        if cached is not None:
            logger.debug("Using cached ambient calibration")
            return cached
        calibration = calibrate_ambient_noise(samples, sample_rate, quality)
        self.put(samples, sample_rate, calibration)
        return calibration

    def invalidate(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ============================================================================
# Event Threshold Calibration
# ============================================================================


def frequency_weighted_floor(samples: np.ndarray, sample_rate: float) -> float:
    """
    Band-weighted RMS of a calibration block.

    Energy in 100-300, 300-600 and 600-1000 Hz is weighted 0.6/0.3/0.1.
    The Hann-windowed power spectrum is scaled by Parseval's relation so the
    result is in the same RMS units as the window energies.

    Returns:
        Weighted RMS; 0 for fewer than 256 samples
    """
    x = np.asarray(samples, dtype=np.float64)
    n = len(x)
    if n < CC.FREQUENCY_WEIGHT_MIN_SAMPLES:
        return 0.0

    window = hann_window(n)
    spectrum = fft(x * window)
    size = len(spectrum)
    power = np.abs(spectrum[: size // 2]) ** 2
    freqs = np.arange(size // 2) * sample_rate / size
    window_energy = float(np.sum(window**2))
    if window_energy <= 0:
        return 0.0

    weighted = 0.0
    for low_hz, high_hz, weight in CC.FREQUENCY_WEIGHT_BANDS:
        band = (freqs >= low_hz) & (freqs < high_hz)
        # One-sided spectrum: double to account for the negative frequencies.
        band_mean_square = 2.0 * float(np.sum(power[band])) / (size * window_energy)
        weighted += weight * band_mean_square
    return math.sqrt(weighted) if weighted > 0 else 0.0


def calibrate_noise_floor(
    filtered: np.ndarray,
    energies: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> NoiseFloorCalibration:
    """
    Derive the event threshold from the leading seconds of filtered audio.

    threshold = base + multiplier * std, capped at 5x base, where base is
    max(mean window RMS, frequency-weighted floor). With fewer than 5
    calibration windows, whole-recording statistics and a 2.5x multiplier
    are used instead. A white-noise calibration baseline raises the
    multiplier by 1.5x and flags the recording.

    Args:
        filtered: Band-passed samples
        energies: Their 100 ms window RMS values
        sample_rate: Sample rate (Hz)
        config: Detection thresholds

    Returns:
        NoiseFloorCalibration
    """
    nf = config.noise_floor
    values = np.asarray(energies, dtype=np.float64)
    window_ms = config.energy.window_ms
    wanted = int(nf.calibration_seconds * 1000.0 / window_ms)
    n_windows = min(len(values), wanted)

    if n_windows < nf.min_windows:
        mean_rms = float(np.mean(values)) if len(values) else 0.0
        std_rms = float(np.std(values)) if len(values) else 0.0
        multiplier = nf.fallback_multiplier
        weighted_floor = 0.0
        baseline_sfm = CC.FALLBACK_BASELINE_SFM
        is_air_noise = False
        logger.debug(
            f"Only {n_windows} calibration windows; using whole-recording statistics"
        )
    else:
        calibration_energies = values[:n_windows]
        mean_rms = float(np.mean(calibration_energies))
        std_rms = float(np.std(calibration_energies))
        calibration_samples = np.asarray(filtered, dtype=np.float64)[
            : n_windows * window_size_samples(sample_rate, window_ms)
        ]
        weighted_floor = frequency_weighted_floor(calibration_samples, sample_rate)
        baseline = classify_spectral_noise(calibration_samples, sample_rate, config)
        baseline_sfm = baseline.sfm
        is_air_noise = baseline.is_white_noise
        multiplier = nf.calibrated_multiplier
        if is_air_noise:
            multiplier *= nf.air_noise_boost
            logger.info(
                f"Calibration baseline looks like air noise (SFM={baseline_sfm:.3f}); "
                f"raising threshold multiplier to {multiplier:.2f}"
            )

    base = max(mean_rms, weighted_floor)
    threshold = min(base + multiplier * std_rms, nf.max_threshold_ratio * base)
    threshold = max(threshold, base)

    logger.debug(
        f"Noise floor: mean={mean_rms:.6f}, std={std_rms:.6f}, "
        f"weighted={weighted_floor:.6f}, threshold={threshold:.6f}"
    )
    return NoiseFloorCalibration(
        mean_rms=mean_rms,
        std_dev_rms=std_rms,
        event_threshold=threshold,
        frequency_weighted_floor=weighted_floor,
        baseline_sfm=baseline_sfm,
        is_air_noise_baseline=is_air_noise,
        multiplier=multiplier,
        calibration_windows=n_windows,
    )
