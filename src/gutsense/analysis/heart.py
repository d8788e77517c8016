"""
Heart rate and HRV from abdominal audio.

Heart sounds reach an abdomen-mounted microphone in the 20-80 Hz band. The
band is isolated with the same Butterworth engine as the gut path, reduced
to a smoothed amplitude envelope, and beats are located by peak picking
guided by the autocorrelation period. Results are only reported when enough
physiologically plausible beats survive; otherwise zeros and invalid flags
are returned rather than a guessed number.
"""

import logging
import math

import numpy as np

from scipy import signal
from scipy.ndimage import uniform_filter1d

from gutsense.analysis.config import DEFAULT_CONFIG, DetectionConfig
from gutsense.analysis.filters import FilterCache, apply_zero_phase_filter, heart_filter
from gutsense.analysis.spectral import autocorrelation
from gutsense.analysis.types import HeartAnalytics
from gutsense.constants import MILLISECONDS_PER_SECOND, SECONDS_PER_MINUTE
from gutsense.constants import HeartConstants as HRC

logger = logging.getLogger(__name__)


def compute_rmssd(intervals_ms: list[float] | np.ndarray) -> float:
    """
    Root mean square of successive interval differences.

    Example:
        >>> compute_rmssd([800, 800, 800])
        0.0
        >>> compute_rmssd([700, 900, 700, 900])
        200.0
    """
    intervals = np.asarray(intervals_ms, dtype=np.float64)
    if len(intervals) < 2:
        return 0.0
    diffs = np.diff(intervals)
    return float(np.sqrt(np.mean(diffs * diffs)))


def compute_vagal_tone_score(rmssd: float) -> float:
    """Linear map of RMSSD 20-80 ms onto 0-100, clamped."""
    span = HRC.VAGAL_RMSSD_HIGH - HRC.VAGAL_RMSSD_LOW
    return max(0.0, min(100.0, (rmssd - HRC.VAGAL_RMSSD_LOW) / span * 100.0))


# ============================================================================
# Envelope and Beat Detection
# ============================================================================


def compute_envelope(
    samples: np.ndarray, sample_rate: float
) -> tuple[np.ndarray, float]:
    """
    Smoothed amplitude envelope, decimated to about 1 kHz.

    |x| is smoothed by a centered 50 ms moving average, then averaged in
    blocks down to the envelope rate.

    Returns:
        (envelope, envelope_rate_hz)
    """
    magnitude = np.abs(np.asarray(samples, dtype=np.float64))
    n = len(magnitude)
    if n == 0:
        return np.zeros(0), float(sample_rate)

    half = int(HRC.ENVELOPE_SMOOTHING_MS / MILLISECONDS_PER_SECOND * sample_rate) // 2
    smoothed = uniform_filter1d(magnitude, size=2 * half + 1, mode="nearest")

    factor = max(1, int(sample_rate // HRC.ENVELOPE_RATE_HZ))
    blocks = n // factor
    if blocks == 0:
        return smoothed, float(sample_rate)
    envelope = smoothed[: blocks * factor].reshape(blocks, factor).mean(axis=1)
    return envelope, sample_rate / factor


def estimate_beat_period(
    envelope: np.ndarray, envelope_rate: float
) -> tuple[int | None, float]:
    """
    Dominant beat period by autocorrelation over 400-1500 ms lags.

    Returns:
        (period in envelope samples, correlation at that lag); (None, 0.0)
        when the envelope is shorter than the smallest lag
    """
    min_lag = int(HRC.MIN_INTERVAL_MS / MILLISECONDS_PER_SECOND * envelope_rate)
    max_lag = int(HRC.MAX_INTERVAL_MS / MILLISECONDS_PER_SECOND * envelope_rate)
    if len(envelope) <= min_lag + 1 or min_lag < 1:
        return None, 0.0

    max_lag = min(max_lag, len(envelope) - 1)
    r = autocorrelation(envelope, max_lag)[min_lag:]
    best = int(np.argmax(r))
    return min_lag + best, float(max(0.0, r[best]))


def detect_envelope_peaks(envelope: np.ndarray, envelope_rate: float) -> list[int]:
    """
    Candidate beats: prominent local maxima of the envelope.

    A peak must reach the 75th percentile of the envelope and 1.5x the mean
    of the surrounding +/-250 ms. Of peaks closer than 400 ms the higher one
    is kept.
    """
    x = np.asarray(envelope, dtype=np.float64)
    if len(x) < 3:
        return []

    half = int(HRC.PROMINENCE_WINDOW_MS / MILLISECONDS_PER_SECOND * envelope_rate)
    local_mean = uniform_filter1d(x, size=2 * half + 1, mode="nearest")
    min_height = np.maximum(
        np.percentile(x, HRC.PEAK_PERCENTILE), HRC.PROMINENCE_RATIO * local_mean
    )
    min_distance = max(1, int(HRC.MIN_INTERVAL_MS / MILLISECONDS_PER_SECOND * envelope_rate))

    peaks, _ = signal.find_peaks(x, height=min_height, distance=min_distance)
    return [int(p) for p in peaks]


def align_peaks_to_period(
    peaks: list[int], envelope: np.ndarray, period: int
) -> list[int]:
    """
    Re-select beats so that they follow the dominant period.

    Starting from the highest peak, walk forward and backward one period at
    a time. Within +/-15% of each expected position the highest detected
    peak is taken and the walk continues from it. A slot with no detected
    peak is skipped; no beat is placed there. Detected peaks off the period
    grid are dropped.
    """
    if not peaks or period <= 0:
        return list(peaks)

    tolerance = max(1, int(period * HRC.PERIOD_TOLERANCE))
    candidates = np.asarray(peaks)
    anchor = int(max(peaks, key=lambda p: envelope[p]))
    last = len(envelope) - 1

    def pick(expected: int) -> int | None:
        near = candidates[np.abs(candidates - expected) <= tolerance]
        if len(near) == 0:
            return None
        return int(max(near, key=lambda p: envelope[p]))

    aligned = [anchor]
    for step in (period, -period):
        position = anchor
        while 0 <= position + step <= last:
            beat = pick(position + step)
            if beat is None:
                position += step
                continue
            aligned.append(beat)
            position = beat

    return sorted(set(aligned))


def clean_intervals(intervals_ms: np.ndarray) -> np.ndarray:
    """Keep intervals in 400-1500 ms, then within 30% of their median."""
    intervals = np.asarray(intervals_ms, dtype=np.float64)
    plausible = intervals[
        (intervals >= HRC.MIN_INTERVAL_MS) & (intervals <= HRC.MAX_INTERVAL_MS)
    ]
    if len(plausible) == 0:
        return plausible
    median = float(np.median(plausible))
    return plausible[np.abs(plausible - median) <= HRC.OUTLIER_TOLERANCE * median]


# ============================================================================
# Analysis
# ============================================================================


def analyze_heart_rate(
    samples: np.ndarray,
    duration_seconds: float,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
    filter_cache: FilterCache | None = None,
) -> HeartAnalytics:
    """
    Extract heart rate and HRV from the 20-80 Hz band.

    Args:
        samples: Raw audio samples
        duration_seconds: Recording duration (s)
        sample_rate: Sample rate (Hz)
        config: Detection thresholds
        filter_cache: Cache for the designed heart-band filter

    Returns:
        HeartAnalytics. bpm is 0 unless at least 10 beats give a rate in
        40-150 bpm; HRV (rmssd, vagal tone) needs 20 clean intervals.

    Raises:
        ValueError: If sample_rate is not positive
    """
    cfg = config.heart
    x = np.asarray(samples, dtype=np.float64)

    if len(x) == 0 or duration_seconds < HRC.MIN_DURATION_S:
        logger.debug(f"Heart analysis skipped: {duration_seconds:.1f}s recording")
        return HeartAnalytics()
    if sample_rate <= 0:
        raise ValueError(f"Sample rate must be positive, got {sample_rate}")

    cache = filter_cache if filter_cache is not None else FilterCache()
    filtered = apply_zero_phase_filter(heart_filter(sample_rate, cache), x)
    envelope, envelope_rate = compute_envelope(filtered, sample_rate)

    period, period_confidence = estimate_beat_period(envelope, envelope_rate)
    peaks = detect_envelope_peaks(envelope, envelope_rate)
    if period is not None and period_confidence >= cfg.min_autocorr_confidence:
        peaks = align_peaks_to_period(peaks, envelope, period)
        logger.debug(
            f"Beat period {period / envelope_rate * 1000:.0f} ms "
            f"(r={period_confidence:.2f}); {len(peaks)} aligned beats"
        )

    timestamps_ms = [p / envelope_rate * MILLISECONDS_PER_SECOND for p in peaks]
    beat_count = len(peaks)

    if beat_count < cfg.min_beats_for_bpm:
        logger.info(f"Insufficient heart beats ({beat_count} < {cfg.min_beats_for_bpm})")
        return HeartAnalytics(
            beat_count=beat_count,
            confidence=round(min(1.0, beat_count / cfg.min_beats_for_bpm), 2),
            peak_timestamps=[round(t) for t in timestamps_ms],
        )

    intervals = clean_intervals(np.diff(timestamps_ms))
    if len(intervals) == 0:
        logger.info("No physiologically plausible beat intervals")
        return HeartAnalytics(
            beat_count=beat_count,
            peak_timestamps=[round(t) for t in timestamps_ms],
        )

    avg_interval = float(np.mean(intervals))
    interval_std = float(np.std(intervals))
    bpm = SECONDS_PER_MINUTE * MILLISECONDS_PER_SECOND / avg_interval
    bpm_valid = cfg.min_bpm <= bpm <= cfg.max_bpm

    hrv_valid = len(intervals) >= cfg.min_beats_for_hrv
    rmssd = compute_rmssd(intervals) if hrv_valid else 0.0
    vagal = compute_vagal_tone_score(rmssd) if hrv_valid else 0.0

    expected_beats = duration_seconds / SECONDS_PER_MINUTE * HRC.EXPECTED_BPM
    confidence = 0.5 * min(1.0, beat_count / expected_beats)
    if bpm_valid:
        confidence += 0.25
    confidence += 0.25 * max(0.0, 1.0 - interval_std / avg_interval)

    logger.info(
        f"Heart rate: {bpm:.1f} bpm ({'valid' if bpm_valid else 'out of range'}), "
        f"RMSSD {rmssd:.1f} ms, {beat_count} beats"
    )
    return HeartAnalytics(
        bpm=int(round(bpm)) if bpm_valid else 0,
        rmssd=round(rmssd, 1),
        vagal_tone_score=int(round(vagal)),
        confidence=round(min(1.0, confidence), 2),
        beat_count=beat_count,
        avg_interval_ms=round(avg_interval),
        interval_std_dev=round(interval_std, 1),
        hrv_valid=hrv_valid,
        peak_timestamps=[round(t) for t in timestamps_ms],
    )


def check_heart_signal_presence(
    samples: np.ndarray,
    sample_rate: float,
    filter_cache: FilterCache | None = None,
) -> tuple[bool, float]:
    """
    Quick check for usable energy in the heart band.

    Returns:
        (has_signal, strength) where strength is the RMS ratio of the
        20-80 Hz band to the whole signal; needs at least 3 s of audio and a
        ratio above 0.01
    """
    x = np.asarray(samples, dtype=np.float64)
    if len(x) < sample_rate * HRC.PRESENCE_MIN_DURATION_S:
        return False, 0.0

    cache = filter_cache if filter_cache is not None else FilterCache()
    filtered = apply_zero_phase_filter(heart_filter(sample_rate, cache), x)
    original_rms = math.sqrt(float(np.mean(x * x)))
    if original_rms <= 0:
        return False, 0.0

    strength = math.sqrt(float(np.mean(filtered * filtered))) / original_rms
    return strength > HRC.PRESENCE_RMS_RATIO, strength
