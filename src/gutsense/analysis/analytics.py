"""
Session analytics aggregation.

Turns accepted events into the numbers a user sees: events per minute,
active and quiet time, a 0-100 Motility Index weighted by signal quality,
an activity timeline, and the Peak-Frequency Histogram Similarity (PFHS)
score against a healthy reference pattern.
"""

import logging
import math

import numpy as np

from gutsense.analysis.spectral import magnitude_spectrum, windowed_frame
from gutsense.analysis.types import PFHSResult, RhythmicityAnalysis, SessionAnalytics
from gutsense.constants import MotilityCategory, SignalQuality
from gutsense.constants import AnalyticsConstants as ANC
from gutsense.constants import SpectralConstants as SC

logger = logging.getLogger(__name__)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ============================================================================
# Motility Index
# ============================================================================


def compute_motility_index(
    events_per_minute: float,
    active_fraction: float,
    signal_quality: SignalQuality = SignalQuality.GOOD,
) -> int:
    """
    Motility Index (0-100).

    0.7 x events per minute normalized over 0-20, plus 0.3 x the active
    fraction as a percentage. Poor signal quality forces 0; fair halves the
    index.

    Example:
        >>> compute_motility_index(10.0, 0.5)
        50
        >>> compute_motility_index(10.0, 0.5, SignalQuality.FAIR)
        25
    """
    if signal_quality == SignalQuality.POOR:
        return 0

    normalized_epm = _clamp(events_per_minute / ANC.MAX_EVENTS_PER_MINUTE * 100.0, 0.0, 100.0)
    activeness = _clamp(active_fraction, 0.0, 1.0) * 100.0
    index = round(normalized_epm * ANC.EPM_WEIGHT + activeness * ANC.ACTIVE_WEIGHT)

    if signal_quality == SignalQuality.FAIR:
        index = round(index * ANC.FAIR_QUALITY_WEIGHT)
    return int(_clamp(index, 0, 100))


def categorize_motility(motility_index: int) -> MotilityCategory:
    if motility_index < ANC.QUIET_BELOW:
        return MotilityCategory.QUIET
    if motility_index < ANC.ACTIVE_FROM:
        return MotilityCategory.NORMAL
    return MotilityCategory.ACTIVE


def build_activity_timeline(
    energies: np.ndarray, segments: int = ANC.TIMELINE_SEGMENTS
) -> list[int]:
    """
    Relative activity per segment of the recording.

    Windows are split into `segments` chunks of ceil(n / segments) windows.
    Each value is round(chunk mean / recording max * 100); chunks past the
    end are 0.
    """
    values = np.asarray(energies, dtype=np.float64)
    if len(values) == 0:
        return [0] * segments

    per_segment = math.ceil(len(values) / segments)
    max_energy = float(np.max(values))
    timeline = []
    for i in range(segments):
        chunk = values[i * per_segment : (i + 1) * per_segment]
        if len(chunk) == 0 or max_energy <= 0:
            timeline.append(0)
        else:
            timeline.append(int(round(float(np.mean(chunk)) / max_energy * 100)))
    return timeline


# ============================================================================
# Frequency Histogram
# ============================================================================


def estimate_peak_frequency(samples: np.ndarray, sample_rate: float) -> float | None:
    """
    Dominant frequency of an event inside the 100-450 Hz bowel band.

    Returns:
        Frequency (Hz) of the strongest in-band bin of the first Hann-windowed
        2048 samples, or None for a silent event
    """
    x = np.asarray(samples, dtype=np.float64)
    if len(x) == 0:
        return None

    mags = magnitude_spectrum(windowed_frame(x, SC.FFT_SIZE))
    bin_hz = sample_rate / SC.FFT_SIZE
    low = int(math.ceil(ANC.HISTOGRAM_LOW_HZ / bin_hz))
    high = min(len(mags) - 1, int(ANC.HISTOGRAM_HIGH_HZ / bin_hz))
    if low > high:
        return None

    band = mags[low : high + 1]
    if float(np.max(band)) <= 0:
        return None
    return (low + int(np.argmax(band))) * bin_hz


def build_frequency_histogram(peak_frequencies: list[float]) -> list[float]:
    """
    Normalized 8-bin histogram of event peak frequencies over 100-450 Hz.

    Frequencies outside the band are ignored. An empty input gives all
    zeros.
    """
    counts = [0] * ANC.HISTOGRAM_BINS
    width = (ANC.HISTOGRAM_HIGH_HZ - ANC.HISTOGRAM_LOW_HZ) / ANC.HISTOGRAM_BINS
    for frequency in peak_frequencies:
        if ANC.HISTOGRAM_LOW_HZ <= frequency <= ANC.HISTOGRAM_HIGH_HZ:
            index = min(ANC.HISTOGRAM_BINS - 1, int((frequency - ANC.HISTOGRAM_LOW_HZ) / width))
            counts[index] += 1

    total = sum(counts)
    if total == 0:
        return [0.0] * ANC.HISTOGRAM_BINS
    return [c / total for c in counts]


def _pearson(x: list[float], y: list[float]) -> float:
    a = np.asarray(x, dtype=np.float64)
    b = np.asarray(y, dtype=np.float64)
    if len(a) < 2:
        return 0.0
    da = a - a.mean()
    db = b - b.mean()
    denominator = math.sqrt(float(np.dot(da, da)) * float(np.dot(db, db)))
    if denominator == 0:
        return 0.0
    return _clamp(float(np.dot(da, db)) / denominator, -1.0, 1.0)


def compute_pfhs(
    frequency_histogram: list[float],
    peak_frequencies: list[float] | None = None,
) -> PFHSResult:
    """
    Peak-Frequency Histogram Similarity against the healthy reference.

    Score = clamp((r + 1) * 40, 0, 80) from the Pearson correlation r with
    the reference, plus 5 points per peak frequency within 30 Hz of 200 or
    250 Hz (at most 20).

    Args:
        frequency_histogram: 8-bin histogram; other lengths are replaced by
            a uniform histogram
        peak_frequencies: Detected event peak frequencies (Hz)

    Returns:
        PFHSResult; a histogram summing below 0.01 scores 0
    """
    reference = list(ANC.HEALTHY_GUT_HISTOGRAM)
    histogram = (
        list(frequency_histogram)
        if len(frequency_histogram) == ANC.HISTOGRAM_BINS
        else [1.0 / ANC.HISTOGRAM_BINS] * ANC.HISTOGRAM_BINS
    )

    total = sum(histogram)
    if total < 0.01:
        return PFHSResult(
            score=0,
            correlation=0.0,
            peak_bonus=0,
            detected_peaks=[],
            is_healthy_pattern=False,
            input_histogram=histogram,
            reference_histogram=reference,
        )

    normalized = [h / total for h in histogram]
    correlation = _pearson(normalized, reference)
    base_score = _clamp((correlation + 1.0) * 40.0, 0.0, ANC.MAX_CORRELATION_SCORE)

    bonus = 0
    detected_peaks: list[int] = []
    for frequency in peak_frequencies or []:
        for reference_peak in ANC.REFERENCE_PEAKS_HZ:
            if abs(frequency - reference_peak) <= ANC.PEAK_TOLERANCE_HZ:
                bonus += ANC.PEAK_BONUS
                if round(frequency) not in detected_peaks:
                    detected_peaks.append(int(round(frequency)))
                break
    bonus = min(ANC.MAX_PEAK_BONUS, bonus)

    score = int(round(min(100.0, base_score + bonus)))
    return PFHSResult(
        score=score,
        correlation=correlation,
        peak_bonus=bonus,
        detected_peaks=detected_peaks,
        is_healthy_pattern=correlation > ANC.HEALTHY_CORRELATION and score > ANC.HEALTHY_SCORE,
        input_histogram=normalized,
        reference_histogram=reference,
    )


def calculate_session_pfhs(analytics: SessionAnalytics) -> PFHSResult:
    histogram = analytics.frequency_histogram or [0.0] * ANC.HISTOGRAM_BINS
    return compute_pfhs(histogram, analytics.peak_frequencies)


# ============================================================================
# Rhythmicity
# ============================================================================


def _band_score(value: float, bands: tuple[tuple[float, float, int], ...]) -> int:
    for low, high, score in bands:
        if low <= value <= high:
            return score
    return 25


def calculate_rhythmicity_index(analytics: SessionAnalytics) -> RhythmicityAnalysis:
    """
    Consistency of gut activity over a session.

    Weighted 0.5 / 0.25 / 0.25 from the timeline's coefficient of variation
    (100 - CV%), an events-per-minute band score (5-15 ideal) and an
    active-time band score (30-60% ideal). An empty timeline is neutral (50).
    """
    timeline = analytics.activity_timeline
    if not timeline:
        return RhythmicityAnalysis(
            index=50, activity_cv=0.0, frequency_consistency=50, ratio_stability=50
        )

    values = np.asarray(timeline, dtype=np.float64)
    mean = float(values.mean())
    cv = float(values.std()) / mean * 100.0 if mean > 0 else 0.0
    cv_score = _clamp(100.0 - cv, 0.0, 100.0)

    frequency_score = _band_score(
        analytics.events_per_minute, ((5, 15, 100), (3, 20, 75), (1, 25, 50))
    )

    total_seconds = analytics.total_active_seconds + analytics.total_quiet_seconds
    active_percent = analytics.total_active_seconds / total_seconds * 100.0 if total_seconds else 0.0
    ratio_score = _band_score(active_percent, ((30, 60, 100), (20, 70, 75), (10, 80, 50)))

    index = round(
        cv_score * ANC.RHYTHM_CV_WEIGHT
        + frequency_score * ANC.RHYTHM_FREQUENCY_WEIGHT
        + ratio_score * ANC.RHYTHM_RATIO_WEIGHT
    )
    return RhythmicityAnalysis(
        index=int(_clamp(index, 0, 100)),
        activity_cv=cv,
        frequency_consistency=frequency_score,
        ratio_stability=ratio_score,
    )
