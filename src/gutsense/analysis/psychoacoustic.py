"""
Recording-level psychoacoustic gating.

Runs once per recording, before any event is examined. Constant air noise
has a spectral entropy that barely changes from one 400 ms window to the
next; mains hum and fans repeat at a fixed mechanical period. Either
condition zeroes the whole recording. A separate check flags recordings
whose windows mostly classify as white noise.
"""

import logging

import numpy as np

from gutsense.analysis.config import DEFAULT_CONFIG, DetectionConfig
from gutsense.analysis.spectral import (
    autocorrelation,
    hann_window,
    magnitude_spectrum,
    spectral_entropy,
)
from gutsense.analysis.types import AirNoiseCheck, PsychoacousticGating
from gutsense.analysis.vetoes import classify_spectral_noise
from gutsense.constants import MILLISECONDS_PER_SECOND, GatingReason
from gutsense.constants import PsychoacousticConstants as PC
from gutsense.constants import SpectralConstants as SC

logger = logging.getLogger(__name__)


def window_entropies(samples: np.ndarray, sample_rate: float) -> np.ndarray:
    """
    Spectral entropy of each full 400 ms window.

    Each window is represented by its first 2048 samples, Hann windowed
    (zero-padded when the window itself is shorter).
    """
    x = np.asarray(samples, dtype=np.float64)
    window = int(PC.ENTROPY_WINDOW_MS / MILLISECONDS_PER_SECOND * sample_rate)
    if window <= 0:
        return np.zeros(0)
    n_windows = len(x) // window
    if n_windows == 0:
        return np.zeros(0)

    frame = min(window, SC.FFT_SIZE)
    block = np.zeros((n_windows, SC.FFT_SIZE))
    for i in range(n_windows):
        block[i, :frame] = x[i * window : i * window + frame]
    block[:, :frame] *= hann_window(frame)

    mags = magnitude_spectrum(block)
    return np.array([spectral_entropy(row) for row in mags])


def check_stationarity(
    samples: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> tuple[bool, float, int]:
    """
    Flag constant air noise by the stability of its spectral entropy.

    Returns:
        (is_stationary, entropy_variance, windows_analyzed). Stationary needs
        at least 4 windows with entropy variance below 0.001.
    """
    cfg = config.psychoacoustic
    entropies = window_entropies(samples, sample_rate)
    if len(entropies) < 2:
        return False, 0.0, len(entropies)

    variance = float(np.var(entropies))
    is_stationary = (
        len(entropies) >= cfg.min_stationary_windows
        and variance < cfg.entropy_variance_threshold
    )
    return is_stationary, variance, len(entropies)


def _matching_mechanical_period(period_ms: float, tolerance: float) -> float | None:
    for frequency in PC.MECHANICAL_FREQUENCIES_HZ:
        expected_ms = MILLISECONDS_PER_SECOND / frequency
        if abs(period_ms - expected_ms) <= tolerance * expected_ms:
            return expected_ms
    return None


def check_mechanical_rhythm(
    samples: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> tuple[bool, float | None]:
    """
    Flag mains hum and fans by a periodicity at a known mechanical period.

    Up to five consecutive 8192-sample segments are analyzed. In each, the
    autocorrelation peak between lags sr/400 and sr/40 (searched after the
    first negative value, so the zero-lag lobe is skipped) must reach 0.7
    and its period must lie within 5% of 1000/f ms for one of the mains and
    fan frequencies. A majority of segments must match.

    Returns:
        (is_rhythmic, detected_period_ms)
    """
    cfg = config.psychoacoustic
    x = np.asarray(samples, dtype=np.float64)
    segment = PC.RHYTHM_SEGMENT_SAMPLES
    n_segments = min(PC.RHYTHM_MAX_SEGMENTS, len(x) // segment)
    if n_segments == 0:
        return False, None

    min_lag = max(1, int(sample_rate / PC.RHYTHM_MAX_HZ))
    max_lag = min(int(sample_rate / PC.RHYTHM_MIN_HZ), segment - 1)
    matched_periods: list[float] = []

    for i in range(n_segments):
        r = autocorrelation(x[i * segment : (i + 1) * segment], max_lag)
        negative = np.nonzero(r[1:] < 0)[0]
        if len(negative) == 0:
            continue
        search_from = max(min_lag, int(negative[0]) + 1)
        if search_from > max_lag:
            continue

        lag = search_from + int(np.argmax(r[search_from:]))
        if r[lag] < cfg.periodicity_threshold:
            continue

        period_ms = lag / sample_rate * MILLISECONDS_PER_SECOND
        expected = _matching_mechanical_period(period_ms, cfg.period_tolerance)
        if expected is not None:
            matched_periods.append(period_ms)

    is_rhythmic = len(matched_periods) > n_segments / 2
    detected = float(np.median(matched_periods)) if is_rhythmic else None
    if is_rhythmic:
        logger.debug(
            f"Mechanical rhythm in {len(matched_periods)}/{n_segments} segments "
            f"(period {detected:.2f} ms)"
        )
    return is_rhythmic, detected


def evaluate_psychoacoustic_gating(
    samples: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> PsychoacousticGating:
    """
    Run both recording-level gates.

    Stationarity takes precedence as the gating reason when both fire.

    Args:
        samples: Raw audio samples
        sample_rate: Sample rate (Hz)
        config: Detection thresholds

    Returns:
        PsychoacousticGating
    """
    is_stationary, entropy_variance, windows = check_stationarity(samples, sample_rate, config)
    is_rhythmic, period_ms = check_mechanical_rhythm(samples, sample_rate, config)

    if is_stationary:
        reason = GatingReason.STATIONARY_NOISE
    elif is_rhythmic:
        reason = GatingReason.MECHANICAL_RHYTHM
    else:
        reason = None

    if reason is not None:
        logger.info(f"Psychoacoustic gate closed: {reason.value}")
    return PsychoacousticGating(
        should_gate=reason is not None,
        gating_reason=reason,
        is_stationary=is_stationary,
        entropy_variance=entropy_variance,
        entropy_windows=windows,
        is_rhythmic=is_rhythmic,
        detected_period_ms=period_ms,
    )


def check_air_noise_domination(
    samples: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> AirNoiseCheck:
    """
    Classify up to ten 2048-sample windows spread over the recording.

    The recording is air-noise dominated when more than 70% of them
    classify as white noise.
    """
    x = np.asarray(samples, dtype=np.float64)
    size = SC.FFT_SIZE
    available = len(x) // size
    analyzed = min(available, PC.AIR_NOISE_MAX_WINDOWS)
    if analyzed == 0:
        return AirNoiseCheck(
            is_dominated=False,
            white_noise_windows=0,
            windows_analyzed=0,
            white_noise_fraction=0.0,
        )

    step = max(1, available // analyzed)
    white = 0
    for i in range(analyzed):
        start = i * step * size
        if classify_spectral_noise(x[start : start + size], sample_rate, config).is_white_noise:
            white += 1

    fraction = white / analyzed
    is_dominated = fraction > config.psychoacoustic.air_noise_dominance
    if is_dominated:
        logger.info(f"Recording dominated by air noise ({white}/{analyzed} windows)")
    return AirNoiseCheck(
        is_dominated=is_dominated,
        white_noise_windows=white,
        windows_analyzed=analyzed,
        white_noise_fraction=fraction,
    )
