"""
Spectral primitives for acoustic event analysis.

Pure functions over sample and magnitude arrays: a radix-2 FFT, windowing,
and the shape measures (flatness, contrast, entropy, zero-crossing rate,
band energy ratio, autocorrelation) used by the classifiers downstream.
Identical input always produces identical output.
"""

import math

import numpy as np

from gutsense.constants import SpectralConstants as SC

# Below this size a direct DFT matrix product is faster than recursing further.
_DFT_BASE_SIZE = 32


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    if n <= 1:
        return 1
    return 1 << (int(n) - 1).bit_length()


def fft(samples: np.ndarray) -> np.ndarray:
    """
    Radix-2 Cooley-Tukey FFT.

    Input that is not a power of two long is zero-padded up to the next
    power of two. Leading dimensions are treated as independent frames, so a
    (frames, n) array transforms every row in one call.

    Args:
        samples: Real or complex samples, transformed along the last axis

    Returns:
        Complex spectrum with a power-of-two length along the last axis

    Example:
        >>> spectrum = fft(np.array([1.0, 0.0, 0.0]))
        >>> len(spectrum)
        4
    """
    x = np.asarray(samples, dtype=np.complex128)
    n = x.shape[-1] if x.ndim else 0
    if n == 0:
        return np.zeros(x.shape[:-1] + (0,), dtype=np.complex128)

    size = next_power_of_two(n)
    if size != n:
        pad = [(0, 0)] * (x.ndim - 1) + [(0, size - n)]
        x = np.pad(x, pad)

    return _fft_recursive(x)


def _fft_recursive(x: np.ndarray) -> np.ndarray:
    n = x.shape[-1]
    if n <= _DFT_BASE_SIZE:
        k = np.arange(n)
        dft = np.exp(-2j * np.pi * np.outer(k, k) / n)
        return x @ dft.T

    even = _fft_recursive(x[..., 0::2])
    odd = _fft_recursive(x[..., 1::2])
    twiddled = np.exp(-2j * np.pi * np.arange(n // 2) / n) * odd
    return np.concatenate([even + twiddled, even - twiddled], axis=-1)


def magnitude_spectrum(samples: np.ndarray) -> np.ndarray:
    """
    Magnitudes of the positive-frequency half of the FFT.

    Args:
        samples: Time-domain samples (zero-padded to a power of two)

    Returns:
        |X[k]| for k in [0, N/2) where N is the padded length
    """
    spectrum = fft(samples)
    half = spectrum.shape[-1] // 2
    return np.abs(spectrum[..., :half])


def hann_window(n: int) -> np.ndarray:
    """Symmetric Hann window of length n."""
    if n <= 0:
        return np.zeros(0)
    if n == 1:
        return np.ones(1)
    i = np.arange(n)
    return 0.5 * (1.0 - np.cos(2.0 * np.pi * i / (n - 1)))


def windowed_frame(samples: np.ndarray, size: int) -> np.ndarray:
    """
    Hann-windowed frame of exactly `size` samples.

    Longer input is truncated; shorter input is windowed over its own length
    and zero-padded.
    """
    x = np.asarray(samples, dtype=np.float64)[:size]
    frame = np.zeros(size)
    frame[: len(x)] = x * hann_window(len(x))
    return frame


def spectral_flatness(magnitudes: np.ndarray) -> float:
    """
    Spectral Flatness Measure: geometric mean / arithmetic mean.

    Near-zero bins are excluded so that exact zeros do not collapse the
    geometric mean. 1.0 is white noise, values near 0 are tonal.

    Args:
        magnitudes: Magnitude spectrum

    Returns:
        SFM clamped to [0, 1]; 0 if no bin is above the floor
    """
    mags = np.asarray(magnitudes, dtype=np.float64)
    valid = mags[mags > SC.MAGNITUDE_FLOOR]
    if len(valid) == 0:
        return 0.0

    arithmetic_mean = float(np.mean(valid))
    if arithmetic_mean <= 0:
        return 0.0
    geometric_mean = float(np.exp(np.mean(np.log(valid))))
    return float(min(1.0, max(0.0, geometric_mean / arithmetic_mean)))


def zero_crossing_rate(samples: np.ndarray) -> float:
    """Sign changes per sample pair; 0 for fewer than 2 samples."""
    x = np.asarray(samples, dtype=np.float64)
    if len(x) < 2:
        return 0.0
    non_negative = x >= 0
    crossings = int(np.count_nonzero(non_negative[1:] != non_negative[:-1]))
    return crossings / (len(x) - 1)


def spectral_contrast(magnitudes: np.ndarray) -> float:
    """
    Peak-to-valley contrast of a magnitude spectrum.

    (mean of top 10% bins - mean of bottom 50%) / mean of top 10%.

    Returns:
        Contrast in [0, 1]; 0 for fewer than 10 bins or a silent spectrum
    """
    mags = np.sort(np.asarray(magnitudes, dtype=np.float64))
    n = len(mags)
    if n < SC.CONTRAST_MIN_BINS:
        return 0.0

    peak_count = max(1, int(n * SC.CONTRAST_PEAK_FRACTION))
    valley_count = max(1, int(n * SC.CONTRAST_VALLEY_FRACTION))
    peak = float(np.mean(mags[-peak_count:]))
    valley = float(np.mean(mags[:valley_count]))
    if peak <= 0:
        return 0.0
    return float(min(1.0, max(0.0, (peak - valley) / peak)))


def spectral_entropy(magnitudes: np.ndarray) -> float:
    """
    Normalized Shannon entropy of the power spectrum.

    Returns:
        Entropy / log2(N) in [0, 1]; 0 for fewer than 2 bins or no power
    """
    mags = np.asarray(magnitudes, dtype=np.float64)
    n = len(mags)
    if n < 2:
        return 0.0

    power = mags**2
    total = float(np.sum(power))
    if total <= 0:
        return 0.0

    p = power[power > 0] / total
    entropy = float(-np.sum(p * np.log2(p)))
    return entropy / math.log2(n)


def band_energy_ratio(
    magnitudes: np.ndarray,
    sample_rate: float,
    fft_size: int,
    low_hz: float,
    high_hz: float,
) -> float:
    """
    Fraction of spectral energy between low_hz and high_hz.

    Bins floor(low/bin_hz) through ceil(high/bin_hz) inclusive count as
    in-band.

    Args:
        magnitudes: Positive-frequency magnitude spectrum
        sample_rate: Sample rate in Hz
        fft_size: FFT length that produced the magnitudes
        low_hz: Lower band edge
        high_hz: Upper band edge

    Returns:
        Ratio in [0, 1]; 0 for a silent spectrum
    """
    mags = np.asarray(magnitudes, dtype=np.float64)
    energy = mags**2
    total = float(np.sum(energy))
    if total <= 0:
        return 0.0

    bin_hz = sample_rate / fft_size
    low_bin = int(math.floor(low_hz / bin_hz))
    high_bin = int(math.ceil(high_hz / bin_hz))
    return float(np.sum(energy[low_bin : high_bin + 1])) / total


def autocorrelation(samples: np.ndarray, max_lag: int) -> np.ndarray:
    """
    Mean-centered autocorrelation normalized by zero-lag energy.

    r[0] is 1 by construction. A zero-energy input returns all zeros.

    Args:
        samples: Time-domain samples
        max_lag: Largest lag to compute (inclusive)

    Returns:
        Array of max_lag + 1 correlation values
    """
    x = np.asarray(samples, dtype=np.float64)
    max_lag = max(0, int(max_lag))
    result = np.zeros(max_lag + 1)
    if len(x) == 0:
        return result

    centered = x - np.mean(x)
    energy = float(np.dot(centered, centered))
    if energy <= 0:
        return result

    n = len(centered)
    for lag in range(min(max_lag, n - 1) + 1):
        result[lag] = np.dot(centered[: n - lag], centered[lag:]) / energy
    return result
