"""
Butterworth band-pass filter engine.

Filters are designed as cascades of RBJ cookbook biquads (one highpass and
one lowpass section per order) and applied with scipy's second-order-section
routines. Zero-phase application (forward, reverse, forward, reverse) keeps
burst timing intact for the duration-based vetoes downstream.
"""

import logging
import math

from dataclasses import dataclass, field

import numpy as np

from scipy import signal

from gutsense.analysis.spectral import fft, hann_window
from gutsense.constants import FilterConstants as FC

logger = logging.getLogger(__name__)

_BIRD_BATCH_FRAMES = 256


@dataclass(frozen=True)
class BiquadSection:
    """Second-order section coefficients, normalized so that a0 == 1."""

    b0: float
    b1: float
    b2: float
    a1: float
    a2: float

    def as_sos_row(self) -> list[float]:
        return [self.b0, self.b1, self.b2, 1.0, self.a1, self.a2]


@dataclass(frozen=True)
class ButterworthFilter:
    """
    Designed band-pass cascade.

    Attributes:
        sections: Highpass sections followed by lowpass sections
        sample_rate: Sample rate the coefficients were designed for (Hz)
        low_hz: Lower cutoff (Hz)
        high_hz: Upper cutoff (Hz)
        order: Sections per edge
    """

    sections: tuple[BiquadSection, ...]
    sample_rate: float
    low_hz: float
    high_hz: float
    order: int
    sos: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        sos = np.array([s.as_sos_row() for s in self.sections], dtype=np.float64)
        sos.setflags(write=False)
        object.__setattr__(self, "sos", sos)


# ============================================================================
# Design
# ============================================================================


def section_q_values(order: int) -> list[float]:
    """Q per biquad section for a given order."""
    if order == 1:
        return [FC.BUTTERWORTH_Q]
    if order == 2:
        return [FC.BUTTERWORTH_Q, FC.BUTTERWORTH_Q]
    if order == 3:
        return list(FC.ORDER3_Q_VALUES)
    return [FC.BUTTERWORTH_Q] * order


def _rbj_section(kind: str, cutoff_hz: float, sample_rate: float, q: float) -> BiquadSection:
    w0 = 2.0 * math.pi * cutoff_hz / sample_rate
    cos_w0 = math.cos(w0)
    alpha = math.sin(w0) / (2.0 * q)
    a0 = 1.0 + alpha

    if kind == "highpass":
        b0 = (1.0 + cos_w0) / 2.0
        b1 = -(1.0 + cos_w0)
    else:
        b0 = (1.0 - cos_w0) / 2.0
        b1 = 1.0 - cos_w0

    return BiquadSection(
        b0=b0 / a0,
        b1=b1 / a0,
        b2=b0 / a0,
        a1=(-2.0 * cos_w0) / a0,
        a2=(1.0 - alpha) / a0,
    )


def design_butterworth_bandpass(
    low_hz: float,
    high_hz: float,
    sample_rate: float,
    order: int = FC.DEFAULT_ORDER,
) -> ButterworthFilter:
    """
    Design a Butterworth-style band-pass as cascaded biquads.

    Order 3 (the standard) yields six sections: three highpass at low_hz and
    three lowpass at high_hz.

    Args:
        low_hz: Lower cutoff frequency (Hz)
        high_hz: Upper cutoff frequency (Hz)
        sample_rate: Sample rate (Hz)
        order: Sections per band edge

    Returns:
        Immutable ButterworthFilter

    Raises:
        ValueError: If the band is empty, non-positive, or reaches Nyquist

    Example:
        >>> gut = design_butterworth_bandpass(100, 450, 44100)
        >>> len(gut.sections)
        6
    """
    if sample_rate <= 0:
        raise ValueError(f"Sample rate must be positive, got {sample_rate}")
    nyquist = sample_rate / 2.0
    if low_hz <= 0:
        raise ValueError(f"Low cutoff must be positive, got {low_hz} Hz")
    if low_hz >= high_hz:
        raise ValueError(
            f"Low cutoff ({low_hz} Hz) must be below high cutoff ({high_hz} Hz)"
        )
    if high_hz >= nyquist:
        raise ValueError(
            f"High cutoff ({high_hz} Hz) must be below Nyquist ({nyquist} Hz)"
        )
    if order < 1:
        raise ValueError(f"Filter order must be at least 1, got {order}")

    q_values = section_q_values(order)
    sections = [_rbj_section("highpass", low_hz, sample_rate, q) for q in q_values]
    sections += [_rbj_section("lowpass", high_hz, sample_rate, q) for q in q_values]

    logger.debug(
        f"Designed {low_hz:.0f}-{high_hz:.0f} Hz band-pass at {sample_rate:.0f} Hz "
        f"({len(sections)} sections)"
    )
    return ButterworthFilter(
        sections=tuple(sections),
        sample_rate=float(sample_rate),
        low_hz=float(low_hz),
        high_hz=float(high_hz),
        order=order,
    )


# ============================================================================
# Application
# ============================================================================


def apply_filter(bandpass: ButterworthFilter, samples: np.ndarray) -> np.ndarray:
    """
    Run the cascade once, causally. Returns a new array.

    sosfilt needs writable buffers, so the frozen coefficients and the input
    are passed as copies.
    """
    x = np.array(samples, dtype=np.float64)
    if len(x) == 0:
        return np.zeros(0)
    return signal.sosfilt(np.array(bandpass.sos), x)


def apply_zero_phase_filter(bandpass: ButterworthFilter, samples: np.ndarray) -> np.ndarray:
    """
    Forward-backward filtering with no phase shift.

    Runs the cascade forward, reverses, runs it again and reverses back, so
    the magnitude response is squared and group delay cancels.

    Args:
        bandpass: Designed filter
        samples: Input samples (not modified)

    Returns:
        New filtered array of the same length
    """
    forward = apply_filter(bandpass, samples)
    backward = apply_filter(bandpass, forward[::-1])
    return np.ascontiguousarray(backward[::-1])


def measure_filter_attenuation(bandpass: ButterworthFilter, frequency_hz: float) -> float:
    """
    Measured gain of the zero-phase filter at one frequency.

    Filters a 100 ms unit sinusoid and compares RMS over the second half,
    after the filter has settled.

    Returns:
        Gain in dB (negative means attenuation)
    """
    n = int(bandpass.sample_rate * FC.ATTENUATION_TEST_DURATION_S)
    t = np.arange(n) / bandpass.sample_rate
    tone = np.sin(2.0 * np.pi * frequency_hz * t)
    filtered = apply_zero_phase_filter(bandpass, tone)

    start = int(n * FC.ATTENUATION_SETTLE_FRACTION)
    in_rms = float(np.sqrt(np.mean(tone[start:] ** 2)))
    out_rms = float(np.sqrt(np.mean(filtered[start:] ** 2)))
    if in_rms <= 0 or out_rms <= 0:
        return -math.inf if in_rms > 0 else 0.0
    return 20.0 * math.log10(out_rms / in_rms)


# ============================================================================
# Filter Cache
# ============================================================================


class FilterCache:
    """
    Designed filters keyed by (low_hz, high_hz, sample_rate, order).

    Owned by an AnalysisContext rather than the module so that callers
    decide its lifetime. Distinct bands coexist; invalidate() drops all.
    """

    def __init__(self) -> None:
        self._filters: dict[tuple[float, float, float, int], ButterworthFilter] = {}

    def get(
        self,
        low_hz: float,
        high_hz: float,
        sample_rate: float,
        order: int = FC.DEFAULT_ORDER,
    ) -> ButterworthFilter:
        key = (float(low_hz), float(high_hz), float(sample_rate), int(order))
        cached = self._filters.get(key)
        if cached is None:
            cached = design_butterworth_bandpass(low_hz, high_hz, sample_rate, order)
            self._filters[key] = cached
        return cached

    def invalidate(self) -> None:
        self._filters.clear()

    def __len__(self) -> int:
        return len(self._filters)


def gut_filter(sample_rate: float, cache: FilterCache) -> ButterworthFilter:
    """100-450 Hz bowel sound band."""
    return cache.get(FC.GUT_LOW_HZ, FC.GUT_HIGH_HZ, sample_rate, FC.DEFAULT_ORDER)


def heart_filter(sample_rate: float, cache: FilterCache) -> ButterworthFilter:
    """20-80 Hz heart sound band."""
    return cache.get(FC.HEART_LOW_HZ, FC.HEART_HIGH_HZ, sample_rate, FC.DEFAULT_ORDER)


def humming_filter(sample_rate: float, cache: FilterCache) -> ButterworthFilter:
    """80-500 Hz band used during the humming phase."""
    return cache.get(
        FC.HUMMING_LOW_HZ, FC.HUMMING_HIGH_HZ, sample_rate, FC.DEFAULT_ORDER
    )


# ============================================================================
# Bird / Whistle Suppression
# ============================================================================


def apply_bird_filter(samples: np.ndarray, sample_rate: float) -> np.ndarray:
    """
    Suppress frames dominated by high-frequency energy.

    Birdsong, whistles and sibilant speech put most of their energy above
    1200 Hz. Each 1024-sample Hann frame (hop 512) whose out-of-band energy
    exceeds half its 150-1000 Hz energy is zeroed; the rest are overlap-added
    and normalized by the summed window weight.

    Args:
        samples: Band-limited or raw samples
        sample_rate: Sample rate (Hz)

    Returns:
        New array of the same length
    """
    x = np.asarray(samples, dtype=np.float64)
    size = FC.BIRD_FRAME_SIZE
    hop = FC.BIRD_HOP_SIZE
    if len(x) < size:
        return x.copy()

    starts = np.arange(0, len(x) - size + 1, hop)
    window = hann_window(size)
    frames = np.stack([x[s : s + size] for s in starts]) * window

    freqs = np.arange(size // 2) * sample_rate / size
    in_band = (freqs >= FC.BIRD_IN_BAND_LOW_HZ) & (freqs <= FC.BIRD_IN_BAND_HIGH_HZ)
    out_band = freqs >= FC.BIRD_OUT_OF_BAND_HZ
    keep = np.ones(len(starts), dtype=bool)
    for batch in range(0, len(starts), _BIRD_BATCH_FRAMES):
        chunk = frames[batch : batch + _BIRD_BATCH_FRAMES]
        power = np.abs(fft(chunk)[:, : size // 2]) ** 2
        in_energy = power[:, in_band].sum(axis=1)
        out_energy = power[:, out_band].sum(axis=1)
        keep[batch : batch + len(chunk)] = (
            out_energy <= FC.BIRD_SUPPRESSION_RATIO * in_energy
        )

    output = np.zeros(len(x))
    weight = np.zeros(len(x))
    for start, frame, kept in zip(starts, frames, keep, strict=True):
        if kept:
            output[start : start + size] += frame
        weight[start : start + size] += window

    tail_start = starts[-1] + size
    output[tail_start:] = x[tail_start:]
    weight[tail_start:] = 1.0

    covered = weight > 1e-8
    output[covered] /= weight[covered]
    suppressed = int(np.count_nonzero(~keep))
    if suppressed:
        logger.debug(f"Bird filter suppressed {suppressed}/{len(keep)} frames")
    return output
