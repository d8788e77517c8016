"""
Per-event veto filters.

Each candidate event's sample slice runs through an ordered cascade of
rejection filters. An event that no filter rejects is counted as a gut
sound. The cascade order and every threshold come from one place
(VETO_CASCADE and DetectionConfig) so the scoring pass and the debug pass
cannot drift apart.

Filters, in cascade order:

1. Breath shape: 400-3000 ms events with a gradual onset and
   low-frequency emphasis.
2. Spectral noise: flat, high zero-crossing spectra (air/fan noise).
3. Burst fingerprint: duration outside 10-1500 ms or a flat envelope.
4. Transient: clicks and clatter with an extreme attack.
5. Harmonic speech: voiced sounds with a clear harmonic series.
"""

import logging
import math

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import numpy as np

from gutsense.analysis.config import DEFAULT_CONFIG, DetectionConfig
from gutsense.analysis.spectral import (
    autocorrelation,
    band_energy_ratio,
    magnitude_spectrum,
    next_power_of_two,
    spectral_contrast,
    spectral_flatness,
    windowed_frame,
    zero_crossing_rate,
)
from gutsense.analysis.types import VetoVerdict
from gutsense.constants import MILLISECONDS_PER_SECOND, VetoFilter
from gutsense.constants import BreathConstants as BC
from gutsense.constants import BurstConstants as BUC
from gutsense.constants import HarmonicConstants as HC
from gutsense.constants import SpectralConstants as SC
from gutsense.constants import SpectralNoiseConstants as SNC
from gutsense.constants import TransientConstants as TC

logger = logging.getLogger(__name__)


def _duration_ms(samples: np.ndarray, sample_rate: float) -> float:
    return len(samples) / sample_rate * MILLISECONDS_PER_SECOND


def _frame_rms(samples: np.ndarray, frame: int, hop: int) -> np.ndarray:
    """RMS of frames of `frame` samples every `hop` samples (full frames only)."""
    if frame <= 0 or len(samples) < frame:
        return np.zeros(0)
    starts = range(0, len(samples) - frame + 1, max(1, hop))
    return np.array([math.sqrt(float(np.mean(samples[s : s + frame] ** 2))) for s in starts])


# ============================================================================
# Breath Shape
# ============================================================================


@dataclass
class BreathAnalysis:
    """
    Breath-shape measurements for one event.

    Attributes:
        duration_ms: Event duration (ms)
        in_duration_range: Duration inside the breath range
        onset_ratio: Mean onset envelope / peak envelope (low = gradual)
        low_freq_emphasis: Fraction of spectral energy below 200 Hz
        confidence: Accumulated breath confidence (0-1)
        is_breath_artifact: confidence reached the artifact threshold
    """

    duration_ms: float
    in_duration_range: bool
    onset_ratio: float
    low_freq_emphasis: float
    confidence: float
    is_breath_artifact: bool


def detect_breath_artifact(
    samples: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> BreathAnalysis:
    """
    Score how breath-like an event is.

    Breath and speech have slow envelopes; gut sounds start sharply. The
    envelope is a 50 ms RMS with a 25 ms hop. The onset ratio compares the
    first 20% of the rise to the peak. Confidence is 0.3 for the duration,
    +0.4 for a gradual onset, +0.3 for low-frequency emphasis.

    Args:
        samples: Event samples
        sample_rate: Sample rate (Hz)
        config: Detection thresholds

    Returns:
        BreathAnalysis. Events outside the duration range, or too short for
        four envelope frames, score 0.
    """
    cfg = config.breath
    x = np.asarray(samples, dtype=np.float64)
    duration_ms = _duration_ms(x, sample_rate)
    neutral = BreathAnalysis(
        duration_ms=duration_ms,
        in_duration_range=False,
        onset_ratio=1.0,
        low_freq_emphasis=0.0,
        confidence=0.0,
        is_breath_artifact=False,
    )

    if duration_ms < cfg.min_duration_ms or duration_ms > cfg.max_duration_ms:
        return neutral

    frame = int(BC.ENVELOPE_FRAME_MS / MILLISECONDS_PER_SECOND * sample_rate)
    hop = int(BC.ENVELOPE_HOP_MS / MILLISECONDS_PER_SECOND * sample_rate)
    envelope = _frame_rms(x, frame, hop)
    if len(envelope) < BC.MIN_ENVELOPE_FRAMES:
        return neutral

    peak_index = int(np.argmax(envelope))
    peak = float(envelope[peak_index])
    onset_end = max(1, int(peak_index * BC.ONSET_FRACTION))
    onset_ratio = float(np.mean(envelope[:onset_end])) / peak if peak > 0 else 1.0

    size = min(SC.FFT_SIZE, next_power_of_two(len(x)))
    energy = magnitude_spectrum(windowed_frame(x, size)) ** 2
    total = float(np.sum(energy))
    low_bin = int(BC.LOW_FREQ_CUTOFF_HZ / (sample_rate / size))
    low_freq_emphasis = float(np.sum(energy[:low_bin])) / total if total > 0 else 0.0

    confidence = BC.DURATION_WEIGHT
    if onset_ratio < cfg.gradual_onset_ratio:
        confidence += BC.ONSET_WEIGHT
    if low_freq_emphasis >= cfg.low_freq_emphasis:
        confidence += BC.EMPHASIS_WEIGHT
    confidence = round(confidence, 6)

    return BreathAnalysis(
        duration_ms=duration_ms,
        in_duration_range=True,
        onset_ratio=onset_ratio,
        low_freq_emphasis=low_freq_emphasis,
        confidence=confidence,
        is_breath_artifact=confidence >= cfg.artifact_confidence,
    )


# ============================================================================
# Spectral Noise
# ============================================================================


@dataclass
class SpectralNoiseAnalysis:
    """
    Spectral shape of one event or calibration block.

    Attributes:
        analyzed: Enough samples were available to classify
        sfm: Spectral flatness (1 = white noise)
        bowel_ratio: Fraction of energy in 100-450 Hz
        zcr: Zero-crossing rate
        contrast: Peak-to-valley spectral contrast
        is_white_noise: One of the white-noise rules matched
        should_reject: White noise, or flat with a weak bowel band
        is_likely_gut_sound: Positive gut-sound signature
    """

    analyzed: bool
    sfm: float
    bowel_ratio: float
    zcr: float
    contrast: float
    is_white_noise: bool
    should_reject: bool
    is_likely_gut_sound: bool


def classify_spectral_noise(
    samples: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> SpectralNoiseAnalysis:
    """
    Classify a block of samples as white-noise-like or not.

    Uses the first 2048 samples (Hann windowed, zero-padded if shorter).
    White noise when SFM >= 0.75, or ZCR >= 0.35, or SFM >= 0.55 with a
    bowel ratio below 0.40 and ZCR above 0.22. Borderline blocks (SFM > 0.55
    and bowel ratio below 0.32) are rejected without being called white
    noise.

    Args:
        samples: Audio samples
        sample_rate: Sample rate (Hz)
        config: Detection thresholds

    Returns:
        SpectralNoiseAnalysis; blocks under 512 samples are not analyzed and
        never rejected
    """
    cfg = config.spectral_noise
    x = np.asarray(samples, dtype=np.float64)

    if len(x) < SNC.MIN_SAMPLES:
        return SpectralNoiseAnalysis(
            analyzed=False,
            sfm=0.0,
            bowel_ratio=0.0,
            zcr=0.0,
            contrast=0.0,
            is_white_noise=False,
            should_reject=False,
            is_likely_gut_sound=False,
        )

    mags = magnitude_spectrum(windowed_frame(x, SC.FFT_SIZE))
    sfm = spectral_flatness(mags)
    bowel_ratio = band_energy_ratio(
        mags, sample_rate, SC.FFT_SIZE, SNC.BOWEL_LOW_HZ, SNC.BOWEL_HIGH_HZ
    )
    zcr = zero_crossing_rate(x)
    contrast = spectral_contrast(mags)

    is_white_noise = (
        sfm >= cfg.auto_reject_sfm
        or (
            sfm >= cfg.combined_sfm
            and bowel_ratio < cfg.combined_bowel_ratio
            and zcr > cfg.combined_zcr
        )
        or zcr >= cfg.auto_reject_zcr
    )
    soft_reject = sfm > cfg.soft_sfm and bowel_ratio < cfg.soft_bowel_ratio
    is_likely_gut_sound = (
        not is_white_noise
        and sfm < cfg.combined_sfm
        and bowel_ratio >= cfg.combined_bowel_ratio
        and zcr <= cfg.combined_zcr
        and contrast >= cfg.gut_min_contrast
    )

    return SpectralNoiseAnalysis(
        analyzed=True,
        sfm=sfm,
        bowel_ratio=bowel_ratio,
        zcr=zcr,
        contrast=contrast,
        is_white_noise=is_white_noise,
        should_reject=is_white_noise or soft_reject,
        is_likely_gut_sound=is_likely_gut_sound,
    )


# ============================================================================
# Burst Fingerprint
# ============================================================================


@dataclass
class BurstValidation:
    """Duration and envelope check for one event."""

    is_valid_burst: bool
    duration_ms: float
    is_constant_noise: bool
    is_breathing_artifact: bool
    envelope_variance: float | None
    reason: str


def validate_burst_event(
    samples: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> BurstValidation:
    """
    Check an event against the gut-sound duration fingerprint.

    Peristaltic sounds last 10-1500 ms (both bounds inclusive). Longer
    events are breathing artifacts. An event spanning at least three 100 ms
    windows whose normalized envelope variance (var / mean^2) is below 0.05
    is constant noise such as HVAC hum.

    Args:
        samples: Event samples
        sample_rate: Sample rate (Hz)
        config: Detection thresholds

    Returns:
        BurstValidation; an empty event has duration 0 and is invalid

    Example:
        >>> validate_burst_event(np.zeros(0), 44100).is_valid_burst
        False
    """
    cfg = config.burst
    x = np.asarray(samples, dtype=np.float64)

    if len(x) == 0:
        return BurstValidation(
            is_valid_burst=False,
            duration_ms=0.0,
            is_constant_noise=False,
            is_breathing_artifact=False,
            envelope_variance=None,
            reason="Empty event",
        )

    duration_ms = _duration_ms(x, sample_rate)

    if duration_ms < cfg.min_duration_ms:
        return BurstValidation(
            is_valid_burst=False,
            duration_ms=duration_ms,
            is_constant_noise=False,
            is_breathing_artifact=False,
            envelope_variance=None,
            reason=f"Too short: {duration_ms:.1f}ms < {cfg.min_duration_ms:g}ms",
        )

    if duration_ms > cfg.max_duration_ms:
        return BurstValidation(
            is_valid_burst=False,
            duration_ms=duration_ms,
            is_constant_noise=False,
            is_breathing_artifact=True,
            envelope_variance=None,
            reason=f"Breathing artifact: {duration_ms:.1f}ms > {cfg.max_duration_ms:g}ms",
        )

    window = max(1, int(BUC.CONSTANT_NOISE_WINDOW_MS / MILLISECONDS_PER_SECOND * sample_rate))
    envelope = _frame_rms(x, window, window)
    envelope_variance = None
    if len(envelope) >= cfg.constant_noise_min_windows:
        mean = float(np.mean(envelope))
        if mean > 0:
            envelope_variance = float(np.var(envelope)) / (mean * mean)
            if envelope_variance < cfg.constant_noise_variance:
                return BurstValidation(
                    is_valid_burst=False,
                    duration_ms=duration_ms,
                    is_constant_noise=True,
                    is_breathing_artifact=False,
                    envelope_variance=envelope_variance,
                    reason=(
                        f"Constant noise: envelope variance {envelope_variance:.4f} "
                        f"< {cfg.constant_noise_variance:g}"
                    ),
                )

    return BurstValidation(
        is_valid_burst=True,
        duration_ms=duration_ms,
        is_constant_noise=False,
        is_breathing_artifact=False,
        envelope_variance=envelope_variance,
        reason=(
            f"Valid burst: {duration_ms:.1f}ms in range "
            f"[{cfg.min_duration_ms:g}-{cfg.max_duration_ms:g}]ms"
        ),
    )


# ============================================================================
# Transient
# ============================================================================


@dataclass
class TransientAnalysis:
    """Attack shape of one event measured on 5 ms frames."""

    onset_slope: float
    energy_ratio: float
    high_energy_ms: float
    is_transient: bool


def detect_transient(
    samples: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> TransientAnalysis:
    """
    Detect clicks and clatter.

    Frame energies are RMS over 5 ms. The onset slope is the largest
    frame-to-frame rise relative to the previous frame (floored at 5% of
    the peak, with silence assumed before the event). A transient has a
    slope above 10, a peak at least 5x the mean frame energy and less than
    25 ms above half the peak, all together. Gut sounds have a moderate
    attack and fail at least one of these.

    Returns:
        TransientAnalysis; fewer than two frames or a silent event is neutral
    """
    cfg = config.transient
    x = np.asarray(samples, dtype=np.float64)
    frame = max(1, int(round(TC.FRAME_MS / MILLISECONDS_PER_SECOND * sample_rate)))
    energies = _frame_rms(x, frame, frame)

    if len(energies) < 2:
        return TransientAnalysis(0.0, 0.0, 0.0, False)
    peak = float(np.max(energies))
    if peak <= 0:
        return TransientAnalysis(0.0, 0.0, 0.0, False)

    previous = np.concatenate(([0.0], energies[:-1]))
    slopes = (energies - previous) / np.maximum(previous, TC.SLOPE_FLOOR_FRACTION * peak)
    onset_slope = float(np.max(slopes))
    energy_ratio = peak / float(np.mean(energies))
    high_frames = int(np.count_nonzero(energies >= TC.HIGH_ENERGY_FRACTION * peak))
    high_energy_ms = high_frames * TC.FRAME_MS

    is_transient = (
        onset_slope > cfg.min_slope
        and energy_ratio > cfg.min_energy_ratio
        and high_energy_ms < cfg.max_duration_ms
    )
    return TransientAnalysis(onset_slope, energy_ratio, high_energy_ms, is_transient)


# ============================================================================
# Harmonic Speech
# ============================================================================


@dataclass
class HarmonicAnalysis:
    """
    Harmonic structure of one event.

    Attributes:
        analyzed: Event was long enough to analyze
        fundamental_hz: Autocorrelation f0 estimate, None if not periodic
        correlation: Normalized autocorrelation at the f0 lag
        harmonic_count: Harmonics standing out from their neighborhood
        hnr_db: Harmonic-to-noise ratio (dB)
        speech_confidence: 0-1.5 speech score
        is_speech: Voiced speech or music, reject
    """

    analyzed: bool
    fundamental_hz: float | None
    correlation: float
    harmonic_count: int
    hnr_db: float
    speech_confidence: float
    is_speech: bool


def detect_harmonic_speech(
    samples: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> HarmonicAnalysis:
    """
    Detect voiced speech or music by its harmonic series.

    f0 is the strongest autocorrelation lag in the voice range (80-400 Hz)
    of the first Hann-windowed 2048 samples. Each of up to 8 harmonics
    counts when its spectral peak (within +/-5% of h*f0) exceeds twice the
    mean of the 5 bins on either side. HNR compares the energy around the
    counted harmonics with the energy outside every harmonic window.

    Args:
        samples: Event samples
        sample_rate: Sample rate (Hz)
        config: Detection thresholds

    Returns:
        HarmonicAnalysis; events under 100 ms or 2048 samples are skipped
    """
    cfg = config.harmonic
    x = np.asarray(samples, dtype=np.float64)
    not_speech = HarmonicAnalysis(
        analyzed=True,
        fundamental_hz=None,
        correlation=0.0,
        harmonic_count=0,
        hnr_db=0.0,
        speech_confidence=0.0,
        is_speech=False,
    )

    if len(x) < HC.MIN_DURATION_S * sample_rate or len(x) < SC.FFT_SIZE:
        not_speech.analyzed = False
        return not_speech

    windowed = windowed_frame(x, SC.FFT_SIZE)
    min_lag = max(1, int(sample_rate / cfg.max_f0_hz))
    max_lag = min(int(sample_rate / cfg.min_f0_hz), len(windowed) - 1)
    if min_lag > max_lag:
        return not_speech

    correlation = autocorrelation(windowed, max_lag)[min_lag:]
    best = int(np.argmax(correlation))
    best_corr = float(correlation[best])
    if best_corr < cfg.min_correlation:
        not_speech.correlation = max(0.0, best_corr)
        return not_speech

    fundamental_hz = sample_rate / (min_lag + best)
    mags = magnitude_spectrum(windowed)
    energy = mags**2
    n_bins = len(mags)
    bin_hz = sample_rate / SC.FFT_SIZE
    tolerance = max(1, int(round(fundamental_hz * HC.HARMONIC_TOLERANCE / bin_hz)))
    max_harmonic = min(HC.MAX_HARMONICS, int((sample_rate / 2) / fundamental_hz))

    in_any_window = np.zeros(n_bins, dtype=bool)
    harmonic_energy = 0.0
    harmonic_count = 0
    for h in range(1, max_harmonic + 1):
        expected = int(round(h * fundamental_hz / bin_hz))
        lo = max(0, expected - tolerance)
        hi = min(n_bins - 1, expected + tolerance)
        if lo > hi:
            break
        in_any_window[lo : hi + 1] = True

        peak = float(np.max(mags[lo : hi + 1]))
        neighborhood = np.concatenate(
            (
                mags[max(0, lo - HC.LOCAL_WINDOW_BINS) : lo],
                mags[hi + 1 : min(n_bins, hi + 1 + HC.LOCAL_WINDOW_BINS)],
            )
        )
        local = float(np.mean(neighborhood)) if len(neighborhood) else 0.0
        if peak > local * HC.PEAK_RATIO:
            harmonic_count += 1
            harmonic_energy += float(np.sum(energy[lo : hi + 1]))

    noise_energy = float(np.sum(energy[~in_any_window]))
    if harmonic_energy > 0 and noise_energy > 0:
        hnr_db = 10.0 * math.log10(harmonic_energy / noise_energy)
    else:
        hnr_db = 0.0

    is_harmonic = harmonic_count >= cfg.min_harmonics
    speech_confidence = 0.0
    if is_harmonic:
        speech_confidence = min(1.0, (harmonic_count - 2) / 4) + min(0.5, max(0.0, hnr_db / 20))

    return HarmonicAnalysis(
        analyzed=True,
        fundamental_hz=fundamental_hz,
        correlation=best_corr,
        harmonic_count=harmonic_count,
        hnr_db=hnr_db,
        speech_confidence=speech_confidence,
        is_speech=is_harmonic and hnr_db >= cfg.min_hnr_db,
    )


# ============================================================================
# Cascade
# ============================================================================


def _breath_verdict(x: np.ndarray, sr: float, config: DetectionConfig) -> VetoVerdict:
    cfg = config.breath
    result = detect_breath_artifact(x, sr, config)
    if not result.in_duration_range:
        reason = f"Not in breath range ({result.duration_ms:.0f}ms)"
    elif result.is_breath_artifact:
        reason = (
            f"Breath-like: onset {result.onset_ratio:.2f}, "
            f"low-freq {result.low_freq_emphasis:.0%}, confidence {result.confidence:.1f}"
        )
    else:
        reason = f"Not breath-like (confidence {result.confidence:.1f})"
    return VetoVerdict(
        filter=VetoFilter.BREATH_ARTIFACT,
        rejected=result.is_breath_artifact,
        skipped=not result.in_duration_range,
        reason=reason,
        values={
            "duration_ms": result.duration_ms,
            "onset_ratio": result.onset_ratio,
            "low_freq_emphasis": result.low_freq_emphasis,
            "confidence": result.confidence,
        },
        thresholds={
            "min_duration_ms": cfg.min_duration_ms,
            "max_duration_ms": cfg.max_duration_ms,
            "gradual_onset_ratio": cfg.gradual_onset_ratio,
            "low_freq_emphasis": cfg.low_freq_emphasis,
            "artifact_confidence": cfg.artifact_confidence,
        },
    )


def _spectral_verdict(x: np.ndarray, sr: float, config: DetectionConfig) -> VetoVerdict:
    cfg = config.spectral_noise
    result = classify_spectral_noise(x, sr, config)
    if not result.analyzed:
        reason = f"Too short for spectral analysis ({len(x)} < {SNC.MIN_SAMPLES} samples)"
    elif result.is_white_noise:
        reason = f"White noise: SFM {result.sfm:.2f}, ZCR {result.zcr:.3f}"
    elif result.should_reject:
        reason = f"Flat spectrum with weak bowel band ({result.bowel_ratio:.0%})"
    else:
        reason = f"Spectrum OK: SFM {result.sfm:.2f}, bowel {result.bowel_ratio:.0%}"
    return VetoVerdict(
        filter=VetoFilter.SPECTRAL_NOISE,
        rejected=result.should_reject,
        skipped=not result.analyzed,
        reason=reason,
        values={
            "sfm": result.sfm,
            "bowel_ratio": result.bowel_ratio,
            "zcr": result.zcr,
            "contrast": result.contrast,
            "is_white_noise": result.is_white_noise,
            "is_likely_gut_sound": result.is_likely_gut_sound,
        },
        thresholds={
            "auto_reject_sfm": cfg.auto_reject_sfm,
            "auto_reject_zcr": cfg.auto_reject_zcr,
            "combined_sfm": cfg.combined_sfm,
            "combined_bowel_ratio": cfg.combined_bowel_ratio,
            "combined_zcr": cfg.combined_zcr,
            "soft_sfm": cfg.soft_sfm,
            "soft_bowel_ratio": cfg.soft_bowel_ratio,
        },
    )


def _burst_verdict(x: np.ndarray, sr: float, config: DetectionConfig) -> VetoVerdict:
    cfg = config.burst
    result = validate_burst_event(x, sr, config)
    return VetoVerdict(
        filter=VetoFilter.BURST_VALIDATION,
        rejected=not result.is_valid_burst,
        reason=result.reason,
        values={
            "duration_ms": result.duration_ms,
            "envelope_variance": result.envelope_variance,
            "is_constant_noise": result.is_constant_noise,
            "is_breathing_artifact": result.is_breathing_artifact,
        },
        thresholds={
            "min_duration_ms": cfg.min_duration_ms,
            "max_duration_ms": cfg.max_duration_ms,
            "constant_noise_variance": cfg.constant_noise_variance,
        },
    )


def _transient_verdict(x: np.ndarray, sr: float, config: DetectionConfig) -> VetoVerdict:
    cfg = config.transient
    result = detect_transient(x, sr, config)
    if result.is_transient:
        reason = (
            f"Click/clatter: slope {result.onset_slope:.1f}, "
            f"ratio {result.energy_ratio:.1f}, {result.high_energy_ms:.0f}ms"
        )
    else:
        reason = f"Moderate attack (slope {result.onset_slope:.1f})"
    return VetoVerdict(
        filter=VetoFilter.TRANSIENT,
        rejected=result.is_transient,
        reason=reason,
        values={
            "onset_slope": result.onset_slope,
            "energy_ratio": result.energy_ratio,
            "high_energy_ms": result.high_energy_ms,
        },
        thresholds={
            "min_slope": cfg.min_slope,
            "min_energy_ratio": cfg.min_energy_ratio,
            "max_duration_ms": cfg.max_duration_ms,
        },
    )


def _harmonic_verdict(x: np.ndarray, sr: float, config: DetectionConfig) -> VetoVerdict:
    cfg = config.harmonic
    result = detect_harmonic_speech(x, sr, config)
    if not result.analyzed:
        reason = "Too short for harmonic analysis"
    elif result.fundamental_hz is None:
        reason = f"No voice-range periodicity (r={result.correlation:.2f})"
    elif result.is_speech:
        reason = (
            f"Speech/music: f0 {result.fundamental_hz:.0f}Hz, "
            f"{result.harmonic_count} harmonics, HNR {result.hnr_db:.1f}dB"
        )
    else:
        reason = f"{result.harmonic_count} harmonics, HNR {result.hnr_db:.1f}dB"
    return VetoVerdict(
        filter=VetoFilter.HARMONIC_SPEECH,
        rejected=result.is_speech,
        skipped=not result.analyzed,
        reason=reason,
        values={
            "fundamental_hz": result.fundamental_hz,
            "correlation": result.correlation,
            "harmonic_count": result.harmonic_count,
            "hnr_db": result.hnr_db,
            "speech_confidence": result.speech_confidence,
        },
        thresholds={
            "min_correlation": cfg.min_correlation,
            "min_harmonics": cfg.min_harmonics,
            "min_hnr_db": cfg.min_hnr_db,
        },
    )


VetoCheck = Callable[[np.ndarray, float, DetectionConfig], VetoVerdict]

VETO_CASCADE: tuple[tuple[VetoFilter, VetoCheck], ...] = (
    (VetoFilter.BREATH_ARTIFACT, _breath_verdict),
    (VetoFilter.SPECTRAL_NOISE, _spectral_verdict),
    (VetoFilter.BURST_VALIDATION, _burst_verdict),
    (VetoFilter.TRANSIENT, _transient_verdict),
    (VetoFilter.HARMONIC_SPEECH, _harmonic_verdict),
)


def run_veto_cascade(
    event_samples: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
    bypass: Iterable[VetoFilter] = (),
    stop_at_first: bool = True,
) -> list[VetoVerdict]:
    """
    Run one event through the veto filters in cascade order.

    Bypassed filters still run so their measurements show up in the trace,
    but their verdicts are marked bypassed and never stop the cascade.

    Args:
        event_samples: The event's sample slice
        sample_rate: Sample rate (Hz)
        config: Detection thresholds
        bypass: Filters excluded from the accept decision
        stop_at_first: Stop after the first non-bypassed rejection

    Returns:
        Verdicts in cascade order
    """
    x = np.asarray(event_samples, dtype=np.float64)
    bypassed = set(bypass)
    verdicts: list[VetoVerdict] = []

    for veto_filter, check in VETO_CASCADE:
        verdict = check(x, sample_rate, config)
        if veto_filter in bypassed:
            verdict = verdict.model_copy(update={"bypassed": True})
        verdicts.append(verdict)

        if verdict.rejected and not verdict.bypassed:
            logger.debug(f"{veto_filter.value} rejected event: {verdict.reason}")
            if stop_at_first:
                break

    return verdicts


def first_rejection(verdicts: Iterable[VetoVerdict]) -> VetoFilter | None:
    """Filter of the first non-bypassed rejecting verdict, if any."""
    for verdict in verdicts:
        if verdict.rejected and not verdict.bypassed:
            return verdict.filter
    return None
