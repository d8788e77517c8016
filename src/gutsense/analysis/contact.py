"""
Body contact decision.

A confident accelerometer reading decides contact on its own. Without one,
the audio gate looks for the signature of a phone pressed against tissue:
a damped, low-frequency spectrum AND bursty energy over time. Spectral
shape alone cannot tell skin from a quiet room, so both are required.
"""

import logging

import numpy as np

from gutsense.analysis.config import DEFAULT_CONFIG, DetectionConfig
from gutsense.analysis.spectral import hann_window, magnitude_spectrum
from gutsense.analysis.types import AccelerometerContactResult, ContactAssessment
from gutsense.constants import ContactConstants as CTC
from gutsense.constants import SpectralConstants as SC

logger = logging.getLogger(__name__)


def averaged_power_spectrum(
    samples: np.ndarray, frames: int = CTC.SPECTRUM_FRAMES
) -> np.ndarray:
    """
    Mean power spectrum of up to `frames` Hann-windowed 2048-sample frames.

    Frames are spread evenly over the recording. Input shorter than one
    frame is windowed over its own length and zero-padded.
    """
    x = np.asarray(samples, dtype=np.float64)
    size = SC.FFT_SIZE
    if len(x) <= size:
        padded = np.zeros(size)
        padded[: len(x)] = x * hann_window(len(x))
        return magnitude_spectrum(padded) ** 2

    starts = np.linspace(0, len(x) - size, num=min(frames, len(x) // size)).astype(int)
    block = np.stack([x[s : s + size] for s in starts]) * hann_window(size)
    return np.mean(magnitude_spectrum(block) ** 2, axis=0)


def assess_audio_contact(
    samples: np.ndarray,
    energies: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> ContactAssessment:
    """
    Decide body contact from audio alone.

    Acceptance needs the RMS gate, at least 2 of 3 spectral criteria and at
    least 2 of 4 temporal criteria:

    - Spectral: energy below 200 Hz >= 45%, energy at or above 400 Hz
      <= 15%, 85% rolloff <= 350 Hz.
    - Temporal (100 ms windows, at least 5): CV >= 0.12, at least 2 windows
      above 2x the mean, max/min >= 3, at least 5% of windows below 0.3x
      the mean.

    An ambient signature (low CV, at most one burst, no silent windows and a
    low-frequency dominated spectrum) rejects regardless of the counts.

    Args:
        samples: Samples the energies were computed from
        energies: 100 ms window RMS values
        sample_rate: Sample rate (Hz)
        config: Detection thresholds

    Returns:
        ContactAssessment with source "audio"
    """
    cfg = config.contact
    x = np.asarray(samples, dtype=np.float64)
    values = np.asarray(energies, dtype=np.float64)

    if len(x) < CTC.MIN_SAMPLES:
        return ContactAssessment(
            is_on_body=False,
            source="audio",
            reason=f"Too few samples for contact analysis ({len(x)} < {CTC.MIN_SAMPLES})",
        )

    average_rms = float(np.mean(values)) if len(values) else 0.0
    if average_rms < cfg.min_rms:
        logger.debug(f"Audio contact: RMS {average_rms:.5f} below {cfg.min_rms}")
        return ContactAssessment(
            is_on_body=False,
            source="audio",
            reason=f"Signal too quiet for skin contact (RMS {average_rms:.4f} < {cfg.min_rms:g})",
            average_rms=average_rms,
        )

    # Spectral criteria
    power = averaged_power_spectrum(x)
    total = float(np.sum(power))
    bin_hz = sample_rate / SC.FFT_SIZE
    low_bin = int(CTC.LOW_FREQ_CUTOFF_HZ / bin_hz)
    high_bin = int(CTC.HIGH_FREQ_CUTOFF_HZ / bin_hz)
    if total > 0:
        low_freq_ratio = float(np.sum(power[:low_bin])) / total
        high_freq_ratio = float(np.sum(power[high_bin:])) / total
        cumulative = np.cumsum(power)
        rolloff_bin = int(np.searchsorted(cumulative, CTC.ROLLOFF_FRACTION * total))
        rolloff_hz = min(rolloff_bin, len(power) - 1) * bin_hz
    else:
        low_freq_ratio = 0.0
        high_freq_ratio = 1.0
        rolloff_hz = sample_rate / 2

    is_low_freq_dominant = low_freq_ratio >= cfg.min_low_freq_ratio
    spectral_passes = sum(
        (
            is_low_freq_dominant,
            high_freq_ratio <= cfg.max_high_freq_ratio,
            rolloff_hz <= cfg.max_rolloff_hz,
        )
    )

    # Temporal criteria
    cv = 0.0
    burst_count = 0
    max_min_ratio = 1.0
    silent_fraction = 0.0
    temporal_passes = 0
    if len(values) >= 5 and average_rms > 0:
        cv = float(np.std(values)) / average_rms
        burst_count = int(np.count_nonzero(values > cfg.burst_multiplier * average_rms))
        max_min_ratio = float(np.max(values)) / max(CTC.MIN_ENERGY_FLOOR, float(np.min(values)))
        silent_fraction = float(np.mean(values < cfg.silence_ratio * average_rms))
        temporal_passes = sum(
            (
                cv >= cfg.min_cv,
                burst_count >= cfg.min_bursts,
                max_min_ratio >= cfg.min_max_min_ratio,
                silent_fraction >= cfg.min_silent_fraction,
            )
        )

    is_ambient = (
        cv < cfg.min_cv and burst_count <= 1 and silent_fraction == 0 and is_low_freq_dominant
    )
    is_on_body = (
        spectral_passes >= cfg.min_spectral_passes
        and temporal_passes >= cfg.min_temporal_passes
        and not is_ambient
    )

    if is_ambient:
        reason = "Ambient noise signature: flat, low-frequency energy without bursts"
    elif is_on_body:
        reason = (
            f"Skin contact: {spectral_passes}/3 spectral, {temporal_passes}/4 temporal criteria"
        )
    elif spectral_passes < cfg.min_spectral_passes:
        reason = f"Spectrum not damped by tissue ({spectral_passes}/3 spectral criteria)"
    else:
        reason = f"Energy too flat for gut activity ({temporal_passes}/4 temporal criteria)"

    logger.debug(f"Audio contact: {reason}")
    return ContactAssessment(
        is_on_body=is_on_body,
        source="audio",
        reason=reason,
        average_rms=average_rms,
        low_freq_ratio=low_freq_ratio,
        high_freq_ratio=high_freq_ratio,
        rolloff_hz=rolloff_hz,
        spectral_passes=spectral_passes,
        coefficient_of_variation=cv,
        burst_count=burst_count,
        max_min_ratio=max_min_ratio,
        silent_fraction=silent_fraction,
        temporal_passes=temporal_passes,
        is_ambient_signature=is_ambient,
    )


def resolve_contact(
    accelerometer_result: AccelerometerContactResult | None,
    samples: np.ndarray,
    energies: np.ndarray,
    sample_rate: float,
    config: DetectionConfig = DEFAULT_CONFIG,
) -> ContactAssessment:
    """
    Combine the accelerometer and audio gates.

    An accelerometer result with confidence >= 0.5 is authoritative and the
    audio gate is not run. Otherwise the audio gate decides.
    """
    if (
        accelerometer_result is not None
        and accelerometer_result.confidence >= config.accelerometer.confident_threshold
    ):
        on_body = not accelerometer_result.no_contact
        if on_body:
            reason = "Accelerometer: breathing motion in body range"
        else:
            detail = accelerometer_result.rejection_reason or "out of range"
            reason = f"Accelerometer: no contact ({detail})"
        logger.debug(f"{reason} (confidence {accelerometer_result.confidence:.2f})")
        return ContactAssessment(
            is_on_body=on_body,
            source="accelerometer",
            reason=reason,
            accelerometer_confidence=accelerometer_result.confidence,
        )

    assessment = assess_audio_contact(samples, energies, sample_rate, config)
    if accelerometer_result is not None:
        assessment = assessment.model_copy(
            update={"accelerometer_confidence": accelerometer_result.confidence}
        )
    return assessment
