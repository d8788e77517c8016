"""
Accelerometer body-contact gate.

A phone resting on the abdomen moves with breathing: small but nonzero
variance on every axis. A phone on a table is too still; a phone being
carried or handled moves too much. The detector buffers samples while
running and judges contact from the summed per-axis variance of the most
recent, settled samples.
"""

import logging

from collections import deque
from collections.abc import Iterable
from enum import Enum

import numpy as np

from gutsense.analysis.config import DEFAULT_CONFIG, AccelerometerConfig
from gutsense.analysis.types import AccelerometerContactResult, AccelerometerSample
from gutsense.constants import AccelerometerConstants as AC

logger = logging.getLogger(__name__)


class DetectorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


def _insufficient(sample_count: int) -> AccelerometerContactResult:
    return AccelerometerContactResult(
        no_contact=False,
        variance_in_body_range=False,
        total_variance=0.0,
        confidence=0.0,
        rejection_reason="insufficient_samples",
        sample_count=sample_count,
    )


def analyze_accelerometer_samples(
    samples: Iterable[AccelerometerSample],
    config: AccelerometerConfig | None = None,
) -> AccelerometerContactResult:
    """
    Judge body contact from buffered accelerometer samples.

    The last 400 samples (20 s at 20 Hz) are the settled window. Total
    variance is the sum of the population variances of x, y and z, and is
    in the body range when 0.00003 <= variance <= 0.02 (both inclusive).

    Confidence is min(1, n / 80) scaled by how well the variance sits in the
    range: 1 at the center, falling linearly to 0 at either bound, and the
    ratio to the violated bound outside it.

    Args:
        samples: Samples in capture order
        config: Gate thresholds (defaults to DEFAULT_CONFIG)

    Returns:
        AccelerometerContactResult. Too few samples gives no_contact=False
        with zero confidence so that the audio gate decides instead.
    """
    cfg = config or DEFAULT_CONFIG.accelerometer
    buffered = list(samples)

    if len(buffered) < cfg.min_samples_for_detection:
        logger.debug(
            f"Accelerometer: {len(buffered)} samples < {cfg.min_samples_for_detection}"
        )
        return _insufficient(len(buffered))

    settled = buffered[-min(cfg.settled_sample_count, len(buffered)) :]
    if len(settled) < cfg.min_settled_samples:
        logger.debug(
            f"Accelerometer: {len(settled)} settled samples < {cfg.min_settled_samples}"
        )
        return _insufficient(len(settled))

    xyz = np.array([[s.x, s.y, s.z] for s in settled], dtype=np.float64)
    means = xyz.mean(axis=0)
    total_variance = float(np.sum(xyz.var(axis=0)))

    in_range = cfg.min_variance <= total_variance <= cfg.max_variance
    if in_range:
        rejection_reason = None
    elif total_variance < cfg.min_variance:
        rejection_reason = "too_still"
    else:
        rejection_reason = "too_much_motion"

    sample_confidence = min(1.0, len(settled) / (cfg.min_samples_for_detection * 2))
    if in_range:
        center = (cfg.min_variance + cfg.max_variance) / 2
        half_range = (cfg.max_variance - cfg.min_variance) / 2
        range_confidence = 1.0 - abs(total_variance - center) / half_range if half_range > 0 else 1.0
    elif rejection_reason == "too_still":
        range_confidence = min(1.0, cfg.min_variance / max(total_variance, AC.STILL_VARIANCE_FLOOR))
    else:
        range_confidence = min(1.0, cfg.max_variance / total_variance)
    confidence = max(0.0, min(1.0, sample_confidence * range_confidence))

    result = AccelerometerContactResult(
        no_contact=not in_range,
        variance_in_body_range=in_range,
        total_variance=total_variance,
        confidence=confidence,
        rejection_reason=rejection_reason,
        high_motion_warning=cfg.high_motion_warning < total_variance <= cfg.max_variance,
        sample_count=len(settled),
        avg_x=float(means[0]),
        avg_y=float(means[1]),
        avg_z=float(means[2]),
    )
    logger.debug(
        f"Accelerometer: variance={total_variance:.6f}, in_range={in_range}, "
        f"confidence={confidence:.2f}"
    )
    return result


class AccelerometerContactDetector:
    """
    Start/stop collector for accelerometer samples.

    State machine: idle -> running -> stopped (-> running again). Starting a
    running detector is a no-op; starting from idle or stopped clears the
    buffer. Samples arriving while not running are ignored. The buffer keeps
    at most max_buffered_samples, dropping the oldest.

    Example:
        >>> detector = AccelerometerContactDetector()
        >>> detector.start()
        >>> detector.add_sample(AccelerometerSample(x=0.0, y=0.0, z=1.0, timestamp_ms=0))
        >>> detector.analyze().rejection_reason
        'insufficient_samples'
    """

    def __init__(self, config: AccelerometerConfig | None = None):
        self.config = config or DEFAULT_CONFIG.accelerometer
        self._samples: deque[AccelerometerSample] = deque(
            maxlen=self.config.max_buffered_samples
        )
        self._state = DetectorState.IDLE

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == DetectorState.RUNNING

    def start(self) -> None:
        if self._state == DetectorState.RUNNING:
            return
        self._samples.clear()
        self._state = DetectorState.RUNNING
        logger.debug("Accelerometer monitoring started")

    def stop(self) -> None:
        if self._state == DetectorState.RUNNING:
            self._state = DetectorState.STOPPED
            logger.debug(f"Accelerometer monitoring stopped ({len(self._samples)} samples)")

    def add_sample(self, sample: AccelerometerSample) -> None:
        if self._state != DetectorState.RUNNING:
            return
        self._samples.append(sample)

    def get_samples(self) -> list[AccelerometerSample]:
        return list(self._samples)

    def clear_samples(self) -> None:
        self._samples.clear()

    def analyze(self) -> AccelerometerContactResult:
        return analyze_accelerometer_samples(self._samples, self.config)
