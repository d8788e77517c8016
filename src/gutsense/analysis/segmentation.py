"""
Energy windowing and candidate event grouping.

The filtered recording is reduced to a 100 ms RMS grid. Runs of windows
above the calibrated threshold become candidate events, tolerating short
dips so that one gurgle is not split in two.
"""

import logging

import numpy as np

from gutsense.analysis.types import CandidateEvent
from gutsense.constants import MILLISECONDS_PER_SECOND
from gutsense.constants import EnergyConstants as EC

logger = logging.getLogger(__name__)


def window_size_samples(sample_rate: float, window_ms: float = EC.WINDOW_MS) -> int:
    """Samples per energy window (at least 1)."""
    return max(1, int(window_ms / MILLISECONDS_PER_SECOND * sample_rate))


def compute_rms(samples: np.ndarray) -> float:
    """Root mean square of a sample block; 0 when empty."""
    x = np.asarray(samples, dtype=np.float64)
    if len(x) == 0:
        return 0.0
    return float(np.sqrt(np.mean(x * x)))


def compute_window_energies(
    samples: np.ndarray,
    sample_rate: float,
    window_ms: float = EC.WINDOW_MS,
) -> np.ndarray:
    """
    RMS of consecutive, non-overlapping windows.

    A trailing partial window is dropped.

    Args:
        samples: Audio samples
        sample_rate: Sample rate (Hz)
        window_ms: Window length (ms)

    Returns:
        Array with one RMS value per full window
    """
    x = np.asarray(samples, dtype=np.float64)
    size = window_size_samples(sample_rate, window_ms)
    n_windows = len(x) // size
    if n_windows == 0:
        return np.zeros(0)
    blocks = x[: n_windows * size].reshape(n_windows, size)
    return np.sqrt(np.mean(blocks * blocks, axis=1))


def segment_events(
    energies: np.ndarray,
    threshold: float,
    min_gap_windows: int = EC.MIN_GAP_WINDOWS,
    min_event_windows: int = EC.MIN_EVENT_WINDOWS,
) -> list[CandidateEvent]:
    """
    Group above-threshold windows into candidate events.

    An event stays open through up to min_gap_windows consecutive quiet
    windows; the event's end excludes the trailing quiet windows. Events
    spanning fewer than min_event_windows windows are dropped.

    Args:
        energies: Window RMS values
        threshold: Strict lower bound for an active window
        min_gap_windows: Quiet windows tolerated inside an event
        min_event_windows: Minimum event length in windows

    Returns:
        Candidate events in time order

    Example:
        >>> segment_events(np.array([0, 1, 1, 0, 1, 0, 0, 0, 0]), 0.5)
        [CandidateEvent(start_window=1, end_window=4, peak_energy=1.0)]
    """
    values = np.asarray(energies, dtype=np.float64)
    events: list[CandidateEvent] = []

    in_event = False
    start = 0
    peak = 0.0
    gap = 0

    for i, energy in enumerate(values):
        if energy > threshold:
            if not in_event:
                in_event = True
                start = i
                peak = float(energy)
            else:
                peak = max(peak, float(energy))
            gap = 0
        elif in_event:
            gap += 1
            if gap > min_gap_windows:
                events.append(CandidateEvent(start, i - gap, peak))
                in_event = False
                gap = 0

    if in_event:
        events.append(CandidateEvent(start, len(values) - 1 - gap, peak))

    kept = [e for e in events if e.window_count >= min_event_windows]
    if len(kept) != len(events):
        logger.debug(
            f"Dropped {len(events) - len(kept)} events shorter than "
            f"{min_event_windows} windows"
        )
    return kept


def event_sample_bounds(
    event: CandidateEvent, window_size: int, total_samples: int
) -> tuple[int, int]:
    """Sample range [start, end) covered by an event's windows."""
    start = event.start_window * window_size
    end = min((event.end_window + 1) * window_size, total_samples)
    return start, end
