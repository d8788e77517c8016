"""
Recording loading.

Reads WAV files with scipy.io.wavfile and raw sample arrays saved with
numpy. Multi-channel audio is mixed down to mono and integer PCM is scaled
to [-1, 1] so the analysis always sees normalized float samples. Phone
accelerometer logs captured alongside a recording are read from CSV.
"""

import logging

from dataclasses import dataclass
from pathlib import Path

import numpy as np

from scipy.io import wavfile

from gutsense.analysis.types import AccelerometerSample

logger = logging.getLogger(__name__)

NUMPY_SUFFIXES = (".npy",)
ACCELEROMETER_COLUMNS = ("timestamp_ms", "x", "y", "z")


@dataclass(frozen=True)
class Recording:
    """Normalized mono samples plus their timing."""

    samples: np.ndarray
    sample_rate: float
    path: Path

    @property
    def duration_seconds(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate


def normalize_samples(data: np.ndarray) -> np.ndarray:
    """
    Convert raw PCM to mono float64 in [-1, 1].

    Signed integers are divided by their type's magnitude, unsigned 8-bit
    PCM is re-centered around zero, and floats pass through.

    Example:
        >>> normalize_samples(np.array([16384, -32768], dtype=np.int16)).tolist()
        [0.5, -1.0]
    """
    x = np.asarray(data)
    if np.issubdtype(x.dtype, np.unsignedinteger):
        info = np.iinfo(x.dtype)
        midpoint = (int(info.max) + 1) / 2
        x = (x.astype(np.float64) - midpoint) / midpoint
    elif np.issubdtype(x.dtype, np.signedinteger):
        x = x.astype(np.float64) / float(-np.iinfo(x.dtype).min)
    else:
        x = x.astype(np.float64)

    if x.ndim == 2:
        x = x.mean(axis=1)
    return np.clip(x, -1.0, 1.0)


def load_recording(path: str | Path, sample_rate: float | None = None) -> Recording:
    """
    Load a recording from disk.

    Args:
        path: WAV file, or a .npy array of samples
        sample_rate: Required for .npy input; ignored for WAV, which
            declares its own rate

    Returns:
        Recording with normalized mono samples

    Raises:
        ValueError: If a .npy file is given without a sample rate, the array
            is not 1-D or 2-D, or the sample rate is not positive
        OSError: If the file cannot be read
    """
    path = Path(path)

    if path.suffix.lower() in NUMPY_SUFFIXES:
        if sample_rate is None:
            raise ValueError(f"{path.name}: a sample rate is required for .npy input")
        data = np.load(path, allow_pickle=False)
        rate = float(sample_rate)
    else:
        wav_rate, data = wavfile.read(path)
        rate = float(wav_rate)
        if sample_rate is not None and float(sample_rate) != rate:
            logger.warning(
                f"Ignoring sample rate {sample_rate} for {path.name}; file declares {rate:g} Hz"
            )

    if rate <= 0:
        raise ValueError(f"{path.name}: sample rate must be positive, got {rate:g}")
    if data.ndim not in (1, 2):
        raise ValueError(f"{path.name}: expected 1-D or 2-D samples, got shape {data.shape}")

    samples = normalize_samples(data)
    logger.info(f"Loaded {path.name}: {len(samples) / rate:.1f}s at {rate:g} Hz")
    return Recording(samples=samples, sample_rate=rate, path=path)


def load_accelerometer_csv(path: str | Path) -> list[AccelerometerSample]:
    """
    Load accelerometer readings logged during a recording.

    The CSV needs a header naming timestamp_ms, x, y and z (in g); column
    order does not matter and extra columns are ignored.

    Raises:
        ValueError: If a column is missing or a reading is not a number
        OSError: If the file cannot be read
    """
    path = Path(path)
    data = np.genfromtxt(path, delimiter=",", names=True, dtype=np.float64, encoding="utf-8")

    names = data.dtype.names or ()
    missing = [c for c in ACCELEROMETER_COLUMNS if c not in names]
    if missing:
        raise ValueError(f"{path.name}: missing accelerometer columns {', '.join(missing)}")

    rows = np.atleast_1d(data)
    for column in ACCELEROMETER_COLUMNS:
        if not np.all(np.isfinite(rows[column])):
            raise ValueError(f"{path.name}: non-numeric value in column {column!r}")

    samples = [
        AccelerometerSample(
            x=float(row["x"]),
            y=float(row["y"]),
            z=float(row["z"]),
            timestamp_ms=float(row["timestamp_ms"]),
        )
        for row in rows
    ]
    logger.info(f"Loaded {len(samples)} accelerometer samples from {path.name}")
    return samples
