"""
Tests for recording loading and normalization.
"""

import numpy as np
import pytest

from scipy.io import wavfile

from gutsense.audio import load_accelerometer_csv, load_recording, normalize_samples


class TestNormalize:
    """Test PCM to float conversion."""

    def test_int16(self):
        data = np.array([0, 16384, -32768], dtype=np.int16)
        np.testing.assert_allclose(normalize_samples(data), [0.0, 0.5, -1.0])

    def test_int32(self):
        data = np.array([2**30], dtype=np.int32)
        np.testing.assert_allclose(normalize_samples(data), [0.5])

    def test_uint8_is_centered(self):
        data = np.array([0, 128, 255], dtype=np.uint8)
        np.testing.assert_allclose(normalize_samples(data), [-1.0, 0.0, 127 / 128])

    def test_float_is_clipped(self):
        np.testing.assert_allclose(normalize_samples(np.array([0.5, 2.0, -3.0])), [0.5, 1.0, -1.0])

    def test_stereo_is_mixed_down(self):
        data = np.array([[0.2, 0.4], [-0.2, 0.0]], dtype=np.float32)
        np.testing.assert_allclose(normalize_samples(data), [0.3, -0.1], rtol=1e-6)


class TestLoadRecording:
    """Test reading WAV and .npy files."""

    def test_wav(self, tmp_path):
        path = tmp_path / "belly.wav"
        data = (np.sin(np.linspace(0, 100, 8000)) * 16000).astype(np.int16)
        wavfile.write(path, 8000, data)

        recording = load_recording(path)
        assert recording.sample_rate == 8000.0
        assert recording.duration_seconds == pytest.approx(1.0)
        assert recording.samples.dtype == np.float64
        assert np.max(np.abs(recording.samples)) <= 16000 / 32768 + 1e-9
        assert recording.path == path

    def test_wav_ignores_sample_rate_argument(self, tmp_path):
        path = tmp_path / "belly.wav"
        wavfile.write(path, 8000, np.zeros(800, dtype=np.int16))
        assert load_recording(path, sample_rate=44100).sample_rate == 8000.0

    def test_npy_needs_sample_rate(self, tmp_path):
        path = tmp_path / "belly.npy"
        np.save(path, np.zeros(100))
        with pytest.raises(ValueError, match="sample rate is required"):
            load_recording(path)

    def test_npy(self, tmp_path):
        path = tmp_path / "belly.npy"
        np.save(path, np.full(4000, 0.25))
        recording = load_recording(path, sample_rate=4000)
        assert recording.duration_seconds == pytest.approx(1.0)
        np.testing.assert_allclose(recording.samples, 0.25)

    def test_npy_rejects_3d(self, tmp_path):
        path = tmp_path / "cube.npy"
        np.save(path, np.zeros((2, 2, 2)))
        with pytest.raises(ValueError, match="1-D or 2-D"):
            load_recording(path, sample_rate=1000)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_recording(tmp_path / "missing.wav")


class TestLoadAccelerometerCsv:
    """Test reading accelerometer logs."""

    def test_columns_in_any_order(self, tmp_path):
        path = tmp_path / "accel.csv"
        path.write_text("x,y,z,timestamp_ms,label\n0.01,-0.02,0.98,0,a\n0.02,-0.01,1.01,50,b\n")
        samples = load_accelerometer_csv(path)

        assert len(samples) == 2
        assert samples[0].x == pytest.approx(0.01)
        assert samples[0].z == pytest.approx(0.98)
        assert samples[1].timestamp_ms == 50.0

    def test_single_row(self, tmp_path):
        path = tmp_path / "accel.csv"
        path.write_text("timestamp_ms,x,y,z\n0,0.0,0.0,1.0\n")
        samples = load_accelerometer_csv(path)
        assert len(samples) == 1
        assert samples[0].z == 1.0

    def test_missing_column(self, tmp_path):
        path = tmp_path / "accel.csv"
        path.write_text("timestamp_ms,x,y\n0,0.0,0.0\n")
        with pytest.raises(ValueError, match="missing accelerometer columns z"):
            load_accelerometer_csv(path)

    def test_non_numeric_reading(self, tmp_path):
        path = tmp_path / "accel.csv"
        path.write_text("timestamp_ms,x,y,z\n0,0.0,oops,1.0\n")
        with pytest.raises(ValueError, match="non-numeric"):
            load_accelerometer_csv(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_accelerometer_csv(tmp_path / "absent.csv")
