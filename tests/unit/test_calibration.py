"""
Tests for ambient noise, hum and event-threshold calibration.
"""

import numpy as np
import pytest

from gutsense.analysis.calibration import (
    CalibrationCache,
    assess_signal_quality,
    calibrate_ambient_noise,
    calibrate_noise_floor,
    classify_signal_quality,
    detect_hum_frequencies,
    frequency_weighted_floor,
    run_acoustic_isolation,
    subtract_hum,
)
from gutsense.analysis.config import QualityConfig, build_detection_config
from gutsense.analysis.filters import FilterCache, apply_zero_phase_filter, gut_filter
from gutsense.analysis.segmentation import compute_window_energies
from gutsense.constants import SignalQuality
from tests.helpers.synthetic_data import (
    generate_body_background,
    generate_tone,
    generate_white_noise,
)


def _rms(x):
    return float(np.sqrt(np.mean(x * x)))


class TestSignalQuality:
    """Test SNR classification."""

    @pytest.mark.parametrize(
        "snr_db,expected",
        [
            (25.0, SignalQuality.EXCELLENT),
            (20.0, SignalQuality.EXCELLENT),
            (15.0, SignalQuality.GOOD),
            (6.0, SignalQuality.FAIR),
            (5.9, SignalQuality.POOR),
        ],
    )
    def test_boundaries(self, snr_db, expected):
        assert classify_signal_quality(snr_db) == expected

    def test_custom_boundaries(self):
        strict = QualityConfig(excellent_db=30.0, good_db=25.0, fair_db=20.0)
        assert classify_signal_quality(22.0, strict) == SignalQuality.FAIR

    def test_assessment_against_noise_floor(self):
        assessment = assess_signal_quality(signal_rms=1.0, noise_rms=0.01)
        assert assessment.snr_db == pytest.approx(20.0)
        assert assessment.quality == SignalQuality.EXCELLENT
        assert assessment.is_suitable

    def test_assessment_without_noise_floor(self):
        assessment = assess_signal_quality(signal_rms=1.0, noise_rms=0.0)
        assert assessment.snr_db == 0.0
        assert not assessment.is_suitable


class TestAmbientCalibration:
    """Test the ambient noise floor estimate."""

    def test_quiet_room_is_excellent(self):
        quiet = generate_white_noise(6.0, 8000, std=0.001)
        calibration = calibrate_ambient_noise(quiet, 8000)
        assert calibration.signal_quality == SignalQuality.EXCELLENT
        assert calibration.snr_db == pytest.approx(26.0, abs=1.0)
        assert calibration.calibration_windows == 50

    def test_noisy_room_is_poor(self):
        noisy = generate_white_noise(6.0, 8000, std=0.02)
        calibration = calibrate_ambient_noise(noisy, 8000)
        assert calibration.signal_quality == SignalQuality.POOR
        assert calibration.snr_db == pytest.approx(0.0, abs=1.0)

    def test_adaptive_threshold(self):
        noisy = generate_white_noise(6.0, 8000, std=0.02)
        calibration = calibrate_ambient_noise(noisy, 8000)
        expected = calibration.anf_mean + 1.5 * calibration.anf_std
        assert calibration.adaptive_threshold == pytest.approx(expected)

    def test_silence_caps_snr(self):
        calibration = calibrate_ambient_noise(np.zeros(8000), 8000)
        assert calibration.snr_db == 30.0
        assert calibration.signal_quality == SignalQuality.EXCELLENT

    def test_too_short_falls_back(self):
        calibration = calibrate_ambient_noise(np.zeros(100), 8000)
        assert calibration.signal_quality == SignalQuality.POOR
        assert calibration.adaptive_threshold == 0.01
        assert calibration.calibration_windows == 0

    def test_median_ignores_a_loud_burst(self):
        quiet = generate_white_noise(5.0, 8000, std=0.001)
        with_burst = quiet.copy()
        with_burst[8000:8800] += generate_tone(250, 0.1, 8000, amplitude=0.5)
        baseline = calibrate_ambient_noise(quiet, 8000)
        calibration = calibrate_ambient_noise(with_burst, 8000)
        assert calibration.snr_db == pytest.approx(baseline.snr_db, abs=0.5)
        assert calibration.anf_mean > baseline.anf_mean


class TestHum:
    """Test mains and fan hum detection and removal."""

    @pytest.mark.parametrize("sample_rate", [8000, 44100])
    def test_detects_mains_hum(self, sample_rate):
        hum = generate_tone(60, 1.0, sample_rate)
        assert detect_hum_frequencies(hum, sample_rate) == [60.0]

    def test_no_hum_in_white_noise(self):
        noise = generate_white_noise(1.0, 8000)
        assert detect_hum_frequencies(noise, 8000) == []

    def test_body_noise_is_not_hum(self):
        background = generate_body_background(1.0, 8000)
        assert detect_hum_frequencies(background, 8000) == []

    def test_subtraction_removes_most_of_the_hum(self):
        hum = generate_tone(60, 2.0, 8000)
        cleaned = subtract_hum(hum, 8000, [60.0])
        assert _rms(cleaned) == pytest.approx(0.2 * _rms(hum), rel=0.05)

    def test_subtraction_returns_new_array(self):
        hum = generate_tone(60, 1.0, 8000)
        original = hum.copy()
        unchanged = subtract_hum(hum, 8000, [])
        assert np.array_equal(unchanged, hum)
        assert unchanged is not hum
        subtract_hum(hum, 8000, [60.0])
        assert np.array_equal(hum, original)

    def test_acoustic_isolation_reports_hum(self):
        room = generate_white_noise(6.0, 8000, std=0.003) + generate_tone(60, 6.0, 8000, 0.011)
        result = run_acoustic_isolation(room, 8000)
        assert result.calibration.signal_quality == SignalQuality.FAIR
        assert result.calibration.hum_frequencies == [60.0]
        assert "60 Hz" in result.recommendation
        assert result.is_suitable

    def test_acoustic_isolation_rejects_noisy_room(self):
        result = run_acoustic_isolation(generate_white_noise(6.0, 8000, std=0.05), 8000)
        assert not result.is_suitable
        assert "quieter location" in result.recommendation


class TestCalibrationCache:
    """Test per-recording caching of the ambient calibration."""

    @pytest.fixture
    def clock(self):
        now = [0.0]

        def _clock():
            return now[0]

        _clock.now = now
        return _clock

    def test_hit_returns_same_result(self, clock):
        cache = CalibrationCache(ttl_seconds=60.0, clock=clock)
        samples = generate_white_noise(2.0, 8000, std=0.001)
        first = cache.get_or_calibrate(samples, 8000)
        assert cache.get_or_calibrate(samples.copy(), 8000) is first
        assert len(cache) == 1

    def test_different_content_misses(self, clock):
        cache = CalibrationCache(clock=clock)
        cache.get_or_calibrate(generate_white_noise(2.0, 8000, seed=1), 8000)
        cache.get_or_calibrate(generate_white_noise(2.0, 8000, seed=2), 8000)
        assert len(cache) == 2

    def test_sample_rate_is_part_of_key(self, clock):
        cache = CalibrationCache(clock=clock)
        samples = generate_white_noise(2.0, 8000)
        cache.get_or_calibrate(samples, 8000)
        assert cache.get(samples, 16000) is None

    def test_entries_expire(self, clock):
        cache = CalibrationCache(ttl_seconds=60.0, clock=clock)
        samples = generate_white_noise(2.0, 8000)
        cache.get_or_calibrate(samples, 8000)
        clock.now[0] = 59.0
        assert cache.get(samples, 8000) is not None
        clock.now[0] = 61.0
        assert cache.get(samples, 8000) is None
        assert len(cache) == 0

    def test_invalidate(self, clock):
        cache = CalibrationCache(clock=clock)
        samples = generate_white_noise(2.0, 8000)
        cache.get_or_calibrate(samples, 8000)
        cache.invalidate()
        assert cache.get(samples, 8000) is None


class TestNoiseFloor:
    """Test the event threshold derived from filtered audio."""

    @pytest.fixture
    def filtered_background(self):
        background = generate_body_background(10.0, 8000)
        return apply_zero_phase_filter(gut_filter(8000, FilterCache()), background)

    def test_threshold_bounds(self, filtered_background):
        energies = compute_window_energies(filtered_background, 8000)
        floor = calibrate_noise_floor(filtered_background, energies, 8000)
        base = floor.base_noise_floor
        assert base <= floor.event_threshold <= 5 * base
        assert floor.calibration_windows == 30
        assert floor.multiplier == 2.0
        assert not floor.is_air_noise_baseline

    def test_threshold_formula(self, filtered_background):
        energies = compute_window_energies(filtered_background, 8000)
        floor = calibrate_noise_floor(filtered_background, energies, 8000)
        expected = min(floor.base_noise_floor + 2.0 * floor.std_dev_rms, 5 * floor.base_noise_floor)
        assert floor.event_threshold == pytest.approx(max(expected, floor.base_noise_floor))

    def test_air_noise_baseline_raises_multiplier(self):
        noise = generate_white_noise(5.0, 8000, std=0.01)
        energies = compute_window_energies(noise, 8000)
        floor = calibrate_noise_floor(noise, energies, 8000)
        assert floor.is_air_noise_baseline
        assert floor.multiplier == pytest.approx(3.0)
        assert floor.event_threshold <= 5 * floor.base_noise_floor

    def test_few_windows_use_fallback(self):
        short = generate_white_noise(0.3, 8000, std=0.01)
        energies = compute_window_energies(short, 8000)
        floor = calibrate_noise_floor(short, energies, 8000)
        assert floor.multiplier == 2.5
        assert floor.baseline_sfm == 0.5
        assert floor.frequency_weighted_floor == 0.0
        assert floor.calibration_windows == 3

    def test_configured_calibration_span(self, filtered_background):
        config = build_detection_config({"noise_floor": {"calibration_seconds": 1.0}})
        energies = compute_window_energies(filtered_background, 8000)
        floor = calibrate_noise_floor(filtered_background, energies, 8000, config)
        assert floor.calibration_windows == 10


class TestFrequencyWeightedFloor:
    """Test the band-weighted RMS floor."""

    def test_tone_in_first_band(self):
        tone = generate_tone(200, 1.0, 8000, amplitude=1.0)
        # 0.6 of a 0.707 RMS tone's power lands in the 100-300 Hz band
        assert frequency_weighted_floor(tone, 8000) == pytest.approx(np.sqrt(0.6 * 0.5), rel=0.05)

    def test_tone_outside_all_bands(self):
        tone = generate_tone(2000, 1.0, 8000, amplitude=1.0)
        assert frequency_weighted_floor(tone, 8000) < 1e-3

    def test_short_block(self):
        assert frequency_weighted_floor(np.ones(100), 8000) == 0.0
