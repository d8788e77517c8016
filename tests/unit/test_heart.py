"""
Tests for heart rate and HRV extraction.
"""

import numpy as np
import pytest

from gutsense.analysis.filters import FilterCache, apply_zero_phase_filter, heart_filter
from gutsense.analysis.heart import (
    align_peaks_to_period,
    analyze_heart_rate,
    check_heart_signal_presence,
    clean_intervals,
    compute_envelope,
    compute_rmssd,
    compute_vagal_tone_score,
    detect_envelope_peaks,
    estimate_beat_period,
)
from gutsense.analysis.types import HeartAnalytics
from tests.helpers.synthetic_data import generate_heart_recording, generate_tone


class TestHRVMath:
    """Test RMSSD and the vagal tone mapping."""

    def test_rmssd(self):
        assert compute_rmssd([800, 800, 800]) == 0.0
        assert compute_rmssd([700, 900, 700, 900]) == 200.0
        assert compute_rmssd([800]) == 0.0

    @pytest.mark.parametrize(
        "rmssd,score", [(0.0, 0.0), (20.0, 0.0), (50.0, 50.0), (80.0, 100.0), (200.0, 100.0)]
    )
    def test_vagal_tone(self, rmssd, score):
        assert compute_vagal_tone_score(rmssd) == pytest.approx(score)

    def test_clean_intervals(self):
        intervals = np.array([300.0, 800.0, 810.0, 790.0, 1200.0, 1600.0])
        np.testing.assert_allclose(clean_intervals(intervals), [800.0, 810.0, 790.0])

    def test_clean_intervals_none_plausible(self):
        assert len(clean_intervals(np.array([100.0, 2000.0]))) == 0


class TestBeatTracking:
    """Test the envelope, period estimate and period alignment."""

    def test_envelope_rate(self):
        envelope, rate = compute_envelope(np.ones(8000), 4000)
        assert rate == 1000
        assert len(envelope) == 2000
        np.testing.assert_allclose(envelope, 1.0)

    def test_period_of_pulse_train(self):
        envelope = np.zeros(10000)
        envelope[::800] = 1.0
        period, confidence = estimate_beat_period(envelope, 1000.0)
        assert period == 800
        assert confidence > 0.8

    def test_period_needs_enough_envelope(self):
        assert estimate_beat_period(np.ones(100), 1000.0) == (None, 0.0)

    def test_alignment_skips_missed_beats(self):
        envelope = np.zeros(4000)
        peaks = [500, 1300, 2900]
        envelope[peaks] = 1.0
        aligned = align_peaks_to_period(peaks, envelope, 800)
        assert aligned == [500, 1300, 2900]

    def test_alignment_never_adds_beats(self):
        envelope = np.full(10000, 0.1)
        envelope[500] = 1.0
        assert align_peaks_to_period([500], envelope, 800) == [500]

    def test_alignment_drops_off_grid_peaks(self):
        envelope = np.zeros(3000)
        peaks = [800, 1200, 1650, 2400]
        envelope[peaks] = [1.0, 0.9, 0.5, 0.6]
        aligned = align_peaks_to_period(peaks, envelope, 800)
        assert aligned == [800, 1650, 2400]

    def test_envelope_peaks_keep_higher_of_close_pair(self):
        index = np.arange(5000)
        envelope = np.zeros(5000)
        for center, height in [(1000, 1.0), (1200, 0.6), (3000, 0.8)]:
            envelope += height * np.exp(-0.5 * ((index - center) / 20.0) ** 2)
        assert detect_envelope_peaks(envelope, 1000.0) == [1000, 3000]

    def test_flat_envelope_has_no_peaks(self):
        assert detect_envelope_peaks(np.zeros(2000), 1000.0) == []


class TestHeartRate:
    """Test heart rate extraction end to end."""

    def test_steady_rhythm(self, heart_recording):
        samples, sample_rate = heart_recording
        result = analyze_heart_rate(samples, len(samples) / sample_rate, sample_rate)
        assert 73 <= result.bpm <= 77
        assert result.hrv_valid
        assert result.rmssd < 5
        assert result.vagal_tone_score == 0
        assert result.beat_count >= 30
        assert result.avg_interval_ms == pytest.approx(800, abs=10)
        assert result.confidence > 0.7

    def test_slower_rhythm(self):
        samples, sample_rate = generate_heart_recording(interval_ms=1000.0)
        result = analyze_heart_rate(samples, 30.0, sample_rate)
        assert 58 <= result.bpm <= 62

    def test_few_regular_beats_have_no_rate(self):
        samples, sample_rate = generate_heart_recording(noise_std=0.0)
        samples[int(3.5 * sample_rate) :] = 0.0

        filtered = apply_zero_phase_filter(heart_filter(sample_rate, FilterCache()), samples)
        envelope, envelope_rate = compute_envelope(filtered, sample_rate)
        period, period_confidence = estimate_beat_period(envelope, envelope_rate)
        assert period == pytest.approx(800, abs=20)
        assert period_confidence >= 0.5

        result = analyze_heart_rate(samples, 30.0, sample_rate)
        assert result.beat_count == 4
        assert result.bpm == 0
        assert not result.hrv_valid
        assert result.rmssd == 0.0
        assert result.vagal_tone_score == 0

    def test_silence_has_no_rate(self):
        result = analyze_heart_rate(np.zeros(40000), 10.0, 4000)
        assert result.bpm == 0
        assert not result.hrv_valid
        assert result.rmssd == 0.0

    def test_short_recording(self):
        assert analyze_heart_rate(np.ones(4000), 4.0, 1000) == HeartAnalytics()

    def test_empty(self):
        assert analyze_heart_rate(np.zeros(0), 30.0, 4000) == HeartAnalytics()

    def test_invalid_sample_rate(self):
        with pytest.raises(ValueError, match="Sample rate"):
            analyze_heart_rate(np.ones(100), 10.0, 0)

    def test_shared_filter_cache(self, heart_recording):
        samples, sample_rate = heart_recording
        cache = FilterCache()
        analyze_heart_rate(samples, 30.0, sample_rate, filter_cache=cache)
        assert len(cache) == 1


class TestSignalPresence:
    """Test the quick heart-band energy check."""

    def test_heart_sounds_present(self, heart_recording):
        samples, sample_rate = heart_recording
        present, strength = check_heart_signal_presence(samples, sample_rate)
        assert present
        assert strength > 0.05

    def test_high_tone_has_no_heart_band(self):
        present, strength = check_heart_signal_presence(generate_tone(1000.0, 10.0, 4000), 4000)
        assert not present
        assert strength < 0.01

    def test_needs_three_seconds(self):
        assert check_heart_signal_presence(np.ones(2000), 1000) == (False, 0.0)

    def test_silence(self):
        assert check_heart_signal_presence(np.zeros(8000), 1000) == (False, 0.0)
