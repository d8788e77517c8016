"""
Tests for Motility Index, timeline, frequency histogram, PFHS and rhythmicity.
"""

import numpy as np
import pytest

from gutsense.analysis.analytics import (
    build_activity_timeline,
    build_frequency_histogram,
    calculate_rhythmicity_index,
    calculate_session_pfhs,
    categorize_motility,
    compute_motility_index,
    compute_pfhs,
    estimate_peak_frequency,
)
from gutsense.analysis.types import SessionAnalytics
from gutsense.constants import AnalyticsConstants as ANC
from gutsense.constants import MotilityCategory, SignalQuality
from tests.helpers.synthetic_data import generate_tone


def _session(**overrides) -> SessionAnalytics:
    fields = {
        "events_per_minute": 10.0,
        "total_active_seconds": 12,
        "total_quiet_seconds": 18,
        "motility_index": 50,
        "motility_category": MotilityCategory.NORMAL,
        "activity_timeline": [50] * 10,
        "signal_quality": SignalQuality.GOOD,
        "snr_db": 15.0,
    }
    fields.update(overrides)
    return SessionAnalytics(**fields)


class TestMotilityIndex:
    """Test the quality-weighted Motility Index."""

    @pytest.mark.parametrize(
        "quality,expected",
        [
            (SignalQuality.EXCELLENT, 50),
            (SignalQuality.GOOD, 50),
            (SignalQuality.FAIR, 25),
            (SignalQuality.POOR, 0),
        ],
    )
    def test_quality_weighting(self, quality, expected):
        assert compute_motility_index(10.0, 0.5, quality) == expected

    def test_clamped_to_100(self):
        assert compute_motility_index(40.0, 1.5) == 100

    def test_silence(self):
        assert compute_motility_index(0.0, 0.0) == 0

    @pytest.mark.parametrize(
        "index,category",
        [
            (0, MotilityCategory.QUIET),
            (32, MotilityCategory.QUIET),
            (33, MotilityCategory.NORMAL),
            (66, MotilityCategory.NORMAL),
            (67, MotilityCategory.ACTIVE),
            (100, MotilityCategory.ACTIVE),
        ],
    )
    def test_categories(self, index, category):
        assert categorize_motility(index) == category


class TestActivityTimeline:
    """Test relative activity per segment."""

    def test_relative_to_max(self):
        assert build_activity_timeline(np.array([0.0, 4.0, 8.0, 10.0]), segments=2) == [20, 90]

    def test_short_recording_pads_with_zero(self):
        timeline = build_activity_timeline(np.array([1.0, 2.0, 4.0]))
        assert timeline == [25, 50, 100] + [0] * 7

    def test_empty(self):
        assert build_activity_timeline(np.zeros(0)) == [0] * ANC.TIMELINE_SEGMENTS

    def test_silent(self):
        assert build_activity_timeline(np.zeros(50)) == [0] * ANC.TIMELINE_SEGMENTS

    def test_uneven_split(self):
        timeline = build_activity_timeline(np.ones(25))
        assert len(timeline) == 10
        assert timeline[:9] == [100] * 9
        assert timeline[9] == 0


class TestFrequencyHistogram:
    """Test peak frequency estimation and binning."""

    def test_peak_frequency_of_tone(self):
        assert estimate_peak_frequency(generate_tone(250.0, 0.5, 8000), 8000) == 250.0

    def test_out_of_band_energy_is_ignored(self):
        tone = generate_tone(250.0, 0.5, 8000, amplitude=0.01) + generate_tone(
            1000.0, 0.5, 8000, amplitude=1.0
        )
        assert estimate_peak_frequency(tone, 8000) == 250.0

    def test_silent_event(self):
        assert estimate_peak_frequency(np.zeros(1000), 8000) is None
        assert estimate_peak_frequency(np.zeros(0), 8000) is None

    def test_binning(self):
        histogram = build_frequency_histogram([150.0, 200.0, 210.0, 500.0, 50.0])
        assert histogram == pytest.approx([0.0, 1 / 3, 2 / 3, 0.0, 0.0, 0.0, 0.0, 0.0])

    def test_band_edges(self):
        histogram = build_frequency_histogram([100.0, 450.0])
        assert histogram[0] == 0.5
        assert histogram[-1] == 0.5

    def test_empty(self):
        assert build_frequency_histogram([]) == [0.0] * 8


class TestPFHS:
    """Test Peak-Frequency Histogram Similarity."""

    def test_reference_pattern_with_peaks(self):
        result = compute_pfhs(list(ANC.HEALTHY_GUT_HISTOGRAM), [200.0, 250.0, 260.0])
        assert result.correlation == pytest.approx(1.0)
        assert result.peak_bonus == 15
        assert result.score == 95
        assert result.detected_peaks == [200, 250, 260]
        assert result.is_healthy_pattern

    def test_peak_bonus_is_capped(self):
        result = compute_pfhs(list(ANC.HEALTHY_GUT_HISTOGRAM), [200.0] * 10)
        assert result.peak_bonus == 20
        assert result.score == 100

    def test_uniform_histogram_has_zero_correlation(self):
        result = compute_pfhs([0.125] * 8)
        assert result.correlation == 0.0
        assert result.score == 40
        assert not result.is_healthy_pattern

    def test_wrong_length_is_treated_as_uniform(self):
        result = compute_pfhs([1.0, 0.0, 0.0])
        assert result.score == 40
        assert result.input_histogram == pytest.approx([0.125] * 8)

    def test_empty_histogram_scores_zero(self):
        result = compute_pfhs([0.0] * 8, [200.0])
        assert result.score == 0
        assert result.peak_bonus == 0

    def test_high_frequency_pattern(self):
        result = compute_pfhs([0.0] * 7 + [1.0])
        assert result.correlation < 0
        assert result.score < 40

    def test_session_pfhs(self):
        session = _session(
            frequency_histogram=list(ANC.HEALTHY_GUT_HISTOGRAM), peak_frequencies=[205.0]
        )
        assert calculate_session_pfhs(session).score == 85

    def test_session_without_events(self):
        assert calculate_session_pfhs(_session()).score == 0


class TestRhythmicity:
    """Test the session rhythmicity index."""

    def test_steady_session(self):
        result = calculate_rhythmicity_index(_session())
        assert result.index == 100
        assert result.activity_cv == 0.0
        assert result.frequency_consistency == 100
        assert result.ratio_stability == 100

    def test_empty_timeline_is_neutral(self):
        result = calculate_rhythmicity_index(_session(activity_timeline=[]))
        assert result.index == 50

    def test_irregular_session(self):
        session = _session(
            activity_timeline=[100, 0, 0, 0, 0, 0, 0, 0, 0, 0],
            events_per_minute=30.0,
            total_active_seconds=1,
            total_quiet_seconds=29,
        )
        result = calculate_rhythmicity_index(session)
        assert result.activity_cv == pytest.approx(300.0)
        assert result.frequency_consistency == 25
        assert result.ratio_stability == 25
        assert result.index == 12
