"""
End-to-end tests for the motility pipeline.

These tests run synthetic recordings through calibration, gating,
segmentation, the veto cascade and aggregation, and check that the scoring
and debug entry points agree.
"""

import numpy as np
import pytest

from gutsense.analysis import (
    AnalysisContext,
    AnalysisOptions,
    MotilityAnalyzer,
    analyze,
    analyze_with_debug,
)
from gutsense.analysis.config import build_detection_config
from gutsense.analysis.types import AccelerometerContactResult
from gutsense.constants import GatingReason, SignalQuality, VetoFilter
from tests.helpers.synthetic_data import generate_tone, generate_white_noise


@pytest.fixture
def on_body(on_body_accelerometer):
    return AnalysisOptions(accelerometer_result=on_body_accelerometer)


class TestGutRecording:
    """Test scoring of a clean recording with regular gut sounds."""

    def test_events_are_counted(self, gut_recording, on_body):
        samples, sample_rate, starts = gut_recording
        analytics = analyze(samples, 30.0, sample_rate, on_body)

        assert not analytics.gated
        assert analytics.gating_reason is None
        assert analytics.signal_quality in (SignalQuality.GOOD, SignalQuality.EXCELLENT)
        assert len(starts) // 2 <= analytics.accepted_events <= len(starts) + 5
        assert analytics.accepted_events <= analytics.candidate_events
        assert analytics.events_per_minute > 0
        assert analytics.motility_index > 0
        assert analytics.total_active_seconds + analytics.total_quiet_seconds == 30
        assert len(analytics.activity_timeline) == 10
        assert max(analytics.activity_timeline) > 0
        assert len(analytics.peak_frequencies) == analytics.accepted_events
        assert all(100 <= f <= 450 for f in analytics.peak_frequencies)
        assert sum(analytics.frequency_histogram) == pytest.approx(1.0)

    def test_heart_fields_only_on_request(self, gut_recording, on_body_accelerometer):
        samples, sample_rate, _ = gut_recording
        options = AnalysisOptions(accelerometer_result=on_body_accelerometer)
        without = analyze(samples, 30.0, sample_rate, options)
        assert without.heart_bpm is None
        assert without.heart_rmssd is None
        assert without.vagal_tone_score is None

        options = options.model_copy(update={"include_heart_rate": True})
        with_heart = analyze(samples, 30.0, sample_rate, options)
        assert with_heart.heart_bpm is not None
        assert with_heart.motility_index == without.motility_index

    def test_input_is_not_modified(self, gut_recording, on_body):
        samples, sample_rate, _ = gut_recording
        original = samples.copy()
        analyze(samples, 30.0, sample_rate, on_body)
        np.testing.assert_array_equal(samples, original)

    def test_read_only_samples_are_filtered(self, gut_recording, on_body):
        samples, sample_rate, _ = gut_recording
        frozen = samples.copy()
        frozen.setflags(write=False)
        analytics = analyze(frozen, 30.0, sample_rate, on_body)
        result = analyze_with_debug(frozen, 30.0, sample_rate, on_body)
        assert analytics.accepted_events > 0
        assert result.analytics.accepted_events == analytics.accepted_events


class TestDebugTrace:
    """Test the rejection trace and its agreement with scoring."""

    def test_debug_matches_scoring(self, gut_recording, on_body):
        samples, sample_rate, _ = gut_recording
        analytics = analyze(samples, 30.0, sample_rate, on_body)
        result = analyze_with_debug(samples, 30.0, sample_rate, on_body)
        assert result.analytics == analytics

    def test_trace_is_consistent(self, gut_recording, on_body):
        samples, sample_rate, _ = gut_recording
        result = analyze_with_debug(samples, 30.0, sample_rate, on_body)
        summary = result.summary

        assert len(result.events) == summary.total_candidates
        assert summary.accepted + summary.rejected == summary.total_candidates
        assert sum(summary.rejections_by_filter.values()) == summary.rejected
        assert summary.accepted == result.analytics.accepted_events

        for trace in result.events:
            assert trace.accepted == (trace.rejected_by is None)
            assert [v.filter for v in trace.verdicts] == list(VetoFilter)
            assert trace.end_ms > trace.start_ms

        assert result.ambient is not None
        assert result.noise_floor is not None
        assert result.contact.source == "accelerometer"

    def test_bypassing_every_filter_accepts_every_candidate(self, gut_recording, on_body):
        samples, sample_rate, _ = gut_recording
        bypass = [VetoFilter.HARMONIC_SPEECH, VetoFilter.BREATH_ARTIFACT] + [
            VetoFilter.SPECTRAL_NOISE,
            VetoFilter.TRANSIENT,
            VetoFilter.BURST_VALIDATION,
        ]
        result = analyze_with_debug(samples, 30.0, sample_rate, on_body, bypass=bypass)

        assert result.bypassed_filters == list(VetoFilter)
        assert result.summary.accepted == result.summary.total_candidates
        assert all(v.bypassed for trace in result.events for v in trace.verdicts)

    def test_config_changes_reach_the_cascade(self, gut_recording, on_body):
        samples, sample_rate, _ = gut_recording
        strict = build_detection_config({"burst": {"max_duration_ms": 50}})
        result = analyze_with_debug(samples, 30.0, sample_rate, on_body, config=strict)
        assert result.summary.accepted == 0
        assert result.summary.rejections_by_filter.get(VetoFilter.BURST_VALIDATION, 0) > 0


class TestGating:
    """Test recording-level gates."""

    def test_no_contact_from_audio(self, gut_recording):
        samples, sample_rate, _ = gut_recording
        result = analyze_with_debug(samples, 30.0, sample_rate)
        assert result.analytics.gated
        assert result.analytics.gating_reason == GatingReason.NO_CONTACT_AUDIO
        assert result.analytics.motility_index == 0
        assert result.contact.source == "audio"
        assert result.events == []

    def test_no_contact_from_accelerometer(self, gut_recording):
        samples, sample_rate, _ = gut_recording
        off_body = AccelerometerContactResult(
            no_contact=True,
            variance_in_body_range=False,
            total_variance=0.0,
            confidence=0.9,
            rejection_reason="too_still",
        )
        analytics = analyze(
            samples, 30.0, sample_rate, AnalysisOptions(accelerometer_result=off_body)
        )
        assert analytics.gated
        assert analytics.gating_reason == GatingReason.NO_CONTACT_ACCELEROMETER

    def test_fan_noise_is_gated(self, on_body):
        noise = generate_white_noise(12.0, 8000)
        analytics = analyze(noise, 12.0, 8000, on_body)
        assert analytics.gated
        assert analytics.gating_reason == GatingReason.STATIONARY_NOISE
        assert analytics.motility_index == 0
        assert analytics.accepted_events == 0

    def test_mains_hum_is_gated(self, on_body):
        analytics = analyze(generate_tone(60.0, 12.0, 8000), 12.0, 8000, on_body)
        assert analytics.gated
        assert analytics.gating_reason in (
            GatingReason.STATIONARY_NOISE,
            GatingReason.MECHANICAL_RHYTHM,
        )

    def test_gated_result_keeps_ambient_quality(self, on_body):
        noise = generate_white_noise(12.0, 8000, std=0.001)
        result = analyze_with_debug(noise, 12.0, 8000, on_body)
        assert result.analytics.gated
        assert result.analytics.snr_db == result.ambient.snr_db
        assert result.analytics.signal_quality == result.ambient.signal_quality


class TestEdgeCases:
    """Test degenerate input."""

    def test_empty_recording(self):
        analytics = analyze(np.zeros(0), 0.0, 8000)
        assert analytics.motility_index == 0
        assert analytics.signal_quality == SignalQuality.POOR
        assert not analytics.gated
        assert analytics.activity_timeline == [0] * 10

    def test_invalid_sample_rate(self):
        with pytest.raises(ValueError, match="Sample rate"):
            analyze(np.ones(100), 1.0, 0)


class TestAnalysisContext:
    """Test session-scoped caches."""

    def test_calibration_is_cached(self, gut_recording, on_body):
        samples, sample_rate, _ = gut_recording
        context = AnalysisContext()
        analyzer = MotilityAnalyzer(context=context)

        first = analyzer.analyze(samples, 30.0, sample_rate, on_body)
        assert len(context.calibration_cache) == 1
        assert len(context.filter_cache) == 1

        second = analyzer.analyze(samples, 30.0, sample_rate, on_body)
        assert second == first
        assert len(context.calibration_cache) == 1

    def test_start_session_clears_caches(self, gut_recording, on_body):
        samples, sample_rate, _ = gut_recording
        context = AnalysisContext()
        analyze(samples, 30.0, sample_rate, on_body, context=context)

        context.start_session()
        assert len(context.calibration_cache) == 0
        assert len(context.filter_cache) == 0

    def test_heart_rate_through_analyzer(self, heart_recording):
        samples, sample_rate = heart_recording
        result = MotilityAnalyzer().analyze_heart_rate(samples, 30.0, sample_rate)
        assert 73 <= result.bpm <= 77
