"""
Tests for the accelerometer body-contact gate.
"""

import pytest

from gutsense.analysis.accelerometer import (
    AccelerometerContactDetector,
    DetectorState,
    analyze_accelerometer_samples,
)
from gutsense.analysis.config import AccelerometerConfig
from gutsense.analysis.types import AccelerometerSample
from tests.helpers.synthetic_data import generate_accelerometer_samples, summed_variance


class TestVarianceGate:
    """Test contact classification from summed axis variance."""

    def test_breathing_motion_is_contact(self):
        samples = generate_accelerometer_samples(400, axis_std=0.05)
        result = analyze_accelerometer_samples(samples)
        assert result.variance_in_body_range
        assert not result.no_contact
        assert result.rejection_reason is None
        assert result.confidence > 0.5
        assert result.avg_z == pytest.approx(1.0, abs=0.01)

    def test_table_is_too_still(self):
        samples = generate_accelerometer_samples(400, axis_std=0.0005)
        result = analyze_accelerometer_samples(samples)
        assert result.no_contact
        assert result.rejection_reason == "too_still"
        assert result.confidence == pytest.approx(1.0)

    def test_handling_is_too_much_motion(self):
        samples = generate_accelerometer_samples(400, axis_std=0.2)
        result = analyze_accelerometer_samples(samples)
        assert result.no_contact
        assert result.rejection_reason == "too_much_motion"
        assert result.confidence == pytest.approx(0.02 / result.total_variance)
        assert not result.high_motion_warning

    def test_high_motion_warning_inside_range(self):
        samples = generate_accelerometer_samples(400, axis_std=0.06)
        result = analyze_accelerometer_samples(samples)
        assert result.variance_in_body_range
        assert result.high_motion_warning

    def test_total_variance_sums_axes(self):
        samples = generate_accelerometer_samples(400, axis_std=0.01)
        result = analyze_accelerometer_samples(samples)
        assert result.total_variance == pytest.approx(summed_variance(samples))

    def test_lower_bound_is_inclusive(self):
        samples = generate_accelerometer_samples(400, axis_std=0.01)
        config = AccelerometerConfig(min_variance=summed_variance(samples))
        result = analyze_accelerometer_samples(samples, config)
        assert result.variance_in_body_range
        assert not result.no_contact

    def test_upper_bound_is_inclusive(self):
        samples = generate_accelerometer_samples(400, axis_std=0.01)
        config = AccelerometerConfig(max_variance=summed_variance(samples))
        result = analyze_accelerometer_samples(samples, config)
        assert result.variance_in_body_range
        assert not result.no_contact

    def test_only_settled_samples_count(self):
        handling = generate_accelerometer_samples(200, axis_std=0.3, seed=1)
        resting = generate_accelerometer_samples(400, axis_std=0.05, seed=2)
        result = analyze_accelerometer_samples(handling + resting)
        assert result.sample_count == 400
        assert result.variance_in_body_range

    def test_too_few_samples_defers_to_audio(self):
        samples = generate_accelerometer_samples(39, axis_std=0.05)
        result = analyze_accelerometer_samples(samples)
        assert result.rejection_reason == "insufficient_samples"
        assert not result.no_contact
        assert result.confidence == 0.0

    def test_too_few_settled_samples(self):
        samples = generate_accelerometer_samples(400, axis_std=0.05)
        config = AccelerometerConfig(settled_sample_count=50)
        result = analyze_accelerometer_samples(samples, config)
        assert result.rejection_reason == "insufficient_samples"
        assert result.sample_count == 50

    def test_hundred_settled_samples_are_enough(self):
        few = analyze_accelerometer_samples(generate_accelerometer_samples(100, axis_std=0.05))
        many = analyze_accelerometer_samples(generate_accelerometer_samples(400, axis_std=0.05))
        assert few.variance_in_body_range
        assert few.confidence == pytest.approx(many.confidence, abs=0.2)
        assert few.sample_count == 100


class TestDetector:
    """Test the start/stop sample collector."""

    @pytest.fixture
    def sample(self):
        return AccelerometerSample(x=0.0, y=0.0, z=1.0, timestamp_ms=0)

    def test_starts_idle(self):
        detector = AccelerometerContactDetector()
        assert detector.state == DetectorState.IDLE
        assert not detector.is_running

    def test_samples_ignored_unless_running(self, sample):
        detector = AccelerometerContactDetector()
        detector.add_sample(sample)
        assert detector.get_samples() == []

        detector.start()
        detector.add_sample(sample)
        detector.stop()
        detector.add_sample(sample)
        assert len(detector.get_samples()) == 1
        assert detector.state == DetectorState.STOPPED

    def test_restart_clears_buffer(self, sample):
        detector = AccelerometerContactDetector()
        detector.start()
        detector.add_sample(sample)
        detector.stop()
        detector.start()
        assert detector.get_samples() == []

    def test_start_while_running_keeps_buffer(self, sample):
        detector = AccelerometerContactDetector()
        detector.start()
        detector.add_sample(sample)
        detector.start()
        assert len(detector.get_samples()) == 1

    def test_buffer_is_bounded(self):
        detector = AccelerometerContactDetector(AccelerometerConfig(max_buffered_samples=50))
        detector.start()
        for s in generate_accelerometer_samples(80, axis_std=0.05):
            detector.add_sample(s)
        buffered = detector.get_samples()
        assert len(buffered) == 50
        assert buffered[0].timestamp_ms == pytest.approx(30 * 50.0)

    def test_analyze_buffered_samples(self):
        detector = AccelerometerContactDetector()
        detector.start()
        for s in generate_accelerometer_samples(400, axis_std=0.05):
            detector.add_sample(s)
        assert not detector.analyze().no_contact

    def test_clear_samples(self, sample):
        detector = AccelerometerContactDetector()
        detector.start()
        detector.add_sample(sample)
        detector.clear_samples()
        assert detector.get_samples() == []
        assert detector.is_running
