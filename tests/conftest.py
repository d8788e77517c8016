"""Pytest configuration and fixtures for gutsense tests."""

import numpy as np
import pytest


def pytest_configure(config):
    """Register custom test markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that do not require external dependencies"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests combining multiple components"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take significant time (>5 seconds)"
    )


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config and log files out of the real ~/.gutsense."""
    config_dir = tmp_path / ".gutsense"
    monkeypatch.setattr("gutsense.config.DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr("gutsense.logging_config.DEFAULT_LOG_DIR", config_dir / "logs")
    return config_dir


@pytest.fixture
def rng():
    """Seeded random generator for reproducible noise."""
    return np.random.default_rng(1234)


# =============================================================================
# Recording Fixtures
# =============================================================================


@pytest.fixture
def gut_recording():
    """30 s at 8 kHz: quiet body noise with a gut burst every 1.3 s from 3.5 s."""
    from tests.helpers.synthetic_data import generate_gut_recording

    return generate_gut_recording()


@pytest.fixture
def heart_recording():
    """30 s at 4 kHz with a heart sound every 800 ms (75 bpm)."""
    from tests.helpers.synthetic_data import generate_heart_recording

    return generate_heart_recording()


@pytest.fixture
def on_body_accelerometer():
    """Confident accelerometer result for a phone resting on the abdomen."""
    from gutsense.analysis.types import AccelerometerContactResult

    return AccelerometerContactResult(
        no_contact=False,
        variance_in_body_range=True,
        total_variance=0.001,
        confidence=0.9,
    )
