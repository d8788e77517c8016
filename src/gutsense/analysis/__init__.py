"""
Bowel sound analysis engine.

Provides the motility pipeline, its threshold configuration, the body
contact gates and the heart rate extractor.
"""

from .accelerometer import (
    AccelerometerContactDetector,
    DetectorState,
    analyze_accelerometer_samples,
)
from .config import DEFAULT_CONFIG, DetectionConfig, build_detection_config
from .contact import assess_audio_contact, resolve_contact
from .heart import analyze_heart_rate, check_heart_signal_presence
from .pipeline import (
    AnalysisContext,
    AnalysisOptions,
    MotilityAnalyzer,
    analyze,
    analyze_with_debug,
)
from .types import (
    AccelerometerContactResult,
    AccelerometerSample,
    DebugAnalysisResult,
    HeartAnalytics,
    SessionAnalytics,
)

__all__ = [
    "AccelerometerContactDetector",
    "AccelerometerContactResult",
    "AccelerometerSample",
    "AnalysisContext",
    "AnalysisOptions",
    "DEFAULT_CONFIG",
    "DebugAnalysisResult",
    "DetectionConfig",
    "DetectorState",
    "HeartAnalytics",
    "MotilityAnalyzer",
    "SessionAnalytics",
    "analyze",
    "analyze_accelerometer_samples",
    "analyze_heart_rate",
    "analyze_with_debug",
    "assess_audio_contact",
    "build_detection_config",
    "check_heart_signal_presence",
    "resolve_contact",
]
