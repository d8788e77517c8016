"""
gutsense: bowel sound and heart rate analysis for abdominal phone recordings.

Scores gut motility from audio captured with a phone resting on the abdomen
and extracts heart rate and HRV from the same recording.
"""

from typing import Any

__all__ = ["analyze", "analyze_with_debug", "analyze_heart_rate", "MotilityAnalyzer"]


def __getattr__(name: str) -> Any:
    """Lazy load the analysis entry points so importing gutsense stays cheap."""
    if name in ("analyze", "analyze_with_debug", "MotilityAnalyzer"):
        from gutsense.analysis import pipeline

        return getattr(pipeline, name)
    if name == "analyze_heart_rate":
        from gutsense.analysis.heart import analyze_heart_rate

        return analyze_heart_rate
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
