"""
Test helper utilities for gutsense testing.

This module provides reusable generators for synthetic abdominal audio,
heart sounds and accelerometer streams.
"""
