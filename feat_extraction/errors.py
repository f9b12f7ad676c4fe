"""
Exceptions raised by the feature extraction functions.

Both derive from ValueError so callers that already guard against bad input
with `except ValueError` keep working.
"""


class ShapeError(ValueError):
    """Input array has the wrong shape or is too short for the requested partitioning."""


class ConfigurationError(ValueError):
    """Analysis parameters are inconsistent; raised before any computation starts."""
