"""
Typed failures raised by the pose decoders.
All of them are ValueErrors so callers can catch either.
"""


class PoseDecodingError(ValueError):
    """Base class for every decode failure."""


class ConfigurationError(PoseDecodingError):
    """Unknown estimation mode or an invalid decoder parameter."""


class ShapeMismatchError(PoseDecodingError):
    """Model outputs do not have the expected rank or channel counts."""


class DegenerateInputError(PoseDecodingError):
    """Heatmap grid or stride too small to decode anything."""
