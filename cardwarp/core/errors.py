"""
Exceptions raised by cardwarp.

Only hard faults live here. "No card in this photo" is a normal outcome and
is reported as a value (None / DetectionResult.not_found()).
"""

from __future__ import annotations


class CardWarpError(Exception):
    """Base class for cardwarp errors."""


class EmptyTemplateError(CardWarpError):
    """The reference image yielded no keypoints and cannot be matched against."""


class ImageDecodeError(CardWarpError, ValueError):
    """An input buffer could not be decoded into an image."""


class ConfigError(CardWarpError, ValueError):
    """Unknown configuration key or a value the detector cannot work with."""
