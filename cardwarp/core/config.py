# cardwarp/core/config.py
"""
Detector configuration.

Both strategies take an immutable config object. Per-call tweaks are passed
as a plain mapping and merged field by field onto the defaults, so a typo in
a key fails loudly instead of being ignored.
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, TypeVar, Union
import math
import yaml

from cardwarp.core.errors import ConfigError

C = TypeVar("C", "FeatureConfig", "BorderConfig")


@dataclass(frozen=True)
class FeatureConfig:
    """Settings for the feature-matching strategy."""
    n_features: int = 4000
    ratio: float = 0.75              # Lowe ratio test
    ransac_thresh: float = 4.0       # reprojection tolerance in px
    min_matches: int = 4             # a homography needs four pairs
    downscale_width: int = 1000      # templates wider than this are shrunk
    output_width: int = 500
    normalize: bool = True
    # Offset boost for the contrast stretch. Picked by eye on underexposed
    # ID photos; >1 brightens shadows.
    contrast_boost: float = 1.5
    gamma: float = 3.0
    flann_trees: int = 5
    flann_checks: int = 50

    def __post_init__(self) -> None:
        if not 0.0 < self.ratio <= 1.0:
            raise ConfigError(f"ratio must be in (0, 1], got {self.ratio}")
        if self.ransac_thresh <= 0:
            raise ConfigError(f"ransac_thresh must be > 0, got {self.ransac_thresh}")
        if self.min_matches < 4:
            raise ConfigError(f"min_matches must be >= 4, got {self.min_matches}")
        if self.downscale_width <= 0 or self.output_width <= 0:
            raise ConfigError("downscale_width and output_width must be positive")
        if self.gamma <= 0:
            raise ConfigError(f"gamma must be > 0, got {self.gamma}")


@dataclass(frozen=True)
class BorderConfig:
    """Settings for the border-line strategy."""
    detection_rect_width: int = 320
    detection_rect_height: int = 240
    detection_width: int = 50        # thickness of each border strip
    output_width: int = 500
    output_height: Optional[int] = None  # None → follow the detection rectangle aspect
    blur_radius: int = 1
    canny_low: float = 100
    canny_ratio: float = 3
    hough_rho: float = 1
    hough_theta: float = math.pi / 180
    hough_threshold: int = 50
    line_extent: int = 1000          # half-length used to rebuild Hough lines

    def __post_init__(self) -> None:
        if self.detection_rect_width <= 0 or self.detection_rect_height <= 0:
            raise ConfigError("detection rectangle must have a positive size")
        if self.detection_width <= 0:
            raise ConfigError(f"detection_width must be > 0, got {self.detection_width}")
        if 2 * self.detection_width > min(self.detection_rect_width, self.detection_rect_height):
            raise ConfigError(
                f"detection_width {self.detection_width} does not fit twice into "
                f"{self.detection_rect_width}x{self.detection_rect_height}"
            )
        if self.output_width <= 0 or (self.output_height is not None and self.output_height <= 0):
            raise ConfigError("output size must be positive")
        if self.blur_radius < 0:
            raise ConfigError(f"blur_radius must be >= 0, got {self.blur_radius}")

    @property
    def canny_high(self) -> float:
        return self.canny_low * self.canny_ratio

    @property
    def blur_ksize(self) -> int:
        return 2 * int(self.blur_radius) + 1

    def resolved_output_size(self) -> Tuple[int, int]:
        """(W, H); H follows the detection rectangle aspect unless set."""
        if self.output_height is not None:
            return int(self.output_width), int(self.output_height)
        h = abs(self.output_width * (self.detection_rect_height / float(self.detection_rect_width)))
        return int(self.output_width), max(1, int(round(h)))


def merge_config(base: C, overrides: Optional[Mapping[str, Any]] = None) -> C:
    """Return `base` with the named fields replaced; unknown keys raise ConfigError."""
    if not overrides:
        return base
    known = {f.name for f in fields(base)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ConfigError(f"unknown {type(base).__name__} option(s): {', '.join(unknown)}")
    return replace(base, **dict(overrides))


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = data.get(name) or {}
    if not isinstance(sec, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(sec).__name__}")
    return sec


def load_config(path: Union[str, Path]) -> Tuple[FeatureConfig, BorderConfig]:
    """
    Read a YAML file with optional `features:` and `borders:` sections.
    Missing sections/keys keep their defaults.
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    unknown = sorted(set(data) - {"features", "borders"})
    if unknown:
        raise ConfigError(f"{path}: unknown section(s): {', '.join(unknown)}")
    feat = merge_config(FeatureConfig(), _section(data, "features"))
    border = merge_config(BorderConfig(), _section(data, "borders"))
    return feat, border
