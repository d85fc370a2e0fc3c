# cardwarp/geometry/detect.py
"""
Public entry points.

    ref = build_reference(load_image("id_back.png"))
    res = detect_card(photo_bytes, ref)           # feature matching
    png = detect_card_by_borders(photo_bytes)     # fixed detection rectangle

Both take encoded image bytes and return PNG bytes. "No card" is a value
(probability 0 / None); undecodable input raises ImageDecodeError.
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Mapping, Optional, Union
import logging
import numpy as np

from cardwarp.color.normalize import normalize
from cardwarp.core.config import BorderConfig, FeatureConfig, merge_config
from cardwarp.core.contracts import DetectionResult, ReferenceTemplate
from cardwarp.core.provider import OpenCVProvider, default_provider
from cardwarp.geometry.borders import detect_by_borders
from cardwarp.geometry.features import locate
from cardwarp.geometry.rectify import compute_target_size, warp_quad
from cardwarp.geometry.reference import build_reference, build_reference_from_path

logger = logging.getLogger(__name__)

__all__ = [
    "build_reference",
    "detect_card",
    "detect_card_by_borders",
    "FeatureWarper",
    "BorderWarper",
]


def _feature_provider(cfg: FeatureConfig, provider: Optional[OpenCVProvider]) -> OpenCVProvider:
    if provider is not None:
        return provider
    shared = default_provider()
    if (shared.n_features, shared.flann_trees, shared.flann_checks) == (
            cfg.n_features, cfg.flann_trees, cfg.flann_checks):
        return shared
    return OpenCVProvider(cfg.n_features, cfg.flann_trees, cfg.flann_checks)


def _as_config(cfg, base):
    if cfg is None:
        return base
    if isinstance(cfg, type(base)):
        return cfg
    return merge_config(base, cfg)


def detect_card(
    input_buffer: bytes,
    reference: ReferenceTemplate,
    output_width: Optional[int] = None,
    cfg: Union[FeatureConfig, Mapping[str, Any], None] = None,
    provider: Optional[OpenCVProvider] = None,
) -> DetectionResult:
    """
    Find `reference` in the encoded photo and return it rectified to
    `output_width` (default cfg.output_width = 500) with the template's aspect.
    """
    cfg = _as_config(cfg, FeatureConfig())
    if output_width is not None:
        cfg = merge_config(cfg, {"output_width": int(output_width)})
    provider = _feature_provider(cfg, provider)

    image = provider.decode(input_buffer)
    loc = locate(image, reference, cfg, provider)
    if loc is None:
        return DetectionResult.not_found()

    w, h = compute_target_size(reference.width, reference.height, cfg.output_width)
    warped = warp_quad(image, loc.quad, w, h, provider)
    if cfg.normalize:
        warped = normalize(warped, cfg.contrast_boost, cfg.gamma)
    logger.info("[detect] card found, probability=%.3f", loc.confidence)
    return DetectionResult(card=provider.encode(warped, ".png"), probability=loc.confidence)


def detect_card_by_borders(
    input_buffer: bytes,
    cfg: Union[BorderConfig, Mapping[str, Any], None] = None,
    provider: Optional[OpenCVProvider] = None,
) -> Optional[bytes]:
    cfg = _as_config(cfg, BorderConfig())
    provider = provider or default_provider()

    image = provider.decode(input_buffer)
    warped = detect_by_borders(image, cfg, provider)
    if warped is None:
        logger.info("[detect] no card inside detection rectangle")
        return None
    return provider.encode(warped, ".png")


class FeatureWarper:
    """
    Feature strategy bound to one config/provider. Build references once with
    generate_reference() and reuse them for every get_card() call.
    """

    def __init__(self, cfg: Union[FeatureConfig, Mapping[str, Any], None] = None,
                 provider: Optional[OpenCVProvider] = None):
        self.cfg = _as_config(cfg, FeatureConfig())
        self.provider = _feature_provider(self.cfg, provider)

    def generate_reference(self, source: Union[str, Path, np.ndarray, bytes],
                           downscale_width: Optional[int] = None) -> ReferenceTemplate:
        limit = downscale_width if downscale_width is not None else self.cfg.downscale_width
        if isinstance(source, (str, Path)):
            return build_reference_from_path(source, limit, self.provider)
        return build_reference(source, limit, self.provider)

    def get_card(self, input_buffer: bytes, reference: ReferenceTemplate,
                 output_width: Optional[int] = None) -> DetectionResult:
        return detect_card(input_buffer, reference, output_width, self.cfg, self.provider)


class BorderWarper:
    """
    Border strategy with constructor defaults; keyword overrides passed to
    get_card() apply to that call only.
    """

    def __init__(self, cfg: Union[BorderConfig, Mapping[str, Any], None] = None,
                 provider: Optional[OpenCVProvider] = None):
        self.cfg = _as_config(cfg, BorderConfig())
        self.provider = provider or default_provider()

    def get_card(self, input_buffer: bytes, **overrides: Any) -> Optional[bytes]:
        cfg = merge_config(self.cfg, overrides)
        return detect_card_by_borders(input_buffer, cfg, self.provider)
