# cardwarp/geometry/reference.py
"""
Reference template analysis: run once per document type, then share the
resulting ReferenceTemplate across every detection call.
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional, Union
import logging
import numpy as np

from cardwarp.core.contracts import ReferenceTemplate
from cardwarp.core.errors import EmptyTemplateError
from cardwarp.core.provider import OpenCVProvider, default_provider

logger = logging.getLogger(__name__)

DEFAULT_DOWNSCALE_WIDTH = 1000


def downscaled_size(width: int, height: int, limit: int) -> tuple[int, int]:
    """(W, H) after shrinking to `limit` wide, keeping aspect; unchanged if already narrow enough."""
    if width <= limit:
        return int(width), int(height)
    return int(limit), max(1, int(round(limit * float(height) / float(width))))


def template_corners(width: int, height: int) -> np.ndarray:
    """Homogeneous image-boundary corners, clockwise from top-left."""
    return np.array([
        [0, 0, 1],
        [width, 0, 1],
        [width, height, 1],
        [0, height, 1],
    ], dtype=np.float32)


def build_reference(
    image: Union[np.ndarray, bytes],
    downscale_width: int = DEFAULT_DOWNSCALE_WIDTH,
    provider: Optional[OpenCVProvider] = None,
) -> ReferenceTemplate:
    """
    Analyze a template image (decoded array or encoded bytes).

    Raises EmptyTemplateError when no keypoints are found; such a template
    could never be matched.
    """
    provider = provider or default_provider()
    if isinstance(image, (bytes, bytearray, memoryview)):
        image = provider.decode(bytes(image))

    H, W = image.shape[:2]
    w, h = downscaled_size(W, H, int(downscale_width))
    if (w, h) != (W, H):
        logger.debug("[reference] downscale %dx%d -> %dx%d", W, H, w, h)
        image = provider.resize(image, w, h)

    keypoints = provider.detect_keypoints(image)
    points, descriptors = provider.compute_descriptors(image, keypoints)
    if len(points) == 0:
        raise EmptyTemplateError(f"no keypoints found in {w}x{h} template")

    logger.debug("[reference] %d keypoints on %dx%d template", len(points), w, h)
    return ReferenceTemplate(
        image=image,
        corners=template_corners(w, h),
        keypoints=points,
        descriptors=descriptors,
    )


def build_reference_from_path(
    path: Union[str, Path],
    downscale_width: int = DEFAULT_DOWNSCALE_WIDTH,
    provider: Optional[OpenCVProvider] = None,
) -> ReferenceTemplate:
    from cardwarp.io.ingest import load_image
    return build_reference(load_image(path), downscale_width, provider)
