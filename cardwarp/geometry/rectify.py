# cardwarp/geometry/rectify.py
from __future__ import annotations
from typing import Optional, Tuple
import numpy as np

from cardwarp.core.provider import OpenCVProvider, default_provider


def compute_target_size(reference_width: int, reference_height: int, output_width: int) -> Tuple[int, int]:
    """
    (W, H) of the rectified output. H follows the reference template's
    aspect and is truncated, so any requested width keeps its proportions.
    """
    if reference_width <= 0 or reference_height <= 0:
        raise ValueError(f"bad reference size {reference_width}x{reference_height}")
    w = int(output_width)
    h = int((w / float(reference_width)) * reference_height)
    return w, max(1, h)


def canonical_rect(width: int, height: int) -> np.ndarray:
    return np.array([[0, 0],
                     [width, 0],
                     [width, height],
                     [0, height]], dtype=np.float32)


def warp_quad(
    image: np.ndarray,
    quad_xy: np.ndarray,
    width: int,
    height: int,
    provider: Optional[OpenCVProvider] = None,
) -> np.ndarray:
    """
    Perspective-warp a quad onto a width x height rectangle.

    Args:
        image: BGR image.
        quad_xy: 4x2 float32 array in TL, TR, BR, BL order. The order is
                 trusted as given; detectors already produce it.
        width/height: output size in pixels.

    Returns:
        Rectified image of shape (height, width, C).
    """
    provider = provider or default_provider()
    src = np.asarray(quad_xy, np.float32).reshape(4, 2)
    M = provider.perspective_matrix(src, canonical_rect(width, height))
    return provider.warp_perspective(image, M, width, height)
