# cardwarp/color/normalize.py
"""
Photometric clean-up applied to rectified documents: histogram-based
contrast stretch followed by gamma correction.
"""

from __future__ import annotations
from typing import Optional, Tuple
import logging
import cv2
import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_CONTRAST_BOOST = 1.5
DEFAULT_GAMMA = 3.0


def _gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def gray_bounds(gray: np.ndarray) -> Optional[Tuple[int, int]]:
    """
    (min_gray, max_gray) from the cumulative 256-bin histogram:
    min_gray is the first bin with cumulative >= 1, max_gray the last bin with
    cumulative <= total - 1. None when the histogram is flat (one bin holds
    everything) or the image is empty.
    """
    hist = cv2.calcHist([np.ascontiguousarray(gray)], [0], None, [256], [0, 256]).ravel()
    acc = np.cumsum(hist)
    total = float(acc[-1])
    if total <= 0:
        return None
    lo = np.nonzero(acc >= 1)[0]
    hi = np.nonzero(acc <= total - 1)[0]
    if lo.size == 0 or hi.size == 0:
        return None
    min_gray, max_gray = int(lo[0]), int(hi[-1])
    if max_gray <= min_gray:
        return None
    return min_gray, max_gray


def contrast_stretch(image: np.ndarray, boost: float = DEFAULT_CONTRAST_BOOST) -> np.ndarray:
    """
    Stretch intensities so the used gray range spans 0..255, then lift the
    offset by `boost * |beta|` to brighten shadows. Flat images come back
    unchanged.
    """
    bounds = gray_bounds(_gray(image))
    if bounds is None:
        logger.debug("[color] flat histogram, skipping contrast stretch")
        return image.copy()
    min_gray, max_gray = bounds
    alpha = 255.0 / (max_gray - min_gray)
    beta = -min_gray * alpha
    shift = beta + abs(beta) * float(boost)
    logger.debug("[color] stretch min=%d max=%d alpha=%.3f shift=%.2f", min_gray, max_gray, alpha, shift)
    out = image.astype(np.float32) * alpha + shift
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


def gamma_lut(gamma: float = DEFAULT_GAMMA) -> np.ndarray:
    """Lookup table for out = in^(1/gamma) in normalized [0, 1] space."""
    x = np.arange(256, dtype=np.float64) / 255.0
    return np.clip(np.rint(255.0 * np.power(x, 1.0 / float(gamma))), 0, 255).astype(np.uint8)


def gamma_correct(image: np.ndarray, gamma: float = DEFAULT_GAMMA) -> np.ndarray:
    return cv2.LUT(image, gamma_lut(gamma))


def normalize(image: np.ndarray,
              boost: float = DEFAULT_CONTRAST_BOOST,
              gamma: float = DEFAULT_GAMMA) -> np.ndarray:
    return gamma_correct(contrast_stretch(image, boost), gamma)
