# cardwarp/geometry/features.py
"""
Locate a reference template in a photo via SIFT correspondences and a RANSAC
homography.

Failing to find the document is routine on real photos, so every dead end
here (no descriptors, too few good matches, degenerate fit) returns None.
"""

from __future__ import annotations
from typing import List, Optional, Sequence
import logging
import numpy as np

from cardwarp.core.config import FeatureConfig
from cardwarp.core.contracts import Correspondence, Homography, Location, ReferenceTemplate
from cardwarp.core.provider import OpenCVProvider, default_provider

logger = logging.getLogger(__name__)


def ratio_test(knn_matches: Sequence[Sequence], ratio: float = 0.75) -> List[Correspondence]:
    """
    Keep a match only when its best neighbour is clearly closer than the
    second best. Query side is the reference, train side the input photo.
    """
    good: List[Correspondence] = []
    for pair in knn_matches:
        if len(pair) < 2:
            continue
        m, n = pair[0], pair[1]
        if m.distance < ratio * n.distance:
            good.append(Correspondence(int(m.queryIdx), int(m.trainIdx), float(m.distance)))
    return good


def estimate_homography(src: np.ndarray, dst: np.ndarray, tolerance: float,
                        provider: OpenCVProvider) -> Optional[Homography]:
    if len(src) < 4:
        return None
    H, mask = provider.solve_homography(src, dst, tolerance)
    if H is None or mask is None:
        return None
    hom = Homography(matrix=np.asarray(H, np.float64), mask=np.asarray(mask, bool).ravel())
    if not hom.is_valid:
        return None
    return hom


def project_corners(corners: np.ndarray, matrix: np.ndarray, provider: OpenCVProvider) -> np.ndarray:
    """Map (4,3) homogeneous template corners into input-image pixels, (4,2)."""
    c = np.asarray(corners, np.float32)
    if c.shape[1] == 3:
        c = c[:, :2] / c[:, 2:3]
    return provider.project_points(c, matrix)


def locate(
    image: np.ndarray,
    reference: ReferenceTemplate,
    cfg: Optional[FeatureConfig] = None,
    provider: Optional[OpenCVProvider] = None,
) -> Optional[Location]:
    cfg = cfg or FeatureConfig()
    provider = provider or default_provider()

    keypoints = provider.detect_keypoints(image)
    input_pts, input_des = provider.compute_descriptors(image, keypoints)
    if len(input_des) == 0:
        logger.debug("[features] no descriptors in input")
        return None

    knn = provider.match_knn(reference.descriptors, input_des, k=2)
    good = ratio_test(knn, cfg.ratio)
    logger.debug("[features] kpt_template=%d kpt_input=%d good=%d",
                 len(reference), len(input_pts), len(good))
    if len(good) < cfg.min_matches:
        return None

    src = np.float32([reference.keypoints[c.reference_index] for c in good])
    dst = np.float32([input_pts[c.input_index] for c in good])

    hom = estimate_homography(src, dst, cfg.ransac_thresh, provider)
    if hom is None:
        logger.debug("[features] homography failed or degenerate")
        return None

    quad = project_corners(reference.corners, hom.matrix, provider)
    if not np.isfinite(quad).all():
        logger.debug("[features] projected corners not finite")
        return None

    loc = Location(quad=quad, inliers=hom.inliers, total=len(good))
    logger.debug("[features] inliers=%d/%d confidence=%.3f", loc.inliers, loc.total, loc.confidence)
    return loc


def match_confidence(
    image: np.ndarray,
    reference: ReferenceTemplate,
    cfg: Optional[FeatureConfig] = None,
    provider: Optional[OpenCVProvider] = None,
) -> float:
    """Inlier ratio of `image` against `reference`; 0.0 when nothing matched."""
    loc = locate(image, reference, cfg, provider)
    return loc.confidence if loc is not None else 0.0
