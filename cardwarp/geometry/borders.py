# cardwarp/geometry/borders.py
"""
Border-line strategy.

Assumes the document fills a fixed rectangle in the middle of the frame
(the user lines it up with an on-screen guide). Each edge of the document is
searched for in a strip along the matching side of that rectangle:

    +--------------------------+
    |           TOP            |
    +----+--------------+------+
    |    |              |      |
    |LEFT|              |RIGHT |
    |    |              |      |
    +----+--------------+------+
    |          BOTTOM          |
    +--------------------------+

Strips overlap at the corners. Bottom/right lines are found in strip-local
coordinates and shifted back into rectangle coordinates before intersecting.
"""

from __future__ import annotations
from typing import Dict, List, Optional
import logging
import numpy as np

from cardwarp.core.config import BorderConfig
from cardwarp.core.contracts import BorderEdge, BorderRegion, CornerSet, Line
from cardwarp.core.errors import ConfigError
from cardwarp.core.provider import OpenCVProvider, default_provider
from cardwarp.geometry.lines import find_best_line, intersect_corners, line_from_polar
from cardwarp.geometry.rectify import warp_quad

logger = logging.getLogger(__name__)


def detection_rectangle(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Centered width x height view into `image`."""
    H, W = image.shape[:2]
    if width > W or height > H:
        raise ConfigError(f"detection rectangle {width}x{height} does not fit into {W}x{H} frame")
    x0 = (W - width) // 2
    y0 = (H - height) // 2
    return image[y0:y0 + height, x0:x0 + width]


def border_regions(image: np.ndarray, detection_width: int) -> List[BorderRegion]:
    rows, cols = image.shape[:2]
    d = int(detection_width)
    return [
        BorderRegion(image[0:d, 0:cols], BorderEdge.TOP),
        BorderRegion(image[0:rows, 0:d], BorderEdge.LEFT),
        BorderRegion(image[rows - d:rows, 0:cols], BorderEdge.BOTTOM),
        BorderRegion(image[0:rows, cols - d:cols], BorderEdge.RIGHT),
    ]


def region_lines(region: BorderRegion, cfg: BorderConfig, provider: OpenCVProvider) -> List[Line]:
    edges = provider.detect_edges(region.image, cfg.canny_low, cfg.canny_high)
    polar = provider.hough_lines(edges, cfg.hough_rho, cfg.hough_theta, cfg.hough_threshold)
    return [line_from_polar(float(rho), float(theta), cfg.line_extent) for rho, theta in polar]


def resolve_corners(
    rect_image: np.ndarray,
    cfg: Optional[BorderConfig] = None,
    provider: Optional[OpenCVProvider] = None,
) -> Optional[CornerSet]:
    """
    Corners of the document inside the detection rectangle, in rectangle
    coordinates. None when any strip has no line or the lines do not
    intersect into a usable quad.
    """
    cfg = cfg or BorderConfig()
    provider = provider or default_provider()

    rows, cols = rect_image.shape[:2]
    blurred = provider.median_blur(rect_image, cfg.blur_ksize)

    best: Dict[BorderEdge, Line] = {}
    for region in border_regions(blurred, cfg.detection_width):
        lines = region_lines(region, cfg, provider)
        if not lines:
            logger.debug("[borders] no line in %s strip", region.edge.name)
            return None
        line = find_best_line(lines)
        if region.edge is BorderEdge.BOTTOM:
            line = line.translated(dy=rows - cfg.detection_width)
        elif region.edge is BorderEdge.RIGHT:
            line = line.translated(dx=cols - cfg.detection_width)
        logger.debug("[borders] %s: %d candidates -> %s %s", region.edge.name, len(lines), line.p1, line.p2)
        best[region.edge] = line

    corners = intersect_corners(
        best[BorderEdge.TOP], best[BorderEdge.LEFT],
        best[BorderEdge.BOTTOM], best[BorderEdge.RIGHT],
    )
    if corners is None or corners.is_degenerate():
        logger.debug("[borders] degenerate corners: %s", corners)
        return None
    return corners


def detect_by_borders(
    image: np.ndarray,
    cfg: Optional[BorderConfig] = None,
    provider: Optional[OpenCVProvider] = None,
) -> Optional[np.ndarray]:
    """Rectified document from the detection rectangle, or None if no document was found."""
    cfg = cfg or BorderConfig()
    provider = provider or default_provider()

    rect = detection_rectangle(image, cfg.detection_rect_width, cfg.detection_rect_height)
    corners = resolve_corners(rect, cfg, provider)
    if corners is None:
        return None
    out_w, out_h = cfg.resolved_output_size()
    return warp_quad(rect, corners.as_quad(), out_w, out_h, provider)
