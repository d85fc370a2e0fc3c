# cardwarp/geometry/lines.py
"""
Line helpers for the border strategy: rebuilding Hough lines, picking the most
consistent line per border strip and intersecting border lines into corners.
"""

from __future__ import annotations
from itertools import combinations
from typing import Optional, Sequence
import math

from cardwarp.core.contracts import CornerSet, Line, Point, line_slope

__all__ = [
    "line_slope",
    "line_from_polar",
    "line_average",
    "find_best_line",
    "find_intersection",
    "intersect_corners",
]


def line_from_polar(rho: float, theta: float, extent: int = 1000) -> Line:
    """Two integer endpoints `extent` px either side of the foot of the normal."""
    a = math.cos(theta)
    b = math.sin(theta)
    x0 = a * rho
    y0 = b * rho
    p1 = (round(x0 + extent * (-b)), round(y0 + extent * a))
    p2 = (round(x0 - extent * (-b)), round(y0 - extent * a))
    return Line(p1, p2)


def _aligned(line: Line, ref: Line) -> Line:
    """`line` with its endpoints swapped if it points against `ref`."""
    dx0, dy0 = ref.p2[0] - ref.p1[0], ref.p2[1] - ref.p1[1]
    dx, dy = line.p2[0] - line.p1[0], line.p2[1] - line.p1[1]
    if dx * dx0 + dy * dy0 < 0:
        return Line(line.p2, line.p1, line.slope)
    return line


def line_average(*lines: Line) -> Line:
    """
    Coordinate-wise mean of the endpoints, rounded. Lines are first oriented
    like the first one: Hough reports near-vertical lines with theta close to
    0 or to pi, which puts their endpoints in opposite order.
    """
    if not lines:
        raise ValueError("line_average needs at least one line")
    ref = lines[0]
    lines = tuple(_aligned(l, ref) for l in lines)
    n = float(len(lines))
    x1 = sum(l.p1[0] for l in lines) / n
    y1 = sum(l.p1[1] for l in lines) / n
    x2 = sum(l.p2[0] for l in lines) / n
    y2 = sum(l.p2[1] for l in lines) / n
    return Line((round(x1), round(y1)), (round(x2), round(y2)))


def find_best_line(lines: Sequence[Line]) -> Line:
    """
    Average of the two lines whose slopes differ the least. Pairs with an
    identical slope are skipped; if every pair is identical (or there is a
    single line) the first line is returned, averaged with itself.
    """
    if not lines:
        raise ValueError("find_best_line needs at least one line")

    best_diff: Optional[float] = None
    best_pair = (lines[0], lines[0])
    # TODO: identical-slope pairs may be the truest signal on clean scans;
    # re-check the skip against a labelled set of real photos.
    for l1, l2 in combinations(lines, 2):
        diff = abs(l1.slope - l2.slope)
        if diff == 0:
            continue
        if best_diff is None or diff < best_diff:
            best_diff = diff
            best_pair = (l1, l2)

    return line_average(*best_pair)


def find_intersection(line1: Line, line2: Line) -> Optional[Point]:
    """Intersection of two infinite lines; None when they are parallel."""
    x1, y1 = line1.p1
    x2, y2 = line1.p2
    x3, y3 = line2.p1
    x4, y4 = line2.p2

    denom = (y4 - y3) * (x2 - x1) - (x4 - x3) * (y2 - y1)
    if denom == 0:
        return None
    u = ((x4 - x3) * (y1 - y3) - (y4 - y3) * (x1 - x3)) / denom
    return (x1 + u * (x2 - x1), y1 + u * (y2 - y1))


def intersect_corners(top: Line, left: Line, bottom: Line, right: Line) -> Optional[CornerSet]:
    tl = find_intersection(top, left)
    tr = find_intersection(top, right)
    bl = find_intersection(bottom, left)
    br = find_intersection(bottom, right)
    if tl is None or tr is None or bl is None or br is None:
        return None
    return CornerSet(top_left=tl, top_right=tr, bottom_left=bl, bottom_right=br)
