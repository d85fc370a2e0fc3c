"""
Core contracts and simple data types shared across stages.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
import math
import numpy as np

Point = Tuple[float, float]


def _frozen(arr: np.ndarray, dtype) -> np.ndarray:
    out = np.array(arr, dtype=dtype, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class ReferenceTemplate:
    """
    Pre-analyzed exemplar of the document we look for.

    corners:     (4, 3) float32, homogeneous (x, y, 1), TL, TR, BR, BL
    keypoints:   (N, 2) float32 keypoint locations
    descriptors: (N, D) float32, row i describes keypoints[i]

    Arrays are copied and made read-only, so one template can be shared by
    any number of concurrent detection calls.
    """
    image: np.ndarray
    corners: np.ndarray
    keypoints: np.ndarray
    descriptors: np.ndarray

    def __post_init__(self) -> None:
        corners = np.asarray(self.corners, np.float32).reshape(-1, 3)
        keypoints = np.asarray(self.keypoints, np.float32).reshape(-1, 2)
        descriptors = np.asarray(self.descriptors, np.float32)
        if descriptors.ndim != 2:
            descriptors = descriptors.reshape(len(keypoints), -1)
        if corners.shape[0] != 4:
            raise ValueError(f"reference needs 4 corners, got {corners.shape[0]}")
        if keypoints.shape[0] != descriptors.shape[0]:
            raise ValueError(
                f"keypoints/descriptors mismatch: {keypoints.shape[0]} vs {descriptors.shape[0]}"
            )
        object.__setattr__(self, "image", _frozen(self.image, self.image.dtype))
        object.__setattr__(self, "corners", _frozen(corners, np.float32))
        object.__setattr__(self, "keypoints", _frozen(keypoints, np.float32))
        object.__setattr__(self, "descriptors", _frozen(descriptors, np.float32))

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    @property
    def aspect(self) -> float:
        """H/W of the template."""
        return self.height / float(self.width)

    def __len__(self) -> int:
        return int(self.keypoints.shape[0])


@dataclass(frozen=True)
class Correspondence:
    reference_index: int
    input_index: int
    distance: float


@dataclass(frozen=True)
class Homography:
    """3x3 projective matrix plus the inlier mask of the pairs it was fitted on."""
    matrix: np.ndarray
    mask: np.ndarray

    @property
    def inliers(self) -> int:
        return int(np.count_nonzero(self.mask))

    @property
    def total(self) -> int:
        return int(self.mask.size)

    @property
    def is_valid(self) -> bool:
        m = np.asarray(self.matrix)
        return m.shape == (3, 3) and bool(np.isfinite(m).all())


@dataclass(frozen=True)
class Location:
    """Where the reference was found in the input photo."""
    quad: np.ndarray
    inliers: int
    total: int

    @property
    def confidence(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.inliers / float(self.total)


@dataclass(frozen=True)
class DetectionResult:
    card: Optional[bytes]
    probability: float

    @property
    def found(self) -> bool:
        return self.card is not None

    @classmethod
    def not_found(cls) -> "DetectionResult":
        return cls(card=None, probability=0.0)


def line_slope(p1: Point, p2: Point) -> float:
    """
    Unsigned slope that stays finite for any orientation:
    |dy/dx| for lines closer to horizontal, |dx/dy| for lines closer to vertical.
    """
    dx = float(p1[0]) - float(p2[0])
    dy = float(p1[1]) - float(p2[1])
    if dx == 0.0 and dy == 0.0:
        return 0.0
    if abs(dx) >= abs(dy):
        return abs(dy / dx)
    return abs(dx / dy)


@dataclass(frozen=True)
class Line:
    p1: Point
    p2: Point
    slope: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "p1", (float(self.p1[0]), float(self.p1[1])))
        object.__setattr__(self, "p2", (float(self.p2[0]), float(self.p2[1])))
        if self.slope is None:
            object.__setattr__(self, "slope", line_slope(self.p1, self.p2))

    def translated(self, dx: float = 0.0, dy: float = 0.0) -> "Line":
        """Shift both endpoints; the slope is carried over unchanged."""
        return Line(
            (self.p1[0] + dx, self.p1[1] + dy),
            (self.p2[0] + dx, self.p2[1] + dy),
            self.slope,
        )


class BorderEdge(Enum):
    TOP = 1
    LEFT = 2
    BOTTOM = 3
    RIGHT = 4


@dataclass
class BorderRegion:
    image: np.ndarray
    edge: BorderEdge


@dataclass(frozen=True)
class CornerSet:
    top_left: Point
    top_right: Point
    bottom_left: Point
    bottom_right: Point

    def points(self) -> Tuple[Point, Point, Point, Point]:
        return (self.top_left, self.top_right, self.bottom_left, self.bottom_right)

    def is_degenerate(self) -> bool:
        """A zero (or non-finite) coordinate means no reliable corner was found."""
        for x, y in self.points():
            if x == 0 or y == 0:
                return True
            if not (math.isfinite(x) and math.isfinite(y)):
                return True
        return False

    def as_quad(self) -> np.ndarray:
        """(4, 2) float32 in TL, TR, BR, BL order."""
        return np.array(
            [self.top_left, self.top_right, self.bottom_right, self.bottom_left],
            dtype=np.float32,
        )
