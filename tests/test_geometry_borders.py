"""
Pytest for the border-line strategy. A dark frame with a bright document
lined up inside the detection rectangle is generated on the fly.
"""
from __future__ import annotations

import math
from collections import deque

import numpy as np
import cv2
import pytest

from cardwarp.core.config import BorderConfig
from cardwarp.core.contracts import BorderEdge
from cardwarp.core.errors import ConfigError
from cardwarp.core.provider import OpenCVProvider
from cardwarp.geometry.borders import (
    border_regions,
    detect_by_borders,
    detection_rectangle,
    resolve_corners,
)
from cardwarp.geometry.detect import BorderWarper, detect_card_by_borders

# ---------- Utilities to build synthetic scenes ---------- #

# document edges inside the default 320x240 detection rectangle
_DOC = dict(left=20, top=20, right=300, bottom=220)


def _frame_with_document(frame_w: int = 640, frame_h: int = 480,
                         rect_w: int = 320, rect_h: int = 240) -> np.ndarray:
    frame = np.full((frame_h, frame_w, 3), 30, np.uint8)
    x0 = (frame_w - rect_w) // 2
    y0 = (frame_h - rect_h) // 2
    frame[y0 + _DOC["top"]:y0 + _DOC["bottom"], x0 + _DOC["left"]:x0 + _DOC["right"]] = (220, 220, 220)
    return frame


def _png(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


class ScriptedHough(OpenCVProvider):
    """Real OpenCV except for Hough, which replays (rho, theta) lists per strip in call order."""

    def __init__(self, *per_strip):
        super().__init__()
        self.script = deque(np.float32(s).reshape(-1, 2) for s in per_strip)

    def hough_lines(self, edges, rho, theta, threshold):
        return self.script.popleft()


def _exact_script():
    half_pi = math.pi / 2
    return ScriptedHough(
        [(_DOC["top"], half_pi)],                        # TOP, strip-local == rect
        [(_DOC["left"], 0.0)],                           # LEFT
        [(_DOC["bottom"] - (240 - 50), half_pi)],        # BOTTOM, strip-local
        [(_DOC["right"] - (320 - 50), 0.0)],             # RIGHT, strip-local
    )

# ---------- Tests ---------- #

def test_detection_rectangle_is_centered():
    img = np.arange(100 * 80).reshape(80, 100).astype(np.uint16)
    rect = detection_rectangle(img, 40, 20)
    assert rect.shape == (20, 40)
    assert rect[0, 0] == img[30, 30]


def test_detection_rectangle_larger_than_frame_raises():
    with pytest.raises(ConfigError):
        detection_rectangle(np.zeros((100, 100, 3), np.uint8), 320, 240)


def test_border_regions_layout():
    rect = np.zeros((240, 320), np.uint8)
    regions = border_regions(rect, 50)
    assert [r.edge for r in regions] == [BorderEdge.TOP, BorderEdge.LEFT, BorderEdge.BOTTOM, BorderEdge.RIGHT]
    assert [r.image.shape for r in regions] == [(50, 320), (240, 50), (50, 320), (240, 50)]


def test_exact_lines_give_exact_corners():
    rect = detection_rectangle(_frame_with_document(), 320, 240)
    corners = resolve_corners(rect, BorderConfig(), _exact_script())
    assert corners is not None
    assert corners.top_left == pytest.approx((20, 20), abs=1e-6)
    assert corners.top_right == pytest.approx((300, 20), abs=1e-6)
    assert corners.bottom_left == pytest.approx((20, 220), abs=1e-6)
    assert corners.bottom_right == pytest.approx((300, 220), abs=1e-6)


def test_exact_lines_rectify_to_configured_size():
    out = detect_by_borders(_frame_with_document(), BorderConfig(output_width=400), _exact_script())
    assert out is not None
    assert out.shape[:2] == (300, 400)
    # the document fills the output, so it is bright all over
    assert out[10:-10, 10:-10].mean() > 200


def test_missing_strip_line_fails_detection():
    half_pi = math.pi / 2
    prov = ScriptedHough([(20, half_pi)], [], [(30, half_pi)], [(30, 0.0)])
    rect = detection_rectangle(_frame_with_document(), 320, 240)
    assert resolve_corners(rect, BorderConfig(), prov) is None


def test_parallel_lines_fail_detection():
    half_pi = math.pi / 2
    # LEFT strip reports a horizontal line: top and left never intersect
    prov = ScriptedHough([(20, half_pi)], [(25, half_pi)], [(30, half_pi)], [(30, 0.0)])
    rect = detection_rectangle(_frame_with_document(), 320, 240)
    assert resolve_corners(rect, BorderConfig(), prov) is None


def test_corner_on_zero_axis_fails_detection():
    half_pi = math.pi / 2
    # top edge on row 0 of the rectangle
    prov = ScriptedHough([(0, half_pi)], [(20, 0.0)], [(30, half_pi)], [(30, 0.0)])
    rect = detection_rectangle(_frame_with_document(), 320, 240)
    assert resolve_corners(rect, BorderConfig(), prov) is None


def test_axis_aligned_document_end_to_end():
    frame = _frame_with_document()
    rect = detection_rectangle(frame, 320, 240)
    corners = resolve_corners(rect, BorderConfig())
    assert corners is not None
    expected = np.float32([[20, 20], [300, 20], [300, 220], [20, 220]])
    assert np.abs(corners.as_quad() - expected).max() <= 8.0

    png = detect_card_by_borders(_png(frame))
    assert png is not None
    out = cv2.imdecode(np.frombuffer(png, np.uint8), cv2.IMREAD_COLOR)
    assert out.shape[:2] == (375, 500)


def test_empty_frame_is_not_found():
    blank = np.full((480, 640, 3), 90, np.uint8)
    assert detect_card_by_borders(_png(blank)) is None


def test_border_warper_per_call_overrides():
    warper = BorderWarper({"output_width": 320})
    png = warper.get_card(_png(_frame_with_document()), output_width=200)
    assert png is not None
    out = cv2.imdecode(np.frombuffer(png, np.uint8), cv2.IMREAD_COLOR)
    assert out.shape[:2] == (150, 200)
    assert warper.cfg.output_width == 320
    with pytest.raises(ConfigError):
        warper.get_card(_png(_frame_with_document()), outputWidth=200)
