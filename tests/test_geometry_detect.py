"""
Pytest for the feature-matching strategy (reference building, locating,
rectifying). Synthetic images are generated on the fly, so no test assets
are required.
"""
from __future__ import annotations

import numpy as np
import cv2
import pytest

from cardwarp.core.contracts import DetectionResult
from cardwarp.core.errors import EmptyTemplateError, ImageDecodeError
from cardwarp.geometry.detect import FeatureWarper, build_reference, detect_card
from cardwarp.geometry.features import locate, match_confidence
from cardwarp.geometry.rectify import compute_target_size

# ---------- Utilities to build synthetic scenes ---------- #

def _make_textured_template(w: int = 320, h: int = 160, seed: int = 7) -> np.ndarray:
    """A synthetic 'ID card' with non-repeating texture so SIFT has distinct features."""
    rng = np.random.default_rng(seed)
    card = np.full((h, w, 3), 235, np.uint8)
    cv2.rectangle(card, (3, 3), (w - 4, h - 4), (20, 20, 20), 2)
    for _ in range(45):
        color = tuple(int(c) for c in rng.integers(0, 200, 3))
        x, y = int(rng.integers(10, w - 10)), int(rng.integers(10, h - 10))
        if rng.random() < 0.5:
            r = int(rng.integers(3, 12))
            cv2.circle(card, (x, y), r, color, -1)
        else:
            dx, dy = int(rng.integers(4, 20)), int(rng.integers(4, 20))
            cv2.rectangle(card, (x, y), (min(w - 5, x + dx), min(h - 5, y + dy)), color, -1)
    cv2.putText(card, "IDENTITY", (20, 40), cv2.FONT_HERSHEY_SIMPLEX, 0.9, (0, 0, 0), 2, cv2.LINE_AA)
    cv2.putText(card, "No 4711-AZ", (150, 140), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (10, 10, 90), 2, cv2.LINE_AA)
    # distinct markers in each corner
    cv2.circle(card, (18, 18), 8, (0, 0, 0), 2)
    cv2.rectangle(card, (w - 28, 10), (w - 10, 28), (0, 0, 160), -1)
    cv2.drawMarker(card, (18, h - 18), (0, 120, 0), cv2.MARKER_CROSS, 16, 2)
    cv2.drawMarker(card, (w - 18, h - 18), (120, 0, 0), cv2.MARKER_TRIANGLE_UP, 16, 2)
    return card


def _place_scaled_rotated(template: np.ndarray, scale: float = 1.5, angle: float = 10.0,
                          frame_w: int = 800, frame_h: int = 600) -> tuple[np.ndarray, np.ndarray]:
    """Scale + rotate the template about its center into a larger dark frame."""
    Ht, Wt = template.shape[:2]
    M = cv2.getRotationMatrix2D((Wt / 2.0, Ht / 2.0), angle, scale)
    M[0, 2] += frame_w / 2.0 - Wt / 2.0
    M[1, 2] += frame_h / 2.0 - Ht / 2.0
    frame = cv2.warpAffine(template, M, (frame_w, frame_h), flags=cv2.INTER_LINEAR,
                           borderMode=cv2.BORDER_CONSTANT, borderValue=(40, 40, 40))
    corners = np.float32([[0, 0], [Wt, 0], [Wt, Ht], [0, Ht]])
    mapped = (np.hstack([corners, np.ones((4, 1), np.float32)]) @ M.T).astype(np.float32)
    return frame, mapped


def _png(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


def _decode(buf: bytes) -> np.ndarray:
    return cv2.imdecode(np.frombuffer(buf, np.uint8), cv2.IMREAD_COLOR)


@pytest.fixture(scope="module")
def template() -> np.ndarray:
    return _make_textured_template()


@pytest.fixture(scope="module")
def reference(template):
    return build_reference(template)

# ---------- Reference building ---------- #

def test_reference_invariants(reference, template):
    assert reference.corners.shape == (4, 3)
    assert len(reference.keypoints) == len(reference.descriptors) > 0
    h, w = template.shape[:2]
    assert reference.corners.tolist() == [[0, 0, 1], [w, 0, 1], [w, h, 1], [0, h, 1]]
    assert not reference.descriptors.flags.writeable


def test_reference_downscales_wide_templates():
    big = cv2.resize(_make_textured_template(), (1600, 800), interpolation=cv2.INTER_LINEAR)
    ref = build_reference(big, downscale_width=1000)
    assert (ref.width, ref.height) == (1000, 500)
    assert ref.corners[2].tolist() == [1000, 500, 1]


def test_reference_accepts_encoded_bytes(template):
    ref = build_reference(_png(template))
    assert (ref.width, ref.height) == (template.shape[1], template.shape[0])


def test_blank_template_is_rejected():
    with pytest.raises(EmptyTemplateError):
        build_reference(np.zeros((200, 300, 3), np.uint8))

# ---------- Detection ---------- #

def test_scaled_rotated_card_is_found(template, reference):
    frame, true_quad = _place_scaled_rotated(template)
    res = detect_card(_png(frame), reference)

    assert isinstance(res, DetectionResult)
    assert res.found
    assert res.probability > 0.4

    card = _decode(res.card)
    assert card.shape[:2] == (160 * 500 // 320, 500)

    loc = locate(frame, reference)
    assert loc is not None
    assert np.abs(loc.quad - true_quad).max() < 6.0


def test_confidence_is_inlier_ratio(template, reference):
    frame, _ = _place_scaled_rotated(template, scale=1.2, angle=-5.0)
    loc = locate(frame, reference)
    assert loc is not None
    assert 0.0 <= loc.confidence <= 1.0
    assert loc.confidence == pytest.approx(loc.inliers / loc.total)
    assert match_confidence(frame, reference) == pytest.approx(loc.confidence)


@pytest.mark.parametrize("out_w", [200, 333, 500, 777])
def test_output_keeps_reference_aspect(template, reference, out_w):
    frame, _ = _place_scaled_rotated(template, scale=1.3, angle=4.0)
    res = detect_card(_png(frame), reference, output_width=out_w)
    assert res.found
    h, w = _decode(res.card).shape[:2]
    assert w == out_w
    assert abs(h - out_w * reference.height / reference.width) <= 1.0
    assert (w, h) == compute_target_size(reference.width, reference.height, out_w)


def test_black_input_is_not_found(reference):
    black = np.zeros((480, 640, 3), np.uint8)
    res = detect_card(_png(black), reference)
    assert res == DetectionResult(card=None, probability=0.0)
    assert not res.found


def test_unrelated_input_is_not_an_error(reference):
    noise = np.random.default_rng(3).integers(0, 255, (300, 400, 3), dtype=np.uint8)
    res = detect_card(_png(noise), reference)
    assert 0.0 <= res.probability <= 1.0


def test_corrupt_buffer_raises(reference):
    with pytest.raises(ImageDecodeError):
        detect_card(b"definitely not an image", reference)


def test_normalization_can_be_disabled(template, reference):
    frame, _ = _place_scaled_rotated(template)
    plain = detect_card(_png(frame), reference, cfg={"normalize": False})
    boosted = detect_card(_png(frame), reference)
    assert plain.found and boosted.found
    # gamma 3 lifts midtones, so the normalized card is brighter overall
    assert _decode(boosted.card).mean() > _decode(plain.card).mean()


def test_feature_warper_round_trip(tmp_path, template):
    path = tmp_path / "template.png"
    cv2.imwrite(str(path), template)
    warper = FeatureWarper({"output_width": 400})
    ref = warper.generate_reference(path)
    frame, _ = _place_scaled_rotated(template)
    res = warper.get_card(_png(frame), ref)
    assert res.found
    assert _decode(res.card).shape[1] == 400
