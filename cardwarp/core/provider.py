# cardwarp/core/provider.py
"""
OpenCV-backed computer-vision primitives.

Everything the detectors need from OpenCV goes through OpenCVProvider so the
geometry code deals in plain numpy arrays and can be exercised with a fake
provider in tests.

Thread-safety: the provider only stores settings. SIFT and FLANN objects are
created lazily per thread, so one provider may be shared by concurrent calls.
"""

from __future__ import annotations
from typing import List, Optional, Sequence, Tuple
import threading
import cv2
import numpy as np

from cardwarp.core.errors import ImageDecodeError

_FLANN_INDEX_KDTREE = 1


class OpenCVProvider:
    def __init__(self, n_features: int = 4000, flann_trees: int = 5, flann_checks: int = 50):
        self.n_features = int(n_features)
        self.flann_trees = int(flann_trees)
        self.flann_checks = int(flann_checks)
        self._local = threading.local()

    # --- per-thread OpenCV objects -------------------------------------------

    def _sift(self):
        sift = getattr(self._local, "sift", None)
        if sift is None:
            sift = cv2.SIFT_create(nfeatures=self.n_features)
            self._local.sift = sift
        return sift

    def _flann(self):
        flann = getattr(self._local, "flann", None)
        if flann is None:
            index_params = dict(algorithm=_FLANN_INDEX_KDTREE, trees=self.flann_trees)
            search_params = dict(checks=self.flann_checks)
            flann = cv2.FlannBasedMatcher(index_params, search_params)
            self._local.flann = flann
        return flann

    # --- features -------------------------------------------------------------

    def detect_keypoints(self, image: np.ndarray) -> List[cv2.KeyPoint]:
        return list(self._sift().detect(self.to_gray(image), None))

    def compute_descriptors(self, image: np.ndarray,
                            keypoints: Sequence[cv2.KeyPoint]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Returns (points (N,2) float32, descriptors (N,D) float32). SIFT may drop
        or duplicate keypoints while computing, so the points come from the
        keypoints it actually kept.
        """
        if len(keypoints) == 0:
            return np.empty((0, 2), np.float32), np.empty((0, 128), np.float32)
        kps, des = self._sift().compute(self.to_gray(image), list(keypoints))
        if des is None or len(kps) == 0:
            return np.empty((0, 2), np.float32), np.empty((0, 128), np.float32)
        pts = np.float32([kp.pt for kp in kps]).reshape(-1, 2)
        return pts, np.asarray(des, np.float32)

    def match_knn(self, query: np.ndarray, train: np.ndarray, k: int = 2) -> List[List[cv2.DMatch]]:
        if len(query) == 0 or len(train) < k:
            return []
        q = np.ascontiguousarray(query, np.float32)
        t = np.ascontiguousarray(train, np.float32)
        return [list(pair) for pair in self._flann().knnMatch(q, t, k=k)]

    # --- geometry -------------------------------------------------------------

    def solve_homography(self, src: np.ndarray, dst: np.ndarray,
                         tolerance: float) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
        src = np.float32(src).reshape(-1, 1, 2)
        dst = np.float32(dst).reshape(-1, 1, 2)
        if len(src) < 4 or len(src) != len(dst):
            return None, None
        H, mask = cv2.findHomography(src, dst, cv2.RANSAC, ransacReprojThreshold=float(tolerance))
        if mask is not None:
            mask = mask.ravel().astype(bool)
        return H, mask

    def project_points(self, points: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        pts = np.float32(points).reshape(-1, 1, 2)
        return cv2.perspectiveTransform(pts, np.float64(matrix)).reshape(-1, 2).astype(np.float32)

    def perspective_matrix(self, src_quad: np.ndarray, dst_quad: np.ndarray) -> np.ndarray:
        return cv2.getPerspectiveTransform(np.float32(src_quad).reshape(4, 2),
                                           np.float32(dst_quad).reshape(4, 2))

    def warp_perspective(self, image: np.ndarray, matrix: np.ndarray,
                         width: int, height: int) -> np.ndarray:
        return cv2.warpPerspective(image, matrix, (int(width), int(height)), flags=cv2.INTER_LINEAR)

    def resize(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        return cv2.resize(image, (int(width), int(height)), interpolation=cv2.INTER_AREA)

    # --- filtering / lines ----------------------------------------------------

    def to_gray(self, image: np.ndarray) -> np.ndarray:
        if image.ndim == 2:
            return image
        if image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

    def median_blur(self, image: np.ndarray, ksize: int) -> np.ndarray:
        if ksize <= 1:
            return image.copy()
        return cv2.medianBlur(image, int(ksize))

    def detect_edges(self, image: np.ndarray, low: float, high: float) -> np.ndarray:
        return cv2.Canny(self.to_gray(image), float(low), float(high))

    def hough_lines(self, edges: np.ndarray, rho: float, theta: float, threshold: int) -> np.ndarray:
        """(N, 2) float32 array of (rho, theta); empty when nothing reached the threshold."""
        lines = cv2.HoughLines(edges, float(rho), float(theta), int(threshold))
        if lines is None:
            return np.empty((0, 2), np.float32)
        return np.asarray(lines, np.float32).reshape(-1, 2)

    # --- codec ----------------------------------------------------------------

    def decode(self, buffer: bytes) -> np.ndarray:
        data = np.frombuffer(bytes(buffer), dtype=np.uint8)
        img = cv2.imdecode(data, cv2.IMREAD_COLOR) if data.size else None
        if img is None:
            raise ImageDecodeError(f"could not decode image buffer ({data.size} bytes)")
        return img

    def encode(self, image: np.ndarray, ext: str = ".png") -> bytes:
        ok, buf = cv2.imencode(ext, image)
        if not ok:
            raise ValueError(f"could not encode image as {ext}")
        return buf.tobytes()


_DEFAULT: Optional[OpenCVProvider] = None
_DEFAULT_LOCK = threading.Lock()


def default_provider() -> OpenCVProvider:
    """Process-wide shared provider with default SIFT/FLANN settings."""
    global _DEFAULT
    with _DEFAULT_LOCK:
        if _DEFAULT is None:
            _DEFAULT = OpenCVProvider()
        return _DEFAULT
