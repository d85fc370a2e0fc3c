"""
Simple I/O helpers for the harness side: reading images and raw buffers,
writing detector output.
"""

from __future__ import annotations
from pathlib import Path
from typing import Union
import cv2
import numpy as np

PathLike = Union[str, Path]


def load_image(path: PathLike) -> np.ndarray:
    """
    Load an image from disk (BGR).
    Raises FileNotFoundError if not found.
    """
    img = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if img is None:
        raise FileNotFoundError(f"Could not read image at: {path}")
    return img


def load_bytes(path: PathLike) -> bytes:
    """Raw file contents, e.g. a JPEG straight from the camera."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Could not read file at: {path}")
    return p.read_bytes()


def save_bytes(path: PathLike, data: bytes) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(data)
    return p
