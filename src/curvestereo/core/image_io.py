from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image


def load_gray_u8(path: str | Path) -> np.ndarray:
    """Load an image as grayscale uint8 (H,W)."""
    with Image.open(Path(path)) as im:
        im = im.convert("L")
        arr = np.asarray(im, dtype=np.uint8)
    return arr


def save_gray_u8(path: str | Path, img: np.ndarray) -> Path:
    """Save a (H,W) array as an 8-bit grayscale image; values are clipped to 0..255."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    arr = np.asarray(img)
    if arr.ndim != 2:
        raise ValueError("expected a single-channel (H,W) image")
    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    Image.fromarray(arr).save(p)
    return p
