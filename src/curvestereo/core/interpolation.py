from __future__ import annotations

import numpy as np


def bilinear_u8(img_u8: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Bilinear lookup of a uint8 grayscale image at continuous (x, y).

    Coordinates are clamped to the image; NaN coordinates sample as 0.
    """
    H, W = img_u8.shape
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    finite = np.isfinite(x) & np.isfinite(y)
    x = np.clip(np.where(finite, x, 0.0), 0.0, W - 1.0)
    y = np.clip(np.where(finite, y, 0.0), 0.0, H - 1.0)

    x0 = np.floor(x).astype(np.int32)
    y0 = np.floor(y).astype(np.int32)
    x1 = np.clip(x0 + 1, 0, W - 1)
    y1 = np.clip(y0 + 1, 0, H - 1)

    wx = x - x0
    wy = y - y0

    Ia = img_u8[y0, x0].astype(np.float64)
    Ib = img_u8[y0, x1].astype(np.float64)
    Ic = img_u8[y1, x0].astype(np.float64)
    Id = img_u8[y1, x1].astype(np.float64)

    out = (1.0 - wx) * (1.0 - wy) * Ia + wx * (1.0 - wy) * Ib + (1.0 - wx) * wy * Ic + wx * wy * Id
    out = np.where(finite, out, 0.0)
    return np.clip(out + 0.5, 0.0, 255.0).astype(np.uint8)


def integral_image(img: np.ndarray) -> np.ndarray:
    """Summed-area table with a leading zero row and column, shape (H+1, W+1)."""
    img = np.asarray(img)
    out = np.zeros((img.shape[0] + 1, img.shape[1] + 1), dtype=np.int64)
    out[1:, 1:] = np.cumsum(np.cumsum(img.astype(np.int64), axis=0), axis=1)
    return out


def box_sum(integral: np.ndarray, row: int, col: int, height: int, width: int) -> int:
    """Sum of the `height` x `width` block whose top-left pixel is (row, col)."""
    return int(
        integral[row, col]
        + integral[row + height, col + width]
        - integral[row + height, col]
        - integral[row, col + width]
    )
