from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

CHANNELS = 4


@dataclass
class Frame:
    img: np.ndarray  # RGBA (H,W,4), uint8
    pts_ms: float  # epoch ms (float)
    frame_id: int

    @property
    def width(self) -> int:
        return int(self.img.shape[1])

    @property
    def height(self) -> int:
        return int(self.img.shape[0])


def coerce_rgba(pixels: Any, width: int, height: int) -> Optional[np.ndarray]:
    """Return an (H, W, 4) uint8 view of ``pixels`` or ``None`` if unusable.

    ``pixels`` may be a flat RGBA buffer (bytes, bytearray, memoryview or a
    1-D array of ``width * height * 4`` values) or an already shaped array.
    """
    if pixels is None:
        return None
    try:
        width = int(width)
        height = int(height)
    except (TypeError, ValueError):
        return None
    if width < 1 or height < 1:
        return None

    if isinstance(pixels, (bytes, bytearray, memoryview)):
        arr = np.frombuffer(pixels, dtype=np.uint8)
    else:
        arr = np.asarray(pixels)
        if arr.dtype != np.uint8:
            if not np.issubdtype(arr.dtype, np.number):
                return None
            arr = np.clip(arr, 0, 255).astype(np.uint8)

    if arr.size != width * height * CHANNELS:
        return None
    return arr.reshape(height, width, CHANNELS)


def is_rgba_image(img: Any) -> bool:
    """True for a non-empty (H, W, 4) uint8 array."""
    return (
        isinstance(img, np.ndarray)
        and img.ndim == 3
        and img.shape[2] == CHANNELS
        and img.shape[0] > 0
        and img.shape[1] > 0
        and img.dtype == np.uint8
    )
