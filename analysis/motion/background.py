"""Running-average background model producing a binary motion mask.

Every frame goes through four same-sized RGBA buffers:

- ``current``: the input frame, optionally mirrored,
- ``background``: exponential moving average of past frames,
- ``difference``: per-channel ``|background - current|``,
- ``threshold``: white where the difference luminance exceeds the
  configured threshold, black elsewhere.

All four are owned here, reused across frames and reallocated together only
when the input size changes.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from common.frame import is_rgba_image

from .model import EngineConfig, ErrorKind, MirrorMode

_LOG = logging.getLogger(__name__)

# Rec.709 luma weights, as used by the sketch library's THRESHOLD filter.
_LUMA = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)

_FLIP_CODES = {
    MirrorMode.HORIZONTAL: 1,
    MirrorMode.VERTICAL: 0,
    MirrorMode.BOTH: -1,
}


def _blank(height: int, width: int) -> np.ndarray:
    img = np.zeros((height, width, 4), dtype=np.uint8)
    img[..., 3] = 255
    return img


class BackgroundModel:
    """Stateful background estimator.

    The configuration object is shared with the engine, so changes made via
    ``MotionEngine.configure`` apply from the next frame on.
    """

    def __init__(self, config: Optional[EngineConfig] = None, logger: Optional[logging.Logger] = None) -> None:
        self._cfg = config or EngineConfig()
        self._log = logger or _LOG

        self.current = _blank(1, 1)
        self.background = _blank(1, 1)
        self.difference = _blank(1, 1)
        self.threshold = _blank(1, 1)
        self.mask = np.zeros((1, 1), dtype=bool)
        self._initialized = False

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width) shared by all four buffers."""
        return int(self.threshold.shape[0]), int(self.threshold.shape[1])

    def _resize(self, height: int, width: int) -> None:
        self._log.info("Adjusting motion buffers to %dx%d", width, height)
        self.current = _blank(height, width)
        self.background = _blank(height, width)
        self.difference = _blank(height, width)
        self.threshold = _blank(height, width)
        self.mask = np.zeros((height, width), dtype=bool)

    def _needs_resize(self, img: np.ndarray) -> bool:
        return not self._initialized or img.shape[:2] != self.shape

    def _mirror_into(self, img: np.ndarray, dst: np.ndarray) -> None:
        code = _FLIP_CODES.get(self._cfg.mirror_mode)
        if code is None:
            np.copyto(dst, img)
        else:
            cv2.flip(img, code, dst=dst)

    def _validate(self, img: object, where: str) -> bool:
        if is_rgba_image(img):
            return True
        shape = getattr(img, "shape", None)
        self._log.warning(
            "[%s] %s: expected a non-empty (H,W,4) uint8 frame, got %s",
            ErrorKind.INVALID_INPUT.value,
            where,
            "None" if img is None else f"shape={shape}",
        )
        return False

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def update(self, img: np.ndarray) -> bool:
        """Fold ``img`` into the model and refresh difference/threshold.

        Returns ``False`` (and leaves every buffer untouched) when ``img`` is
        not a usable RGBA frame.
        """
        if not self._validate(img, "update"):
            return False

        if self._needs_resize(img):
            self._resize(img.shape[0], img.shape[1])
            self._mirror_into(img, self.current)
            np.copyto(self.background, self.current)
            self.background[..., 3] = 255
            self._initialized = True
            # Fresh background: nothing differs yet.
            self.difference[...] = 0
            self.difference[..., 3] = 255
            self._apply_threshold()
            return True

        self._mirror_into(img, self.current)

        if self._cfg.progressive_background:
            feedback = float(self._cfg.filter_feedback)
            cv2.addWeighted(
                self.background,
                feedback,
                self.current,
                1.0 - feedback,
                0.0,
                dst=self.background,
            )
            self.background[..., 3] = 255

        cv2.absdiff(self.background, self.current, dst=self.difference)
        self.difference[..., 3] = 255
        self._apply_threshold()
        return True

    def _apply_threshold(self) -> None:
        luma = self.difference[..., :3].astype(np.float32) @ _LUMA
        np.greater(luma, float(self._cfg.filter_threshold) * 255.0, out=self.mask)
        self.threshold[..., :3] = 0
        self.threshold[self.mask, :3] = 255
        self.threshold[..., 3] = 255

    def set_background(self, img: np.ndarray) -> bool:
        """Replace the background with ``img`` (mirrored like regular input)."""
        if not self._validate(img, "set_background"):
            return False
        if self._needs_resize(img):
            self._resize(img.shape[0], img.shape[1])
            self._mirror_into(img, self.current)
            self._initialized = True
        self._mirror_into(img, self.background)
        self.background[..., 3] = 255
        return True

    def hit_test(self, norm_x: float, norm_y: float) -> bool:
        """True when the mask pixel under a normalized coordinate is on."""
        if not (np.isfinite(norm_x) and np.isfinite(norm_y)):
            return False
        height, width = self.shape
        x = int(np.floor(norm_x * width))
        y = int(np.floor(norm_y * height))
        if x < 0 or y < 0 or x >= width or y >= height:
            return False
        return bool(self.mask[y, x])
