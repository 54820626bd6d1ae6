"""Per-frame motion pipeline.

``MotionEngine`` ties the components together:

- ``BackgroundModel`` turns each RGBA frame into a binary motion mask,
- ``ActiveZoneMonitor`` checks caller-defined rectangles against the mask
  and fires ``on_change`` callbacks on enter/exit,
- ``BlobLabeler`` + ``BlobTracker`` group the mask into blobs with ids that
  stay stable from one frame to the next.

The engine is synchronous and single-threaded: the host calls
:meth:`MotionEngine.update` (or :meth:`MotionEngine.submit_frame`) once per
tick and gets a :class:`FrameResult` back. Nothing here raises on bad input;
failures come back as ``FrameResult(ok=False, error=...)`` and are logged.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable, List, Optional

import numpy as np

from common.frame import Frame, coerce_rgba
from common.time import now_ms

from .background import BackgroundModel
from .config import apply_options, sanitize_config
from .labeling import BlobLabeler
from .model import ActiveZone, Blob, EngineConfig, ErrorKind, FrameResult, ZoneCallback
from .tracker import BlobTracker
from .zones import ActiveZoneMonitor

_LOG = logging.getLogger(__name__)


class MotionEngine:
    """Stateful motion engine; construct one per capture source."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = now_ms,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._cfg = config or EngineConfig()
        self._clock = clock
        self._log = logger or _LOG
        sanitize_config(self._cfg, self._log)

        self._bg = BackgroundModel(self._cfg, logger=self._log)
        self._labeler = BlobLabeler(self._cfg.labeling_method, logger=self._log)
        self._tracker = BlobTracker(self._cfg, logger=self._log)
        self._zones = ActiveZoneMonitor(self._cfg.zone_fill_threshold, logger=self._log)

        self._frame_counter = 0
        self._in_update = False
        self.last_update_ms: float = 0.0
        self.last_update_frame: int = 0

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> EngineConfig:
        return self._cfg

    def configure(self, **options: Any) -> bool:
        """Apply ``options`` to the live configuration.

        Unknown option names and values that cannot be converted are logged
        and skipped, keeping the previous setting (the call then returns
        ``False``); out-of-range values are clamped and logged.
        """
        ok = apply_options(self._cfg, options, self._log)

        self._labeler.method = self._cfg.labeling_method
        if "zone_fill_threshold" in options:
            self._zones.set_fill_threshold(self._cfg.zone_fill_threshold)
        if "track_blobs" in options and not self._cfg.track_blobs:
            self._tracker.reset()
        return ok

    def snapshot_config(self) -> EngineConfig:
        """Detached copy of the current configuration."""
        return dataclasses.replace(self._cfg)

    # ------------------------------------------------------------------ #
    # Frames
    # ------------------------------------------------------------------ #

    def submit_frame(self, pixels: Any, width: int, height: int) -> FrameResult:
        """Process a raw RGBA buffer of ``width * height * 4`` bytes."""
        frame_id = self._frame_counter + 1
        pts_ms = float(self._clock())
        img = coerce_rgba(pixels, width, height)
        if img is None:
            self._log.warning(
                "[%s] submit_frame: unusable buffer for %rx%r",
                ErrorKind.INVALID_INPUT.value,
                width,
                height,
            )
            return FrameResult(ok=False, frame_id=frame_id, pts_ms=pts_ms, error=ErrorKind.INVALID_INPUT)
        return self.update(Frame(img=img, pts_ms=pts_ms, frame_id=frame_id))

    def update(self, frame: Frame) -> FrameResult:
        """Process a single frame and return a :class:`FrameResult`.

        Parameters
        ----------
        frame:
            RGBA frame carrying ``img``, ``pts_ms`` and ``frame_id``. The
            image is only read; the engine keeps its own copies.
        """
        pts_ms = float(getattr(frame, "pts_ms", 0.0) or 0.0)
        frame_id = int(getattr(frame, "frame_id", 0) or 0)

        if self._in_update:
            self._log.error(
                "[%s] update() called from inside a zone callback; frame %d dropped",
                ErrorKind.REENTRANT_UPDATE.value,
                frame_id,
            )
            return FrameResult(ok=False, frame_id=frame_id, pts_ms=pts_ms, error=ErrorKind.REENTRANT_UPDATE)

        if not self._bg.update(getattr(frame, "img", None)):
            return FrameResult(ok=False, frame_id=frame_id, pts_ms=pts_ms, error=ErrorKind.INVALID_INPUT)

        self._frame_counter += 1
        if self._labeler.shape != self._bg.shape:
            self._labeler.resize(*self._bg.shape)

        mask = self._bg.mask
        result = FrameResult(ok=True, frame_id=frame_id, pts_ms=pts_ms, mask=mask.copy())

        self._in_update = True
        try:
            if self._cfg.handle_zones:
                result.zone_events = self._zones.update(mask, pts_ms, frame_id)
            if self._cfg.handle_blobs:
                label_map, count = self._labeler.label(mask)
                result.blobs = list(self._tracker.process(label_map, count, pts_ms, frame_id))
        finally:
            self._in_update = False

        self.last_update_ms = pts_ms
        self.last_update_frame = frame_id
        return result

    def set_background(self, frame: Frame) -> bool:
        """Force the background model to ``frame`` (e.g. an empty scene)."""
        ok = self._bg.set_background(getattr(frame, "img", None))
        if ok and self._labeler.shape != self._bg.shape:
            self._labeler.resize(*self._bg.shape)
        return ok

    def hit_test(self, norm_x: float, norm_y: float) -> bool:
        return self._bg.hit_test(norm_x, norm_y)

    # ------------------------------------------------------------------ #
    # Zones
    # ------------------------------------------------------------------ #

    def add_zone(
        self,
        zone_id: int,
        x: float,
        y: float,
        w: float,
        h: float,
        on_change: Optional[ZoneCallback] = None,
    ) -> ActiveZone:
        return self._zones.add_zone(zone_id, x, y, w, h, on_change)

    def remove_zone(self, zone_id: int) -> bool:
        return self._zones.remove_zone(zone_id)

    def get_zone(self, zone_id: int) -> Optional[ActiveZone]:
        return self._zones.get_zone(zone_id)

    @property
    def zones(self) -> List[ActiveZone]:
        return self._zones.zones

    def set_zone_fill_threshold(self, value: float) -> None:
        self._zones.set_fill_threshold(value)
        self._cfg.zone_fill_threshold = self._zones.fill_threshold

    # ------------------------------------------------------------------ #
    # Blobs and buffers
    # ------------------------------------------------------------------ #

    def get_blobs(self, previous: bool = False) -> List[Blob]:
        return list(self._tracker.previous if previous else self._tracker.current)

    @property
    def current_image(self) -> np.ndarray:
        return self._bg.current

    @property
    def background_image(self) -> np.ndarray:
        return self._bg.background

    @property
    def difference_image(self) -> np.ndarray:
        return self._bg.difference

    @property
    def threshold_image(self) -> np.ndarray:
        return self._bg.threshold

    @property
    def label_map(self) -> np.ndarray:
        return self._labeler.label_map
