from __future__ import annotations

import logging
import math
from typing import List, Optional

import numpy as np

from .events import ZoneEvent
from .model import ActiveZone, ErrorKind, ZoneCallback

_LOG = logging.getLogger(__name__)


class ActiveZoneMonitor:
    """
    Watch a set of normalized rectangles for motion in the threshold mask.

    A zone's ``fill_factor`` is the number of "on" mask pixels inside its
    pixel rectangle divided by ``zone width + zone height`` in pixels (not by
    the area). The rectangle is inclusive at both ends, so it is one pixel
    wider and taller than ``w * W`` by ``h * H``. Rectangles reaching past
    the image edge are clipped.

    API:
        monitor = ActiveZoneMonitor()
        monitor.add_zone(1, 0.0, 0.0, 0.25, 0.25, on_change=callback)
        events = monitor.update(mask, pts_ms, frame_id)   # list[ZoneEvent]
    """

    def __init__(self, fill_threshold: float = 0.02, logger: Optional[logging.Logger] = None) -> None:
        self._log = logger or _LOG
        self._zones: List[ActiveZone] = []
        self._fill_threshold = self._clamp_threshold(fill_threshold)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _clamp_threshold(self, value: float) -> float:
        clamped = min(1.0, max(0.0, float(value)))
        if clamped != value:
            self._log.warning(
                "[%s] zone fill threshold %r clamped to %r",
                ErrorKind.CONFIG_CORRECTED.value,
                value,
                clamped,
            )
        return clamped

    @staticmethod
    def _pixel_span(start: float, extent: float, size: int) -> tuple[int, int, int]:
        """Return (first, last, nominal) pixel indices for one axis."""
        first = math.floor(start * size)
        last = math.floor((start + extent) * size)
        nominal = math.floor(extent * size)
        return max(0, first), min(size - 1, last), nominal

    def _measure(self, zone: ActiveZone, mask: np.ndarray) -> float:
        height, width = mask.shape
        x0, x1, nominal_w = self._pixel_span(zone.norm_x, zone.norm_w, width)
        y0, y1, nominal_h = self._pixel_span(zone.norm_y, zone.norm_h, height)
        if x1 < x0 or y1 < y0:
            filled = 0
        else:
            filled = int(np.count_nonzero(mask[y0 : y1 + 1, x0 : x1 + 1]))
        return filled / max(1, nominal_w + nominal_h)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @property
    def zones(self) -> List[ActiveZone]:
        return list(self._zones)

    @property
    def fill_threshold(self) -> float:
        return self._fill_threshold

    def set_fill_threshold(self, value: float) -> None:
        """Set the movement threshold of every zone, current and future."""
        self._fill_threshold = self._clamp_threshold(value)
        for zone in self._zones:
            zone.fill_threshold = self._fill_threshold

    def add_zone(
        self,
        zone_id: int,
        x: float,
        y: float,
        w: float,
        h: float,
        on_change: Optional[ZoneCallback] = None,
    ) -> ActiveZone:
        """Register a zone. Duplicate ids are kept but logged."""
        if any(z.id == zone_id for z in self._zones):
            self._log.warning(
                "[%s] there is already an active zone with id %r",
                ErrorKind.DUPLICATE_ZONE_ID.value,
                zone_id,
            )
        zone = ActiveZone(
            id=zone_id,
            norm_x=float(x),
            norm_y=float(y),
            norm_w=float(w),
            norm_h=float(h),
            fill_threshold=self._fill_threshold,
        )
        if on_change is not None:
            zone.on_change = on_change
        self._zones.append(zone)
        return zone

    def remove_zone(self, zone_id: int) -> bool:
        """Remove every zone carrying ``zone_id``; True if any was removed."""
        before = len(self._zones)
        self._zones = [z for z in self._zones if z.id != zone_id]
        return len(self._zones) != before

    def get_zone(self, zone_id: int) -> Optional[ActiveZone]:
        """First zone registered with ``zone_id``, or None."""
        for zone in self._zones:
            if zone.id == zone_id:
                return zone
        return None

    def update(self, mask: np.ndarray, pts_ms: float = 0.0, frame_id: int = 0) -> List[ZoneEvent]:
        """
        Evaluate every zone against ``mask`` (bool or 0/255, shape (H, W)).

        Returns the transitions of this update in zone order. Callbacks run
        synchronously, right after their zone's state is updated.
        """
        mask = np.asarray(mask)
        if mask.ndim == 3:
            mask = mask[..., 0]

        out: List[ZoneEvent] = []
        # Iterate over a snapshot so callbacks may add or remove zones.
        for zone in list(self._zones):
            zone.changed = False
            if not zone.enabled:
                zone.movement = False
                continue

            zone.fill_factor = self._measure(zone, mask)
            movement = zone.fill_factor > zone.fill_threshold
            if movement == zone.movement:
                continue

            zone.movement = movement
            zone.changed = True
            zone.changed_ms = float(pts_ms)
            zone.changed_frame = int(frame_id)
            out.append(
                ZoneEvent(
                    zone_id=zone.id,
                    movement=movement,
                    fill_factor=zone.fill_factor,
                    changed_ms=zone.changed_ms,
                    changed_frame=zone.changed_frame,
                )
            )
            zone.on_change(zone)
        return out
