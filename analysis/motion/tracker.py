"""
Blob extraction and nearest-centroid identity tracking.

Turns a compacted label map into this frame's :class:`Blob` list and keeps
ids stable across consecutive frames. Only two frames are ever kept: the
current blob list and the previous one (a two-slot ring).

Dependencies: numpy
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Set

import numpy as np

from .model import Blob, EngineConfig, RejectMethod

_LOG = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================


def _distance(a: Blob, b: Blob) -> float:
    return math.hypot(a.norm_cx - b.norm_cx, a.norm_cy - b.norm_cy)


def first_free_id(blobs: Sequence[Blob], reserved: Optional[Set[int]] = None) -> int:
    """Lowest non-negative id not used by ``blobs`` nor present in ``reserved``."""
    taken = {b.id for b in blobs if b.id >= 0}
    if reserved:
        taken |= reserved
    candidate = 0
    while candidate in taken:
        candidate += 1
    return candidate


def reject_nested(blobs: List[Blob], method: RejectMethod) -> List[Blob]:
    """Drop inner or outer blobs of nested rectangle pairs.

    ``inner`` removes a blob whose rectangle lies inside another blob's,
    ``outer`` removes a blob whose rectangle encloses another's. With
    identical rectangles the lowest-index blob survives.
    """
    if method == RejectMethod.NONE or len(blobs) < 2:
        return list(blobs)

    keep: List[Blob] = []
    for j, candidate in enumerate(blobs):
        rejected = False
        for i, other in enumerate(blobs):
            if i == j:
                continue
            if candidate.same_rect(other):
                # keep the first of a run of identical rectangles
                if i < j:
                    rejected = True
                    break
                continue
            if method == RejectMethod.INNER and other.contains(candidate):
                rejected = True
                break
            if method == RejectMethod.OUTER and candidate.contains(other):
                rejected = True
                break
        if not rejected:
            keep.append(candidate)
    return keep


# =============================================================================
# POLYGONS
# =============================================================================


def approximate_polygon(blob: Blob, label_map: np.ndarray, points: int) -> List[tuple]:
    """Ray-cast ``points`` vertices of a blob outline from its mass center.

    Each ray starts at the bbox corner farthest from the center and walks
    inward one pixel at a time until it lands on the blob's raw label. A ray
    that never hits ends on the center pixel.
    """
    height, width = label_map.shape
    cx_px = blob.norm_cx * width
    cy_px = blob.norm_cy * height
    corners = (
        (blob.norm_x, blob.norm_y),
        (blob.norm_x + blob.norm_w, blob.norm_y),
        (blob.norm_x + blob.norm_w, blob.norm_y + blob.norm_h),
        (blob.norm_x, blob.norm_y + blob.norm_h),
    )
    radius = max(math.hypot(cx * width - cx_px, cy * height - cy_px) for cx, cy in corners)
    radius = int(math.floor(radius))
    center_x = math.floor(cx_px)
    center_y = math.floor(cy_px)

    radii = np.arange(radius, -1, -1, dtype=np.float64)
    polygon = []
    for j in range(points):
        angle = (j / points) * 2.0 * math.pi
        xs = np.clip(np.floor(center_x + radii * math.cos(angle)), 0, width - 1).astype(np.intp)
        ys = np.clip(np.floor(center_y + radii * math.sin(angle)), 0, height - 1).astype(np.intp)
        hits = np.flatnonzero(label_map[ys, xs] == blob.raw_id)
        k = int(hits[0]) if hits.size else radii.size - 1
        polygon.append((float(xs[k]) / width, float(ys[k]) / height))
    return polygon


# =============================================================================
# TRACKER
# =============================================================================


class BlobTracker:
    """
    Builds per-frame blobs from a label map and carries ids forward.

    Pipeline per call to :meth:`process`:
        1. aggregate per-label statistics
        2. mass / bbox-area filtering
        3. inner / outer rejection
        4. identity assignment (or plain indices when tracking is off)
        5. copy creation stamps of matched blobs
        6. optional polygon approximation
    """

    def __init__(self, config: Optional[EngineConfig] = None, logger: Optional[logging.Logger] = None) -> None:
        self._cfg = config or EngineConfig()
        self._log = logger or _LOG
        self._blobs: List[List[Blob]] = [[], []]
        self._current = 0

    # -- ring --

    @property
    def current(self) -> List[Blob]:
        return self._blobs[self._current]

    @property
    def previous(self) -> List[Blob]:
        return self._blobs[1 - self._current]

    def reset(self) -> None:
        self._blobs = [[], []]
        self._current = 0

    # -- main API --

    def process(
        self,
        label_map: np.ndarray,
        count: int,
        pts_ms: float = 0.0,
        frame_id: int = 0,
    ) -> List[Blob]:
        """Build this frame's blobs from ``label_map`` holding labels 1..count."""
        self._current = 1 - self._current
        blobs = self.extract(label_map, count, pts_ms, frame_id)
        blobs = reject_nested(blobs, self._cfg.reject_blobs_method)
        self._blobs[self._current] = blobs

        if self._cfg.track_blobs:
            self._track(blobs, self.previous)
        else:
            for i, blob in enumerate(blobs):
                blob.id = i

        if self._cfg.approximate_polygons:
            points = max(3, int(self._cfg.polygon_points))
            for blob in blobs:
                blob.polygon = approximate_polygon(blob, label_map, points)
        return blobs

    def extract(self, label_map: np.ndarray, count: int, pts_ms: float = 0.0, frame_id: int = 0) -> List[Blob]:
        """Aggregate label statistics and keep the labels passing mass/area bands."""
        if count <= 0:
            return []
        height, width = label_map.shape
        total = float(width * height)

        ys, xs = np.nonzero(label_map)
        lab = label_map[ys, xs]
        size = count + 1
        mass = np.bincount(lab, minlength=size)
        sum_x = np.bincount(lab, weights=xs, minlength=size)
        sum_y = np.bincount(lab, weights=ys, minlength=size)
        min_x = np.full(size, width, dtype=np.int64)
        min_y = np.full(size, height, dtype=np.int64)
        max_x = np.full(size, -1, dtype=np.int64)
        max_y = np.full(size, -1, dtype=np.int64)
        np.minimum.at(min_x, lab, xs)
        np.minimum.at(min_y, lab, ys)
        np.maximum.at(max_x, lab, xs)
        np.maximum.at(max_y, lab, ys)

        mass_lo, mass_hi = self._cfg.blob_mass_range
        area_lo, area_hi = self._cfg.blob_area_range

        blobs: List[Blob] = []
        for raw in range(1, size):
            if mass[raw] == 0:
                continue
            norm_mass = mass[raw] / total
            norm_area = float((max_x[raw] - min_x[raw]) * (max_y[raw] - min_y[raw])) / total
            if norm_mass < mass_lo or norm_mass > mass_hi:
                continue
            if norm_area < area_lo or norm_area > area_hi:
                continue
            blobs.append(
                Blob(
                    norm_x=min_x[raw] / width,
                    norm_y=min_y[raw] / height,
                    norm_w=(max_x[raw] - min_x[raw]) / width,
                    norm_h=(max_y[raw] - min_y[raw]) / height,
                    norm_cx=sum_x[raw] / mass[raw] / width,
                    norm_cy=sum_y[raw] / mass[raw] / height,
                    norm_mass=float(norm_mass),
                    raw_id=raw,
                    creation_ms=float(pts_ms),
                    creation_frame=int(frame_id),
                )
            )
        return blobs

    # -- internals --

    def _track(self, current: List[Blob], previous: List[Blob]) -> None:
        max_dist = float(self._cfg.track_blobs_max_norm_dist)

        for blob in previous:
            if blob.id < 0:
                blob.id = first_free_id(previous)

        for blob in current:
            blob.id = -1
        distances = [math.inf] * len(current)

        # Pass 1: nearest previous blob under the distance limit.
        for i, blob in enumerate(current):
            for prev in previous:
                d = _distance(prev, blob)
                if d < distances[i] and d < max_dist:
                    distances[i] = d
                    blob.id = prev.id

        # Conflicts: the closer claim keeps the id, earlier blob on ties.
        for i, blob in enumerate(current):
            if blob.id < 0:
                continue
            for j in range(i + 1, len(current)):
                other = current[j]
                if other.id != blob.id:
                    continue
                if distances[i] > distances[j]:
                    blob.id = -1
                    break
                other.id = -1

        # Pass 2: losers may claim ids nobody in this frame holds yet.
        for i, blob in enumerate(current):
            if blob.id >= 0:
                continue
            distances[i] = math.inf
            claimed = {b.id for b in current if b.id >= 0}
            for prev in previous:
                if prev.id in claimed:
                    continue
                d = _distance(prev, blob)
                if d < distances[i] and d < max_dist:
                    distances[i] = d
                    blob.id = prev.id

        # Whatever is left is a new blob.
        reserved = {b.id for b in previous}
        for blob in current:
            if blob.id < 0:
                blob.id = first_free_id(current, reserved)

        by_id = {b.id: b for b in previous}
        for blob in current:
            prev = by_id.get(blob.id)
            if prev is None:
                continue
            blob.creation_ms = prev.creation_ms
            blob.creation_frame = prev.creation_frame
            blob.is_new = False

        self._log.debug("tracked %d blob(s) against %d previous", len(current), len(previous))
