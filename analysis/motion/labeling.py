"""8-connected component labeling of the motion mask.

The outermost one-pixel frame of the mask is never labeled, so every label
map has a background margin.

Two interchangeable methods produce the same partition and, after
compaction, the same label numbers:

``relaxation``
    Seed every "on" pixel with a provisional label (a new label after each
    "off" pixel in raster order), then alternate a forward and a reverse
    raster sweep, each pixel taking the minimum label among itself and its
    8 neighbours, until a forward/reverse pair changes nothing.

``union_find``
    OpenCV's two-pass connected components, which has a fixed cost per
    frame. This is the default.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

_LOG = logging.getLogger(__name__)

_SENTINEL = np.iinfo(np.int32).max
_RUN_OFFSET = 1 << 32  # larger than any label


def _interior(mask: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(mask[1:-1, 1:-1], dtype=bool)


def seed_labels(mask: np.ndarray) -> np.ndarray:
    """Provisional labels: one per run of "on" pixels, border left at 0."""
    height, width = mask.shape
    labels = np.zeros((height, width), dtype=np.int32)
    if height < 3 or width < 3:
        return labels
    inner = _interior(mask).ravel()
    # Label counter starts at 1 and grows on every "off" interior pixel.
    counter = 1 + np.cumsum(~inner, dtype=np.int64)
    seeds = np.where(inner, counter, 0).astype(np.int32)
    labels[1:-1, 1:-1] = seeds.reshape(height - 2, width - 2)
    return labels


def _raster_sweep(labels: np.ndarray, on: np.ndarray) -> None:
    """One forward raster sweep, in place.

    Each "on" pixel takes the minimum label of itself and its 8 neighbours,
    seeing the values already updated earlier in the same sweep. Pass a
    ``[::-1, ::-1]`` view to sweep in reverse raster order.
    """
    height = labels.shape[0]
    vals = np.where(on, labels, _SENTINEL).astype(np.int64)
    for y in range(height):
        row_on = on[y]
        if not row_on.any():
            continue
        row = vals[y]
        lowest = row.copy()
        lowest[:-1] = np.minimum(lowest[:-1], row[1:])
        for ny in (y - 1, y + 1):
            if ny < 0 or ny >= height:
                continue
            nb = vals[ny]
            np.minimum(lowest, nb, out=lowest)
            lowest[1:] = np.minimum(lowest[1:], nb[:-1])
            lowest[:-1] = np.minimum(lowest[:-1], nb[1:])
        lowest[~row_on] = _SENTINEL
        # The left neighbour is already updated: a running minimum restarted
        # at every "off" pixel.
        runs = np.cumsum(~row_on, dtype=np.int64) * _RUN_OFFSET
        vals[y] = np.minimum.accumulate(lowest - runs) + runs
    labels[...] = np.where(on, vals, 0)


def relax_labels(labels: np.ndarray, max_passes: Optional[int] = None) -> int:
    """Alternate forward and reverse sweeps in place until a fixpoint; return passes."""
    on = labels > 0
    if not on.any():
        return 0
    passes = 0
    while max_passes is None or passes < max_passes:
        passes += 1
        before = labels.copy()
        _raster_sweep(labels, on)
        _raster_sweep(labels[::-1, ::-1], on[::-1, ::-1])
        if np.array_equal(before, labels):
            break
    return passes


def compact_labels(labels: np.ndarray) -> int:
    """Renumber labels in place to 1..N by first raster appearance; return N."""
    flat = labels.ravel()
    nonzero = flat[flat > 0]
    if nonzero.size == 0:
        return 0
    uniq, first_idx = np.unique(nonzero, return_index=True)
    ordered = uniq[np.argsort(first_idx, kind="stable")]
    lut = np.zeros(int(uniq[-1]) + 1, dtype=np.int32)
    lut[ordered] = np.arange(1, ordered.size + 1, dtype=np.int32)
    labels[...] = lut[labels]
    return int(ordered.size)


class BlobLabeler:
    """Owns the label map and fills it from a boolean mask each frame."""

    def __init__(self, method: str = "union_find", logger: Optional[logging.Logger] = None) -> None:
        self.method = method
        self._log = logger or _LOG
        self.label_map = np.zeros((1, 1), dtype=np.int32)
        self.count = 0

    @property
    def shape(self) -> Tuple[int, int]:
        return int(self.label_map.shape[0]), int(self.label_map.shape[1])

    def resize(self, height: int, width: int) -> None:
        if (height, width) != self.shape:
            self.label_map = np.zeros((height, width), dtype=np.int32)
        else:
            self.label_map[...] = 0
        self.count = 0

    def label(self, mask: np.ndarray) -> Tuple[np.ndarray, int]:
        """Label ``mask`` (bool or 0/255) and return ``(label_map, count)``."""
        mask = np.asarray(mask)
        if mask.ndim == 3:
            mask = mask[..., 0]
        mask = mask > 0
        height, width = mask.shape
        if (height, width) != self.shape:
            self.resize(height, width)

        if height < 3 or width < 3:
            self.label_map[...] = 0
            self.count = 0
            return self.label_map, 0

        if self.method == "relaxation":
            self.label_map[...] = seed_labels(mask)
            passes = relax_labels(self.label_map)
            self._log.debug("relaxation labeling converged after %d pass(es)", passes)
        else:
            inner = _interior(mask).astype(np.uint8)
            _, inner_labels = cv2.connectedComponents(inner, connectivity=8, ltype=cv2.CV_32S)
            self.label_map[...] = 0
            self.label_map[1:-1, 1:-1] = inner_labels

        self.count = compact_labels(self.label_map)
        return self.label_map, self.count
