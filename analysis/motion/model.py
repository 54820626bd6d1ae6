from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

import numpy as np

from .events import ZoneEvent


class MirrorMode(str, Enum):
    NONE = "none"
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    BOTH = "both"


class RejectMethod(str, Enum):
    NONE = "none"
    INNER = "inner"  # drop blobs sitting inside another blob's rect
    OUTER = "outer"  # drop blobs whose rect encloses another blob


class ErrorKind(str, Enum):
    """Non-fatal conditions reported by the engine (never raised)."""

    INVALID_INPUT = "invalid_input"
    CONFIG_CORRECTED = "config_corrected"
    DUPLICATE_ZONE_ID = "duplicate_zone_id"
    REENTRANT_UPDATE = "reentrant_update"


LABELING_METHODS = ("union_find", "relaxation")


@dataclass
class EngineConfig:
    """
    Configuration knobs for the motion engine.

    Defaults match the behaviour webcam sketches were tuned against. Out of
    range values are clamped by :func:`analysis.motion.config.sanitize_config`
    rather than rejected.
    """

    # Background model / mask generation
    mirror_mode: MirrorMode = MirrorMode.NONE
    progressive_background: bool = True
    filter_feedback: float = 0.92  # weight of the old background per frame
    filter_threshold: float = 0.4  # luminance threshold in [0, 1]

    # Pipeline switches
    handle_blobs: bool = False
    handle_zones: bool = False

    # Blobs
    labeling_method: str = "union_find"
    track_blobs: bool = False
    track_blobs_max_norm_dist: float = 0.15
    blob_mass_range: Tuple[float, float] = (0.0002, 0.5)
    blob_area_range: Tuple[float, float] = (0.0002, 0.5)
    reject_blobs_method: RejectMethod = RejectMethod.NONE
    approximate_polygons: bool = False
    polygon_points: int = 6

    # Active zones
    zone_fill_threshold: float = 0.02


@dataclass
class Blob:
    """One connected region of the motion mask for a single frame.

    All geometry is normalized to [0, 1] by the mask width/height.
    """

    norm_x: float = 0.0
    norm_y: float = 0.0
    norm_w: float = 0.0
    norm_h: float = 0.0
    norm_cx: float = 0.0  # mass center
    norm_cy: float = 0.0
    norm_mass: float = 0.0  # pixel count / total pixels
    raw_id: int = -1  # label in the compacted label map
    id: int = -1  # stable tracking id; -1 while unresolved
    creation_ms: float = 0.0
    creation_frame: int = 0
    is_new: bool = True
    polygon: List[Tuple[float, float]] = field(default_factory=list)

    def contains(self, other: "Blob") -> bool:
        """True when ``other``'s rectangle lies fully inside this one."""
        return (
            other.norm_x >= self.norm_x
            and other.norm_y >= self.norm_y
            and other.norm_x + other.norm_w <= self.norm_x + self.norm_w
            and other.norm_y + other.norm_h <= self.norm_y + self.norm_h
        )

    def same_rect(self, other: "Blob") -> bool:
        return (
            self.norm_x == other.norm_x
            and self.norm_y == other.norm_y
            and self.norm_w == other.norm_w
            and self.norm_h == other.norm_h
        )


ZoneCallback = Callable[["ActiveZone"], None]


def _noop(_zone: "ActiveZone") -> None:
    return None


@dataclass
class ActiveZone:
    """Caller-defined static rectangle watched for motion."""

    id: int
    norm_x: float
    norm_y: float
    norm_w: float
    norm_h: float
    on_change: ZoneCallback = _noop
    enabled: bool = True
    movement: bool = False
    changed: bool = False
    changed_ms: float = 0.0
    changed_frame: int = 0
    fill_factor: float = 0.0
    fill_threshold: float = 0.02


@dataclass
class FrameResult:
    """Per-frame output of :class:`analysis.motion.engine.MotionEngine`."""

    ok: bool
    frame_id: int
    pts_ms: float
    blobs: List[Blob] = field(default_factory=list)
    mask: Optional[np.ndarray] = None  # bool (H,W); None when the frame was rejected
    zone_events: List[ZoneEvent] = field(default_factory=list)
    error: Optional[ErrorKind] = None
