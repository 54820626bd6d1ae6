"""Public exports for the motion analysis package."""

from __future__ import annotations

from .background import BackgroundModel
from .config import load_engine_config, sanitize_config
from .engine import MotionEngine
from .events import ZoneEvent
from .labeling import BlobLabeler
from .model import (
    ActiveZone,
    Blob,
    EngineConfig,
    ErrorKind,
    FrameResult,
    MirrorMode,
    RejectMethod,
)
from .tracker import BlobTracker
from .zones import ActiveZoneMonitor

__all__ = [
    "MotionEngine",
    "FrameResult",
    "EngineConfig",
    "MirrorMode",
    "RejectMethod",
    "ErrorKind",
    "Blob",
    "ActiveZone",
    "ZoneEvent",
    "BackgroundModel",
    "BlobLabeler",
    "BlobTracker",
    "ActiveZoneMonitor",
    "load_engine_config",
    "sanitize_config",
]
