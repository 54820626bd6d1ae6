from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass
class ZoneEvent:
    """
    A single movement-flag transition of an active zone.

    The engine emits one event per threshold crossing (not one per frame
    while a zone stays above threshold), in zone order, alongside the
    synchronous ``on_change`` callback.
    """

    zone_id: int
    movement: bool  # True = motion entered the zone, False = it left
    fill_factor: float
    changed_ms: float
    changed_frame: int

    @property
    def kind(self) -> str:
        return "enter" if self.movement else "exit"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone_id": self.zone_id,
            "kind": self.kind,
            "fill_factor": round(float(self.fill_factor), 6),
            "changed_ms": float(self.changed_ms),
            "changed_frame": int(self.changed_frame),
        }


def active_zone_ids(events: List[ZoneEvent]) -> List[int]:
    """Zone ids that switched to "movement" in ``events``, in order."""
    return [ev.zone_id for ev in events if ev.movement]
