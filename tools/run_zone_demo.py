from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Iterator, Optional

import numpy as np

from analysis.motion.config import load_engine_config
from analysis.motion.engine import MotionEngine
from analysis.motion.events import active_zone_ids
from analysis.motion.model import ActiveZone
from common.frame import Frame
from common.time import monotonic_ms, to_iso_utc

_LOG = logging.getLogger(__name__)


def synthetic_frames(
    width: int,
    height: int,
    count: int,
    square: int,
    seed: int = 0,
    start_ms: float = 1_700_000_000_000.0,
    fps: float = 30.0,
) -> Iterator[Frame]:
    """Static noisy backdrop with a bright square sweeping left to right."""
    rng = np.random.default_rng(seed)
    backdrop = np.empty((height, width, 4), dtype=np.uint8)
    backdrop[..., :3] = rng.integers(20, 40, size=(height, width, 3), dtype=np.uint8)
    backdrop[..., 3] = 255

    y0 = max(1, (height - square) // 2)
    travel = max(1, width - square - 2)
    for i in range(count):
        img = backdrop.copy()
        # first frame is empty so the background seeds from the backdrop
        if i > 0:
            x0 = 1 + (i * 3) % travel
            img[y0 : y0 + square, x0 : x0 + square, :3] = 230
        yield Frame(img=img, pts_ms=start_ms + i * 1000.0 / fps, frame_id=i + 1)


def add_zone_grid(engine: MotionEngine, cols: int, rows: int) -> None:
    def _on_change(zone: ActiveZone) -> None:
        _LOG.info(
            "zone %d %s (fill=%.3f) at frame %d",
            zone.id,
            "ENTER" if zone.movement else "EXIT",
            zone.fill_factor,
            zone.changed_frame,
        )

    zone_id = 0
    for r in range(rows):
        for c in range(cols):
            engine.add_zone(zone_id, c / cols, r / rows, 1.0 / cols, 1.0 / rows, _on_change)
            zone_id += 1


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Run the motion engine over synthetic frames and report zone events and blobs.",
    )
    ap.add_argument("--width", type=int, default=160, help="Frame width in pixels.")
    ap.add_argument("--height", type=int, default=120, help="Frame height in pixels.")
    ap.add_argument("--frames", type=int, default=60, help="Number of frames to generate.")
    ap.add_argument("--square", type=int, default=16, help="Side of the moving square in pixels.")
    ap.add_argument("--cols", type=int, default=4, help="Zone grid columns.")
    ap.add_argument("--rows", type=int, default=3, help="Zone grid rows.")
    ap.add_argument(
        "--config-module",
        type=str,
        default=None,
        help="Python module with UPPER_CASE motion settings (defaults to $MOTION_CONFIG_MODULE).",
    )
    ap.add_argument(
        "--events-jsonl",
        action="store_true",
        help="Print each zone event as a JSON line on stdout.",
    )
    ap.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return ap


def main(argv: Optional[list[str]] = None) -> int:
    ap = build_arg_parser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    cfg = load_engine_config(args.config_module)
    cfg.handle_zones = True
    cfg.handle_blobs = True
    cfg.track_blobs = True
    engine = MotionEngine(config=cfg)
    add_zone_grid(engine, args.cols, args.rows)
    _LOG.info("Engine config: %s", engine.snapshot_config())

    n_events = 0
    t0 = monotonic_ms()
    for frame in synthetic_frames(args.width, args.height, args.frames, args.square):
        res = engine.update(frame)
        if not res.ok:
            _LOG.warning("frame %d rejected: %s", frame.frame_id, res.error)
            continue
        n_events += len(res.zone_events)
        if args.events_jsonl:
            for ev in res.zone_events:
                sys.stdout.write(json.dumps(ev.to_dict()) + "\n")
        entered = active_zone_ids(res.zone_events)
        if entered:
            _LOG.debug("%s zones entered: %s", to_iso_utc(res.pts_ms), entered)
        for blob in res.blobs:
            _LOG.debug(
                "frame %d blob id=%d center=(%.3f, %.3f) mass=%.4f new=%s",
                res.frame_id,
                blob.id,
                blob.norm_cx,
                blob.norm_cy,
                blob.norm_mass,
                blob.is_new,
            )

    elapsed = monotonic_ms() - t0
    _LOG.info(
        "Processed %d frame(s) in %.1f ms, %d zone event(s)",
        engine.last_update_frame,
        elapsed,
        n_events,
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
