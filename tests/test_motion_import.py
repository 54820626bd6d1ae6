from __future__ import annotations

import numpy as np

from analysis.motion import EngineConfig, FrameResult, MotionEngine
from common.frame import Frame


def test_motion_smoke_run() -> None:
    # Construct an engine with default configuration and run a single
    # frame through it to confirm we get a FrameResult back.
    eng = MotionEngine(EngineConfig())
    f = Frame(
        img=np.zeros((64, 64, 4), dtype=np.uint8),
        pts_ms=1_700_000_000_000.0,
        frame_id=0,
    )
    out = eng.update(f)

    assert isinstance(out, FrameResult)
    assert out.ok
    assert out.pts_ms == f.pts_ms
    assert out.frame_id == f.frame_id
    # First frame seeds the background, so nothing moves yet.
    assert out.mask.shape == (64, 64)
    assert not out.mask.any()
