from __future__ import annotations

import numpy as np

from analysis.motion.background import BackgroundModel
from analysis.motion.model import EngineConfig, MirrorMode


def _rgba(height: int, width: int, value: int = 0) -> np.ndarray:
    img = np.full((height, width, 4), value, dtype=np.uint8)
    img[..., 3] = 255
    return img


def _with_square(img: np.ndarray, x0: int, y0: int, size: int, value: int) -> np.ndarray:
    out = img.copy()
    out[y0 : y0 + size, x0 : x0 + size, :3] = value
    return out


def _shapes(bg: BackgroundModel):
    return {bg.current.shape, bg.background.shape, bg.difference.shape, bg.threshold.shape}


def test_first_frame_seeds_background_and_reports_no_motion():
    bg = BackgroundModel(EngineConfig())
    frame = _with_square(_rgba(20, 30, 10), 5, 5, 4, 250)

    assert bg.update(frame)
    assert _shapes(bg) == {(20, 30, 4)}
    assert bg.mask.shape == (20, 30)
    assert not bg.mask.any()
    assert np.array_equal(bg.background, frame)
    assert (bg.difference[..., :3] == 0).all()
    assert (bg.threshold[..., 3] == 255).all()


def test_progressive_background_detects_new_square():
    bg = BackgroundModel(EngineConfig(filter_feedback=0.92, filter_threshold=0.4))
    base = _rgba(20, 20, 0)
    bg.update(base)
    assert bg.update(_with_square(base, 8, 8, 4, 200))

    # background moved 8% toward the square: round(200 * 0.08) = 16
    assert int(bg.background[9, 9, 0]) == 16
    assert int(bg.difference[9, 9, 0]) == 184
    assert bg.mask[8:12, 8:12].all()
    assert bg.mask.sum() == 16
    assert (bg.threshold[9, 9] == 255).all()
    assert list(bg.threshold[0, 0]) == [0, 0, 0, 255]


def test_static_background_is_not_updated():
    bg = BackgroundModel(EngineConfig(progressive_background=False))
    base = _rgba(10, 10, 0)
    bg.update(base)
    for _ in range(3):
        bg.update(_with_square(base, 2, 2, 3, 200))
    assert (bg.background[..., :3] == 0).all()
    assert int(bg.difference[3, 3, 1]) == 200


def test_threshold_is_strictly_greater():
    bg = BackgroundModel(EngineConfig(progressive_background=False, filter_threshold=0.5))
    base = _rgba(10, 10, 0)
    bg.update(base)
    frame = base.copy()
    frame[2, 2, :3] = 127  # luma 127 <= 127.5
    frame[5, 5, :3] = 128  # luma 128 > 127.5
    bg.update(frame)
    assert not bg.mask[2, 2]
    assert bg.mask[5, 5]


def test_horizontal_mirror():
    bg = BackgroundModel(EngineConfig(mirror_mode=MirrorMode.HORIZONTAL))
    frame = _rgba(4, 6, 0)
    frame[1, 0, :3] = 99
    bg.update(frame)
    assert int(bg.current[1, 5, 0]) == 99
    assert int(bg.current[1, 0, 0]) == 0


def test_vertical_and_both_mirror():
    frame = _rgba(4, 6, 0)
    frame[0, 1, :3] = 77

    vert = BackgroundModel(EngineConfig(mirror_mode=MirrorMode.VERTICAL))
    vert.update(frame)
    assert int(vert.current[3, 1, 0]) == 77

    both = BackgroundModel(EngineConfig(mirror_mode=MirrorMode.BOTH))
    both.update(frame)
    assert int(both.current[3, 4, 0]) == 77


def test_resize_reallocates_all_buffers():
    bg = BackgroundModel(EngineConfig())
    bg.update(_rgba(8, 10))
    bg.update(_rgba(16, 20))
    assert _shapes(bg) == {(16, 20, 4)}
    assert bg.shape == (16, 20)
    assert not bg.mask.any()


def test_invalid_input_leaves_state_untouched():
    bg = BackgroundModel(EngineConfig())
    bg.update(_rgba(6, 6, 40))
    before = bg.background.copy()

    assert not bg.update(None)  # type: ignore[arg-type]
    assert not bg.update(np.zeros((6, 6, 3), dtype=np.uint8))
    assert not bg.update(np.zeros((0, 6, 4), dtype=np.uint8))
    assert np.array_equal(bg.background, before)
    assert bg.shape == (6, 6)


def test_set_background_then_hit_test():
    bg = BackgroundModel(EngineConfig(progressive_background=False))
    empty = _rgba(10, 10, 0)
    assert bg.set_background(empty)
    assert bg.update(_with_square(empty, 6, 2, 2, 255))

    assert bg.hit_test(0.65, 0.25)  # pixel (6, 2)
    assert not bg.hit_test(0.1, 0.1)
    assert not bg.hit_test(-0.1, 0.5)
    assert not bg.hit_test(1.0, 0.5)
