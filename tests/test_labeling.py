from __future__ import annotations

import numpy as np
import pytest

from analysis.motion.labeling import BlobLabeler, compact_labels, relax_labels, seed_labels

METHODS = ["union_find", "relaxation"]


def _mask(rows):
    return np.array([[c == "#" for c in row] for row in rows], dtype=bool)


def _partition(labels: np.ndarray):
    """Set of frozensets of pixel coordinates, one per label."""
    groups = {}
    for y, x in zip(*np.nonzero(labels)):
        groups.setdefault(int(labels[y, x]), set()).add((int(y), int(x)))
    return {frozenset(g) for g in groups.values()}


SHAPES = _mask(
    [
        "..........",
        ".##...#...",
        ".##..#....",
        "....#...#.",
        ".......##.",
        ".#.....#..",
        ".#........",
        "..........",
    ]
)


@pytest.mark.parametrize("method", METHODS)
def test_counts_eight_connected_components(method):
    labeler = BlobLabeler(method)
    labels, count = labeler.label(SHAPES)
    # square, diagonal line, hook on the right, vertical pair
    assert count == 4
    assert labels.shape == SHAPES.shape
    assert set(np.unique(labels)) == {0, 1, 2, 3, 4}
    # the diagonal is one component through corner contacts
    assert labels[1, 6] == labels[2, 5] == labels[3, 4]


@pytest.mark.parametrize("method", METHODS)
def test_labels_numbered_by_first_raster_appearance(method):
    labels, _ = BlobLabeler(method).label(SHAPES)
    assert labels[1, 1] == 1  # square starts first
    assert labels[1, 6] == 2  # diagonal
    assert labels[3, 8] == 3  # hook
    assert labels[5, 1] == 4  # vertical pair


@pytest.mark.parametrize("method", METHODS)
def test_border_pixels_are_never_labeled(method):
    mask = np.ones((6, 7), dtype=bool)
    labels, count = BlobLabeler(method).label(mask)
    assert count == 1
    assert (labels[0, :] == 0).all() and (labels[-1, :] == 0).all()
    assert (labels[:, 0] == 0).all() and (labels[:, -1] == 0).all()
    assert (labels[1:-1, 1:-1] == 1).all()


@pytest.mark.parametrize("method", METHODS)
def test_tiny_and_empty_masks(method):
    labeler = BlobLabeler(method)
    assert labeler.label(np.ones((2, 2), dtype=bool))[1] == 0
    labels, count = labeler.label(np.zeros((5, 5), dtype=bool))
    assert count == 0
    assert not labels.any()


def test_methods_agree_on_random_masks():
    rng = np.random.default_rng(1234)
    for _ in range(5):
        mask = rng.random((40, 50)) > 0.55
        a, na = BlobLabeler("union_find").label(mask)
        a = a.copy()
        b, nb = BlobLabeler("relaxation").label(mask)
        assert na == nb
        assert np.array_equal(a, b)


def test_relabeling_is_idempotent():
    rng = np.random.default_rng(7)
    mask = rng.random((30, 30)) > 0.5
    labeler = BlobLabeler()
    first, n1 = labeler.label(mask)
    first = first.copy()
    second, n2 = labeler.label(first > 0)
    assert n1 == n2
    assert _partition(first) == _partition(second)


def test_label_map_follows_mask_size():
    labeler = BlobLabeler()
    labeler.label(np.zeros((10, 12), dtype=bool))
    assert labeler.shape == (10, 12)
    labeler.label(np.zeros((4, 5), dtype=bool))
    assert labeler.label_map.shape == (4, 5)


def test_seed_labels_bump_on_every_off_pixel():
    mask = _mask(
        [
            ".....",
            ".##.#",
            ".#.#.",
            ".....",
        ]
    )
    seeds = seed_labels(mask)
    # interior row 1: cols 1..3 -> "##." ; row 2: "#.#"
    assert seeds[1, 1] == seeds[1, 2] == 1
    assert seeds[2, 1] == 2  # one "off" pixel in between
    assert seeds[2, 3] == 3
    assert seeds[1, 4] == 0  # border column


def test_relaxation_then_compaction():
    mask = _mask(
        [
            ".......",
            ".#.#.#.",
            "..#.#..",
            ".......",
        ]
    )
    labels = seed_labels(mask)
    passes = relax_labels(labels)
    assert passes >= 1
    assert compact_labels(labels) == 1
    assert set(np.unique(labels)) == {0, 1}


def test_relaxation_sweeps_settle_long_blobs_quickly():
    # a tall one-pixel column seeds a different label on every row
    mask = np.zeros((302, 4), dtype=bool)
    mask[1:-1, 1] = True
    labels = seed_labels(mask)
    assert len(np.unique(labels[labels > 0])) == 300

    passes = relax_labels(labels)
    assert passes <= 2
    assert compact_labels(labels) == 1


def test_relaxation_handles_serpentine_blob():
    mask = np.zeros((21, 21), dtype=bool)
    for i, y in enumerate(range(1, 20, 2)):
        mask[y, 1:20] = True
        # link rows alternately on the right and the left
        if y + 1 < 20:
            mask[y + 1, 19 if i % 2 == 0 else 1] = True
    labels, count = BlobLabeler("relaxation").label(mask)
    assert count == 1
    assert (labels[mask] == 1).all()
