# analysis/motion/config.py
from __future__ import annotations

import dataclasses
import logging
import math
import os
from importlib import import_module
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .model import LABELING_METHODS, EngineConfig, ErrorKind, MirrorMode, RejectMethod

_LOG = logging.getLogger(__name__)

CONFIG_MODULE_ENV = "MOTION_CONFIG_MODULE"

FIELD_NAMES = frozenset(f.name for f in dataclasses.fields(EngineConfig))

_ENUM_FIELDS = {
    "mirror_mode": MirrorMode,
    "reject_blobs_method": RejectMethod,
}


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def _sanitize_range(name: str, rng: Any, fixes: List[str]) -> Tuple[float, float]:
    lo, hi = float(rng[0]), float(rng[1])
    if lo < 0.0 or hi < 0.0:
        fixes.append(f"{name}: negative bound {rng!r} raised to 0")
        lo, hi = max(0.0, lo), max(0.0, hi)
    if lo > hi:
        fixes.append(f"{name}: min > max in {rng!r}, bounds swapped")
        lo, hi = hi, lo
    return lo, hi


def sanitize_config(cfg: EngineConfig, logger: Optional[logging.Logger] = None) -> List[str]:
    """Clamp ``cfg`` in place and return a description of every correction.

    Each correction is also logged as a warning; nothing here is fatal.
    """
    log = logger or _LOG
    fixes: List[str] = []

    for name, enum_cls in _ENUM_FIELDS.items():
        value = getattr(cfg, name)
        if isinstance(value, enum_cls):
            continue
        try:
            setattr(cfg, name, enum_cls(str(value).lower()))
        except ValueError:
            fixes.append(f"{name}: unknown value {value!r}, using {enum_cls('none').value!r}")
            setattr(cfg, name, enum_cls("none"))

    for name in ("filter_feedback", "filter_threshold", "zone_fill_threshold"):
        value = float(getattr(cfg, name))
        clamped = _clamp01(value)
        if clamped != value:
            fixes.append(f"{name}: {value!r} clamped to {clamped!r}")
        setattr(cfg, name, clamped)

    dist = float(cfg.track_blobs_max_norm_dist)
    if dist < 0.0:
        fixes.append(f"track_blobs_max_norm_dist: {dist!r} raised to 0.0")
        dist = 0.0
    cfg.track_blobs_max_norm_dist = dist

    cfg.blob_mass_range = _sanitize_range("blob_mass_range", cfg.blob_mass_range, fixes)
    cfg.blob_area_range = _sanitize_range("blob_area_range", cfg.blob_area_range, fixes)

    points = cfg.polygon_points
    if points < 3:
        fixes.append(f"polygon_points: minimum is 3 (got {points!r}), set to 3")
        points = 3
    elif math.floor(points) != points:
        fixes.append(f"polygon_points: {points!r} is not an integer, set to {math.floor(points)}")
    cfg.polygon_points = int(math.floor(points))

    if cfg.labeling_method not in LABELING_METHODS:
        fixes.append(f"labeling_method: unknown value {cfg.labeling_method!r}, using 'union_find'")
        cfg.labeling_method = "union_find"

    for fix in fixes:
        log.warning("[%s] %s", ErrorKind.CONFIG_CORRECTED.value, fix)
    return fixes


def apply_options(cfg: EngineConfig, options: Mapping[str, Any], logger: Optional[logging.Logger] = None) -> bool:
    """Apply ``options`` onto ``cfg`` in place and sanitize the result.

    Every option is tried on a copy first; a value that cannot be converted
    (``filter_threshold="high"``, ``blob_mass_range=0.5``) is logged and
    skipped, leaving the previous value in ``cfg``. Returns ``False`` when any
    option was unknown or rejected.
    """
    log = logger or _LOG
    ok = True
    staged = dataclasses.replace(cfg)
    for name, value in options.items():
        if name not in FIELD_NAMES:
            log.warning("Unknown motion option %r ignored", name)
            ok = False
            continue
        trial = dataclasses.replace(staged)
        setattr(trial, name, value)
        try:
            sanitize_config(trial, log)
        except (TypeError, ValueError, OverflowError) as exc:
            log.warning(
                "[%s] motion option %s=%r rejected, keeping %r: %s",
                ErrorKind.INVALID_INPUT.value,
                name,
                value,
                getattr(staged, name),
                exc,
            )
            ok = False
            continue
        staged = trial

    for f in dataclasses.fields(staged):
        setattr(cfg, f.name, getattr(staged, f.name))
    return ok


def config_from_mapping(values: Mapping[str, Any]) -> EngineConfig:
    """Build an :class:`EngineConfig` from ``values``; unknown keys are ignored."""
    cfg = EngineConfig()
    apply_options(cfg, {k: v for k, v in values.items() if k in FIELD_NAMES})
    return cfg


def load_engine_config(module_name: Optional[str] = None) -> EngineConfig:
    """Load engine settings from a runtime config module.

    The module is picked from ``module_name`` or the ``MOTION_CONFIG_MODULE``
    environment variable. Its UPPER_CASE attributes map onto
    :class:`EngineConfig` fields (``FILTER_FEEDBACK`` -> ``filter_feedback``).
    Without a usable module the defaults are returned.
    """
    name = module_name or os.environ.get(CONFIG_MODULE_ENV)
    if not name:
        return config_from_mapping({})

    try:
        mod = import_module(name)
    except ImportError as exc:
        _LOG.warning("Could not import motion config module %r (using defaults): %s", name, exc)
        return config_from_mapping({})

    values: Dict[str, Any] = {}
    for attr in dir(mod):
        if attr.startswith("_") or not attr.isupper():
            continue
        key = attr.lower()
        if key in FIELD_NAMES:
            values[key] = getattr(mod, attr)
    _LOG.info("Loaded %d motion setting(s) from %s", len(values), name)
    return config_from_mapping(values)
