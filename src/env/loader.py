from __future__ import annotations

import logging
import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

import yaml

from nav_core.errors import PathingError

from .schema import (
    CacheSettings,
    ExecutionSettings,
    FlightSettings,
    NavConfig,
    RetrySettings,
    SearchSettings,
)


log = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[2]
CONFIG_ROOT = PROJECT_ROOT / "config"
DEFAULT_CONFIG = CONFIG_ROOT / "nav.yaml"

# Overrides the `profile` key in nav.yaml.
PROFILE_ENV_VAR = "NAV_PROFILE"

_SECTIONS: Dict[str, type] = {
    "cache": CacheSettings,
    "search": SearchSettings,
    "execution": ExecutionSettings,
    "retry": RetrySettings,
    "flight": FlightSettings,
}


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping from disk."""
    if not path.exists():
        raise FileNotFoundError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at top of {path}, got {type(data)}")
    return data


def _select_profile(nav_cfg: Dict[str, Any], override: Optional[str] = None) -> Tuple[str, Dict[str, Any]]:
    """Return (active_profile_name, active_profile_mapping)."""
    profile_name = override or os.getenv(PROFILE_ENV_VAR) or nav_cfg.get("profile")
    if not profile_name:
        raise ValueError("nav.yaml must define a 'profile' key.")
    profiles = nav_cfg.get("profiles")
    if not isinstance(profiles, dict):
        raise ValueError("nav.yaml must define a 'profiles' mapping.")
    if profile_name not in profiles:
        raise KeyError(f"Profile '{profile_name}' not found in nav.yaml profiles.")
    return profile_name, profiles[profile_name] or {}


def _build_section(section: str, cls: Type[T], raw: Any) -> T:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise PathingError("config_section_not_mapping", {"section": section, "type": type(raw).__name__})
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise PathingError("config_unknown_keys", {"section": section, "keys": unknown})
    return cls(**raw)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_nav_config(path: Optional[Path] = None, profile: Optional[str] = None) -> NavConfig:
    """
    Main entry point: returns the NavConfig for the active profile.

    Sections missing from a profile keep their dataclass defaults.
    """
    cfg_path = Path(path) if path is not None else DEFAULT_CONFIG
    nav_cfg = _load_yaml(cfg_path)
    profile_name, active = _select_profile(nav_cfg, profile)

    extra = sorted(set(active) - set(_SECTIONS))
    if extra:
        raise PathingError("config_unknown_sections", {"profile": profile_name, "sections": extra})

    sections = {name: _build_section(name, cls, active.get(name)) for name, cls in _SECTIONS.items()}
    config = NavConfig(name=profile_name, **sections)
    _validate_nav_config(config)
    log.info("loaded nav profile %r from %s", profile_name, cfg_path)
    return config


def _validate_nav_config(config: NavConfig) -> None:
    """Numeric sanity checks."""
    c, s, e, r, f = config.cache, config.search, config.execution, config.retry, config.flight

    if c.max_y <= c.min_y:
        raise ValueError(f"cache.max_y ({c.max_y}) must be above cache.min_y ({c.min_y})")
    if c.region_capacity < 1:
        raise ValueError("cache.region_capacity must be >= 1")
    if c.prefetch_radius < 0 or c.autosave_interval_ticks < 0:
        raise ValueError("cache.prefetch_radius and cache.autosave_interval_ticks must be >= 0")

    if s.max_nodes < 1 or s.timeout_s <= 0:
        raise ValueError("search.max_nodes must be >= 1 and search.timeout_s > 0")
    if s.max_fall_height < 1 or s.max_fall_height_water < 0:
        raise ValueError("search fall heights out of range")
    if not 2 <= s.max_parkour_distance <= 4:
        raise ValueError("search.max_parkour_distance must be between 2 and 4")
    if s.unknown_tolerance < 0 or s.break_cost < 0 or s.cancel_check_interval < 1:
        raise ValueError("search.unknown_tolerance/break_cost/cancel_check_interval out of range")

    if e.movement_timeout_ticks < 1 or e.off_course_tolerance <= 0:
        raise ValueError("execution timeouts and tolerances must be positive")
    if e.cost_increase_tolerance < 1.0:
        raise ValueError("execution.cost_increase_tolerance must be >= 1.0")
    if e.stale_lookahead < 0 or e.replan_lookahead < 0 or e.observe_radius < 0:
        raise ValueError("execution lookaheads and observe_radius must be >= 0")

    if r.max_retries < 1 or r.max_replans_per_goal < 1:
        raise ValueError("retry.max_retries and retry.max_replans_per_goal must be >= 1")
    if r.failure_penalty_base < 1.0 or r.failure_penalty_ttl_s < 0:
        raise ValueError("retry.failure_penalty_base must be >= 1.0 and ttl >= 0")

    if (f.max_y - f.min_y) <= 0 or (f.max_y - f.min_y) % 16:
        raise ValueError("flight y band must be a positive multiple of 16")
    if f.step <= 0 or f.sample_spacing <= 0 or f.speed_blocks_per_tick <= 0:
        raise ValueError("flight.step, sample_spacing and speed_blocks_per_tick must be positive")
