# NavConfig and per-subsystem settings dataclasses
# src/env/schema.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class CacheSettings:
    """Voxel cache sizing, paging and world bounds."""
    dimension: str = "overworld"
    min_y: int = -64
    max_y: int = 320                     # exclusive
    region_capacity: int = 256           # resident regions before eviction
    prefetch_radius: int = 1             # regions around the agent to page in
    autosave_interval_ticks: int = 1200  # 0 disables periodic saving
    storage_root: Optional[str] = None   # None keeps the cache memory-only
    generation: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class SearchSettings:
    """A* ceilings and which move templates are enabled."""
    max_nodes: int = 50_000
    timeout_s: float = 2.0
    background: bool = True
    allow_sprint: bool = True
    allow_diagonal: bool = True
    allow_parkour: bool = True
    allow_swim: bool = True
    allow_break: bool = False
    max_fall_height: int = 3
    max_fall_height_water: int = 64
    max_parkour_distance: int = 4
    unknown_tolerance: int = 0           # UNKNOWN voxels one move may cross
    break_cost: float = 20.0             # ticks per broken voxel
    cancel_check_interval: int = 64      # nodes between cancel/clock checks


@dataclass
class ExecutionSettings:
    """Movement state machine tolerances."""
    movement_timeout_ticks: int = 100    # added to ceil(planned cost)
    off_course_tolerance: float = 2.0    # blocks away from the move segment
    cost_increase_tolerance: float = 1.5 # COST_TOO_HIGH above planned x this
    stale_lookahead: int = 2             # queued movements rechecked per tick
    replan_lookahead: int = 4            # remaining moves that trigger a segment search
    observe_radius: int = 2              # voxels sampled around the agent per tick


@dataclass
class RetrySettings:
    """Retry budget and failure memory policy."""
    max_retries: int = 3
    reset_on_replan: bool = False        # also reset on re-search toward the same goal
    max_replans_per_goal: int = 32
    failure_penalty_ttl_s: float = 60.0
    failure_penalty_base: float = 2.0


@dataclass
class FlightSettings:
    """Long-range trajectory search over the occupancy octree."""
    min_y: int = 0
    max_y: int = 128                     # exclusive
    step: float = 4.0                    # lattice spacing in blocks
    sample_spacing: float = 0.5          # collision sample distance along segments
    max_nodes: int = 20_000
    timeout_s: float = 2.0
    waypoint_tolerance: float = 1.5
    speed_blocks_per_tick: float = 1.5


@dataclass
class NavConfig:
    """Resolved pathing configuration for one profile."""
    name: str = "default"
    cache: CacheSettings = field(default_factory=CacheSettings)
    search: SearchSettings = field(default_factory=SearchSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    flight: FlightSettings = field(default_factory=FlightSettings)
