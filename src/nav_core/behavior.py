# src/nav_core/behavior.py
"""
PathingBehavior: the engine facade a host drives once per game tick.

This module wires together:
- WorldCache + TerrainObserver (what the agent knows about terrain)
- SearchWorker running AStarPathFinder or TrajectorySearch
- PathExecutor (one movement at a time)
- RetryBudget + FailureMemory (termination of re-planning)
- MovementTracer + EventBus (observability)

Public surface:
    submit_goal(goal) -> handle
    submit_flight(target) -> handle
    cancel(handle)
    goal_result(handle) -> GoalResult
    current_path() -> Optional[Path]
    estimated_ticks_to_goal() -> float (NaN when unknown)
    frontier_snapshot(limit) -> List[FrontierEntry]
    on_block_change(change)
    tick()
    close()

Rules:
- One goal episode at a time; submitting a new goal supersedes the old one.
- A movement is only abandoned once it reports safe_to_cancel().
- Each episode ends with exactly one terminal GoalResult
  (REACHED, GAVE_UP or CANCELED) and one GOAL_FINISHED event.
"""

from __future__ import annotations

import itertools
import logging
import math
import time
from dataclasses import dataclass
from pathlib import Path as FsPath
from typing import Callable, Dict, List, Optional, Set, Tuple

from contracts.host import AgentControls, AgentSensor, BlockChange, RegionStorage, TerrainSource, Vec3
from contracts.types import GoalStatus, VoxelPos
from env.schema import NavConfig
from monitoring.bus import EventBus, default_bus
from monitoring.events import EventType
from monitoring.logger import log_event

from .cache.generation import rules_for_dimension
from .cache.observer import TerrainObserver
from .cache.storage import FileRegionStorage
from .cache.world_cache import WorldCache
from .errors import PathingError
from .execution.executor import ExecutorState, ExecutorStep, PathExecutor
from .execution.retry import FailureMemory, RetryBudget
from .flight.octree import OctreeIndex, chunk_key, feed_chunk_from_cache
from .flight.trajectory import TrajectorySearch, trajectory_to_path
from .movement.moves import MoveContext
from .search.astar import AStarPathFinder, FrontierEntry, SearchOutcome, SearchResult
from .search.cancel import CancelToken
from .search.goals import Goal, GoalNear
from .search.path import Path
from .search.worker import SearchWorker
from .tracing import MovementTracer


log = logging.getLogger(__name__)

_MODULE = "nav_core.behavior"


@dataclass
class GoalResult:
    """User-visible state of one goal episode."""

    status: GoalStatus
    reason: Optional[str] = None
    ticks: int = 0
    replans: int = 0


@dataclass
class _Episode:
    handle: str
    goal: Goal
    flight_target: Optional[Vec3] = None
    ticks: int = 0
    replans: int = 0
    installed_paths: int = 0
    needs_search: bool = True
    cancel_requested: bool = False

    @property
    def is_flight(self) -> bool:
        return self.flight_target is not None


def _jsonable(pos) -> List[float]:
    return [v for v in pos]


class PathingBehavior:
    def __init__(
        self,
        terrain: TerrainSource,
        sensor: AgentSensor,
        controls: AgentControls,
        config: Optional[NavConfig] = None,
        *,
        cache: Optional[WorldCache] = None,
        storage: Optional[RegionStorage] = None,
        octree: Optional[OctreeIndex] = None,
        bus: Optional[EventBus] = None,
        tracer: Optional[MovementTracer] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or NavConfig()
        cfg = self.config
        generator = rules_for_dimension(cfg.cache.dimension, cfg.cache.generation)

        if cache is None:
            if storage is None and cfg.cache.storage_root:
                storage = FileRegionStorage(FsPath(cfg.cache.storage_root))
            cache = WorldCache(cfg.cache, storage=storage, generator=generator)
        self.cache = cache
        self.observer = TerrainObserver(self.cache, terrain)
        self.octree = octree or OctreeIndex(cfg.flight.min_y, cfg.flight.max_y, fallback=generator)
        self.sensor = sensor
        self.controls = controls
        self.bus = bus or default_bus
        self.tracer = tracer or MovementTracer()

        self.retry = RetryBudget.from_settings(cfg.retry)
        self.failures = FailureMemory.from_settings(cfg.retry, clock)
        self.worker = SearchWorker(background=cfg.search.background)

        # Execution-time rechecks tolerate UNKNOWN; the planner already took that risk.
        self._exec_ctx = MoveContext(view=self.cache.view(), settings=cfg.search).lenient()

        self._handles = itertools.count(1)
        self._episode: Optional[_Episode] = None
        self._results: Dict[str, GoalResult] = {}
        self._executor: Optional[PathExecutor] = None
        self._executor_owner: Optional[str] = None
        self._next_segment: Optional[Path] = None
        self._purposes: Dict[int, str] = {}
        self._finder: Optional[AStarPathFinder] = None
        self._ticks = 0
        self._closed = False
        # flight chunks to rebuild once their changed voxels are re-observed
        self._flight_refeed: Set[Tuple[int, int]] = set()

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    def submit_goal(self, goal: Goal) -> str:
        """Start a new goal episode; any previous episode is canceled."""
        return self._begin(goal, None)

    def submit_flight(self, target: Vec3) -> str:
        """Start a long-range flight episode toward a point."""
        tx, ty, tz = (float(v) for v in target)
        v = VoxelPos.of(tx, ty, tz)
        goal = GoalNear(v.x, v.y, v.z, self.config.flight.waypoint_tolerance)
        return self._begin(goal, (tx, ty, tz))

    def cancel(self, handle: str) -> None:
        """Cancel a goal episode, deferring until the active movement is safe to abandon."""
        if handle not in self._results:
            raise PathingError("unknown_goal_handle", {"handle": handle})
        ep = self._episode
        if ep is None or ep.handle != handle:
            return
        self.worker.cancel_current("canceled")
        ex = self._executor
        if ex is None or ex.safe_to_cancel():
            self._finish(GoalStatus.CANCELED, "canceled by caller")
            return
        ep.cancel_requested = True
        ex.request_cancel()
        log.info("cancel of %s deferred until movement is safe to abandon", handle)

    def goal_result(self, handle: str) -> GoalResult:
        try:
            return self._results[handle]
        except KeyError:
            raise PathingError("unknown_goal_handle", {"handle": handle}) from None

    @property
    def active_handle(self) -> Optional[str]:
        return self._episode.handle if self._episode is not None else None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def current_path(self) -> Optional[Path]:
        ex = self._executor
        if ex is None or self._executor_owner != self.active_handle:
            return None
        return ex.path

    def path_cursor(self) -> int:
        ex = self._executor
        return ex.cursor if ex is not None else 0

    def estimated_ticks_to_goal(self) -> float:
        ep = self._episode
        path = self.current_path()
        if ep is None or path is None:
            return math.nan
        remaining = self._executor.remaining_cost()
        if path.provisional:
            remaining += ep.goal.heuristic(path.end)
        return remaining

    def frontier_snapshot(self, limit: int = 64) -> List[FrontierEntry]:
        finder = self._finder
        if finder is None:
            return []
        return finder.frontier_snapshot(limit)

    # ------------------------------------------------------------------
    # World notifications
    # ------------------------------------------------------------------

    def on_block_change(self, change: BlockChange) -> None:
        self.observer.on_block_change(change)
        key = chunk_key(change.position.x, change.position.z)
        if self.octree.has_chunk(*key):
            self._flight_refeed.add(key)

    def on_chunk_loaded(self, chunk_x: int, chunk_z: int) -> int:
        """
        The host finished loading a chunk column: observe all of it and
        feed it to the flight octree. Returns how many voxels changed.
        """
        changed = self.observer.observe_chunk(chunk_x, chunk_z)
        self.feed_flight_chunk(chunk_x, chunk_z)
        return changed

    def on_chunk_unloaded(self, chunk_x: int, chunk_z: int) -> None:
        # the cache keeps its voxels; flight falls back to generation rules
        self.octree.remove_chunk(chunk_x, chunk_z)
        self._flight_refeed.discard((chunk_x, chunk_z))

    def feed_flight_chunk(self, chunk_x: int, chunk_z: int) -> None:
        """Materialize one observed chunk into the flight octree."""
        feed_chunk_from_cache(self.octree, self.cache, chunk_x, chunk_z)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> None:
        if self._closed:
            return
        self._ticks += 1
        here = self._agent_voxel()

        self.observer.refresh_stale()
        self.observer.observe_around(here, self.config.execution.observe_radius)
        self.cache.pump(here)
        if self._flight_refeed and not self.cache.stale_count:
            for cx, cz in sorted(self._flight_refeed):
                self.feed_flight_chunk(cx, cz)
            self._flight_refeed.clear()

        ep = self._episode
        ex = self._executor

        # Executor left over from a superseded episode: let it reach a safe stop.
        if ex is not None and (ep is None or self._executor_owner != ep.handle):
            step = ex.tick(self._exec_ctx)
            self._trace(step, self._executor_owner)
            if not step.state.is_terminal:
                return
            self._drop_executor()

        if ep is None:
            return
        ep.ticks += 1

        if ep.needs_search and self._executor is None and not self._purposes:
            self._start_search("initial" if ep.installed_paths == 0 else "replan")
            ep = self._episode
            if ep is None:
                return

        result = self.worker.poll()
        if result is not None:
            self._on_search_result(result)
            ep = self._episode
            if ep is None:
                return

        if self._executor is not None:
            step = self._executor.tick(self._exec_ctx)
            self._trace(step, ep.handle)
            self._on_executor_step(step)
            ep = self._episode
            if ep is None:
                return

        self._maybe_plan_next_segment()

    def close(self) -> None:
        if self._closed:
            return
        if self._episode is not None:
            self._finish(GoalStatus.CANCELED, "shutdown")
        self._drop_executor()
        self.worker.close()
        self.cache.close()
        self._closed = True

    # ------------------------------------------------------------------
    # Episode lifecycle
    # ------------------------------------------------------------------

    def _begin(self, goal: Goal, flight_target: Optional[Vec3]) -> str:
        if self._closed:
            raise PathingError("behavior_closed", {})
        if self._episode is not None:
            self._finish(GoalStatus.CANCELED, "superseded by a new goal", release=False)

        handle = f"goal-{next(self._handles)}"
        ep = _Episode(handle=handle, goal=goal, flight_target=flight_target)
        self._episode = ep
        self._results[handle] = GoalResult(GoalStatus.ACTIVE)
        self.retry.reset()
        self.failures.clear()

        log_event(
            self.bus, _MODULE, EventType.GOAL_SUBMITTED, "goal submitted",
            {"goal": goal.describe(), "flight": ep.is_flight, "start": _jsonable(self._agent_voxel())},
            correlation_id=handle,
        )

        ex = self._executor
        if ex is not None:
            if ex.safe_to_cancel():
                self._drop_executor()
            else:
                ex.request_cancel()
        if self._executor is None:
            self._start_search("initial")
        return handle

    def _finish(self, status: GoalStatus, reason: Optional[str], *, release: bool = True) -> None:
        ep = self._episode
        if ep is None:
            return
        self._results[ep.handle] = GoalResult(status, reason, ep.ticks, ep.replans)
        self._episode = None
        self.worker.cancel_current("goal finished")
        self._purposes.clear()
        self._next_segment = None
        self.cache.clear_avoid_marks()
        self.failures.clear()

        ex = self._executor
        if ex is not None and (release or ex.safe_to_cancel()):
            self._drop_executor()

        log.info("goal %s finished: %s (%s) after %d ticks, %d replans",
                 ep.handle, status.value, reason, ep.ticks, ep.replans)
        log_event(
            self.bus, _MODULE, EventType.GOAL_FINISHED, f"goal {status.value}",
            {"status": status.value, "reason": reason, "ticks": ep.ticks, "replans": ep.replans},
            correlation_id=ep.handle,
        )

    def _drop_executor(self) -> None:
        if self._executor is not None:
            if not self._executor.done:
                self.controls.release_all()
            self._executor = None
            self._executor_owner = None

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _agent_position(self) -> Vec3:
        return tuple(float(v) for v in self.sensor.agent_position())

    def _agent_voxel(self) -> VoxelPos:
        x, y, z = self._agent_position()
        return VoxelPos.of(x, y + 1e-3, z)

    def _start_search(self, purpose: str, *, start: Optional[VoxelPos] = None, start_point: Optional[Vec3] = None) -> None:
        ep = self._episode
        if ep is None:
            return
        if purpose == "replan":
            if ep.replans >= self.config.retry.max_replans_per_goal:
                self._finish(GoalStatus.GAVE_UP, "re-plan limit reached")
                return
            ep.replans += 1
        ep.needs_search = False

        if start is None:
            start = self._agent_voxel()
        if ep.is_flight:
            origin = start_point if start_point is not None else self._agent_position()
            planner = self._flight_planner(origin, ep.flight_target, ep.goal)
        else:
            planner = self._walk_planner(start, ep.goal)

        log_event(
            self.bus, _MODULE, EventType.SEARCH_STARTED, f"{purpose} search",
            {"purpose": purpose, "start": _jsonable(start), "goal": ep.goal.describe()},
            correlation_id=ep.handle,
        )
        request = self.worker.submit(planner, label=f"{ep.handle}:{purpose}")
        self._purposes = {request.request_id: purpose}

    def _walk_planner(self, start: VoxelPos, goal: Goal):
        ctx_settings = self.config.search
        view = self.cache.view()
        penalty = self.failures.penalty

        def plan(cancel: CancelToken) -> SearchResult:
            ctx = MoveContext(view=view, settings=ctx_settings, penalty=penalty)
            finder = AStarPathFinder(ctx, start, goal, cancel=cancel)
            self._finder = finder
            return finder.calculate()

        return plan

    def _flight_planner(self, origin: Vec3, target: Vec3, goal: Goal):
        settings = self.config.flight
        index = self.octree

        def plan(cancel: CancelToken) -> SearchResult:
            t0 = time.monotonic()
            search = TrajectorySearch(index, origin, target, settings, cancel=cancel)
            trajectory = search.run()
            duration = time.monotonic() - t0
            if trajectory.reason == "canceled":
                return SearchResult(SearchOutcome.CANCELED, None, trajectory.nodes_explored, duration, "canceled")
            if not trajectory.finished and trajectory.reason in ("frontier exhausted", "start obstructed", "goal obstructed"):
                return SearchResult(SearchOutcome.UNREACHABLE, None, trajectory.nodes_explored, duration, trajectory.reason)
            path = trajectory_to_path(trajectory, goal, speed=settings.speed_blocks_per_tick)
            outcome = SearchOutcome.SUCCESS if trajectory.finished else SearchOutcome.PARTIAL
            return SearchResult(outcome, path, trajectory.nodes_explored, duration, trajectory.reason)

        return plan

    def _on_search_result(self, result: SearchResult) -> None:
        ep = self._episode
        purpose = self._purposes.pop(result.request_id, None)
        if purpose is None:
            log.debug("ignoring result of superseded request %d", result.request_id)
            return
        path = result.path
        log_event(
            self.bus, _MODULE, EventType.SEARCH_FINISHED, f"search {result.outcome.value}",
            {
                "purpose": purpose,
                "outcome": result.outcome.value,
                "nodes_explored": result.nodes_explored,
                "duration_s": result.duration_s,
                "reason": result.reason,
                "length": len(path) if path is not None else None,
                "cost": path.cost if path is not None else None,
            },
            correlation_id=ep.handle,
        )

        if result.outcome is SearchOutcome.CANCELED:
            return
        if result.outcome is SearchOutcome.ERROR:
            self._finish(GoalStatus.GAVE_UP, f"search error: {result.reason}")
            return
        if result.outcome is SearchOutcome.UNREACHABLE or path is None:
            self._finish(GoalStatus.GAVE_UP, f"unreachable: {result.reason}")
            return

        if purpose == "segment":
            current = self.current_path()
            if current is not None and path.start == current.end and len(path) > 0:
                self._next_segment = path
            return

        if len(path) == 0:
            if result.success:
                self._finish(GoalStatus.REACHED, None)
                return
            # Best-effort search made no progress; retry from here a bounded number of times.
            here = path.start
            self.retry.record_retry(here)
            if not self.retry.can_retry(here):
                self._finish(GoalStatus.GAVE_UP, f"no progress: {result.reason}")
                return
            ep.needs_search = True
            return

        self._install(path)

    def _install(self, path: Path) -> None:
        ep = self._episode
        self._drop_executor()
        self._executor = PathExecutor(
            path,
            self.sensor,
            self.controls,
            self.config.execution,
            flight_tolerance=self.config.flight.waypoint_tolerance,
        )
        self._executor_owner = ep.handle
        self._next_segment = None

        if ep.installed_paths == 0 or self.config.retry.reset_on_replan:
            self.retry.reset()
        ep.installed_paths += 1

        log_event(
            self.bus, _MODULE, EventType.PATH_INSTALLED, "path installed",
            {
                "length": len(path),
                "cost": path.cost,
                "provisional": path.provisional,
                "start": _jsonable(path.start),
                "end": _jsonable(path.end),
            },
            correlation_id=ep.handle,
        )

    def _maybe_plan_next_segment(self) -> None:
        ep = self._episode
        ex = self._executor
        if ep is None or ex is None or ex.done:
            return
        path = ex.path
        if not path.provisional or path.reaches_goal or self._next_segment is not None:
            return
        if self._purposes:
            return
        if ex.movements_left > self.config.execution.replan_lookahead:
            return
        start_point = path.movements[-1].target if path.movements else None
        self._start_search("segment", start=path.end, start_point=start_point)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _trace(self, step: ExecutorStep, handle: Optional[str]) -> None:
        if step.finished is not None:
            self.tracer.record(step.finished, goal_id=handle)

    def _on_executor_step(self, step: ExecutorStep) -> None:
        ep = self._episode
        state = step.state

        if state is ExecutorState.IN_PROGRESS:
            return

        if state is ExecutorState.CANCELED:
            self._drop_executor()
            self._finish(GoalStatus.CANCELED, "canceled by caller")
            return

        if ep.cancel_requested:
            self._drop_executor()
            self._finish(GoalStatus.CANCELED, "canceled by caller")
            return

        if state is ExecutorState.PATH_COMPLETE:
            segment = self._next_segment
            self._drop_executor()
            here = self._agent_voxel()
            if ep.goal.is_in_goal(here):
                self._finish(GoalStatus.REACHED, None)
                return
            if segment is not None and segment.start == here:
                self._install(segment)
                return
            self._start_search("replan")
            return

        # MOVEMENT_FAILED or STALE
        m = step.movement
        self._drop_executor()
        self._next_segment = None
        if state is ExecutorState.MOVEMENT_FAILED:
            self.failures.record_failure(m.kind, m.src, m.dest)
        if not ep.is_flight:
            # Re-sample around the failed move so the next search sees what stopped it.
            lo = VoxelPos(min(m.src.x, m.dest.x) - 1, min(m.src.y, m.dest.y) - 1, min(m.src.z, m.dest.z) - 1)
            hi = VoxelPos(max(m.src.x, m.dest.x) + 1, max(m.src.y, m.dest.y) + 2, max(m.src.z, m.dest.z) + 1)
            self.observer.observe_box(lo, hi)

        count = self.retry.record_retry(m.dest)
        if not self.retry.can_retry(m.dest):
            self.cache.mark_avoid(m.dest.x, m.dest.y, m.dest.z)
            log.info("%s: %s marked AVOID after %d retries", ep.handle, tuple(m.dest), count)

        log_event(
            self.bus, _MODULE, EventType.MOVEMENT_FAILED, f"movement {state.value}",
            {
                "kind": m.kind.name,
                "src": _jsonable(m.src),
                "dest": _jsonable(m.dest),
                "status": step.status.value if step.status is not None else state.value,
                "reason": step.reason,
                "retries": count,
            },
            correlation_id=ep.handle,
        )
        self._start_search("replan")
