# src/cli/nav_demo.py

import argparse
import json
import math
from pathlib import Path

from contracts.types import Classification, VoxelPos
from env.loader import load_nav_config
from monitoring.bus import EventBus
from monitoring.logger import JsonFileLogger
from monitoring.logging_config import configure_logging
from nav_core import GoalBlock, PathingBehavior
from nav_core.testing import FakeAgent, FakeTerrain


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Offline pathing demo on a flat synthetic world."
    )
    parser.add_argument("--goal", nargs=3, type=int, default=[10, 64, 10],
                        metavar=("X", "Y", "Z"), help="Goal voxel (feet position)")
    parser.add_argument("--wall", action="store_true",
                        help="Put a two-high wall with one gap between start and goal")
    parser.add_argument("--profile", default="offline", help="Profile name in nav.yaml")
    parser.add_argument("--config", default=None, help="Path to nav.yaml")
    parser.add_argument("--events-log", default=None, help="Write monitoring events as JSON lines")
    parser.add_argument("--max-ticks", type=int, default=2000)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    configure_logging(args.log_level)
    config = load_nav_config(Path(args.config) if args.config else None, profile=args.profile)
    config.search.background = False

    terrain = FakeTerrain(floor_y=63)
    gx, gy, gz = args.goal
    if args.wall:
        wall_x = max(1, gx // 2)
        lo_z, hi_z = min(0, gz) - 8, max(0, gz) + 8
        terrain.fill((wall_x, 64, lo_z), (wall_x, 65, hi_z), Classification.SOLID)
        terrain.fill((wall_x, 64, hi_z), (wall_x, 65, hi_z), Classification.AIR)

    agent = FakeAgent(terrain, position=(0.5, 64.0, 0.5))
    bus = EventBus()
    events_log = JsonFileLogger(Path(args.events_log), bus) if args.events_log else None

    behavior = PathingBehavior(terrain, agent, agent, config, bus=bus)
    span = max(abs(gx), abs(gz)) + 12
    behavior.observer.observe_box(VoxelPos(-span, gy - 4, -span), VoxelPos(span, gy + 4, span))

    handle = behavior.submit_goal(GoalBlock(gx, gy, gz))
    ticks = 0
    while ticks < args.max_ticks and not behavior.goal_result(handle).status.is_terminal:
        behavior.tick()
        ticks += 1

    result = behavior.goal_result(handle)
    estimate = behavior.estimated_ticks_to_goal()
    behavior.close()
    if events_log is not None:
        events_log.close()

    print(json.dumps(
        {
            "goal": [gx, gy, gz],
            "status": result.status.value,
            "reason": result.reason,
            "ticks": ticks,
            "replans": result.replans,
            "final_position": list(agent.voxel),
            "movements": len(behavior.tracer.get_records()),
            "estimate_left": None if math.isnan(estimate) else estimate,
        },
        indent=2,
        sort_keys=True,
    ))


if __name__ == "__main__":
    main()
