# src/monitoring/logging_config.py
"""
Root logging setup for pathing entrypoints.

The nav demo CLI calls configure_logging() once before building a
PathingBehavior. Library code never configures handlers itself; every
module just does `log = logging.getLogger(__name__)`.
"""

from __future__ import annotations

import logging
import sys
from typing import Dict, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Per-movement traces are DEBUG noise unless explicitly asked for.
QUIET_LOGGERS: Dict[str, int] = {
    "nav_core.movement": logging.INFO,
}


def configure_logging(level: Union[int, str] = logging.INFO, *, quiet_movement: bool = True) -> None:
    """
    Attach a stdout handler to the root logger unless one already exists.

    Args:
        level: root level, either a logging constant or a name like "DEBUG"
        quiet_movement: keep nav_core.movement at INFO even when level is DEBUG
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"unknown log level: {level!r}")

    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)

    if quiet_movement:
        for name, floor in QUIET_LOGGERS.items():
            logging.getLogger(name).setLevel(max(level, floor))
