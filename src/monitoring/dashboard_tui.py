# rich-based TUI dashboard
#src/monitoring/dashboard_tui.py
"""
TUI dashboard for the pathing engine.

A lightweight terminal UI (using `rich`) that subscribes to the monitoring
EventBus and renders:

- Goal status:
    - Goal description and handle id
    - Episode status and final reason

- Active path:
    - Length, provisional flag, planned cost
    - Cursor and ETA when a behavior is attached

- Last search:
    - Outcome, nodes explored, duration

- Last movement failure (if any)

This runs entirely offline.
"""

from __future__ import annotations

import math
import time
from typing import Any, Dict, Optional

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .bus import EventBus, default_bus
from .events import EventType, MonitoringEvent


# ============================================================
# TUI Dashboard
# ============================================================

class TuiDashboard:
    """
    Live terminal dashboard bound to a monitoring.EventBus.

    `behavior` is optional; when given, its current path cursor and ETA
    are read at render time.
    """

    def __init__(self, bus: EventBus, behavior: Any = None) -> None:
        self._bus = bus
        self._behavior = behavior
        self._console = Console()

        self._state: Dict[str, Any] = {
            "goal": "",
            "goal_id": None,
            "goal_status": "IDLE",
            "goal_reason": None,
            "path": None,          # {"length", "cost", "provisional", "end"}
            "search": None,        # {"outcome", "nodes_explored", "duration_s", "reason"}
            "searches": 0,
            "last_failure": None,  # {"kind", "src", "dest", "status", "reason"}
            "failures": 0,
        }

        self._bus.subscribe(self._on_event)

    @property
    def state(self) -> Dict[str, Any]:
        return self._state

    # --------------------------------------------------------
    # Event handler
    # --------------------------------------------------------

    def _on_event(self, event: MonitoringEvent) -> None:
        """
        Update dashboard state based on a MonitoringEvent.
        This should be cheap and non-blocking.
        """
        et = event.event_type
        payload = event.payload

        if et == EventType.GOAL_SUBMITTED:
            self._state["goal"] = payload.get("goal", "")
            self._state["goal_id"] = event.correlation_id
            self._state["goal_status"] = "ACTIVE"
            self._state["goal_reason"] = None
            self._state["path"] = None
            self._state["last_failure"] = None
            self._state["failures"] = 0

        elif et == EventType.SEARCH_STARTED:
            self._state["searches"] += 1

        elif et == EventType.SEARCH_FINISHED:
            self._state["search"] = {
                "outcome": payload.get("outcome"),
                "nodes_explored": payload.get("nodes_explored"),
                "duration_s": payload.get("duration_s"),
                "reason": payload.get("reason"),
            }

        elif et == EventType.PATH_INSTALLED:
            self._state["path"] = {
                "length": payload.get("length", 0),
                "cost": payload.get("cost"),
                "provisional": bool(payload.get("provisional", False)),
                "end": payload.get("end"),
            }

        elif et == EventType.MOVEMENT_FAILED:
            self._state["failures"] += 1
            self._state["last_failure"] = {
                "kind": payload.get("kind"),
                "src": payload.get("src"),
                "dest": payload.get("dest"),
                "status": payload.get("status"),
                "reason": payload.get("reason"),
            }

        elif et == EventType.GOAL_FINISHED:
            self._state["goal_status"] = str(payload.get("status", "UNKNOWN")).upper()
            self._state["goal_reason"] = payload.get("reason")

    # --------------------------------------------------------
    # Rendering helpers
    # --------------------------------------------------------

    def _render_goal_panel(self) -> Panel:
        txt = Text()
        txt.append("Goal: ", style="bold")
        txt.append(f"{self._state['goal'] or '<none>'}\n")
        txt.append("Handle: ", style="bold")
        txt.append(f"{self._state['goal_id'] or '<none>'}\n")
        txt.append("Status: ", style="bold")
        status = self._state["goal_status"]
        reason = self._state["goal_reason"]
        txt.append(f"{status}" + (f" ({reason})" if reason else ""))
        return Panel(txt, title="Goal", border_style="cyan")

    def _progress(self) -> Optional[Dict[str, Any]]:
        b = self._behavior
        if b is None:
            return None
        return {"eta": b.estimated_ticks_to_goal(), "cursor": b.path_cursor()}

    def _render_path_panel(self) -> Panel:
        path = self._state["path"]
        table = Table.grid()
        table.add_column(justify="left")

        if not path:
            table.add_row("[bold]No active path[/bold]")
            return Panel(table, title="Path", border_style="green")

        table.add_row(f"[bold]Movements:[/bold] {path['length']}")
        cost = path.get("cost")
        table.add_row(f"[bold]Planned cost:[/bold] {cost:.1f} ticks" if cost is not None else "[bold]Planned cost:[/bold] -")
        table.add_row(f"[bold]Provisional:[/bold] {'yes' if path['provisional'] else 'no'}")
        if path.get("end") is not None:
            table.add_row(f"[bold]Ends at:[/bold] {tuple(path['end'])}")

        progress = self._progress()
        if progress is not None:
            table.add_row(f"[bold]Cursor:[/bold] {progress['cursor']}/{path['length']}")
            eta = progress["eta"]
            table.add_row(f"[bold]ETA:[/bold] {'-' if math.isnan(eta) else f'{eta:.0f} ticks'}")

        return Panel(table, title="Path", border_style="green")

    def _render_search_panel(self) -> Panel:
        search = self._state["search"]
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Field", style="bold", width=12)
        table.add_column("Value", justify="right")

        table.add_row("searches", str(self._state["searches"]))
        if search:
            table.add_row("outcome", str(search["outcome"]))
            table.add_row("nodes", str(search["nodes_explored"]))
            duration = search.get("duration_s")
            table.add_row("duration", f"{duration * 1000:.1f} ms" if duration is not None else "-")
            if search.get("reason"):
                table.add_row("reason", str(search["reason"]))
        else:
            table.add_row("outcome", "-")

        return Panel(table, title="Last Search", border_style="magenta")

    def _render_failure_panel(self) -> Panel:
        failure = self._state["last_failure"]
        table = Table.grid()
        table.add_column(justify="left")
        table.add_row(f"[bold]Failures this goal:[/bold] {self._state['failures']}")

        if failure:
            table.add_row("")
            table.add_row(f"[bold red]{failure.get('status')}[/bold red] {failure.get('kind')}")
            src, dest = failure.get("src"), failure.get("dest")
            if src is not None and dest is not None:
                table.add_row(f"{tuple(src)} -> {tuple(dest)}")
            if failure.get("reason"):
                table.add_row(f"[bold]Reason:[/bold] {failure['reason']}")
        else:
            table.add_row("")
            table.add_row("[bold green]No failures recorded.[/bold green]")

        return Panel(table, title="Last Failure", border_style="yellow")

    def _build_layout(self) -> Layout:
        layout = Layout()

        layout.split(
            Layout(name="top", size=5),
            Layout(name="middle", ratio=1),
        )
        layout["top"].update(self._render_goal_panel())

        layout["middle"].split_row(
            Layout(name="path"),
            Layout(name="search"),
            Layout(name="failure"),
        )
        layout["path"].update(self._render_path_panel())
        layout["search"].update(self._render_search_panel())
        layout["failure"].update(self._render_failure_panel())

        return layout

    # --------------------------------------------------------
    # Main loop
    # --------------------------------------------------------

    def run(self, refresh_per_second: float = 4.0, *, duration_s: Optional[float] = None) -> None:
        """
        Run the TUI loop. Blocks the current thread, until `duration_s`
        elapses when given.
        """
        refresh_delay = 1.0 / max(refresh_per_second, 0.1)
        deadline = None if duration_s is None else time.monotonic() + duration_s
        with Live(self._build_layout(), console=self._console, refresh_per_second=refresh_per_second) as live:
            while deadline is None or time.monotonic() < deadline:
                live.update(self._build_layout())
                time.sleep(refresh_delay)

    def close(self) -> None:
        self._bus.unsubscribe(self._on_event)


def run_dashboard_with_default_bus() -> None:
    """Spawn a dashboard bound to monitoring.bus.default_bus."""
    TuiDashboard(default_bus).run()
