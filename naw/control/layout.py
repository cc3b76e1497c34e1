# naw/control/layout.py
"""
Per-mode layout density for the shell.

Renderers read a LayoutProfile and decide how to draw it; nothing here knows
about a widget toolkit.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict

from naw.control.mode_resolver import Mode


@dataclass(frozen=True)
class LayoutProfile:
    grid_cols: int
    grid_rows: int
    show_sensor: bool
    show_inbox: bool
    show_chart: bool
    show_context_banner: bool
    simplified_tasks: bool      # single high-priority open task only
    breathing_guide: bool       # full-screen, replaces the grid
    header_opacity: float

    @property
    def panel_count(self) -> int:
        if self.breathing_guide:
            return 1
        return 1 + sum([self.show_sensor, self.show_inbox, self.show_chart, self.show_context_banner])


LAYOUTS: Dict[Mode, LayoutProfile] = {
    Mode.FLOW: LayoutProfile(12, 6, show_sensor=True, show_inbox=True, show_chart=True,
                             show_context_banner=True, simplified_tasks=False,
                             breathing_guide=False, header_opacity=1.0),
    Mode.BALANCED: LayoutProfile(8, 6, show_sensor=True, show_inbox=False, show_chart=True,
                                 show_context_banner=False, simplified_tasks=False,
                                 breathing_guide=False, header_opacity=1.0),
    Mode.FOCUS: LayoutProfile(1, 1, show_sensor=False, show_inbox=False, show_chart=False,
                              show_context_banner=False, simplified_tasks=True,
                              breathing_guide=False, header_opacity=0.2),
    Mode.RECOVERY: LayoutProfile(1, 1, show_sensor=False, show_inbox=False, show_chart=False,
                                 show_context_banner=False, simplified_tasks=False,
                                 breathing_guide=True, header_opacity=0.0),
}


def layout_for(mode: Mode) -> LayoutProfile:
    return LAYOUTS[Mode(mode)]


def describe(mode: Mode) -> str:
    lay = layout_for(mode)
    if lay.breathing_guide:
        return "breathing guide (full screen)"
    panels = ["tasks" + (" (top 1)" if lay.simplified_tasks else "")]
    for name, on in (("sensor", lay.show_sensor), ("inbox", lay.show_inbox),
                     ("chart", lay.show_chart), ("banner", lay.show_context_banner)):
        if on:
            panels.append(name)
    return f"grid {lay.grid_cols}x{lay.grid_rows}: " + ", ".join(panels)
