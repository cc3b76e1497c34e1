# naw/control/mode_resolver.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum


class Mode(str, Enum):
    FLOW = "FLOW"          # low stress, high density
    BALANCED = "BALANCED"  # medium stress, normal density
    FOCUS = "FOCUS"        # high stress, single task
    RECOVERY = "RECOVERY"  # very high stress, breathing guide

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {Mode.FLOW: 0, Mode.BALANCED: 1, Mode.FOCUS: 2, Mode.RECOVERY: 3}


@dataclass(frozen=True)
class ModeRules:
    # upper bounds (exclusive); anything at or above focus_max is RECOVERY
    flow_max: float = 0.4
    balanced_max: float = 0.75
    focus_max: float = 0.9

    def __post_init__(self):
        if not (0.0 < self.flow_max < self.balanced_max < self.focus_max <= 1.0):
            raise ValueError(
                "mode thresholds must satisfy 0 < flow_max < balanced_max < focus_max <= 1 "
                f"(got {self.flow_max}, {self.balanced_max}, {self.focus_max})"
            )


DEFAULT_RULES = ModeRules()


def resolve(stress_index: float, rules: ModeRules | None = None) -> Mode:
    """
    Instantaneous mapping, no hysteresis:
    [0, .4) FLOW | [.4, .75) BALANCED | [.75, .9) FOCUS | [.9, 1] RECOVERY
    Input is expected to be clamped already.
    """
    r = rules or DEFAULT_RULES
    s = float(stress_index)
    if s < r.flow_max:
        return Mode.FLOW
    if s < r.balanced_max:
        return Mode.BALANCED
    if s < r.focus_max:
        return Mode.FOCUS
    return Mode.RECOVERY
