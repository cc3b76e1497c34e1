# naw/control/override.py
from __future__ import annotations
from dataclasses import dataclass

from naw.io.telemetry import clamp


@dataclass(frozen=True)
class OverrideState:
    active: bool = False
    value: float = 0.0  # ignored unless active


class OverrideArbiter:
    """Operator pin on the stress index. Out-of-range values are clamped, never rejected."""

    def __init__(self):
        self._state = OverrideState()

    @property
    def state(self) -> OverrideState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state.active

    @property
    def value(self) -> float:
        return self._state.value

    def set(self, value: float) -> tuple[float, bool]:
        """Returns (stored value, whether it had to be clamped)."""
        v = clamp(value)
        self._state = OverrideState(active=True, value=v)
        return v, v != float(value)

    def clear(self) -> bool:
        """Returns False when there was nothing to clear."""
        if not self._state.active:
            return False
        self._state = OverrideState(active=False, value=self._state.value)
        return True
