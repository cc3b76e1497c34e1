# naw/io/sensors.py
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional


class SensorUnavailable(RuntimeError):
    """Capture device could not be acquired. Fatal until re-acquisition is attempted."""


class Sensor(ABC):
    """
    Capture-device collaborator. `acquire()` must raise SensorUnavailable
    immediately on failure rather than hang.
    """

    @abstractmethod
    async def acquire(self) -> None:
        ...

    @abstractmethod
    async def release(self) -> None:
        """Safe to call repeatedly and when acquire() failed."""
        ...

    @property
    @abstractmethod
    def acquired(self) -> bool:
        ...


class SimulatedSensor(Sensor):
    """Stand-in for the optical sensor: the feed is overlay-only, samples are synthetic."""

    def __init__(self, available: bool = True, reason: str = "capture device unavailable"):
        self.available = available
        self.reason = reason
        self._acquired = False
        self.acquire_calls = 0
        self.release_calls = 0

    async def acquire(self) -> None:
        self.acquire_calls += 1
        if not self.available:
            raise SensorUnavailable(self.reason)
        self._acquired = True

    async def release(self) -> None:
        self.release_calls += 1
        self._acquired = False

    @property
    def acquired(self) -> bool:
        return self._acquired


class HeartRateSensor(Sensor):
    """Sensor that also delivers heart rate over a rolling window."""

    @abstractmethod
    def get_bpm(self, default: Optional[float] = None) -> Optional[float]:
        ...

    @abstractmethod
    def sample_count(self) -> int:
        ...

    @abstractmethod
    def last_sample_age_sec(self) -> Optional[float]:
        ...
