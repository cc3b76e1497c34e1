from __future__ import annotations
import math
from abc import ABC, abstractmethod
from typing import Dict, Type, Optional, List, Tuple

import numpy as np

from naw.io.polar_bridge import PolarSensor, HRWindow
from naw.io.sensors import HeartRateSensor, Sensor, SimulatedSensor, SensorUnavailable
from naw.io.telemetry import Status, TelemetrySample, clamp, HR_MIN_BPM, HR_MAX_BPM


class InvalidTransition(RuntimeError):
    """Operation not allowed in the source's current Status."""


class SignalSource(ABC):
    """
    Unified interface all signal sources implement.

    Lifecycle: INITIALIZING -> CALIBRATING -> ACTIVE, or -> ERROR when the
    sensor cannot be acquired or stops delivering. Samples are produced only
    while ACTIVE.
    """

    # settings a config file may pass to this source
    CONFIG_KEYS: Tuple[str, ...] = ("initial_stress", "initial_bpm")

    def __init__(self, sensor: Sensor, *, initial_stress: float = 0.2, initial_bpm: float = 65) -> None:
        self.sensor = sensor
        self.status = Status.INITIALIZING
        self.last_error: Optional[str] = None
        self.stress_index = clamp(initial_stress)
        self.heart_rate = int(clamp(int(initial_bpm), HR_MIN_BPM, HR_MAX_BPM))

    async def request_calibration(self) -> bool:
        """
        Acquire the sensor. Returns True on CALIBRATING, False on ERROR.
        Re-invocation from ERROR retries the acquisition once; nothing retries automatically.
        """
        if self.status not in (Status.INITIALIZING, Status.ERROR):
            raise InvalidTransition(f"request_calibration() not allowed in {self.status.value}")
        try:
            await self.sensor.acquire()
        except SensorUnavailable as e:
            self._fail(e)
            return False
        self.last_error = None
        self.status = Status.CALIBRATING
        return True

    def complete_calibration(self) -> bool:
        """One-shot warm-up completion; ignored unless CALIBRATING."""
        if self.status is not Status.CALIBRATING:
            return False
        self.status = Status.ACTIVE
        return True

    def reset(self) -> None:
        """Back to INITIALIZING once the sensor is released. ERROR is kept so the failure stays visible."""
        if self.status is not Status.ERROR:
            self.status = Status.INITIALIZING

    def tick(self, timestamp: int) -> TelemetrySample:
        """Advance the automatic signal one step and emit a sample."""
        self._require_feed("tick")
        self.stress_index = clamp(self._next_stress())
        return self._emit(self.stress_index, timestamp)

    def sample_at(self, stress_index: float, timestamp: int) -> TelemetrySample:
        """Emit a sample for an externally pinned stress index. The automatic walk is left untouched."""
        self._require_feed("sample_at")
        return self._emit(clamp(stress_index), timestamp)

    def _emit(self, stress_index: float, timestamp: int) -> TelemetrySample:
        hr = self._next_heart_rate(stress_index)
        self.heart_rate = int(clamp(hr, HR_MIN_BPM, HR_MAX_BPM))
        return TelemetrySample.create(self.heart_rate, stress_index, timestamp)

    def _fail(self, err: Exception) -> None:
        self.status = Status.ERROR
        self.last_error = str(err)

    def _require_feed(self, op: str) -> None:
        if self.status is not Status.ACTIVE:
            raise InvalidTransition(f"{op}() requires ACTIVE (status={self.status.value})")
        try:
            self._check_feed()
        except SensorUnavailable as e:
            self._fail(e)
            raise

    def _check_feed(self) -> None:
        """Raise SensorUnavailable when the sensor no longer delivers data."""

    @abstractmethod
    def _next_stress(self) -> float:
        """Next automatic stress index (unclamped is fine)."""
        ...

    @abstractmethod
    def _next_heart_rate(self, stress_index: float) -> float:
        ...

    async def close(self) -> None:
        """Release the sensor handle. Safe to call more than once."""
        await self.sensor.release()


_SOURCE_REGISTRY: Dict[str, Type[SignalSource]] = {}

def register_source(name: str):
    """Decorator to register a concrete SignalSource under a CLI name."""
    def deco(cls: Type[SignalSource]) -> Type[SignalSource]:
        _SOURCE_REGISTRY[name.lower()] = cls
        return cls
    return deco

def source_class(name: str) -> Type[SignalSource]:
    key = (name or "").lower()
    if key not in _SOURCE_REGISTRY:
        raise ValueError(f"Unknown signal source '{name}'. Available: {sorted(_SOURCE_REGISTRY.keys())}")
    return _SOURCE_REGISTRY[key]

def create_source(name: str, **kwargs) -> SignalSource:
    return source_class(name)(**kwargs)

def available_sources() -> List[str]:
    return sorted(_SOURCE_REGISTRY.keys())

def known_config_keys() -> List[str]:
    """Union of the settings any registered source accepts."""
    return sorted({k for cls in _SOURCE_REGISTRY.values() for k in cls.CONFIG_KEYS})


@register_source("synthetic")
class SyntheticSignalSource(SignalSource):
    """
    Bounded random walk on the stress index; heart rate trails it.

        s'  = clamp(s + (u - 0.5) * stress_step)
        hr' = floor(hr_smoothing * hr + (1 - hr_smoothing) * (60 + 60 * s') + (v - 0.5) * hr_jitter)

    The walk and the jitter draw from separate streams of one seed, so pinning
    the stress index for a while does not change where the walk goes next.
    """

    CONFIG_KEYS = SignalSource.CONFIG_KEYS + ("seed", "stress_step", "hr_smoothing", "hr_jitter")

    def __init__(self, sensor: Optional[Sensor] = None, *, seed: Optional[int] = 0,
                 stress_step: float = 0.1, hr_smoothing: float = 0.9, hr_jitter: float = 4.0,
                 initial_stress: float = 0.2, initial_bpm: float = 65):
        super().__init__(sensor or SimulatedSensor(), initial_stress=initial_stress, initial_bpm=initial_bpm)
        if not 0.0 <= hr_smoothing <= 1.0:
            raise ValueError(f"hr_smoothing must be within [0, 1] (got {hr_smoothing})")
        self.stress_step = float(stress_step)
        self.hr_smoothing = float(hr_smoothing)
        self.hr_jitter = float(hr_jitter)
        walk_seq, jitter_seq = np.random.SeedSequence(seed).spawn(2)
        self._walk_rng = np.random.default_rng(walk_seq)
        self._jitter_rng = np.random.default_rng(jitter_seq)

    def _next_stress(self) -> float:
        return self.stress_index + (self._walk_rng.random() - 0.5) * self.stress_step

    def _next_heart_rate(self, stress_index: float) -> float:
        target = 60.0 + 60.0 * stress_index
        drift = (self._jitter_rng.random() - 0.5) * self.hr_jitter
        return math.floor(self.hr_smoothing * self.heart_rate + (1.0 - self.hr_smoothing) * target + drift)


@register_source("polar")
class PolarSignalSource(SignalSource):
    """
    Live heart rate from a BLE chest/arm sensor. Stress is the inverse of the
    synthetic heart-rate target: 60 bpm -> 0.0, 120 bpm -> 1.0.

    No sample is produced from an empty or stale window: the source moves to
    ERROR instead of repeating the last known rate.
    """

    CONFIG_KEYS = SignalSource.CONFIG_KEYS + ("device", "window_sec", "max_sample_age_sec")

    def __init__(self, sensor: Optional[HeartRateSensor] = None, *, device: Optional[str] = None,
                 window_sec: float = 30.0, max_sample_age_sec: Optional[float] = None,
                 initial_stress: float = 0.2, initial_bpm: float = 65):
        sensor = sensor or PolarSensor(device=device, avg_window=HRWindow(seconds=window_sec))
        if not isinstance(sensor, HeartRateSensor):
            raise TypeError(f"polar source needs a HeartRateSensor (got {type(sensor).__name__})")
        super().__init__(sensor, initial_stress=initial_stress, initial_bpm=initial_bpm)
        self.max_sample_age_sec = float(window_sec if max_sample_age_sec is None else max_sample_age_sec)

    def _check_feed(self) -> None:
        if self.sensor.sample_count() == 0:
            raise SensorUnavailable("no heart-rate samples received")
        age = self.sensor.last_sample_age_sec()
        if age is None or age > self.max_sample_age_sec:
            raise SensorUnavailable(f"heart-rate feed stale (last sample {age if age is None else round(age, 1)}s ago, limit {self.max_sample_age_sec:.0f}s)")

    def _current_bpm(self) -> float:
        return float(self.sensor.get_bpm())

    def _next_stress(self) -> float:
        return (self._current_bpm() - 60.0) / 60.0

    def _next_heart_rate(self, stress_index: float) -> float:
        return math.floor(self._current_bpm())
