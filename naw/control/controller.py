"""
Adaptive control loop: sensor lifecycle, periodic ticks, history and mode.

State is the pair (Status, Mode). Status comes from the signal source and
gates ticking; Mode is recomputed on every tick and every override event.

    INITIALIZING --request_calibration ok--> CALIBRATING --timer--> ACTIVE
    INITIALIZING --request_calibration fails--> ERROR (no samples, no retry)
    ACTIVE --sensor stops delivering--> ERROR
    any (except ERROR) --stop--> INITIALIZING (sensor released)

All writes (history, mode, override) go through this class. Everything runs
on one asyncio loop, so no locking is needed.
"""
from __future__ import annotations
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from naw.control.history import HistoryBuffer
from naw.control.mode_resolver import Mode, ModeRules, resolve
from naw.control.override import OverrideArbiter
from naw.io.sensors import SensorUnavailable
from naw.io.signal_source import SignalSource
from naw.io.telemetry import Status, TelemetrySample


@dataclass(frozen=True)
class ControllerSnapshot:
    """Read-only view handed to presentation."""
    status: Status
    mode: Mode
    current_sample: Optional[TelemetrySample]
    history: Tuple[TelemetrySample, ...]
    override_active: bool
    override_value: Optional[float]
    ticks: int
    error: Optional[str] = None


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class AdaptiveController:
    def __init__(
        self,
        source: SignalSource,
        *,
        history_capacity: int = 30,
        interval_sec: float = 1.0,
        calibration_sec: float = 3.0,
        rules: ModeRules | None = None,
        clock: Callable[[], int] | None = None,
        log_level: str = "INFO",
    ):
        if interval_sec <= 0:
            raise ValueError(f"interval_sec must be > 0 (got {interval_sec})")
        if calibration_sec < 0:
            raise ValueError(f"calibration_sec must be >= 0 (got {calibration_sec})")
        self.source = source
        self.rules = rules or ModeRules()
        self.interval_sec = float(interval_sec)
        self.calibration_sec = float(calibration_sec)
        self.log_level = (log_level or "INFO").upper()
        self._clock = clock or _wall_clock_ms

        self.mode = Mode.FLOW
        self.history = HistoryBuffer(history_capacity)
        self.override = OverrideArbiter()
        self.current_sample: Optional[TelemetrySample] = None
        self.ticks = 0
        self._last_ts: Optional[int] = None

        self._task: Optional[asyncio.Task] = None
        self._listeners: List[Callable[[ControllerSnapshot], None]] = []
        self._waiters: List[Tuple[int, asyncio.Future]] = []

    # ---------- read side ----------
    @property
    def status(self) -> Status:
        return self.source.status

    @property
    def override_active(self) -> bool:
        return self.override.active

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def snapshot(self) -> ControllerSnapshot:
        return ControllerSnapshot(
            status=self.status,
            mode=self.mode,
            current_sample=self.current_sample,
            history=self.history.snapshot(),
            override_active=self.override.active,
            override_value=self.override.value if self.override.active else None,
            ticks=self.ticks,
            error=self.source.last_error,
        )

    def add_listener(self, callback: Callable[[ControllerSnapshot], None]) -> None:
        """`callback(snapshot)` after every state change. Listeners must not call back into the controller."""
        self._listeners.append(callback)

    # ---------- helpers ----------
    def _log(self, level: str, msg: str) -> None:
        if level == "DEBUG" and self.log_level != "DEBUG":
            return
        print(f"[{level}] {msg}")

    def _stamp(self) -> int:
        ts = int(self._clock())
        if self._last_ts is not None and ts < self._last_ts:
            ts = self._last_ts
        self._last_ts = ts
        return ts

    def _record(self, sample: TelemetrySample) -> None:
        prev = self.mode
        self.history.append(sample)
        self.current_sample = sample
        self.mode = resolve(sample.stress_index, self.rules)
        if self.mode is not prev:
            self._log("INFO", f"Mode {prev.value} -> {self.mode.value} (stress={sample.stress_index:.2f})")

    def _notify(self) -> None:
        snap = self.snapshot()
        for cb in list(self._listeners):
            cb(snap)
        self._wake_waiters()

    def _wake_waiters(self) -> None:
        pending = []
        for n, fut in self._waiters:
            if fut.done():
                continue
            if self.ticks >= n:
                fut.set_result(True)
            elif not self.running or self.status is Status.ERROR:
                fut.set_result(False)
            else:
                pending.append((n, fut))
        self._waiters = pending

    # ---------- transitions ----------
    async def request_calibration(self) -> bool:
        """Acquire the sensor. On failure status is ERROR and the handle is released."""
        ok = await self.source.request_calibration()
        if ok:
            self._log("INFO", f"Sensor acquired. Calibrating for {self.calibration_sec:.1f}s ...")
        else:
            self._log("ERROR", f"Sensor unavailable: {self.source.last_error}")
            await self.source.close()
        self._notify()
        return ok

    def complete_calibration(self) -> bool:
        if not self.source.complete_calibration():
            return False
        self._log("INFO", "Calibration complete. Signal ACTIVE.")
        self._notify()
        return True

    def on_interval(self) -> Optional[TelemetrySample]:
        """
        One scheduled tick. Automatic sample unless an override holds, in which
        case the sample carries the pinned stress index and the walk stays put.
        Returns None when not ACTIVE or when the sensor stops delivering (status becomes ERROR).
        """
        if self.status is not Status.ACTIVE:
            return None
        ts = self._stamp()
        try:
            if self.override.active:
                sample = self.source.sample_at(self.override.value, ts)
            else:
                sample = self.source.tick(ts)
        except SensorUnavailable as e:
            self._log("ERROR", f"Sensor feed lost: {e}")
            self._notify()
            return None
        self.ticks += 1
        self._record(sample)
        self._log("DEBUG", f"tick={self.ticks} hr={sample.heart_rate} stress={sample.stress_index:.3f} "
                           f"mode={self.mode.value} override={self.override.active}")
        self._notify()
        return sample

    def set_override(self, value: float) -> Mode:
        """Pin the stress index. Mode is re-resolved immediately, not on the next tick."""
        v, clamped = self.override.set(value)
        if clamped:
            self._log("WARN", f"Override value {value} outside [0, 1]; clamped to {v:.2f}")
        sample = None
        if self.status is Status.ACTIVE:
            try:
                sample = self.source.sample_at(v, self._stamp())
            except SensorUnavailable as e:
                self._log("ERROR", f"Sensor feed lost: {e}")
        if sample is not None:
            self._record(sample)
        else:
            self.mode = resolve(v, self.rules)
        self._log("INFO", f"Manual override: stress={v:.2f} -> {self.mode.value}")
        self._notify()
        return self.mode

    def clear_override(self) -> bool:
        """Hand control back to the signal source. No-op (False) when no override is active."""
        if not self.override.clear():
            return False
        self._log("INFO", f"Override released. Automatic signal resumes from stress={self.source.stress_index:.2f}")
        self._notify()
        return True

    # ---------- lifecycle ----------
    async def start(self) -> bool:
        """
        Acquire the sensor (if not yet) and start the periodic timer.
        Returns False, without starting a timer, when the sensor is unavailable.
        """
        if self.running:
            return True
        if self.status in (Status.INITIALIZING, Status.ERROR):
            if not await self.request_calibration():
                return False
        self._task = asyncio.create_task(self._run())
        self._task.add_done_callback(lambda _t: self._wake_waiters())
        return True

    async def _run(self) -> None:
        if self.status is Status.CALIBRATING:
            await asyncio.sleep(self.calibration_sec)
            self.complete_calibration()
        while True:
            await asyncio.sleep(self.interval_sec)
            self.on_interval()
            if self.status is Status.ERROR:
                return

    async def stop(self) -> None:
        """
        Cancel the timer, release the sensor and return the source to
        INITIALIZING so a later start() acquires the sensor again.
        Safe to call more than once.
        """
        task, self._task = self._task, None
        try:
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            elif task is not None and not task.cancelled() and task.exception() is not None:
                raise task.exception()
        finally:
            self._wake_waiters()
            await self.source.close()
            self.source.reset()

    async def wait_for_ticks(self, n: int) -> bool:
        """Resolve once `ticks >= n`; False if the loop stops or errors first."""
        if self.ticks >= n:
            return True
        if not self.running or self.status is Status.ERROR:
            return False
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append((int(n), fut))
        return await fut

    async def __aenter__(self) -> "AdaptiveController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
