# tests/test_signal_source.py
import asyncio

import pytest

from naw.io.sensors import HeartRateSensor, SensorUnavailable, SimulatedSensor
from naw.io.signal_source import (
    InvalidTransition, PolarSignalSource, SyntheticSignalSource,
    available_sources, create_source,
)
from naw.io.telemetry import Status, TelemetrySample


def _active(src):
    assert asyncio.run(src.request_calibration()) is True
    assert src.status is Status.CALIBRATING
    assert src.complete_calibration() is True
    assert src.status is Status.ACTIVE
    return src


def test_lifecycle_initializing_to_active():
    src = SyntheticSignalSource(seed=1)
    assert src.status is Status.INITIALIZING
    _active(src)
    assert src.sensor.acquired


def test_no_samples_before_active():
    src = SyntheticSignalSource(seed=1)
    with pytest.raises(InvalidTransition):
        src.tick(0)
    asyncio.run(src.request_calibration())
    with pytest.raises(InvalidTransition):
        src.tick(0)


def test_calibration_request_only_from_initializing_or_error():
    src = _active(SyntheticSignalSource(seed=1))
    with pytest.raises(InvalidTransition):
        asyncio.run(src.request_calibration())


def test_complete_calibration_is_one_shot():
    src = SyntheticSignalSource(seed=1)
    assert src.complete_calibration() is False
    _active(src)
    assert src.complete_calibration() is False


def test_unavailable_sensor_moves_to_error():
    sensor = SimulatedSensor(available=False, reason="camera busy")
    src = SyntheticSignalSource(sensor=sensor, seed=1)
    assert asyncio.run(src.request_calibration()) is False
    assert src.status is Status.ERROR
    assert src.last_error == "camera busy"
    assert src.complete_calibration() is False
    with pytest.raises(InvalidTransition):
        src.tick(0)


def test_manual_reacquire_after_error():
    sensor = SimulatedSensor(available=False)
    src = SyntheticSignalSource(sensor=sensor, seed=1)
    asyncio.run(src.request_calibration())
    sensor.available = True
    assert asyncio.run(src.request_calibration()) is True
    assert src.status is Status.CALIBRATING
    assert src.last_error is None
    assert sensor.acquire_calls == 2


def test_walk_is_bounded_and_continuous():
    src = _active(SyntheticSignalSource(seed=11, initial_stress=0.98))
    prev = src.stress_index
    for t in range(500):
        s = src.tick(t)
        assert 0.0 <= s.stress_index <= 1.0
        assert abs(s.stress_index - prev) <= 0.05 + 1e-12
        assert 40 <= s.heart_rate <= 180 and isinstance(s.heart_rate, int)
        assert s.hrv >= 0.0
        prev = s.stress_index


def test_heart_rate_trails_stress():
    src = _active(SyntheticSignalSource(seed=3, initial_stress=1.0, initial_bpm=60,
                                        stress_step=0.0, hr_jitter=0.0))
    rates = [src.tick(t).heart_rate for t in range(40)]
    # lags toward the 120 bpm target instead of jumping there
    assert rates[0] < 70
    assert rates == sorted(rates)
    assert rates[-1] > 110


def test_same_seed_same_signal():
    a = _active(SyntheticSignalSource(seed=42))
    b = _active(SyntheticSignalSource(seed=42))
    assert [a.tick(t) for t in range(20)] == [b.tick(t) for t in range(20)]


def test_pinned_samples_do_not_advance_walk():
    pinned = _active(SyntheticSignalSource(seed=5))
    twin = _active(SyntheticSignalSource(seed=5))
    auto = [pinned.tick(t).stress_index for t in range(5)]
    before = pinned.stress_index
    for t in range(3):
        s = pinned.sample_at(0.85, 100 + t)
        assert s.stress_index == 0.85
    assert pinned.stress_index == before
    auto += [pinned.tick(200 + t).stress_index for t in range(5)]
    assert auto == [twin.tick(t).stress_index for t in range(10)]


def test_sample_create_clamps_everything():
    s = TelemetrySample.create(300.7, 1.4, 12)
    assert s.heart_rate == 180 and s.stress_index == 1.0 and s.hrv == 50.0
    s = TelemetrySample.create(10, -0.2, 12)
    assert s.heart_rate == 40 and s.stress_index == 0.0 and s.hrv == 100.0


def test_registry():
    assert {"synthetic", "polar"} <= set(available_sources())
    assert isinstance(create_source("Synthetic", seed=2), SyntheticSignalSource)
    with pytest.raises(ValueError):
        create_source("camera")


class _FixedHRSensor(HeartRateSensor):
    def __init__(self, bpm, age=0.5):
        self.bpm = bpm
        self.age = age
        self._acquired = False

    async def acquire(self):
        self._acquired = True

    async def release(self):
        self._acquired = False

    @property
    def acquired(self):
        return self._acquired

    def get_bpm(self, default=None):
        return self.bpm if self.bpm is not None else default

    def sample_count(self):
        return 0 if self.bpm is None else 1

    def last_sample_age_sec(self):
        return None if self.bpm is None else self.age


def test_polar_source_derives_stress_from_heart_rate():
    sensor = _FixedHRSensor(90.0)
    src = _active(PolarSignalSource(sensor=sensor))
    s = src.tick(1)
    assert s.heart_rate == 90
    assert s.stress_index == pytest.approx(0.5)
    sensor.bpm = 150.0
    assert src.tick(2).stress_index == 1.0
    asyncio.run(src.close())
    assert not sensor.acquired


def test_polar_source_without_data_goes_to_error():
    src = _active(PolarSignalSource(sensor=_FixedHRSensor(None), initial_bpm=72))
    with pytest.raises(SensorUnavailable):
        src.tick(1)
    assert src.status is Status.ERROR
    assert "no heart-rate" in src.last_error
    with pytest.raises(InvalidTransition):
        src.tick(2)


def test_polar_source_stale_window_goes_to_error():
    sensor = _FixedHRSensor(80.0)
    src = _active(PolarSignalSource(sensor=sensor, max_sample_age_sec=5.0))
    assert src.tick(1).heart_rate == 80
    sensor.age = 12.0
    with pytest.raises(SensorUnavailable):
        src.sample_at(0.5, 2)
    assert src.status is Status.ERROR
    assert "stale" in src.last_error


def test_polar_source_rejects_sensor_without_heart_rate():
    with pytest.raises(TypeError):
        create_source("polar", sensor=SimulatedSensor())


def test_sources_reject_unknown_settings():
    with pytest.raises(TypeError):
        create_source("synthetic", device="Polar Verity Sense")
    with pytest.raises(TypeError):
        create_source("polar", sensor=_FixedHRSensor(70.0), stress_step=0.2)
    assert "device" in PolarSignalSource.CONFIG_KEYS
    assert "device" not in SyntheticSignalSource.CONFIG_KEYS


def test_reset_returns_to_initializing_but_keeps_error():
    src = _active(SyntheticSignalSource(seed=1))
    src.tick(1)
    walk = src.stress_index
    src.reset()
    assert src.status is Status.INITIALIZING
    assert src.stress_index == walk
    failed = SyntheticSignalSource(sensor=SimulatedSensor(available=False), seed=1)
    asyncio.run(failed.request_calibration())
    failed.reset()
    assert failed.status is Status.ERROR
