from __future__ import annotations
import time
from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Tuple

from bleak import BleakClient, BleakScanner

from naw.io.sensors import HeartRateSensor, SensorUnavailable

# Standard Heart Rate Measurement Characteristic
HR_CHAR_UUID = "00002a37-0000-1000-8000-00805f9b34fb"
POLAR_DEFAULT_NAME = "Polar Verity Sense"

def parse_hr_measurement(data: bytes) -> Optional[int]:
    """
    Parse Bluetooth SIG Heart Rate Measurement value.
    Returns bpm as int, or None if cannot parse / out of plausible range.
    """
    if not data:
        return None
    flags = data[0]
    hr_16bit = (flags & 0x01) == 0x01
    if hr_16bit:
        if len(data) < 3:
            return None
        bpm = int.from_bytes(data[1:3], byteorder="little")
    else:
        if len(data) < 2:
            return None
        bpm = data[1]
    return bpm if 20 <= bpm <= 240 else None

@dataclass
class HRWindow:
    # 30 s window matches the default history length
    seconds: float = 30.0

async def discover(timeout: float = 8.0) -> List[Tuple[Optional[str], str]]:
    """Scan for BLE devices; returns (name, address) pairs."""
    devices = await BleakScanner.discover(timeout=timeout)
    return [(d.name, d.address) for d in devices]

class PolarSensor(HeartRateSensor):
    """
    BLE heart-rate sensor on the caller's event loop.
    Keeps a rolling deque of (timestamp, bpm) limited by a time window (default 30 s).
    """
    def __init__(self, device: Optional[str] = None, avg_window: Optional[HRWindow] = None,
                 scan_timeout: float = 5.0):
        self.device_query = device or POLAR_DEFAULT_NAME
        self.avg_window = avg_window or HRWindow()
        self.scan_timeout = scan_timeout
        self._deque = deque()  # (timestamp, bpm)
        self._client: Optional[BleakClient] = None
        self._connected: bool = False

    async def _find_address(self) -> Optional[str]:
        dq = (self.device_query or "").strip()
        if ":" in dq or dq.count("-") >= 5:
            return dq  # looks like an address
        devices = await BleakScanner.discover(timeout=self.scan_timeout)
        dq_lower = dq.lower()
        for d in devices:
            name = (d.name or "").lower()
            if dq_lower in name or POLAR_DEFAULT_NAME.lower() in name:
                return d.address
        return None

    def _on_hr_notify(self, sender, data: bytearray):
        bpm = parse_hr_measurement(bytes(data))
        if bpm is None:
            return
        self.push_bpm(float(bpm))

    def push_bpm(self, bpm: float, now: Optional[float] = None):
        now = time.time() if now is None else now
        self._deque.append((now, float(bpm)))
        # prune outside the window
        cut = now - self.avg_window.seconds
        while self._deque and self._deque[0][0] < cut:
            self._deque.popleft()

    async def acquire(self) -> None:
        if self._connected:
            return
        try:
            address = await self._find_address()
        except Exception as e:
            raise SensorUnavailable(f"BLE scan failed: {e}") from e
        if not address:
            raise SensorUnavailable(f"Polar device '{self.device_query}' not found. Wake it and retry.")
        client = BleakClient(address)
        try:
            await client.connect()
            await client.start_notify(HR_CHAR_UUID, self._on_hr_notify)
        except Exception as e:
            try:
                await client.disconnect()
            except Exception:
                pass
            raise SensorUnavailable(f"Could not connect to {address}: {e}") from e
        self._client = client
        self._connected = True

    async def release(self) -> None:
        if self._client and self._connected:
            try:
                await self._client.stop_notify(HR_CHAR_UUID)
            except Exception:
                pass
            try:
                await self._client.disconnect()
            except Exception:
                pass
        self._connected = False
        self._client = None

    @property
    def acquired(self) -> bool:
        return self._connected

    # ---------- data access ----------
    def sample_count(self) -> int:
        """How many samples are currently inside the rolling window."""
        return len(self._deque)

    def last_sample_age_sec(self) -> Optional[float]:
        """Age in seconds of the newest HR sample; None if no samples yet."""
        if not self._deque:
            return None
        return float(time.time() - self._deque[-1][0])

    def get_bpm(self, default: Optional[float] = None) -> Optional[float]:
        """
        Returns rolling-avg BPM over the last `avg_window.seconds`,
        or `default` if no samples available.
        """
        if not self._deque:
            return default
        vals = [v for (_, v) in self._deque]
        return float(sum(vals) / max(1, len(vals)))
