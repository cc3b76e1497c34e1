# naw/io/telemetry.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum

HR_MIN_BPM = 40
HR_MAX_BPM = 180


class Status(str, Enum):
    """Sensor lifecycle; only ACTIVE produces samples."""
    INITIALIZING = "INITIALIZING"
    CALIBRATING = "CALIBRATING"
    ACTIVE = "ACTIVE"
    ERROR = "ERROR"


def clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, float(x)))


def hrv_from_stress(stress_index: float) -> float:
    # proxy only: 100 ms when relaxed, 50 ms at full stress
    return 100.0 - 50.0 * clamp(stress_index)


@dataclass(frozen=True)
class TelemetrySample:
    heart_rate: int
    hrv: float
    stress_index: float
    timestamp: int

    @classmethod
    def create(cls, heart_rate: float, stress_index: float, timestamp: int) -> "TelemetrySample":
        """Build a sample with every field forced into its valid range."""
        s = clamp(stress_index)
        hr = int(clamp(int(heart_rate), HR_MIN_BPM, HR_MAX_BPM))
        return cls(heart_rate=hr, hrv=hrv_from_stress(s), stress_index=s, timestamp=int(timestamp))

    def as_row(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "heart_rate": self.heart_rate,
            "hrv": round(self.hrv, 3),
            "stress_index": round(self.stress_index, 4),
        }
