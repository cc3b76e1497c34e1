# naw/control/history.py
from __future__ import annotations
import csv
from collections import deque
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple

from naw.control.mode_resolver import ModeRules, resolve
from naw.io.telemetry import TelemetrySample

HISTORY_FIELDS = ["timestamp", "heart_rate", "hrv", "stress_index", "mode"]


class HistoryBuffer:
    """
    Fixed-capacity FIFO of TelemetrySample in append (= chronological) order.
    The oldest record is evicted once capacity is reached.
    """
    def __init__(self, capacity: int = 30):
        if int(capacity) <= 0:
            raise ValueError(f"capacity must be a positive integer (got {capacity})")
        self._capacity = int(capacity)
        self._records: deque = deque(maxlen=self._capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, sample: TelemetrySample) -> None:
        self._records.append(sample)

    def snapshot(self) -> Tuple[TelemetrySample, ...]:
        return tuple(self._records)

    def latest(self) -> TelemetrySample | None:
        return self._records[-1] if self._records else None

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TelemetrySample]:
        return iter(tuple(self._records))

    def to_rows(self, rules: ModeRules | None = None) -> List[dict]:
        return to_rows(self._records, rules)


def to_rows(samples: Iterable[TelemetrySample], rules: ModeRules | None = None) -> List[dict]:
    # mode column is derived on export; samples never carry it
    return [{**s.as_row(), "mode": resolve(s.stress_index, rules).value} for s in samples]


def write_history_csv(csv_path: str | Path, rows: List[dict]) -> Path:
    """Write one finished session for offline plotting. Overwrites; nothing reads it back."""
    p = Path(csv_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=HISTORY_FIELDS)
        w.writeheader()
        for row in rows:
            w.writerow({k: row.get(k, "") for k in HISTORY_FIELDS})
    return p
