# tests/conftest.py
from pathlib import Path
import itertools
import sys

import pytest

# Ensure project root is on sys.path for `import naw.*`
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def step_clock():
    """Deterministic millisecond clock: 1000, 2000, 3000, ..."""
    counter = itertools.count(1000, 1000)
    return lambda: next(counter)
