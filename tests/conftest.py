import io
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

DATA_DIR = Path(__file__).resolve().parent / "data"


class FakeClock:
    """Nanosecond clock that advances by a fixed step on every read."""

    def __init__(self, step=1_000):
        self.now = 0
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


@pytest.fixture
def run_timestamp():
    return datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_stream():
    """Build a libtest byte stream from event dicts and raw text lines."""

    def _make(*items):
        lines = []
        for item in items:
            if isinstance(item, dict):
                lines.append(json.dumps(item))
            else:
                lines.append(item)
        return io.BytesIO(("\n".join(lines) + "\n").encode("utf-8"))

    return _make


@pytest.fixture
def data_dir():
    return DATA_DIR
