"""
Shared fixtures for workshop companion tests.
"""

import os
import sys
from pathlib import Path

import pytest

# Ensure the project root (server.py, companion_backend/) is importable
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

os.environ.setdefault("COMPANION_ENV", "test")
os.environ.setdefault("COMPANION_API_URL", "http://backend.test/api")
os.environ.setdefault("COMPANION_APP_URL", "http://app.test")


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimerQueue:
    """Stand-in for threading.Timer driven by a virtual millisecond clock."""

    def __init__(self):
        self.now_ms = 0
        self.timers = []

    def __call__(self, interval, function, args=None, kwargs=None):
        queue = self

        class _Timer:
            def __init__(self):
                self.due_ms = None
                self.cancelled = False

            def start(self):
                self.due_ms = queue.now_ms + int(round(interval * 1000))
                queue.timers.append(self)

            def cancel(self):
                self.cancelled = True

            def fire(self):
                function(*(args or ()), **(kwargs or {}))

        return _Timer()

    def advance_to(self, t_ms: int) -> list:
        """Fire every live timer due by t_ms; returns the fire times."""
        fired = []
        for timer in sorted(self.timers, key=lambda t: t.due_ms):
            if timer.cancelled or timer.due_ms > t_ms:
                continue
            self.now_ms = timer.due_ms
            timer.cancelled = True
            timer.fire()
            fired.append(timer.due_ms)
        self.now_ms = t_ms
        return fired


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return FakeTimerQueue()
