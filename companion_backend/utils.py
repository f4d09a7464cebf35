from __future__ import annotations

import functools
import threading
from datetime import datetime, tzinfo
from typing import Callable, Optional

from .config import DEBOUNCE_DELAY_MS


def debounce(func: Callable, wait_ms: int = DEBOUNCE_DELAY_MS, timer_factory=threading.Timer) -> Callable[..., None]:
    """Return a wrapper that runs func once calls stop for wait_ms.

    Each call cancels the pending run and restarts the window; the last
    call's arguments win. timer_factory must match threading.Timer's
    (interval, function, args, kwargs) signature.
    """
    lock = threading.Lock()
    pending = None

    @functools.wraps(func)
    def debounced(*args, **kwargs) -> None:
        nonlocal pending
        with lock:
            if pending is not None:
                pending.cancel()
            pending = timer_factory(wait_ms / 1000.0, func, args, kwargs)
            pending.start()

    def cancel() -> None:
        nonlocal pending
        with lock:
            if pending is not None:
                pending.cancel()
                pending = None

    debounced.cancel = cancel
    return debounced


def format_timestamp(timestamp: str, tz: Optional[tzinfo] = None) -> str:
    """Render an ISO-8601 timestamp (``Z`` suffix allowed) as local time.

    Timestamps without an offset are taken as already local. Raises
    ValueError for unparseable input.
    """
    text = timestamp.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz)
    return parsed.strftime("%Y-%m-%d %H:%M:%S")
