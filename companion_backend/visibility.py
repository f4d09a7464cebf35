"""Visibility-gated polling cadence.

A host (browser tab, test harness, embedding app) reports whether the page is
hidden and fires a notification whenever that may have changed. The observer
re-reads the host on every notification instead of flipping its own flag, so
coalesced or out-of-order notifications cannot leave it out of sync.
"""
from __future__ import annotations

import threading
from typing import Callable, List, Optional, Protocol

from .logger import get_logger


logger = get_logger(__name__)

Listener = Callable[[], None]


class VisibilitySource(Protocol):
    def is_hidden(self) -> bool: ...

    def add_listener(self, listener: Listener) -> None: ...

    def remove_listener(self, listener: Listener) -> None: ...


class ManualVisibilitySource:
    """A host whose visibility is set programmatically."""

    def __init__(self, hidden: bool = False) -> None:
        self._hidden = hidden
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def is_hidden(self) -> bool:
        return self._hidden

    def set_hidden(self, hidden: bool) -> None:
        """Change visibility and fire a visibility-change notification."""
        self._hidden = bool(hidden)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener()

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class VisibilityObserver:
    """Tracks VISIBLE/HIDDEN for one source.

    Use as a context manager: entering attaches exactly one listener to the
    source, exiting detaches it. With no source the page counts as visible.
    """

    def __init__(self, source: Optional[VisibilitySource] = None) -> None:
        self._source = source
        self._attached = False
        self._visible = self._read()
        self._subscribers: List[Callable[[bool], None]] = []

    def _read(self) -> bool:
        if self._source is None:
            return True
        try:
            return not self._source.is_hidden()
        except Exception as e:
            logger.debug("Visibility unavailable, assuming visible: %s", e)
            return True

    @property
    def attached(self) -> bool:
        return self._attached

    @property
    def visible(self) -> bool:
        if not self._attached:
            return self._read()
        return self._visible

    def attach(self) -> "VisibilityObserver":
        if self._attached:
            return self
        self._visible = self._read()
        if self._source is not None:
            self._source.add_listener(self._on_visibility_change)
        self._attached = True
        return self

    def detach(self) -> None:
        if not self._attached:
            return
        if self._source is not None:
            self._source.remove_listener(self._on_visibility_change)
        self._attached = False

    def __enter__(self) -> "VisibilityObserver":
        return self.attach()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.detach()

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Call callback(visible) after every notification. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _on_visibility_change(self) -> None:
        self._visible = self._read()
        for callback in list(self._subscribers):
            callback(self._visible)


class PollController:
    """Maps visibility onto a polling interval: base when visible, 0 when hidden."""

    def __init__(self, observer: VisibilityObserver) -> None:
        self.observer = observer

    def effective_interval(self, base_interval: int) -> int:
        return base_interval if self.observer.visible else 0
