from __future__ import annotations

import asyncio
from typing import Callable, Optional

from .api_client import ApiResult, ModulesResponse, ParticipantApiClient, StateResponse
from .config import POLLING_INTERVAL_MS
from .logger import get_logger
from .security import normalize_workshop_code
from .visibility import PollController


logger = get_logger(__name__)

UpdateCallback = Callable[[ApiResult[StateResponse], ApiResult[ModulesResponse]], None]


class WorkshopPoller:
    """Re-fetch workshop state and modules at the controller's cadence.

    While the page is hidden the effective interval is 0 and the loop parks
    until the next visibility change instead of sleeping.
    """

    def __init__(
        self,
        client: ParticipantApiClient,
        workshop_code: str,
        controller: PollController,
        on_update: UpdateCallback,
        base_interval_ms: int = POLLING_INTERVAL_MS,
    ) -> None:
        self.client = client
        self.workshop_code = normalize_workshop_code(workshop_code)
        self.controller = controller
        self.on_update = on_update
        self.base_interval_ms = base_interval_ms
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._owns_attach = False
        self.polls = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> None:
        state = await asyncio.to_thread(self.client.get_workshop_state, self.workshop_code)
        modules = await asyncio.to_thread(self.client.get_workshop_modules, self.workshop_code)
        self.polls += 1
        self.on_update(state, modules)

    async def _run(self) -> None:
        while True:
            interval = self.controller.effective_interval(self.base_interval_ms)
            if interval <= 0:
                logger.debug("Polling paused for %s", self.workshop_code)
                self._wake.clear()
                # Re-check after clearing so a change that landed in between is not missed.
                if self.controller.effective_interval(self.base_interval_ms) <= 0:
                    await self._wake.wait()
                logger.debug("Polling resumed for %s", self.workshop_code)
                continue
            self._wake.clear()
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Poll failed for %s", self.workshop_code)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=interval / 1000.0)
            except asyncio.TimeoutError:
                pass

    def start(self) -> asyncio.Task:
        """Attach to visibility changes and start the loop on the running event loop."""
        if self.running:
            return self._task
        loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        wake = self._wake

        def _on_visibility(_visible: bool) -> None:
            loop.call_soon_threadsafe(wake.set)

        # Only release the listener on stop() if this poller acquired it.
        self._owns_attach = not self.controller.observer.attached
        self.controller.observer.attach()
        self._unsubscribe = self.controller.observer.subscribe(_on_visibility)
        self._task = loop.create_task(self._run())
        return self._task

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._owns_attach:
            self.controller.observer.detach()
            self._owns_attach = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
