"""Background re-reads of protocol state for price displays."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ..errors import ExchangeError
from ..models import ProtocolState
from .protocol_state import ProtocolStateService

logger = logging.getLogger(__name__)

StateListener = Callable[[ProtocolState], None]


class PricePoller:
    """Polls protocol state on an interval while anyone is subscribed.

    Polling is independent of any write flow. The loop starts on the first
    subscription and is cancelled when the last subscriber unsubscribes.
    """

    def __init__(self, protocol: ProtocolStateService, interval_seconds: float = 12.0) -> None:
        self._protocol = protocol
        self.interval_seconds = interval_seconds
        self._listeners: list[StateListener] = []
        self._task: asyncio.Task[None] | None = None
        self.last_state: ProtocolState | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
            if not self._listeners:
                self.stop()

        return unsubscribe

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("Price polling stopped")
        self._task = None

    async def wait(self) -> None:
        """Block until the polling loop ends."""
        if self._task is not None:
            await asyncio.wait({self._task})

    async def poll_once(self) -> ProtocolState | None:
        try:
            state = await self._protocol.read_state()
        except ExchangeError as e:
            logger.warning("Price poll failed: %s", e.message)
            return None
        except Exception as e:
            logger.error("Error in price polling loop: %s", e)
            return None

        self.last_state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error("Price listener failed: %s", e)
        return state

    async def _run(self) -> None:
        logger.info("Polling protocol state every %.0f seconds", self.interval_seconds)
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval_seconds)
