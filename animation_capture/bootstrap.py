"""Real-time bootstrap window granted before the virtual clock takes over."""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from playwright.async_api import Page

from .instrumentation import AutomationState, read_tick_count

logger = logging.getLogger(__name__)


@dataclass
class BootstrapResult:
    ticks: int
    elapsed_ms: float
    satisfied: bool


class BootstrapWaiter:
    """Waits at least ``min_wait_ms``, then until ``min_ticks`` frame ticks or ``max_wait_ms``.

    Reaching ``max_wait_ms`` first is a soft timeout: it is logged and the
    capture carries on with whatever ticks were observed.
    """

    def __init__(
        self,
        min_wait_ms: float,
        max_wait_ms: float,
        min_ticks: int,
        poll_ms: float = 16,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.min_wait_ms = min_wait_ms
        self.max_wait_ms = max(max_wait_ms, min_wait_ms)
        self.min_ticks = min_ticks
        self.poll_ms = poll_ms
        self._monotonic = monotonic

    async def wait(self, page: Page, state: AutomationState) -> BootstrapResult:
        started = self._monotonic()

        def elapsed_ms() -> float:
            return (self._monotonic() - started) * 1000

        if self.min_wait_ms > 0:
            await page.wait_for_timeout(self.min_wait_ms)
        ticks = await read_tick_count(page, state)

        while ticks < self.min_ticks:
            remaining = self.max_wait_ms - elapsed_ms()
            if remaining <= 0:
                logger.warning(
                    "Bootstrap saw %d of %d frame ticks within %.0fms; continuing anyway",
                    ticks,
                    self.min_ticks,
                    self.max_wait_ms,
                )
                return BootstrapResult(ticks=ticks, elapsed_ms=elapsed_ms(), satisfied=False)
            await page.wait_for_timeout(min(self.poll_ms, remaining))
            ticks = await read_tick_count(page, state)

        logger.debug("Bootstrap observed %d frame ticks after %.0fms", ticks, elapsed_ms())
        return BootstrapResult(ticks=ticks, elapsed_ms=elapsed_ms(), satisfied=True)
