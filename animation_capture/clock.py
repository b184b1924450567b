"""Virtual clock control over the Chrome DevTools Protocol.

``Emulation.setVirtualTimePolicy`` with a ``budget`` lets the page run its
timers as if that much time had passed; the browser then emits
``Emulation.virtualTimeBudgetExpired``. The policy is global to the
document, so a session never issues a second budget before the first one
expired.
"""

import asyncio
import logging
import math
from typing import Any, Optional

from playwright.async_api import CDPSession

from .errors import ClockBusyError, ClockTimeoutError

logger = logging.getLogger(__name__)

BUDGET_EXPIRED_EVENT = "Emulation.virtualTimeBudgetExpired"
ADVANCE_POLICY = "pauseIfNetworkFetchesPending"


class VirtualClockSession:
    """Simulated time consumed in one context, bounded by ``target_ms``."""

    def __init__(self, client: CDPSession, target_ms: float):
        self.client = client
        self.target_ms = target_ms
        self.elapsed_ms: float = 0
        self.paused = False
        self._in_flight = False

    @property
    def remaining_ms(self) -> float:
        return self.target_ms - self.elapsed_ms

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def pause(self) -> None:
        await self.client.send("Emulation.setVirtualTimePolicy", {"policy": "pause"})
        self.paused = True

    async def advance(self, delta_ms: float, deadline_ms: Optional[float] = None) -> None:
        """Run ``delta_ms`` of simulated time and wait for the budget-expired signal.

        Without a ``deadline_ms`` the wait is unbounded; a page holding the
        policy paused on a pending fetch then hangs the caller.
        """
        if not math.isfinite(delta_ms) or delta_ms < 0:
            raise ValueError(f"delta_ms must be a non-negative finite number, got {delta_ms!r}")
        if self._in_flight:
            raise ClockBusyError("A virtual time advance is already in flight for this document")
        if self.elapsed_ms + delta_ms > self.target_ms:
            raise ValueError(
                f"Advancing by {delta_ms}ms would pass the target "
                f"({self.elapsed_ms}ms elapsed of {self.target_ms}ms)"
            )
        if delta_ms == 0:
            return

        loop = asyncio.get_running_loop()
        expired: "asyncio.Future[Any]" = loop.create_future()

        fired = []

        def on_budget_expired(params: Any = None) -> None:
            fired.append(params)
            if not expired.done():
                expired.set_result(params)

        self._in_flight = True
        self.client.once(BUDGET_EXPIRED_EVENT, on_budget_expired)
        try:
            await self.client.send(
                "Emulation.setVirtualTimePolicy",
                {"policy": ADVANCE_POLICY, "budget": delta_ms},
            )
            if deadline_ms is None:
                await expired
            else:
                try:
                    await asyncio.wait_for(expired, timeout=deadline_ms / 1000)
                except asyncio.TimeoutError:
                    raise ClockTimeoutError(
                        f"Virtual time budget of {delta_ms}ms did not expire within {deadline_ms}ms"
                    ) from None
        except BaseException:
            if not fired:
                self.client.remove_listener(BUDGET_EXPIRED_EVENT, on_budget_expired)
            raise
        finally:
            self._in_flight = False

        self.elapsed_ms += delta_ms
        self.paused = True
        logger.debug("Virtual clock advanced by %sms to %sms", delta_ms, self.elapsed_ms)


class VirtualClockController:
    """Moves a session forward in budgets no larger than ``step_ms``."""

    def __init__(self, step_ms: float = 250, deadline_ms: Optional[float] = None):
        if not math.isfinite(step_ms) or step_ms <= 0:
            raise ValueError(f"step_ms must be positive, got {step_ms!r}")
        self.step_ms = step_ms
        self.deadline_ms = deadline_ms

    async def advance(self, session: VirtualClockSession, delta_ms: float) -> None:
        await session.advance(delta_ms, deadline_ms=self.deadline_ms)

    async def advance_to(self, session: VirtualClockSession, timestamp_ms: float) -> int:
        """Advance until ``session.elapsed_ms == timestamp_ms``; returns the number of budgets issued."""
        if timestamp_ms < session.elapsed_ms:
            raise ValueError(
                f"Cannot move the virtual clock backwards ({session.elapsed_ms}ms -> {timestamp_ms}ms)"
            )
        steps = 0
        while session.elapsed_ms < timestamp_ms:
            step = min(timestamp_ms - session.elapsed_ms, self.step_ms)
            await self.advance(session, step)
            steps += 1
        return steps
