import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from animation_capture.clock import BUDGET_EXPIRED_EVENT


class FakeClock:
    """Monotonic clock in seconds, advanced by FakePage.wait_for_timeout."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class FakeCDPSession:
    def __init__(self, auto_expire: bool = True, fail_send: Optional[Exception] = None):
        self.auto_expire = auto_expire
        self.fail_send = fail_send
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.listeners: Dict[str, List[Callable]] = {}

    def once(self, event: str, handler: Callable) -> None:
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: Callable) -> None:
        self.listeners[event].remove(handler)

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = params or {}
        self.sent.append((method, params))
        if self.fail_send is not None:
            raise self.fail_send
        if self.auto_expire and "budget" in params:
            asyncio.get_running_loop().call_soon(self.emit, BUDGET_EXPIRED_EVENT)
        return {}

    def emit(self, event: str, params: Any = None) -> None:
        for handler in self.listeners.pop(event, []):
            handler(params)

    @property
    def budgets(self) -> List[float]:
        return [params["budget"] for _, params in self.sent if "budget" in params]


class FakePage:
    """Answers page.evaluate by matching a fragment of the script source."""

    def __init__(self, handlers: Optional[List[Tuple[str, Callable]]] = None, clock: Optional[FakeClock] = None):
        self.handlers = list(handlers or [])
        self.clock = clock
        self.evaluations: List[Tuple[str, Any]] = []
        self.waits: List[float] = []
        self.screenshots: List[str] = []
        self.listeners: Dict[str, List[Callable]] = {}
        self.url = None

    def on(self, event: str, handler: Callable) -> None:
        self.listeners.setdefault(event, []).append(handler)

    def handle(self, fragment: str, handler: Callable) -> None:
        self.handlers.append((fragment, handler))

    def evaluated(self, fragment: str) -> List[Any]:
        return [arg for script, arg in self.evaluations if fragment in script]

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluations.append((script, arg))
        for fragment, handler in self.handlers:
            if fragment in script:
                return handler(arg)
        raise AssertionError(f"Unexpected script: {script[:80]!r}")

    async def wait_for_timeout(self, ms: float) -> None:
        self.waits.append(ms)
        if self.clock is not None:
            self.clock.advance_ms(ms)

    async def goto(self, url: str, **kwargs: Any) -> None:
        self.url = url

    async def screenshot(self, path: str, **kwargs: Any) -> bytes:
        self.screenshots.append(path)
        with open(path, "wb") as f:
            f.write(b"\x89PNG fake")
        return b""


def quiet_page(clock: Optional[FakeClock] = None) -> FakePage:
    """A page with no animations, libraries, pending frames or media."""
    page = FakePage(clock=clock)
    page.handle(".ticks()", lambda arg: 3)
    page.handle("setNow", lambda arg: None)
    page.handle("getAnimations", lambda arg: {"seeked": 0, "failures": []})
    page.handle("seekLibraries", lambda arg: {"seeked": 0, "failures": []})
    page.handle("flushFrameCallbacks", lambda arg: {"invoked": 0, "iterations": 0, "remaining": 0, "truncated": False, "failures": []})
    page.handle("bufferedEnd", lambda arg: [])
    page.handle("adapterReport", lambda arg: [])
    return page


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
