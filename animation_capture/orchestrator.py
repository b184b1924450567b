"""Capture orchestration: one isolated browser context per animation document."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

from playwright.async_api import Browser, BrowserType, async_playwright

from .bootstrap import BootstrapResult, BootstrapWaiter
from .clock import VirtualClockController, VirtualClockSession
from .config import CaptureConfig, CaptureRequest
from .errors import IllegalTransitionError, LaunchError, UnsupportedMediaError
from .instrumentation import AutomationState, install, read_adapter_report
from .patches import FrameworkPatchRegistry, default_registry
from .synchronizer import StateSynchronizer
from .timeline import FrameCapture

logger = logging.getLogger(__name__)


class CaptureState(Enum):
    CREATED = "created"
    CONTEXT_OPENED = "context_opened"
    BOOTSTRAPPED = "bootstrapped"
    ADVANCING = "advancing"
    SYNCHRONIZED = "synchronized"
    CAPTURED = "captured"
    DONE = "done"
    FAILED = "failed"
    CONTEXT_CLOSED = "context_closed"


TRANSITIONS: Dict[CaptureState, Set[CaptureState]] = {
    CaptureState.CREATED: {CaptureState.CONTEXT_OPENED},
    CaptureState.CONTEXT_OPENED: {CaptureState.BOOTSTRAPPED},
    CaptureState.BOOTSTRAPPED: {CaptureState.ADVANCING},
    CaptureState.ADVANCING: {CaptureState.SYNCHRONIZED},
    CaptureState.SYNCHRONIZED: {CaptureState.CAPTURED},
    CaptureState.CAPTURED: {CaptureState.ADVANCING, CaptureState.DONE},
    CaptureState.DONE: {CaptureState.CONTEXT_CLOSED},
    CaptureState.FAILED: {CaptureState.CONTEXT_CLOSED},
    CaptureState.CONTEXT_CLOSED: set(),
}

TERMINAL_STATES = {CaptureState.DONE, CaptureState.FAILED, CaptureState.CONTEXT_CLOSED}


@dataclass
class CaptureFailure:
    source: Path
    stage: str
    reason: str
    error: Optional[BaseException] = None


@dataclass
class CaptureRun:
    """State machine and results for one CaptureRequest."""

    request: CaptureRequest
    state: CaptureState = CaptureState.CREATED
    step: Optional[int] = None
    stage: str = "init"
    channel: Optional[str] = None
    history: List[str] = field(default_factory=list)
    frames: List[FrameCapture] = field(default_factory=list)
    bootstrap: Optional[BootstrapResult] = None
    failure: Optional[CaptureFailure] = None

    def transition(self, new_state: CaptureState) -> None:
        if new_state is CaptureState.FAILED:
            if self.state in TERMINAL_STATES:
                raise IllegalTransitionError(f"Cannot fail a capture that is already {self.state.value}")
        elif new_state not in TRANSITIONS[self.state]:
            raise IllegalTransitionError(f"Illegal transition {self.state.value} -> {new_state.value}")

        if new_state is CaptureState.ADVANCING:
            self.step = 0 if self.step is None else self.step + 1
        self.state = new_state
        self.history.append(self.label)

    def fail(self, error: BaseException) -> None:
        self.failure = CaptureFailure(
            source=self.request.source,
            stage=self.stage,
            reason=str(error) or type(error).__name__,
            error=error,
        )
        self.transition(CaptureState.FAILED)

    @property
    def label(self) -> str:
        if self.state in (CaptureState.ADVANCING, CaptureState.SYNCHRONIZED, CaptureState.CAPTURED):
            return f"{self.state.value}({self.step})"
        return self.state.value

    @property
    def ok(self) -> bool:
        return self.failure is None and (
            self.state is CaptureState.DONE
            or (self.state is CaptureState.CONTEXT_CLOSED and CaptureState.DONE.value in self.history)
        )

    @property
    def needs_fallback(self) -> bool:
        return self.failure is not None and isinstance(self.failure.error, UnsupportedMediaError)


@dataclass
class CaptureReport:
    results: List[CaptureRun] = field(default_factory=list)

    @property
    def failures(self) -> List[CaptureFailure]:
        return [run.failure for run in self.results if run.failure is not None]

    @property
    def frames(self) -> List[FrameCapture]:
        return [frame for run in self.results for frame in run.frames]

    @property
    def ok(self) -> bool:
        return bool(self.results) and all(run.ok for run in self.results)


def launch_error(error: BaseException, channel: Optional[str] = None) -> LaunchError:
    """Map a Playwright launch failure to an actionable LaunchError."""
    message = str(error)
    browser = f"Chromium ({channel})" if channel else "Chromium"
    if "Executable doesn't exist" in message:
        return LaunchError(
            f"Playwright {browser} binary not found.",
            hint='Run "python -m playwright install chromium" and retry.',
        )
    if "Host system is missing dependencies" in message:
        return LaunchError(
            f"{browser} is missing required system libraries.",
            hint='Install them with "python -m playwright install-deps" and retry.',
        )
    if channel and ("Chromium distribution" in message or "is not found at" in message):
        return LaunchError(
            f"Browser channel {channel!r} is not installed.",
            hint=f'Run "python -m playwright install {channel}" or pick another --channel.',
        )
    return LaunchError(f"Failed to launch {browser}: {message}")


class AnimationCapturer:
    def __init__(
        self,
        config: CaptureConfig,
        output_dir: Path,
        registry: Optional[FrameworkPatchRegistry] = None,
    ):
        self.config = config.validate()
        self.output_dir = Path(output_dir)
        self.registry = registry or default_registry()
        self.bootstrap = BootstrapWaiter(
            min_wait_ms=config.bootstrap_min_wait_ms,
            max_wait_ms=config.bootstrap_max_wait_ms,
            min_ticks=config.bootstrap_min_ticks,
            poll_ms=config.bootstrap_poll_ms,
        )
        self.clock = VirtualClockController(
            step_ms=config.virtual_step_ms,
            deadline_ms=config.advance_deadline_ms,
        )
        self.synchronizer = StateSynchronizer.from_config(config)

    def build_requests(self, sources: Sequence[Path]) -> List[CaptureRequest]:
        return [CaptureRequest(source=Path(source), config=self.config) for source in sources]

    async def capture_all(self, sources: Sequence[Path]) -> CaptureReport:
        requests = self.build_requests(sources)
        report = CaptureReport()

        async with async_playwright() as p:
            browser = await self.launch_browser(p.chromium, self.config.channel)
            fallback_browser: Optional[Browser] = None
            fallback_error: Optional[LaunchError] = None
            try:
                for request in requests:
                    run = await self.capture_file(browser, request, channel=self.config.channel)
                    if run.needs_fallback and self.config.fallback_channel and fallback_error is None:
                        print(
                            f"Retrying {request.name} on the {self.config.fallback_channel!r} channel: "
                            f"{run.failure.reason}"
                        )
                        try:
                            if fallback_browser is None:
                                fallback_browser = await self.launch_browser(
                                    p.chromium, self.config.fallback_channel
                                )
                        except LaunchError as exc:
                            fallback_error = exc
                            logger.warning("Fallback channel unavailable: %s", exc)
                        else:
                            run = await self.capture_file(
                                fallback_browser, request, channel=self.config.fallback_channel
                            )
                    report.results.append(run)
                    self.print_run(run)
            finally:
                await browser.close()
                if fallback_browser is not None:
                    await fallback_browser.close()

        return report

    def print_run(self, run: CaptureRun) -> None:
        if run.failure is None:
            print(f"Captured {run.request.name} -> {len(run.frames)} frame(s) in {self.output_dir}")
        else:
            print(f"Failed to capture {run.request.name} at {run.failure.stage}: {run.failure.reason}")

    async def launch_browser(self, browser_type: BrowserType, channel: Optional[str]) -> Browser:
        options = {"headless": self.config.headless}
        if channel:
            options["channel"] = channel
        if self.config.executable_path and channel == self.config.channel:
            options["executable_path"] = self.config.executable_path
        try:
            return await browser_type.launch(**options)
        except Exception as exc:
            raise launch_error(exc, channel) from exc

    async def capture_file(
        self,
        browser: Browser,
        request: CaptureRequest,
        channel: Optional[str] = None,
    ) -> CaptureRun:
        run = CaptureRun(request=request, channel=channel)
        context = None

        try:
            run.stage = "new_context"
            context = await browser.new_context(
                viewport=self.config.viewport.as_dict(),
                device_scale_factor=1,
            )
            run.transition(CaptureState.CONTEXT_OPENED)

            run.stage = "install"
            state = AutomationState.create(override_clock=self.config.override_clock)
            await install(context, state, self.registry)
            page = await context.new_page()
            page.on(
                "console",
                lambda message: logger.debug("[%s] console.%s: %s", request.name, message.type, message.text),
            )

            run.stage = "goto"
            await page.goto(
                request.source.resolve().as_uri(),
                wait_until="load",
                timeout=self.config.navigation_timeout_ms,
            )
            await read_adapter_report(page, state)
            if state.active_patches:
                logger.info("%s: active patches %s", request.name, ", ".join(state.active_patches))

            run.stage = "bootstrap"
            run.bootstrap = await self.bootstrap.wait(page, state)
            run.transition(CaptureState.BOOTSTRAPPED)

            run.stage = "virtual_time"
            client = await context.new_cdp_session(page)
            session = VirtualClockSession(client, target_ms=request.target_ms)
            await session.pause()

            for timestamp, path in zip(request.timeline, request.frame_paths(self.output_dir)):
                run.transition(CaptureState.ADVANCING)
                run.stage = f"advance({timestamp}ms)"
                await self.clock.advance_to(session, timestamp)
                if self.config.settle_ms:
                    await page.wait_for_timeout(self.config.settle_ms)

                run.stage = f"synchronize({timestamp}ms)"
                await self.synchronizer.synchronize(page, state, timestamp)
                run.transition(CaptureState.SYNCHRONIZED)

                run.stage = f"screenshot({timestamp}ms)"
                await page.screenshot(path=str(path))
                run.frames.append(FrameCapture(timestamp_ms=timestamp, path=path))
                run.transition(CaptureState.CAPTURED)
                logger.debug("%s: captured %s", request.name, path.name)

            run.stage = "done"
            run.transition(CaptureState.DONE)
        except Exception as exc:
            run.fail(exc)
        except BaseException as exc:
            run.fail(exc)
            raise
        finally:
            if context is not None:
                try:
                    await context.close()
                except Exception as exc:
                    logger.warning("Failed to close context for %s: %s", request.name, exc)
                run.transition(CaptureState.CONTEXT_CLOSED)

        return run
