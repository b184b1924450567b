"""Freezes time-dependent page state at a capture instant."""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import Page

from .errors import UnsupportedMediaError
from .instrumentation import (
    AutomationState,
    FlushReport,
    flush_frame_callbacks,
    seek_library_instances,
    set_clock_override,
)

logger = logging.getLogger(__name__)

MEDIA_SELECTOR = "video, audio"
NETWORK_NO_SOURCE = 3
MEDIA_ERR_SRC_NOT_SUPPORTED = 4
HAVE_CURRENT_DATA = 2

SEEK_DOCUMENT_ANIMATIONS = """
(time) => {
    let seeked = 0;
    const failures = [];
    for (const animation of document.getAnimations()) {
        try {
            animation.currentTime = time;
            animation.pause();
            seeked += 1;
        } catch (error) {
            failures.push(error && error.message ? error.message : String(error));
        }
    }
    return { seeked, failures };
}
"""

DESCRIBE_MEDIA = """
(selector) => Array.from(document.querySelectorAll(selector)).map((el, index) => {
    const sources = [];
    const addSource = (value) => {
        if (value && !sources.includes(value)) {
            sources.push(value);
        }
    };
    addSource(el.currentSrc || el.getAttribute('src'));
    for (const source of el.querySelectorAll('source')) {
        addSource(source.type ? `${source.src} (${source.type})` : source.src);
    }
    let bufferedEnd = null;
    if (el.buffered && el.buffered.length > 0) {
        bufferedEnd = el.buffered.end(el.buffered.length - 1);
    }
    return {
        index,
        tag: el.tagName.toLowerCase(),
        sources,
        duration: Number.isFinite(el.duration) ? el.duration : null,
        bufferedEnd,
        networkState: el.networkState,
        readyState: el.readyState,
        errorCode: el.error ? el.error.code : null,
    };
})
"""

SEEK_MEDIA = """
([selector, index, seconds]) => {
    const el = document.querySelectorAll(selector)[index];
    if (!el) {
        return false;
    }
    el.pause();
    el.currentTime = seconds;
    return true;
}
"""

READ_MEDIA = """
([selector, index]) => {
    const el = document.querySelectorAll(selector)[index];
    if (!el) {
        return null;
    }
    return {
        seeking: el.seeking,
        readyState: el.readyState,
        currentTime: el.currentTime,
        networkState: el.networkState,
        errorCode: el.error ? el.error.code : null,
    };
}
"""


def effective_media_target(
    target_ms: float,
    duration_s: Optional[float],
    buffered_end_s: Optional[float],
) -> float:
    """Seconds to seek a media element to: the target capped by duration and buffered extent."""
    candidates = [target_ms / 1000.0]
    for value in (duration_s, buffered_end_s):
        if value is not None and math.isfinite(value) and value > 0:
            candidates.append(value)
    return max(0.0, min(candidates))


def is_unsupported_media(info: Dict[str, Any]) -> bool:
    return info.get("networkState") == NETWORK_NO_SOURCE or info.get("errorCode") == MEDIA_ERR_SRC_NOT_SUPPORTED


@dataclass
class MediaResult:
    index: int
    tag: str
    status: str
    target_s: Optional[float] = None
    current_time_s: Optional[float] = None
    detail: str = ""


@dataclass
class SyncReport:
    target_ms: float
    animations_seeked: int = 0
    library_instances_seeked: int = 0
    flush: Optional[FlushReport] = None
    media: List[MediaResult] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)


class StateSynchronizer:
    def __init__(
        self,
        override_clock: bool = True,
        flush_frame_callbacks: bool = True,
        drain_frame_callbacks: bool = True,
        max_flush_iterations: int = 8,
        media_ready_timeout_ms: float = 2000,
        media_poll_ms: float = 25,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.override_clock = override_clock
        self.flush_frame_callbacks = flush_frame_callbacks
        self.drain_frame_callbacks = drain_frame_callbacks
        self.max_flush_iterations = max_flush_iterations
        self.media_ready_timeout_ms = media_ready_timeout_ms
        self.media_poll_ms = media_poll_ms
        self._monotonic = monotonic

    @classmethod
    def from_config(cls, config) -> "StateSynchronizer":
        return cls(
            override_clock=config.override_clock,
            flush_frame_callbacks=config.flush_frame_callbacks,
            drain_frame_callbacks=config.drain_frame_callbacks,
            max_flush_iterations=config.max_flush_iterations,
            media_ready_timeout_ms=config.media_ready_timeout_ms,
        )

    async def synchronize(self, page: Page, state: AutomationState, target_ms: float) -> SyncReport:
        report = SyncReport(target_ms=target_ms)

        if self.override_clock and state.override_clock:
            await set_clock_override(page, state, target_ms)

        animations = await page.evaluate(SEEK_DOCUMENT_ANIMATIONS, target_ms)
        report.animations_seeked = animations.get("seeked", 0)
        self._record_failures(report, "animation", animations.get("failures"))

        libraries = await seek_library_instances(page, state, target_ms)
        report.library_instances_seeked = libraries.get("seeked", 0)
        self._record_failures(report, "library", libraries.get("failures"))

        if self.flush_frame_callbacks:
            flush = await flush_frame_callbacks(
                page,
                state,
                target_ms,
                self.max_flush_iterations,
                drain=self.drain_frame_callbacks,
            )
            report.flush = flush
            self._record_failures(report, "frame callback", flush.failures)
            if flush.truncated:
                logger.warning(
                    "Stopped flushing frame callbacks at %dms after %d batches; %d still pending",
                    target_ms,
                    flush.iterations,
                    flush.remaining,
                )

        await self.synchronize_media(page, target_ms, report)
        return report

    async def synchronize_media(self, page: Page, target_ms: float, report: SyncReport) -> None:
        elements = await page.evaluate(DESCRIBE_MEDIA, MEDIA_SELECTOR)
        unsupported: List[Dict[str, Any]] = []

        for info in elements or []:
            index = info.get("index", 0)
            tag = info.get("tag", "media")
            if is_unsupported_media(info):
                unsupported.append({
                    "index": index,
                    "tag": tag,
                    "sources": info.get("sources") or [],
                    "network_state": info.get("networkState"),
                    "error_code": info.get("errorCode"),
                })
                report.media.append(MediaResult(index=index, tag=tag, status="unsupported"))
                continue

            seconds = effective_media_target(target_ms, info.get("duration"), info.get("bufferedEnd"))
            try:
                result = await self._seek_media(page, index, tag, seconds)
            except Exception as exc:
                logger.warning("Failed to seek <%s> #%d to %.3fs: %s", tag, index, seconds, exc)
                result = MediaResult(index=index, tag=tag, status="error", target_s=seconds, detail=str(exc))
                report.failures.append(f"media #{index}: {exc}")
            report.media.append(result)

        if unsupported:
            raise UnsupportedMediaError(unsupported)

    async def _seek_media(self, page: Page, index: int, tag: str, seconds: float) -> MediaResult:
        found = await page.evaluate(SEEK_MEDIA, [MEDIA_SELECTOR, index, seconds])
        if not found:
            return MediaResult(index=index, tag=tag, status="missing", target_s=seconds)

        deadline = self._monotonic() + self.media_ready_timeout_ms / 1000.0
        while True:
            current = await page.evaluate(READ_MEDIA, [MEDIA_SELECTOR, index]) or {}
            if current.get("errorCode"):
                return MediaResult(
                    index=index,
                    tag=tag,
                    status="error",
                    target_s=seconds,
                    current_time_s=current.get("currentTime"),
                    detail=f"decode error code {current['errorCode']}",
                )
            if not current.get("seeking") and (current.get("readyState") or 0) >= HAVE_CURRENT_DATA:
                return MediaResult(
                    index=index,
                    tag=tag,
                    status="ready",
                    target_s=seconds,
                    current_time_s=current.get("currentTime"),
                )
            remaining_ms = (deadline - self._monotonic()) * 1000
            if remaining_ms <= 0:
                logger.warning(
                    "<%s> #%d was not ready at %.3fs within %.0fms; capturing best-effort frame",
                    tag,
                    index,
                    seconds,
                    self.media_ready_timeout_ms,
                )
                return MediaResult(
                    index=index,
                    tag=tag,
                    status="timeout",
                    target_s=seconds,
                    current_time_s=current.get("currentTime"),
                )
            await page.wait_for_timeout(min(self.media_poll_ms, remaining_ms))

    @staticmethod
    def _record_failures(report: SyncReport, kind: str, failures: Optional[List[str]]) -> None:
        for failure in failures or []:
            logger.warning("Failed to synchronize %s at %sms: %s", kind, report.target_ms, failure)
            report.failures.append(f"{kind}: {failure}")
