"""Capture configuration and per-file requests."""

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from .errors import ConfigError
from .timeline import build_capture_timeline, frame_paths

DEFAULT_TARGET_MS = 4000
DEFAULT_INTERVAL_MS = 200
class Viewport(NamedTuple):
    width: int
    height: int

    def as_dict(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}


DEFAULT_VIEWPORT = Viewport(320, 240)


def as_viewport(value: Any) -> Any:
    if isinstance(value, Mapping):
        return Viewport(value.get("width"), value.get("height"))
    if isinstance(value, tuple) and not isinstance(value, Viewport) and len(value) == 2:
        return Viewport(*value)
    return value


def parse_viewport(raw: Optional[str]) -> Viewport:
    if not raw:
        return DEFAULT_VIEWPORT
    if "x" not in raw.lower():
        raise ConfigError(f"Viewport must look like WIDTHxHEIGHT, got {raw!r}")
    width_str, height_str = raw.lower().split("x", 1)
    try:
        viewport = Viewport(int(width_str), int(height_str))
    except ValueError:
        raise ConfigError(f"Viewport must look like WIDTHxHEIGHT, got {raw!r}") from None
    if viewport.width <= 0 or viewport.height <= 0:
        raise ConfigError(f"Viewport dimensions must be positive, got {raw!r}")
    return viewport


def _is_finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class CaptureConfig:
    target_ms: float = DEFAULT_TARGET_MS
    interval_ms: Optional[float] = DEFAULT_INTERVAL_MS
    # largest budget handed to the browser in a single advance
    virtual_step_ms: float = 250
    viewport: Viewport = DEFAULT_VIEWPORT

    bootstrap_min_wait_ms: float = 100
    bootstrap_max_wait_ms: float = 2000
    bootstrap_min_ticks: int = 2
    bootstrap_poll_ms: float = 16

    settle_ms: float = 0
    media_ready_timeout_ms: float = 2000
    override_clock: bool = True
    flush_frame_callbacks: bool = True
    drain_frame_callbacks: bool = True
    max_flush_iterations: int = 8

    advance_deadline_ms: Optional[float] = 30000
    navigation_timeout_ms: float = 30000

    channel: Optional[str] = None
    executable_path: Optional[str] = None
    fallback_channel: Optional[str] = None
    headless: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "viewport", as_viewport(self.viewport))

    def validate(self) -> "CaptureConfig":
        errors: List[str] = []

        if not _is_finite(self.target_ms) or self.target_ms < 0:
            errors.append(f"target_ms must be a non-negative finite number, got {self.target_ms!r}")
        if not _is_finite(self.virtual_step_ms) or self.virtual_step_ms <= 0:
            errors.append(f"virtual_step_ms must be positive, got {self.virtual_step_ms!r}")

        for name in ("bootstrap_min_wait_ms", "bootstrap_max_wait_ms"):
            value = getattr(self, name)
            if not _is_finite(value) or value < 0:
                errors.append(f"{name} must be a non-negative finite number, got {value!r}")
        if (
            _is_finite(self.bootstrap_min_wait_ms)
            and _is_finite(self.bootstrap_max_wait_ms)
            and self.bootstrap_max_wait_ms < self.bootstrap_min_wait_ms
        ):
            errors.append(
                "bootstrap_max_wait_ms "
                f"({self.bootstrap_max_wait_ms}) is smaller than bootstrap_min_wait_ms "
                f"({self.bootstrap_min_wait_ms})"
            )
        if not isinstance(self.bootstrap_min_ticks, int) or self.bootstrap_min_ticks < 0:
            errors.append(f"bootstrap_min_ticks must be a non-negative integer, got {self.bootstrap_min_ticks!r}")
        if not _is_finite(self.bootstrap_poll_ms) or self.bootstrap_poll_ms <= 0:
            errors.append(f"bootstrap_poll_ms must be positive, got {self.bootstrap_poll_ms!r}")

        for name in ("settle_ms", "media_ready_timeout_ms", "navigation_timeout_ms"):
            value = getattr(self, name)
            if not _is_finite(value) or value < 0:
                errors.append(f"{name} must be a non-negative finite number, got {value!r}")
        if self.advance_deadline_ms is not None and (
            not _is_finite(self.advance_deadline_ms) or self.advance_deadline_ms <= 0
        ):
            errors.append(f"advance_deadline_ms must be positive, got {self.advance_deadline_ms!r}")
        if not isinstance(self.max_flush_iterations, int) or self.max_flush_iterations < 1:
            errors.append(f"max_flush_iterations must be at least 1, got {self.max_flush_iterations!r}")

        width, height = self.viewport if isinstance(self.viewport, Viewport) else (None, None)
        if not isinstance(width, int) or not isinstance(height, int) or width <= 0 or height <= 0:
            errors.append(f"viewport must have positive integer width and height, got {self.viewport!r}")

        if errors:
            raise ConfigError("; ".join(errors))
        return self

    @property
    def timeline(self) -> List[int]:
        return build_capture_timeline(self.target_ms, self.interval_ms)


@dataclass(frozen=True)
class CaptureRequest:
    """One animation document and the configuration it is captured under."""

    source: Path
    config: CaptureConfig

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def timeline(self) -> List[int]:
        return self.config.timeline

    @property
    def target_ms(self) -> int:
        return self.timeline[-1]

    def frame_paths(self, output_dir: Path) -> List[Path]:
        return frame_paths(self.name, self.timeline, output_dir)
