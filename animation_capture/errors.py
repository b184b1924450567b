"""Exception types raised by the capture engine."""

from typing import Any, Dict, List, Optional


class CaptureError(Exception):
    """Base class for every error the engine raises on purpose."""


class ConfigError(CaptureError):
    pass


class UsageError(CaptureError):
    """Command-line arguments were rejected before any browser work started."""


class ResolutionError(CaptureError):
    """Input files or the output directory could not be resolved."""


class LaunchError(CaptureError):
    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class UnsupportedMediaError(CaptureError):
    """One or more media elements have no playable source."""

    def __init__(self, elements: List[Dict[str, Any]]):
        self.elements = elements
        super().__init__(self.describe())

    def describe(self) -> str:
        parts = []
        for element in self.elements:
            sources = ", ".join(element.get("sources") or []) or "<none>"
            parts.append(
                f"<{element.get('tag', 'media')}> #{element.get('index')} "
                f"sources=[{sources}] network_state={element.get('network_state')} "
                f"error_code={element.get('error_code')}"
            )
        return "Unsupported media: " + "; ".join(parts)


class ClockTimeoutError(CaptureError):
    """The virtual time budget did not expire before the caller's deadline."""


class ClockBusyError(CaptureError):
    pass


class IllegalTransitionError(CaptureError):
    pass
