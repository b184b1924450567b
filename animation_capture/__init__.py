"""Deterministic snapshots of HTML animations on a virtual timeline."""

from .config import CaptureConfig, CaptureRequest
from .errors import CaptureError
from .orchestrator import AnimationCapturer, CaptureReport
from .patches import AnimationLibraryAdapter, FrameworkPatchRegistry, default_registry
from .timeline import build_capture_timeline

__version__ = "0.1.0"

__all__ = [
    "AnimationCapturer",
    "AnimationLibraryAdapter",
    "CaptureConfig",
    "CaptureError",
    "CaptureReport",
    "CaptureRequest",
    "FrameworkPatchRegistry",
    "build_capture_timeline",
    "default_registry",
]
