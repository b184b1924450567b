"""Capture timeline construction and frame naming."""

import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

HTML_FILE_PATTERN = re.compile(r"\.html?$", re.IGNORECASE)


@dataclass(frozen=True)
class FrameCapture:
    timestamp_ms: int
    path: Path


def _valid_interval(interval_ms) -> bool:
    if isinstance(interval_ms, bool) or not isinstance(interval_ms, (int, float)):
        return False
    return math.isfinite(interval_ms) and interval_ms > 0


def normalize_target(target_ms: float) -> int:
    if not math.isfinite(target_ms):
        raise ValueError(f"target time must be finite, got {target_ms!r}")
    return max(0, int(math.floor(target_ms)))


def build_capture_timeline(target_ms: float, interval_ms: Optional[float]) -> List[int]:
    """Return the strictly increasing timestamps to capture, ending at the target.

    A missing, zero, negative or non-finite interval yields only the target.
    When the target is not a multiple of the interval the last step is partial:
    ``build_capture_timeline(450, 200) == [0, 200, 400, 450]``.
    """
    target = normalize_target(target_ms)
    if not _valid_interval(interval_ms):
        return [target]

    timeline: List[int] = []
    step = 0
    point = 0
    while point < target:
        timeline.append(point)
        # sub-millisecond intervals collapse onto the next whole millisecond
        step = max(step + 1, int(math.ceil((point + 1) / interval_ms)))
        point = max(int(math.floor(step * interval_ms)), point + 1)
    timeline.append(target)
    return timeline


def timestamp_width(timeline: Sequence[int]) -> int:
    return len(str(max(timeline))) if timeline else 1


def sanitize_basename(file_name: str) -> str:
    name = re.sub(r"[\\/]", "-", file_name)
    name = HTML_FILE_PATTERN.sub("", name).strip()
    name = re.sub(r"[^\w\-.]", "_", name)
    return name or "animation"


def frame_filename(file_name: str, timestamp_ms: int, width: int = 1) -> str:
    return f"{sanitize_basename(file_name)}-{timestamp_ms:0{width}d}ms.png"


def frame_paths(file_name: str, timeline: Sequence[int], output_dir: Path) -> List[Path]:
    width = timestamp_width(timeline)
    return [output_dir / frame_filename(file_name, ts, width) for ts in timeline]
