"""Manifest of captured frames."""

import base64
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from .orchestrator import CaptureReport


def now_iso() -> str:
    return datetime.now().isoformat()


def write_json(path: Path, data: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def encode_image(path: Path) -> str:
    return "data:image/png;base64," + base64.b64encode(path.read_bytes()).decode("ascii")


def build_manifest(report: CaptureReport, output_dir: Path, embed_images: bool = True) -> Dict[str, Any]:
    sources = []
    for run in report.results:
        frames = []
        for frame in run.frames:
            entry = {
                "timestamp_ms": frame.timestamp_ms,
                "file": frame.path.name,
                "path": str(frame.path),
            }
            if embed_images and frame.path.exists():
                entry["data_uri"] = encode_image(frame.path)
            frames.append(entry)
        sources.append({
            "source": str(run.request.source),
            "channel": run.channel,
            "status": "ok" if run.ok else "failed",
            "frames": frames,
        })

    return {
        "generated_at": now_iso(),
        "output_dir": str(output_dir),
        "count": len(report.frames),
        "sources": sources,
        "failures": [
            {"source": str(failure.source), "stage": failure.stage, "reason": failure.reason}
            for failure in report.failures
        ],
    }


def write_manifest(path: Path, report: CaptureReport, output_dir: Path, embed_images: bool = True) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    write_json(path, build_manifest(report, output_dir, embed_images=embed_images))
    return path
