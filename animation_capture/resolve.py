"""Resolve animation documents by exact name or glob pattern."""

import re
from pathlib import Path
from typing import List, Pattern, Sequence

from .errors import ResolutionError, UsageError
from .timeline import HTML_FILE_PATTERN

WILDCARD_CHARS = ("*", "?")


def contains_wildcards(value: str) -> bool:
    return any(ch in value for ch in WILDCARD_CHARS)


def wildcard_to_regex(pattern: str) -> Pattern[str]:
    """Translate a ``*``/``?`` glob into a case-insensitive, fully anchored regex."""
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def resolve_animation_pattern(args: Sequence[str]) -> str:
    """Validate the positional arguments and return the single name or pattern."""
    if len(args) != 1:
        raise UsageError(
            "Expected the HTML file name (or a * / ? pattern) of exactly one animation, "
            f"got {len(args)} argument(s)"
        )
    value = args[0].strip()
    if not value:
        raise UsageError("Expected the HTML file name, got an empty argument")
    if "/" in value or "\\" in value:
        raise UsageError(f"Expected a file name without path separators, got {value!r}")
    if not contains_wildcards(value) and not HTML_FILE_PATTERN.search(value):
        raise UsageError(f"Expected the HTML file name to end in .html or .htm, got {value!r}")
    return value


def ensure_directory_available(directory: Path) -> Path:
    if not directory.is_dir():
        raise ResolutionError(
            f'Expected directory "{directory}" to exist. Add animation examples there or pass --input-dir.'
        )
    return directory


def collect_animation_files(directory: Path) -> List[str]:
    return sorted(
        entry.name
        for entry in directory.iterdir()
        if entry.is_file() and HTML_FILE_PATTERN.search(entry.name)
    )


def resolve_animation_files(directory: Path, name_or_pattern: str) -> List[Path]:
    ensure_directory_available(directory)
    if not contains_wildcards(name_or_pattern):
        target = directory / name_or_pattern
        if not target.is_file():
            raise ResolutionError(f'Animation file "{target}" does not exist')
        return [target]

    matcher = wildcard_to_regex(name_or_pattern)
    matches = [directory / name for name in collect_animation_files(directory) if matcher.match(name)]
    if not matches:
        raise ResolutionError(f'No HTML files in "{directory}" match pattern {name_or_pattern!r}')
    return matches


def prepare_output_directory(directory: Path) -> Path:
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ResolutionError(f'Unable to create output directory "{directory}": {exc}') from exc
    return directory
