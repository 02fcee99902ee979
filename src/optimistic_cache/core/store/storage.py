"""Disk-backed writer (and reader) for cache store traces.

- Default directory: ``settings.trace_dir`` (``OPTIMISTIC_CACHE_TRACE_DIR``,
  default ``artifacts/trace/``)
- Filename pattern:  ``YYYYmmddTHHMMSSffffffZ_rev{rev:06d}.json``
- Content:           a JSON object mirroring the :class:`StoreTrace` dataclass

Usage
-----
>>> writer = TraceWriter()  # uses default dir
>>> path = writer.write(trace)  # returns the file path
>>> load_trace(path).revision
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

from optimistic_cache.core.settings import load_settings

from .trace import StoreTrace


def _default_dir() -> Path:
    """Return the configured base directory for trace artifacts."""
    return Path(load_settings().trace_dir)


class TraceWriter:
    """Persist store traces to disk as JSON files."""

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir: Path = base_dir if base_dir is not None else _default_dir()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def write(self, trace: StoreTrace) -> Path:
        """Write ``trace`` to disk and return the created file path."""
        safe_ts = trace.timestamp.replace("-", "").replace(":", "").replace(".", "")
        path = self.base_dir / f"{safe_ts}_rev{trace.revision:06d}.json"

        with path.open("w", encoding="utf-8") as f:
            json.dump(asdict(trace), f, ensure_ascii=False, indent=2)
            f.write("\n")
        return path

    def write_all(self, traces: tuple[StoreTrace, ...] | list[StoreTrace]) -> list[Path]:
        return [self.write(t) for t in traces]


def load_trace(path: Path) -> StoreTrace:
    """Read a trace file produced by :class:`TraceWriter`."""
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return StoreTrace(
        timestamp=str(data.get("timestamp", "")),
        revision=int(data.get("revision", 0)),
        note=data.get("note"),
        entries=list(data.get("entries", [])),
    )


__all__ = ["TraceWriter", "load_trace"]
