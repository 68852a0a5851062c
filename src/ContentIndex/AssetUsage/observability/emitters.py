"""Pluggable event sinks.

- JsonStdoutEmitter: one JSON object per line on stdout (container logging)
- FileJsonlEmitter: append-only JSONL file rotated by size or line count

All emitters implement ``emit(event)`` and ``close()``; :func:`initialize_events`
wires them from :class:`~ContentIndex.AssetUsage.settings.EventsConfiguration`.
"""

import logging
import sys
import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import TextIO

from ContentIndex.AssetUsage.observability.events import (
    Event,
    clear_sinks,
    register_sink,
    set_context,
)
from ContentIndex.AssetUsage.settings import DATA_ROOT, EventsConfiguration

logger = logging.getLogger(__name__)


class EventEmitter(ABC):
    """Abstract base for event sinks."""

    @abstractmethod
    def emit(self, event: Event) -> None:
        """Emit an event to this sink. Should not raise."""

    @abstractmethod
    def close(self) -> None:
        """Release resources; safe to call multiple times."""


class JsonStdoutEmitter(EventEmitter):
    """Write events to stdout as JSON (one per line).

    ``stream`` overrides the target, for example stderr while a command prints
    JSON results on stdout.
    """

    def __init__(self, prefix: str = "", stream: TextIO | None = None):
        self.prefix = prefix
        self.stream = stream

    def emit(self, event: Event) -> None:
        try:
            line = event.to_json()
            if self.prefix:
                line = f"{self.prefix}{line}"
            print(line, file=self.stream or sys.stdout, flush=True)
        except Exception as e:
            logger.error(f"Error emitting to stdout: {e}")

    def close(self) -> None:
        pass


class FileJsonlEmitter(EventEmitter):
    """Append-only JSONL file with rotation by size or line count."""

    def __init__(
        self,
        filepath: str | Path,
        max_size_bytes: int | None = None,
        max_lines: int | None = None,
    ):
        self.filepath = Path(filepath)
        self.max_size_bytes = max_size_bytes or 100 * 1024 * 1024
        self.max_lines = max_lines or 100000
        self.line_count = 0
        self.lock = threading.Lock()

        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        if self.filepath.exists():
            with open(self.filepath, encoding="utf-8") as f:
                self.line_count = sum(1 for _ in f)

    def emit(self, event: Event) -> None:
        try:
            with self.lock:
                if self._should_rotate():
                    self._rotate()
                with open(self.filepath, "a", encoding="utf-8") as f:
                    f.write(event.to_json() + "\n")
                self.line_count += 1
        except OSError as e:
            logger.error(f"Error emitting to file: {e}")

    def _should_rotate(self) -> bool:
        if self.line_count >= self.max_lines:
            return True
        return self.filepath.exists() and self.filepath.stat().st_size >= self.max_size_bytes

    def _rotate(self) -> None:
        if not self.filepath.exists():
            return
        timestamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S-%f")
        backup_path = self.filepath.parent / f"{self.filepath.stem}.{timestamp}.jsonl"
        self.filepath.rename(backup_path)
        logger.info(f"Rotated event file to {backup_path}")
        self.line_count = 0

    def close(self) -> None:
        pass


def initialize_events(
    config: EventsConfiguration,
    run_id: str | None = None,
    *,
    stdout_stream: TextIO | None = None,
) -> list[EventEmitter]:
    """Replace the registered sinks with those enabled in ``config``.

    ``stdout_stream`` redirects the stdout sink when stdout carries other output.
    """

    clear_sinks()
    set_context(run_id=run_id, service=config.service)
    emitters: list[EventEmitter] = []
    if config.enable_stdout:
        emitters.append(JsonStdoutEmitter(stream=stdout_stream))
    if config.enable_file:
        emitters.append(FileJsonlEmitter(config.file_path or DATA_ROOT / "events" / "events.jsonl"))
    for emitter in emitters:
        register_sink(emitter)
    return emitters


__all__ = ["EventEmitter", "JsonStdoutEmitter", "FileJsonlEmitter", "initialize_events"]
