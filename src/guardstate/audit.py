"""Audit entries and sinks for guardstate.

The proxy produces one AuditLogEntry per successful write. Where the entry
goes is up to the sink: memory, the logging system, the console or a
JSON-lines file.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic_core import PydanticSerializationError, to_jsonable_python
from rich.console import Console


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLogEntry(BaseModel):
    """Record of a successful state change."""

    model_config = ConfigDict(frozen=True)

    property: str
    old_value: Any = None
    new_value: Any = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_serializer("old_value", "new_value", when_used="json")
    def serialize_values(self, value: Any) -> Any:
        # Values with no JSON form are recorded by repr
        try:
            return to_jsonable_python(value)
        except PydanticSerializationError:
            return repr(value)

    def describe(self) -> str:
        """One-line human readable form."""
        return f"{self.property}: {self.old_value!r} -> {self.new_value!r}"


@runtime_checkable
class AuditSink(Protocol):
    """Anything that accepts audit entries."""

    def emit(self, entry: AuditLogEntry) -> None: ...


class MemorySink:
    """Sink that keeps entries in memory for inspection."""

    def __init__(self) -> None:
        self._entries: list[AuditLogEntry] = []
        self._lock = threading.Lock()

    def emit(self, entry: AuditLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    @property
    def entries(self) -> list[AuditLogEntry]:
        """Snapshot of the recorded entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def for_property(self, name: str) -> list[AuditLogEntry]:
        """Entries recorded for one property."""
        return [e for e in self.entries if e.property == name]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class LoggingSink:
    """Sink that writes entries to a standard logger."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO):
        self.log = log or logging.getLogger("guardstate.audit.trail")
        self.level = level

    def emit(self, entry: AuditLogEntry) -> None:
        self.log.log(
            self.level,
            "audit %s",
            entry.describe(),
            extra={"audit": entry.model_dump(mode="json")},
        )


class ConsoleSink:
    """Sink that prints entries to a rich console."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(stderr=True)

    def emit(self, entry: AuditLogEntry) -> None:
        self.console.print(
            f"[dim]{entry.timestamp.isoformat()}[/dim] "
            f"[cyan]{entry.property}[/cyan] "
            f"{entry.old_value!r} [dim]->[/dim] [green]{entry.new_value!r}[/green]",
            highlight=False,
        )


class JsonLinesSink:
    """Sink that appends entries to a JSON-lines file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def emit(self, entry: AuditLogEntry) -> None:
        line = entry.model_dump_json()
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def read(self) -> list[AuditLogEntry]:
        """Load every entry written so far."""
        if not self.path.exists():
            return []
        entries = []
        with open(self.path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    entries.append(AuditLogEntry.model_validate(json.loads(line)))
        return entries


class FanOutSink:
    """Sink that forwards each entry to several sinks in order."""

    def __init__(self, *sinks: AuditSink):
        self.sinks = list(sinks)

    def emit(self, entry: AuditLogEntry) -> None:
        for sink in self.sinks:
            sink.emit(entry)


@contextmanager
def capture_audit() -> Generator[MemorySink, None, None]:
    """Context manager yielding a MemorySink that records entries logged
    through LoggingSink while the block runs.

    Usage:
        with capture_audit() as captured:
            proxy.name = "Al"

        assert captured.entries[0].new_value == "Al"
    """
    captured = MemorySink()
    handler = _CaptureHandler(captured)
    trail = logging.getLogger("guardstate.audit.trail")
    old_level = trail.level
    trail.addHandler(handler)
    trail.setLevel(logging.DEBUG)
    try:
        yield captured
    finally:
        trail.removeHandler(handler)
        trail.setLevel(old_level)


class _CaptureHandler(logging.Handler):
    def __init__(self, sink: MemorySink):
        super().__init__(level=logging.DEBUG)
        self.sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        data = getattr(record, "audit", None)
        if data is not None:
            self.sink.emit(AuditLogEntry.model_validate(data))
