"""Errors and diagnostics for guardstate.

Every error derives from GuardStateError. Rule and config errors carry a
Diagnostic naming the offending input and, where possible, a fix.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Diagnostic:
    """What went wrong in a rule expression or config file."""

    source: str  # Rule text or config path
    problems: list[str] = field(default_factory=list)
    hints: list[str] = field(default_factory=list)

    def problem(self, where: str, what: str) -> "Diagnostic":
        self.problems.append(f"{where}: {what}")
        return self

    def hint(self, text: str) -> "Diagnostic":
        self.hints.append(text)
        return self

    def render(self, summary: str) -> str:
        """Summary line, then the source, each problem and each hint."""
        lines = [summary, f"  in {self.source}"]
        lines.extend(f"  ✗ {p}" for p in self.problems)
        lines.extend(f"  hint: {h}" for h in self.hints)
        return "\n".join(lines)


class GuardStateError(Exception):
    """Base class for all guardstate errors."""


class AlreadyConstructed(GuardStateError, RuntimeError):
    """Raised when the single-instance holder is constructed a second time.

    This is a programmer error: obtain the holder through get_instance().
    """

    def __init__(self, cls_name: str):
        self.cls_name = cls_name
        super().__init__(
            f"{cls_name} is already constructed; use {cls_name}.get_instance() instead"
        )


class FrozenHolderError(GuardStateError, AttributeError):
    """Raised on an attempt to add, overwrite or delete a holder attribute."""

    def __init__(self, cls_name: str, name: str):
        self.name = name
        super().__init__(f"{cls_name} is frozen; cannot modify attribute {name!r}")


class ValidationRejected(GuardStateError, ValueError):
    """Raised when a proxied write fails validation.

    The target is left unchanged. ``reasons`` holds one message per
    rejecting validator, in handler order.
    """

    def __init__(self, property: str, value: Any, reasons: list[str]):
        self.property = property
        self.value = value
        self.reasons = list(reasons)
        detail = "; ".join(self.reasons) or "rejected"
        super().__init__(f"Write to {property!r} rejected: {detail}")


class RuleSyntaxError(GuardStateError, ValueError):
    """Raised when a rule expression cannot be parsed.

    The message names the failing rule and, when known, the nearest valid one.
    """

    def __init__(self, message: str, diagnostic: Diagnostic | None = None):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.render(message) if diagnostic else message)


class ConfigError(GuardStateError):
    """Raised when a configuration file cannot be loaded or is invalid."""

    def __init__(self, message: str, diagnostic: Diagnostic | None = None):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.render(message) if diagnostic else message)


class _NotFound:
    """Type of the NOT_FOUND sentinel."""

    _instance: "_NotFound | None" = None

    def __new__(cls) -> "_NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __reduce__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()
"""Returned by proxied reads of properties that do not exist or are suppressed.

A soft signal rather than an exception so that exploratory access never
raises. Compare with ``is``.
"""


def format_value(value: Any, max_length: int = 60) -> str:
    """Get repr of value, truncating if too long."""
    r = repr(value)
    if len(r) > max_length:
        return r[: max_length - 3] + "..."
    return r


def suggest_rule(name: str, known: list[str]) -> str | None:
    """Suggest the closest known rule name for a misspelled one."""
    import difflib

    matches = difflib.get_close_matches(name, known, n=1)
    if matches:
        return f"Did you mean '{matches[0]}'?"
    return None
