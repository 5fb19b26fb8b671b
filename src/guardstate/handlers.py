"""Handler interface for guarded proxies.

A handler observes reads, validates writes and records accepted writes for
one field (or ``"*"`` for every field). Each hook is a no-op by default, so a
handler only overrides what it needs. Handlers run in registration order.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field

from guardstate.audit import AuditLogEntry, AuditSink
from guardstate.errors import NOT_FOUND
from guardstate.rules import RuleSet, compile_rules

if TYPE_CHECKING:
    from guardstate.proxy import TargetView

logger = logging.getLogger(__name__)

ALL_FIELDS = "*"


class ReadAction(str, Enum):
    """What a read observer decides."""

    PASS = "pass"
    SUPPRESS = "suppress"  # Read yields NOT_FOUND


class Handler:
    """Base class for proxy handlers."""

    field: str = ALL_FIELDS

    def applies_to(self, name: str) -> bool:
        """Whether this handler runs for property ``name``."""
        return self.field == ALL_FIELDS or self.field == name

    def on_read(self, target: TargetView, name: str, value: Any) -> ReadAction | bool | None:
        """Observe a read. ``value`` is NOT_FOUND for missing properties.

        Return ReadAction.SUPPRESS (or False) to hide the value.
        """
        return ReadAction.PASS

    def validate(self, target: TargetView, name: str, value: Any) -> str | bool | None:
        """Check a proposed write.

        Return None or True to accept, a reason string or False to reject.
        """
        return None

    def on_write(self, target: TargetView, name: str, entry: AuditLogEntry) -> None:
        """Record an accepted write."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} field={self.field!r}>"


class HandlerSpec(BaseModel):
    """Declarative handler entry: ``{field, on_read?, validate?, on_write?}``.

    camelCase keys (``onRead``, ``onWrite``) are accepted too.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    field: str = ALL_FIELDS
    on_read: Callable[..., Any] | None = Field(default=None, alias="onRead")
    validate_fn: Callable[..., Any] | None = Field(default=None, alias="validate")
    on_write: Callable[..., Any] | None = Field(default=None, alias="onWrite")


class FunctionHandler(Handler):
    """Handler built from plain callables.

    ``on_read(target, name, value)``, ``validate(target, name, value)`` and
    ``on_write(target, name, old_value, new_value)``.
    """

    def __init__(self, spec: HandlerSpec):
        self.field = spec.field
        self._on_read = spec.on_read
        self._validate = spec.validate_fn
        self._on_write = spec.on_write

    def on_read(self, target: TargetView, name: str, value: Any) -> ReadAction | bool | None:
        if self._on_read is None:
            return ReadAction.PASS
        return self._on_read(target, name, value)

    def validate(self, target: TargetView, name: str, value: Any) -> str | bool | None:
        if self._validate is None:
            return None
        return self._validate(target, name, value)

    def on_write(self, target: TargetView, name: str, entry: AuditLogEntry) -> None:
        if self._on_write is not None:
            self._on_write(target, name, entry.old_value, entry.new_value)


class RuleValidator(Handler):
    """Validate writes against declarative per-field rules.

    Every rule of a field is evaluated, so the rejection lists all failures.
    Fields without rules pass through.
    """

    def __init__(self, rules: RuleSet | Mapping[str, str]):
        if not isinstance(rules, RuleSet):
            rules = compile_rules(rules)
        self.rules = rules

    def validate(self, target: TargetView, name: str, value: Any) -> str | None:
        field_rules = self.rules.for_field(name)
        if field_rules is None:
            return None
        reasons = field_rules.check(value)
        return "; ".join(reasons) if reasons else None


class RestrictFields(Handler):
    """Limit the property set to ``allowed``.

    Writes to other properties are rejected and reads of them are suppressed.
    """

    def __init__(self, allowed: Iterable[str]):
        self.allowed = frozenset(allowed)

    def on_read(self, target: TargetView, name: str, value: Any) -> ReadAction:
        if name in self.allowed:
            return ReadAction.PASS
        return ReadAction.SUPPRESS

    def validate(self, target: TargetView, name: str, value: Any) -> str | None:
        if name in self.allowed:
            return None
        return f"{name} is not an allowed property"


class MissingPropertyNotice(Handler):
    """Log a notice when a read hits a property that does not exist."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO):
        self.log = log or logger
        self.level = level

    def on_read(self, target: TargetView, name: str, value: Any) -> ReadAction:
        if value is NOT_FOUND:
            self.log.log(self.level, "Property %r does not exist on %s", name, target.type_name)
        return ReadAction.PASS


class AuditHandler(Handler):
    """Forward every accepted write to an audit sink."""

    def __init__(self, sink: AuditSink, field: str = ALL_FIELDS):
        self.sink = sink
        self.field = field

    def on_write(self, target: TargetView, name: str, entry: AuditLogEntry) -> None:
        self.sink.emit(entry)


def as_handler(obj: Handler | HandlerSpec | Mapping[str, Any]) -> Handler:
    """Coerce a handler, spec or plain dict into a Handler."""
    if isinstance(obj, Handler):
        return obj
    if isinstance(obj, HandlerSpec):
        return FunctionHandler(obj)
    if isinstance(obj, Mapping):
        return FunctionHandler(HandlerSpec.model_validate(dict(obj)))
    raise TypeError(f"Cannot use {type(obj).__name__} as a handler")
