"""Guarded proxies.

wrap() puts a target behind a handler chain. Every read goes through the
handlers' on_read hooks; every write goes through validate, then the
target's own setter, then on_write. The target itself is never handed out:
handlers see it through a read-only TargetView.

    proxy = wrap(person, [RuleValidator({"age": "numeric"}), AuditHandler(sink)])
    proxy.age = 42          # accepted, one audit entry
    proxy.age = "abc"       # raises ValidationRejected, person.age unchanged
    write(proxy, "age", 1)  # explicit API, returns a WriteOutcome
"""

from __future__ import annotations

import inspect
import logging
import threading
import weakref
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable

from guardstate.audit import AuditLogEntry
from guardstate.errors import NOT_FOUND, ValidationRejected
from guardstate.handlers import Handler, HandlerSpec, ReadAction, as_handler
from guardstate.holder import CounterState

logger = logging.getLogger(__name__)


class WriteStatus(str, Enum):
    """Result of a proxied write."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass
class WriteOutcome:
    """Explicit result of a proxied write."""

    property: str
    status: WriteStatus
    value: Any = None  # The value that was written or proposed
    reasons: list[str] = field(default_factory=list)
    entry: AuditLogEntry | None = None  # Set for accepted writes

    @property
    def accepted(self) -> bool:
        return self.status == WriteStatus.ACCEPTED

    def raise_for_status(self) -> None:
        """Raise ValidationRejected if the write was rejected."""
        if not self.accepted:
            raise ValidationRejected(self.property, self.value, self.reasons)


# =============================================================================
# Target access
# =============================================================================


def _is_private(name: str) -> bool:
    return name.startswith("_")


class _AttributeAccess:
    """Data attributes of an ordinary object. Methods are not properties."""

    @staticmethod
    def get(target: Any, name: str) -> Any:
        if _is_private(name):
            return NOT_FOUND
        value = getattr(target, name, NOT_FOUND)
        if inspect.isroutine(value):
            return NOT_FOUND
        return value

    @staticmethod
    def set(target: Any, name: str, value: Any) -> None:
        setattr(target, name, value)

    @staticmethod
    def names(target: Any) -> list[str]:
        return [n for n in dir(target) if _AttributeAccess.get(target, n) is not NOT_FOUND]


class _MappingAccess:
    """Keys of a mutable mapping."""

    @staticmethod
    def get(target: MutableMapping[str, Any], name: str) -> Any:
        return target.get(name, NOT_FOUND)

    @staticmethod
    def set(target: MutableMapping[str, Any], name: str, value: Any) -> None:
        target[name] = value

    @staticmethod
    def names(target: MutableMapping[str, Any]) -> list[str]:
        return [str(k) for k in target]


class TargetView:
    """Read-only view of a proxied target, handed to handlers."""

    __slots__ = ("__target", "__access")

    def __init__(self, target: Any, access: type[_AttributeAccess] | type[_MappingAccess]):
        self.__target = target
        self.__access = access

    def get(self, name: str, default: Any = None) -> Any:
        value = self.__access.get(self.__target, name)
        return default if value is NOT_FOUND else value

    def names(self) -> list[str]:
        return self.__access.names(self.__target)

    @property
    def type_name(self) -> str:
        return type(self.__target).__name__

    def __getitem__(self, name: str) -> Any:
        value = self.__access.get(self.__target, name)
        if value is NOT_FOUND:
            raise KeyError(name)
        return value

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.__access.get(self.__target, name) is not NOT_FOUND

    def __repr__(self) -> str:
        return f"<TargetView of {self.type_name}>"


# =============================================================================
# Interceptor
# =============================================================================


def _reason(verdict: Any, handler: Handler) -> str | None:
    """Normalize a validate() return value to a rejection reason or None."""
    if verdict is None or verdict is True:
        return None
    if verdict is False or verdict == "":
        return f"rejected by {handler!r}"
    if isinstance(verdict, str):
        return verdict
    raise TypeError(f"{handler!r}.validate returned {type(verdict).__name__}, expected str, bool or None")


class Interceptor:
    """Routes reads and writes of one target through a handler chain."""

    def __init__(
        self,
        target: Any,
        handlers: Iterable[Handler | HandlerSpec | Mapping[str, Any]] = (),
        lock: threading.RLock | None = None,
    ):
        self._target = target
        self._access = _MappingAccess if isinstance(target, MutableMapping) else _AttributeAccess
        self._view = TargetView(target, self._access)
        self._handlers: tuple[Handler, ...] = tuple(as_handler(h) for h in handlers)
        self._lock = lock or threading.RLock()

    @property
    def handlers(self) -> tuple[Handler, ...]:
        return self._handlers

    @property
    def type_name(self) -> str:
        return self._view.type_name

    def _chain(self, name: str) -> list[Handler]:
        return [h for h in self._handlers if h.applies_to(name)]

    def names(self) -> list[str]:
        return self._access.names(self._target)

    def has(self, name: str) -> bool:
        return self.read(name) is not NOT_FOUND

    def read(self, name: str) -> Any:
        """Read a property. Missing or suppressed properties yield NOT_FOUND."""
        value = self._access.get(self._target, name)
        suppressed = False
        for handler in self._chain(name):
            action = handler.on_read(self._view, name, value)
            if action is ReadAction.SUPPRESS or action is False:
                suppressed = True
        if suppressed:
            logger.debug("Read of %r on %s suppressed", name, self.type_name)
            return NOT_FOUND
        return value

    def write(self, name: str, value: Any) -> WriteOutcome:
        """Validate and store ``value``; report the outcome."""
        with self._lock:
            old = self._access.get(self._target, name)
            return self._commit(name, old, value)

    def apply(self, name: str, fn: Callable[[Any], Any]) -> WriteOutcome:
        """Read-modify-write ``name`` atomically through the handler chain."""
        with self._lock:
            old = self._access.get(self._target, name)
            return self._commit(name, old, fn(old))

    def _commit(self, name: str, old: Any, value: Any) -> WriteOutcome:
        # Caller holds self._lock
        reasons = self._validate(name, value)
        if reasons:
            logger.warning("Rejected write to %r on %s: %s", name, self.type_name, "; ".join(reasons))
            return WriteOutcome(name, WriteStatus.REJECTED, value, reasons)

        self._access.set(self._target, name, value)
        entry = AuditLogEntry(
            property=name,
            old_value=None if old is NOT_FOUND else old,
            new_value=value,
        )
        logger.debug("Wrote %s on %s", entry.describe(), self.type_name)
        # The value is stored; every write hook still gets to record it
        for handler in self._chain(name):
            try:
                handler.on_write(self._view, name, entry)
            except Exception:
                logger.exception("on_write of %r failed for %s on %s", handler, name, self.type_name)
        return WriteOutcome(name, WriteStatus.ACCEPTED, value, entry=entry)

    def _validate(self, name: str, value: Any) -> list[str]:
        if self._access is _AttributeAccess:
            if _is_private(name):
                return [f"{name} is private"]
            if inspect.isroutine(getattr(self._target, name, None)):
                return [f"{name} is a method, not a property"]
        reasons = []
        for handler in self._chain(name):
            reason = _reason(handler.validate(self._view, name, value), handler)
            if reason is not None:
                reasons.append(reason)
        return reasons


# =============================================================================
# Proxy facade
# =============================================================================


class GuardedProxy:
    """Attribute and item view of a target behind an Interceptor.

    Reads return NOT_FOUND instead of raising. Assignments that fail
    validation raise ValidationRejected; use write() for an explicit result.
    """

    __slots__ = ("__core",)

    def __init__(self, core: Interceptor):
        object.__setattr__(self, "_GuardedProxy__core", core)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") or name == "_GuardedProxy__core":
            raise AttributeError(name)
        return self.__core.read(name)

    def __setattr__(self, name: str, value: Any) -> None:
        self.__core.write(name, value).raise_for_status()

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"Cannot delete {name!r} through a guarded proxy")

    def __getitem__(self, name: str) -> Any:
        return self.__core.read(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.__core.write(name, value).raise_for_status()

    def __delitem__(self, name: str) -> None:
        raise AttributeError(f"Cannot delete {name!r} through a guarded proxy")

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.__core.has(name)

    def __dir__(self) -> list[str]:
        return sorted(self.__core.names())

    def __copy__(self) -> GuardedProxy:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> GuardedProxy:
        return self

    def __reduce__(self) -> Any:
        raise TypeError("Guarded proxies cannot be pickled")

    def __repr__(self) -> str:
        return f"<GuardedProxy of {self.__core.type_name}>"


# Targets currently behind a live proxy, keyed by id(target). The interceptor
# keeps its target alive, so an id cannot be reused while its entry exists.
_wrapped: weakref.WeakValueDictionary[int, Interceptor] = weakref.WeakValueDictionary()
_wrapped_lock = threading.Lock()


def wrap(
    target: Any,
    handlers: Iterable[Handler | HandlerSpec | Mapping[str, Any]] = (),
    *,
    lock: threading.RLock | None = None,
    shared: bool = False,
) -> GuardedProxy:
    """Wrap ``target`` in a guarded proxy.

    Args:
        target: Object or mutable mapping to guard. Never copied.
        handlers: Handler chain, applied in order. Entries may be Handler
            instances, HandlerSpec models or dicts with keys
            ``field``, ``on_read``, ``validate``, ``on_write``.
        lock: Lock serialising writes. Defaults to the holder's own lock for
            a CounterState, otherwise a fresh lock per proxy.
        shared: The target is meant to sit behind several proxies, so wrapping
            it again is not reported.

    Returns:
        The proxy.
    """
    if isinstance(target, GuardedProxy):
        raise TypeError("Target is already a guarded proxy; add handlers to the existing one instead")
    if lock is None and isinstance(target, CounterState):
        lock = target.mutation_lock

    core = Interceptor(target, handlers, lock)
    with _wrapped_lock:
        if _wrapped.get(id(target)) is not None and not shared:
            logger.warning(
                "%s is already behind a guarded proxy; use the existing proxy so all access shares one handler chain",
                core.type_name,
            )
        elif not shared:
            _wrapped[id(target)] = core
    logger.debug("Wrapped %s with %d handler(s)", core.type_name, len(core.handlers))
    return GuardedProxy(core)


def _core(proxy: GuardedProxy) -> Interceptor:
    if not isinstance(proxy, GuardedProxy):
        raise TypeError(f"Expected a GuardedProxy, got {type(proxy).__name__}")
    return object.__getattribute__(proxy, "_GuardedProxy__core")


def read(proxy: GuardedProxy, name: str) -> Any:
    """Read ``name`` through the proxy's handler chain."""
    return _core(proxy).read(name)


def write(proxy: GuardedProxy, name: str, value: Any) -> WriteOutcome:
    """Write ``name`` through the proxy's handler chain; never raises on rejection."""
    return _core(proxy).write(name, value)


def apply(proxy: GuardedProxy, name: str, fn: Callable[[Any], Any]) -> WriteOutcome:
    """Atomically replace ``name`` with ``fn(current)`` through the handler chain."""
    return _core(proxy).apply(name, fn)


def handlers_of(proxy: GuardedProxy) -> tuple[Handler, ...]:
    """The proxy's handler chain, in order."""
    return _core(proxy).handlers
