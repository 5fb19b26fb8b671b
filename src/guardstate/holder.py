"""Single-instance counter state.

CounterState owns the one shared integer counter of the process. Obtain it
with get_instance(); constructing it directly a second time raises
AlreadyConstructed. The holder's shape is fixed by ``__slots__`` and its
attributes cannot be reassigned from outside: the counter value is only
reachable through the accessors below.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, ClassVar

from guardstate.errors import AlreadyConstructed, FrozenHolderError

logger = logging.getLogger(__name__)


def _check_int(value: Any) -> int:
    # bool is an int subclass but never a valid count
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"count must be an int, got {type(value).__name__}")
    return value


class CounterState:
    """Process-wide counter with a construct-once gate."""

    __slots__ = ("_value", "_lock")

    _instance: ClassVar[CounterState | None] = None
    _gate: ClassVar[threading.RLock] = threading.RLock()
    constructed: ClassVar[bool] = False

    def __init__(self, initial: int = 0):
        cls = type(self)
        with cls._gate:
            if cls.constructed:
                raise AlreadyConstructed(cls.__name__)
            object.__setattr__(self, "_value", _check_int(initial))
            object.__setattr__(self, "_lock", threading.RLock())
            cls._instance = self
            cls.constructed = True
        logger.debug("Constructed %s with count=%d", cls.__name__, initial)

    @classmethod
    def get_instance(cls) -> CounterState:
        """Return the sole instance, constructing it on first call."""
        instance = cls._instance
        if instance is None:
            with cls._gate:
                instance = cls._instance or cls()
        return instance

    @classmethod
    def reset_for_tests(cls) -> None:
        """Forget the instance so the next get_instance() builds a fresh one.

        Only for test isolation. Handles obtained before the reset keep
        pointing at the old state.
        """
        with cls._gate:
            cls._instance = None
            cls.constructed = False

    # Accessors

    @property
    def count(self) -> int:
        """Current value. Assigning stores a new int atomically."""
        return self._value

    @count.setter
    def count(self, value: int) -> None:
        value = _check_int(value)
        with self._lock:
            object.__setattr__(self, "_value", value)

    @property
    def mutation_lock(self) -> threading.RLock:
        """Lock held by every read-modify-write on this counter."""
        return self._lock

    def get_count(self) -> int:
        """Return the current value without side effects."""
        return self._value

    def increment(self) -> int:
        """Add one and return the new value."""
        return self.update(lambda v: v + 1)[1]

    def decrement(self) -> int:
        """Subtract one and return the new value. There is no floor."""
        return self.update(lambda v: v - 1)[1]

    def update(self, fn: Callable[[int], int]) -> tuple[int, int]:
        """Apply ``fn`` to the value atomically; return ``(old, new)``."""
        with self._lock:
            old = self._value
            new = _check_int(fn(old))
            object.__setattr__(self, "_value", new)
        return old, new

    # Frozen shape

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "count":
            object.__setattr__(self, name, value)
            return
        raise FrozenHolderError(type(self).__name__, name)

    def __delattr__(self, name: str) -> None:
        raise FrozenHolderError(type(self).__name__, name)

    def __copy__(self) -> CounterState:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> CounterState:
        return self

    def __repr__(self) -> str:
        return f"<{type(self).__name__} count={self._value}>"


def get_instance() -> CounterState:
    """Return the process-wide CounterState."""
    return CounterState.get_instance()
