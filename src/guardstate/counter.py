"""Guarded counter handle.

GuardedCounter is the handle consumers are given: the shared CounterState
behind a proxy, so every step is validated and audited. It is passed around
explicitly rather than imported as a global.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from guardstate.audit import AuditSink, MemorySink
from guardstate.config import GuardConfig, build_sink
from guardstate.handlers import AuditHandler, Handler, HandlerSpec, MissingPropertyNotice, RestrictFields, RuleValidator
from guardstate.holder import CounterState, get_instance
from guardstate.proxy import GuardedProxy, WriteOutcome, apply, read, wrap

logger = logging.getLogger(__name__)

COUNT = "count"


class GuardedCounter:
    """Increment, decrement and read a CounterState through a handler chain.

    The chain only ever sees the ``count`` property. Steps that fail
    validation raise ValidationRejected and leave the count unchanged.
    """

    def __init__(
        self,
        state: CounterState,
        handlers: Iterable[Handler | HandlerSpec | Mapping[str, Any]] = (),
    ):
        chain = [RestrictFields({COUNT}), *handlers]
        self._proxy: GuardedProxy = wrap(state, chain, lock=state.mutation_lock, shared=True)

    def increment(self) -> int:
        """Add one through the proxy; return the new count."""
        return self._step(1)

    def decrement(self) -> int:
        """Subtract one through the proxy; return the new count."""
        return self._step(-1)

    def add(self, delta: int) -> WriteOutcome:
        """Add ``delta`` through the proxy and report the outcome without raising."""
        return apply(self._proxy, COUNT, lambda v: v + delta)

    def get_count(self) -> int:
        """Current count, read through the proxy."""
        return read(self._proxy, COUNT)

    def _step(self, delta: int) -> int:
        outcome = self.add(delta)
        outcome.raise_for_status()
        return outcome.value

    def __repr__(self) -> str:
        return f"<GuardedCounter count={self.get_count()}>"


def counter_handlers(config: GuardConfig, sink: AuditSink | None = None) -> list[Handler]:
    """Handler chain for the counter described by a configuration.

    Only the ``count`` rule is taken from ``fields``. The ``strict`` field
    restriction is for records; the counter is always limited to ``count``.
    """
    handlers: list[Handler] = []
    if COUNT in config.fields:
        handlers.append(RuleValidator({COUNT: config.fields[COUNT]}))
    if config.notice_missing:
        handlers.append(MissingPropertyNotice())
    handlers.append(AuditHandler(sink if sink is not None else build_sink(config.audit)))
    return handlers


def guarded_counter(
    handlers: Iterable[Handler | HandlerSpec | Mapping[str, Any]] | None = None,
    *,
    config: GuardConfig | None = None,
    sink: AuditSink | None = None,
) -> GuardedCounter:
    """Build a GuardedCounter over the process-wide CounterState.

    Args:
        handlers: Explicit handler chain. Takes precedence over ``config``.
        config: Configuration to build the chain from. Only its ``count``
            rule applies.
        sink: Audit sink used when neither handlers nor config are given,
            or passed to the config's audit handler. Defaults to a MemorySink.
    """
    state = get_instance()
    if handlers is not None:
        return GuardedCounter(state, handlers)
    if config is not None:
        return GuardedCounter(state, counter_handlers(config, sink=sink))
    return GuardedCounter(state, [AuditHandler(sink if sink is not None else MemorySink())])
