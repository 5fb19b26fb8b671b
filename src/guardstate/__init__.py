"""guardstate - a single-instance counter behind validating, auditing proxies."""

import logging

from guardstate.audit import (
    AuditLogEntry,
    AuditSink,
    ConsoleSink,
    FanOutSink,
    JsonLinesSink,
    LoggingSink,
    MemorySink,
    capture_audit,
)
from guardstate.errors import (
    NOT_FOUND,
    AlreadyConstructed,
    ConfigError,
    FrozenHolderError,
    GuardStateError,
    RuleSyntaxError,
    ValidationRejected,
)
from guardstate.handlers import (
    AuditHandler,
    FunctionHandler,
    Handler,
    HandlerSpec,
    MissingPropertyNotice,
    ReadAction,
    RestrictFields,
    RuleValidator,
)
from guardstate.holder import CounterState, get_instance
from guardstate.proxy import (
    GuardedProxy,
    TargetView,
    WriteOutcome,
    WriteStatus,
    apply,
    read,
    wrap,
    write,
)
from guardstate.counter import GuardedCounter, counter_handlers, guarded_counter

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    # Holder
    "CounterState",
    "get_instance",
    # Proxy
    "GuardedProxy",
    "TargetView",
    "WriteOutcome",
    "WriteStatus",
    "apply",
    "read",
    "wrap",
    "write",
    # Handlers
    "AuditHandler",
    "FunctionHandler",
    "Handler",
    "HandlerSpec",
    "MissingPropertyNotice",
    "ReadAction",
    "RestrictFields",
    "RuleValidator",
    # Counter handle
    "GuardedCounter",
    "counter_handlers",
    "guarded_counter",
    # Audit
    "AuditLogEntry",
    "AuditSink",
    "ConsoleSink",
    "FanOutSink",
    "JsonLinesSink",
    "LoggingSink",
    "MemorySink",
    "capture_audit",
    # Errors
    "NOT_FOUND",
    "AlreadyConstructed",
    "ConfigError",
    "FrozenHolderError",
    "GuardStateError",
    "RuleSyntaxError",
    "ValidationRejected",
]
