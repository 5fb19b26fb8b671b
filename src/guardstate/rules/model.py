"""Rule models and the built-in rule catalogue.

A Rule is a parsed, serializable constraint on a single value. Checking a
value returns None when it passes, or a short reason when it does not.
"""

from __future__ import annotations

import numbers
import re
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from guardstate.errors import NOT_FOUND

Checker = Callable[..., "str | None"]


@dataclass(frozen=True)
class RuleDef:
    """Catalogue entry for a rule name."""

    name: str
    check: Checker
    min_args: int = 0
    max_args: int | None = 0  # None = variadic
    numeric_args: bool = False
    summary: str = ""


CATALOGUE: dict[str, RuleDef] = {}


def rule(
    name: str,
    min_args: int = 0,
    max_args: int | None = 0,
    numeric_args: bool = False,
) -> Callable[[Checker], Checker]:
    """Register a checker function under a rule name."""

    def decorator(fn: Checker) -> Checker:
        summary = (fn.__doc__ or "").strip().partition("\n")[0]
        CATALOGUE[name] = RuleDef(name, fn, min_args, max_args, numeric_args, summary)
        return fn

    return decorator


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _describe(value: Any) -> str:
    return type(value).__name__


# =============================================================================
# Built-in rules
# =============================================================================


@rule("numeric")
def _numeric(value: Any) -> str | None:
    """Value is a real number (bool and numeric strings are not)."""
    if _is_number(value):
        return None
    return f"must be numeric, got {_describe(value)}"


@rule("integer")
def _integer(value: Any) -> str | None:
    """Value is an int."""
    if isinstance(value, int) and not isinstance(value, bool):
        return None
    return f"must be an integer, got {_describe(value)}"


@rule("string")
def _string(value: Any) -> str | None:
    """Value is a str."""
    if isinstance(value, str):
        return None
    return f"must be a string, got {_describe(value)}"


@rule("required")
def _required(value: Any) -> str | None:
    """Value is present and not null."""
    if value is None or value is NOT_FOUND:
        return "is required"
    return None


@rule("min_length", 1, 1, numeric_args=True)
def _min_length(value: Any, n: int) -> str | None:
    """Value has at least n items or characters."""
    try:
        size = len(value)
    except TypeError:
        return f"must have a length, got {_describe(value)}"
    if size < n:
        return f"must have length >= {n}, got {size}"
    return None


@rule("max_length", 1, 1, numeric_args=True)
def _max_length(value: Any, n: int) -> str | None:
    """Value has at most n items or characters."""
    try:
        size = len(value)
    except TypeError:
        return f"must have a length, got {_describe(value)}"
    if size > n:
        return f"must have length <= {n}, got {size}"
    return None


@rule("min", 1, 1, numeric_args=True)
def _min(value: Any, lo: float) -> str | None:
    """Value is a number >= lo."""
    if not _is_number(value):
        return f"must be numeric, got {_describe(value)}"
    if value < lo:
        return f"must be >= {lo}, got {value}"
    return None


@rule("max", 1, 1, numeric_args=True)
def _max(value: Any, hi: float) -> str | None:
    """Value is a number <= hi."""
    if not _is_number(value):
        return f"must be numeric, got {_describe(value)}"
    if value > hi:
        return f"must be <= {hi}, got {value}"
    return None


@rule("between", 2, 2, numeric_args=True)
def _between(value: Any, lo: float, hi: float) -> str | None:
    """Value is a number in [lo, hi]."""
    if not _is_number(value):
        return f"must be numeric, got {_describe(value)}"
    if not lo <= value <= hi:
        return f"must be between {lo} and {hi}, got {value}"
    return None


@rule("one_of", 1, None)
def _one_of(value: Any, *choices: Any) -> str | None:
    """Value equals one of the listed choices."""
    if value in choices:
        return None
    allowed = ", ".join(repr(c) for c in choices)
    return f"must be one of {allowed}, got {value!r}"


@rule("matches", 1, 1)
def _matches(value: Any, pattern: str) -> str | None:
    """Value is a string matching the regular expression."""
    if not isinstance(value, str):
        return f"must be a string, got {_describe(value)}"
    if re.search(pattern, value) is None:
        return f"must match {pattern!r}"
    return None


# =============================================================================
# Models
# =============================================================================


class Rule(BaseModel):
    """A single parsed rule, e.g. ``between(0, 150)``."""

    model_config = ConfigDict(frozen=True)

    name: str
    args: tuple[Any, ...] = ()

    def check(self, value: Any) -> str | None:
        """Return None if value passes, otherwise a reason."""
        return CATALOGUE[self.name].check(value, *self.args)

    def to_expression(self) -> str:
        """Render back to rule-expression syntax."""
        if not self.args:
            return self.name
        rendered = ", ".join(_render_arg(a) for a in self.args)
        return f"{self.name}({rendered})"


class FieldRules(BaseModel):
    """All rules that apply to one field."""

    field: str
    expression: str
    rules: list[Rule] = Field(default_factory=list)

    def check(self, value: Any) -> list[str]:
        """Run every rule; return the reasons of those that failed."""
        reasons = []
        for r in self.rules:
            reason = r.check(value)
            if reason is not None:
                reasons.append(f"{self.field} {reason}")
        return reasons


class RuleSet(BaseModel):
    """Rules for a set of fields, keyed by field name."""

    version: str = "0.1"
    fields: dict[str, FieldRules] = Field(default_factory=dict)

    def for_field(self, name: str) -> FieldRules | None:
        return self.fields.get(name)


def _render_arg(arg: Any) -> str:
    if arg is None:
        return "null"
    if isinstance(arg, bool):
        return "true" if arg else "false"
    return repr(arg)
