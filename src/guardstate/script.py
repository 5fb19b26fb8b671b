"""Script runner - replays reads, writes and counter steps through guarded proxies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import SimpleNamespace
from typing import Any, cast

import yaml
from pydantic import BaseModel, Field, model_validator

from guardstate.audit import AuditSink
from guardstate.config import GuardConfig, build_handlers
from guardstate.counter import guarded_counter
from guardstate.errors import NOT_FOUND, ValidationRejected, format_value
from guardstate.proxy import read, wrap, write


class StepKind(str, Enum):
    """Kind of script step."""

    SET = "set"
    GET = "get"
    INCREMENT = "increment"
    DECREMENT = "decrement"


class Step(BaseModel):
    """A single script step.

    Written in scripts as ``{set: name, value: v}``, ``{get: name}``,
    ``{increment: n}`` or ``{decrement: n}``.
    """

    kind: StepKind
    property: str | None = None
    value: Any = None
    times: int = Field(default=1, ge=0)

    @model_validator(mode="before")
    @classmethod
    def from_shorthand(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "kind" in data:
            return data
        for kind in StepKind:
            if kind.value not in data:
                continue
            arg = data[kind.value]
            if kind in (StepKind.SET, StepKind.GET):
                return {"kind": kind, "property": arg, "value": data.get("value")}
            return {"kind": kind, "times": 1 if arg is None else arg}
        raise ValueError(f"step needs one of {', '.join(k.value for k in StepKind)}: {data!r}")

    @model_validator(mode="after")
    def check_property(self) -> Step:
        if self.kind in (StepKind.SET, StepKind.GET) and not self.property:
            raise ValueError(f"{self.kind.value} step needs a property name")
        return self

    def describe(self) -> str:
        if self.kind == StepKind.SET:
            return f"set {self.property} = {format_value(self.value)}"
        if self.kind == StepKind.GET:
            return f"get {self.property}"
        return f"{self.kind.value} x{self.times}"


class Script(BaseModel):
    """Initial record values and the steps to replay."""

    initial: dict[str, Any] = Field(default_factory=dict)
    steps: list[Step] = Field(default_factory=list)


@dataclass
class StepResult:
    """Result of replaying one step."""

    step: Step
    ok: bool
    value: Any = None
    message: str | None = None


def load_script(path: Path) -> Script:
    """Load a script from a YAML or JSON file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return Script.model_validate(data)


def run_script(script: Script, config: GuardConfig, sink: AuditSink) -> list[StepResult]:
    """Replay every step of a script.

    Property steps go to a record built from ``script.initial``; counter steps
    go to the process-wide counter. Both use the handler chain ``config``
    describes, auditing to ``sink``.
    """
    record = wrap(SimpleNamespace(**script.initial), build_handlers(config, sink=sink))
    counter = guarded_counter(config=config, sink=sink)
    results: list[StepResult] = []

    for step in script.steps:
        if step.kind == StepKind.SET:
            outcome = write(record, cast(str, step.property), step.value)
            results.append(
                StepResult(
                    step=step,
                    ok=outcome.accepted,
                    value=step.value,
                    message=None if outcome.accepted else "; ".join(outcome.reasons),
                )
            )
        elif step.kind == StepKind.GET:
            value = read(record, cast(str, step.property))
            message = "not found" if value is NOT_FOUND else None
            results.append(StepResult(step=step, ok=True, value=value, message=message))
        else:
            results.append(_run_counter_step(counter, step))

    return results


def _run_counter_step(counter: Any, step: Step) -> StepResult:
    move = counter.increment if step.kind == StepKind.INCREMENT else counter.decrement
    try:
        for _ in range(step.times):
            move()
    except ValidationRejected as e:
        return StepResult(step=step, ok=False, value=counter.get_count(), message="; ".join(e.reasons))
    return StepResult(step=step, ok=True, value=counter.get_count())


def format_results(results: list[StepResult]) -> str:
    """Format step results for display."""
    lines = []
    rejected = 0
    for i, result in enumerate(results, 1):
        icon = "✓" if result.ok else "✗"  # checkmark / x mark
        line = f"  {icon} {i}. {result.step.describe()}"
        if result.step.kind != StepKind.SET:
            line += f" -> {format_value(result.value)}"
        if result.message:
            line += f"\n      {result.message}"
        if not result.ok:
            rejected += 1
        lines.append(line)

    summary = f"\n{len(results) - rejected} accepted, {rejected} rejected ({len(results)} total)"
    return "\n".join(lines) + summary
