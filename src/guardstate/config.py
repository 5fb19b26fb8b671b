"""Configuration management for guardstate.

Loads and validates guardstate.yaml configuration files and turns them into
a handler chain.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from guardstate.audit import AuditSink, ConsoleSink, JsonLinesSink, LoggingSink, MemorySink
from guardstate.errors import ConfigError, Diagnostic, RuleSyntaxError
from guardstate.handlers import AuditHandler, Handler, MissingPropertyNotice, RestrictFields, RuleValidator
from guardstate.rules import RuleSet, compile_rules

CONFIG_NAMES = (
    "guardstate.yaml",
    "guardstate.yml",
    ".guardstate.yaml",
    ".guardstate.yml",
)


class SinkKind(str, Enum):
    """Where audit entries go."""

    MEMORY = "memory"  # Kept in process, inspectable
    LOGGING = "logging"  # Standard logging, logger "guardstate.audit.trail"
    CONSOLE = "console"  # Rich console on stderr
    JSONL = "jsonl"  # Appended to a JSON-lines file


class AuditConfig(BaseModel):
    """Configuration for the audit sink."""

    sink: SinkKind = SinkKind.MEMORY
    """Which sink receives audit entries."""

    path: str = "audit.jsonl"
    """File for the jsonl sink, relative to the project root."""


class LoggingConfig(BaseModel):
    """Configuration for log output."""

    level: str = "INFO"

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> str:
        level = str(v).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {v!r}")
        return level


class GuardConfig(BaseModel):
    """Root configuration for guardstate."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = "0.1"
    """Config file version."""

    fields: dict[str, str] = Field(default_factory=dict)
    """Field name -> rule expression."""

    strict: bool = False
    """Restrict the property set to the declared fields."""

    notice_missing: bool = True
    """Log a notice on reads of properties that do not exist."""

    audit: AuditConfig = Field(default_factory=AuditConfig)

    log: LoggingConfig = Field(default_factory=LoggingConfig, alias="logging")

    @field_validator("fields", mode="before")
    @classmethod
    def ensure_mapping(cls, v: Any) -> dict[str, str]:
        if v is None:
            return {}
        return v

    @field_validator("fields")
    @classmethod
    def check_rules(cls, v: dict[str, str]) -> dict[str, str]:
        # Surface rule syntax errors at load time
        try:
            compile_rules(v)
        except RuleSyntaxError as e:
            raise ValueError(str(e)) from e
        return v

    def rule_set(self) -> RuleSet:
        """Parsed rules for the declared fields."""
        return compile_rules(self.fields)


def find_config(project_root: Path) -> Path | None:
    """Return the first config file found in ``project_root``."""
    for name in CONFIG_NAMES:
        candidate = project_root / name
        if candidate.exists():
            return candidate
    return None


def load_config(config_path: Path | None = None, project_root: Path | None = None) -> GuardConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Explicit path to config file. If None, searches for guardstate.yaml.
        project_root: Project root directory. Defaults to cwd.

    Returns:
        Parsed configuration. Returns default config if no file found.

    Raises:
        ConfigError: If the file is not valid YAML or fails validation.
    """
    project_root = project_root or Path.cwd()

    if config_path is None:
        config_path = find_config(project_root)

    if config_path is None or not config_path.exists():
        return GuardConfig()

    diag = Diagnostic(str(config_path))
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {config_path}: {e}") from e

    if not isinstance(data, dict):
        diag.problem("top level", f"expected a mapping, got {type(data).__name__}")
        diag.hint("The top level of the config must be a mapping")
        raise ConfigError(f"Invalid config {config_path}", diag)

    try:
        return GuardConfig.model_validate(data)
    except ValidationError as e:
        for err in e.errors():
            location = ".".join(str(part) for part in err["loc"])
            diag.problem(location, err["msg"])
        diag.hint("Run 'guardstate check' on the file for details")
        raise ConfigError(f"Invalid config {config_path}", diag) from e


def resolve_paths(config: GuardConfig, project_root: Path) -> GuardConfig:
    """Resolve the relative audit path against ``project_root`` (new instance)."""
    path = config.audit.path
    if not Path(path).is_absolute():
        path = str((project_root / path).resolve())
    return config.model_copy(update={"audit": config.audit.model_copy(update={"path": path})})


def build_sink(audit: AuditConfig) -> AuditSink:
    """Create the sink an AuditConfig describes."""
    if audit.sink == SinkKind.LOGGING:
        return LoggingSink()
    if audit.sink == SinkKind.CONSOLE:
        return ConsoleSink()
    if audit.sink == SinkKind.JSONL:
        return JsonLinesSink(audit.path)
    return MemorySink()


def build_handlers(config: GuardConfig, sink: AuditSink | None = None) -> list[Handler]:
    """Turn a configuration into an ordered handler chain.

    Order: field restriction (strict only), rule validation, missing-property
    notice, audit.
    """
    handlers: list[Handler] = []
    if config.strict:
        handlers.append(RestrictFields(config.fields))
    if config.fields:
        handlers.append(RuleValidator(config.rule_set()))
    if config.notice_missing:
        handlers.append(MissingPropertyNotice())
    handlers.append(AuditHandler(sink if sink is not None else build_sink(config.audit)))
    return handlers
