"""Rule expression parser.

Uses lark for parsing and transforms the parse tree into Rule models, then
checks every rule against the catalogue (known name, arity, argument types).
"""

import ast
import re
from pathlib import Path
from typing import Any, Mapping

from lark import Lark, Transformer, v_args
from lark.exceptions import LarkError, UnexpectedInput

from guardstate.errors import Diagnostic, RuleSyntaxError, suggest_rule

from .model import CATALOGUE, FieldRules, Rule, RuleSet

# Load grammar from file adjacent to this module
GRAMMAR_PATH = Path(__file__).parent / "grammar.lark"


class RuleTransformer(Transformer[Any, Any]):
    """Transform lark parse tree into unchecked Rule models."""

    def start(self, items: list[Any]) -> list[Rule]:
        return list(items)

    def bare_rule(self, items: list[Any]) -> Rule:
        """name or name()"""
        return Rule(name=str(items[0]))

    def call_rule(self, items: list[Any]) -> Rule:
        """name(arg, ...)"""
        return Rule(name=str(items[0]), args=tuple(items[1]))

    def args(self, items: list[Any]) -> list[Any]:
        return list(items)

    # =========================================================================
    # Terminals
    # =========================================================================

    @v_args(inline=True)
    def NAME(self, token: Any) -> str:
        return str(token)

    @v_args(inline=True)
    def number(self, token: Any) -> int | float:
        s = str(token)
        if "." in s or "e" in s.lower():
            return float(s)
        return int(s)

    @v_args(inline=True)
    def string(self, token: Any) -> str:
        """Remove quotes and resolve escapes."""
        return ast.literal_eval(str(token))

    def true(self, _items: list[Any]) -> bool:
        return True

    def false(self, _items: list[Any]) -> bool:
        return False

    def null(self, _items: list[Any]) -> None:
        return None


class RuleParser:
    """Parser for rule expressions."""

    def __init__(self) -> None:
        self._parser = Lark(
            GRAMMAR_PATH.read_text(),
            parser="lalr",
            transformer=RuleTransformer(),
        )

    def parse(self, text: str) -> list[Rule]:
        """Parse a rule expression into checked rules."""
        try:
            rules: list[Rule] = self._parser.parse(text)  # type: ignore[assignment]
        except UnexpectedInput as e:
            diag = (
                Diagnostic(text)
                .problem(f"column {e.column}", "unexpected input")
                .hint("Join rules with 'and', e.g. \"integer and min(0)\"")
                .hint("Quote string arguments, e.g. one_of('a', 'b')")
            )
            raise RuleSyntaxError(f"Invalid rule expression: {text!r}", diag) from e
        except LarkError as e:
            raise RuleSyntaxError(f"Invalid rule expression: {text!r}", Diagnostic(text).problem("parser", str(e))) from e

        for r in rules:
            _check_rule(r, text)
        return rules

    def parse_field(self, field: str, text: str) -> FieldRules:
        """Parse the rule expression for one field."""
        return FieldRules(field=field, expression=text, rules=self.parse(text))

    def parse_mapping(self, fields: Mapping[str, str]) -> RuleSet:
        """Parse a field -> expression mapping into a RuleSet."""
        return RuleSet(
            fields={name: self.parse_field(name, text) for name, text in fields.items()}
        )


def _check_rule(r: Rule, text: str) -> None:
    """Validate a parsed rule against the catalogue."""
    diag = Diagnostic(text)
    definition = CATALOGUE.get(r.name)
    if definition is None:
        diag.problem(r.name, "unknown rule")
        hint = suggest_rule(r.name, sorted(CATALOGUE))
        if hint:
            diag.hint(hint)
        diag.hint(f"Known rules: {', '.join(sorted(CATALOGUE))}")
        raise RuleSyntaxError(f"Unknown rule: {r.name}", diag)

    n = len(r.args)
    too_few = n < definition.min_args
    too_many = definition.max_args is not None and n > definition.max_args
    if too_few or too_many:
        if definition.max_args is None:
            expected = f"at least {definition.min_args}"
        elif definition.min_args == definition.max_args:
            expected = str(definition.min_args)
        else:
            expected = f"{definition.min_args} to {definition.max_args}"
        diag.problem(r.to_expression(), f"expected {expected} argument(s), got {n}")
        raise RuleSyntaxError(f"Wrong number of arguments for {r.name}", diag)

    if definition.numeric_args:
        for arg in r.args:
            if isinstance(arg, bool) or not isinstance(arg, (int, float)):
                diag.problem(r.to_expression(), f"{arg!r} is not a number")
                raise RuleSyntaxError(f"{r.name} takes numeric arguments", diag)

    if r.name == "matches":
        pattern = r.args[0]
        try:
            re.compile(pattern)
        except (re.error, TypeError) as e:
            diag.problem(r.to_expression(), str(e))
            raise RuleSyntaxError(f"Invalid pattern for matches: {pattern!r}", diag) from e


# Module-level parser instance for convenience
_parser: RuleParser | None = None


def get_parser() -> RuleParser:
    """Get or create the module-level parser instance."""
    global _parser
    if _parser is None:
        _parser = RuleParser()
    return _parser


def parse_rules(text: str) -> list[Rule]:
    """Parse a rule expression into checked rules."""
    return get_parser().parse(text)


def compile_rules(fields: Mapping[str, str]) -> RuleSet:
    """Parse a field -> expression mapping into a RuleSet."""
    return get_parser().parse_mapping(fields)
