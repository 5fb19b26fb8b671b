"""guardstate rules - declarative field constraints."""

from guardstate.rules.model import CATALOGUE, FieldRules, Rule, RuleDef, RuleSet
from guardstate.rules.parser import RuleParser, compile_rules, get_parser, parse_rules

__all__ = [
    # Models
    "CATALOGUE",
    "FieldRules",
    "Rule",
    "RuleDef",
    "RuleSet",
    # Parser
    "RuleParser",
    "compile_rules",
    "get_parser",
    "parse_rules",
]
