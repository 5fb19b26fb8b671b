"""
Tests for the built-in handlers.
"""

import logging

import pytest

from guardstate.errors import NOT_FOUND
from guardstate.handlers import (
    AuditHandler,
    FunctionHandler,
    Handler,
    HandlerSpec,
    MissingPropertyNotice,
    RestrictFields,
    RuleValidator,
    as_handler,
)
from guardstate.proxy import read, wrap, write
from guardstate.rules import compile_rules


class TestHandlerBase:
    """Test the default hooks."""

    def test_defaults_accept_everything(self, person):
        proxy = wrap(person, [Handler()])
        assert write(proxy, "age", "anything").accepted
        assert proxy.age == "anything"

    def test_wildcard_applies_to_all(self):
        assert Handler().applies_to("x")

    def test_field_handler_applies_to_its_field(self):
        handler = as_handler({"field": "age"})
        assert handler.applies_to("age")
        assert not handler.applies_to("name")


class TestHandlerSpec:
    """Test coercion of declarative entries."""

    def test_snake_case_keys(self):
        spec = HandlerSpec.model_validate({"field": "age", "on_write": print})
        assert spec.on_write is print

    def test_camel_case_keys(self):
        spec = HandlerSpec.model_validate({"onRead": print, "validate": len, "onWrite": repr})
        assert spec.on_read is print
        assert spec.validate_fn is len
        assert spec.on_write is repr

    def test_as_handler_passes_handlers_through(self):
        handler = RestrictFields({"a"})
        assert as_handler(handler) is handler

    def test_as_handler_wraps_specs(self):
        assert isinstance(as_handler(HandlerSpec()), FunctionHandler)

    def test_as_handler_rejects_other_types(self):
        with pytest.raises(TypeError):
            as_handler("validate")


class TestRuleValidator:
    """Test declarative per-field validation."""

    def test_accepts_mapping_or_rule_set(self, person):
        for rules in ({"age": "numeric"}, compile_rules({"age": "numeric"})):
            proxy = wrap(person, [RuleValidator(rules)])
            assert not write(proxy, "age", "abc").accepted

    def test_fields_without_rules_pass(self, person):
        proxy = wrap(person, [RuleValidator({"age": "numeric"})])
        assert write(proxy, "name", 123).accepted

    def test_reasons_name_the_field(self, person):
        proxy = wrap(person, [RuleValidator({"name": "string and min_length(2)"})])
        outcome = write(proxy, "name", 7)
        assert outcome.reasons == ["name must be a string, got int; name must have a length, got int"]


class TestRestrictFields:
    """Test restricting the property set."""

    def test_rejects_writes_outside_the_set(self, person):
        proxy = wrap(person, [RestrictFields({"name"})])
        outcome = write(proxy, "age", 31)
        assert outcome.reasons == ["age is not an allowed property"]
        assert person.age == 30

    def test_suppresses_reads_outside_the_set(self, person):
        proxy = wrap(person, [RestrictFields({"name"})])
        assert proxy.name == "Alice"
        assert proxy.age is NOT_FOUND
        assert "age" not in proxy


class TestMissingPropertyNotice:
    """Test the 'property does not exist' notice."""

    def test_logs_missing_reads(self, person, caplog):
        proxy = wrap(person, [MissingPropertyNotice()])
        with caplog.at_level(logging.INFO, logger="guardstate"):
            assert read(proxy, "nickname") is NOT_FOUND
        assert "Property 'nickname' does not exist on Person" in caplog.text

    def test_silent_for_existing_reads(self, person, caplog):
        proxy = wrap(person, [MissingPropertyNotice()])
        with caplog.at_level(logging.INFO, logger="guardstate"):
            proxy.name
        assert "does not exist" not in caplog.text

    def test_custom_logger(self, person, caplog):
        log = logging.getLogger("tests.notice")
        proxy = wrap(person, [MissingPropertyNotice(log, level=logging.WARNING)])
        with caplog.at_level(logging.WARNING, logger="tests.notice"):
            proxy.nickname
        assert caplog.records[0].name == "tests.notice"


class TestAuditHandler:
    """Test forwarding to sinks."""

    def test_one_entry_per_accepted_write(self, person, sink):
        proxy = wrap(person, [RuleValidator({"age": "numeric"}), AuditHandler(sink)])
        proxy.age = 31
        write(proxy, "age", "x")
        proxy.name = "Bob"
        assert [e.describe() for e in sink.entries] == ["age: 30 -> 31", "name: 'Alice' -> 'Bob'"]

    def test_field_scoped_audit(self, person, sink):
        proxy = wrap(person, [AuditHandler(sink, field="age")])
        proxy.age = 31
        proxy.name = "Bob"
        assert [e.property for e in sink.entries] == ["age"]
