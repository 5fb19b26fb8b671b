"""
Tests for script loading and replay.
"""

import pytest
from pydantic import ValidationError

from guardstate.config import GuardConfig
from guardstate.errors import NOT_FOUND
from guardstate.script import Script, Step, StepKind, format_results, load_script, run_script


class TestStep:
    """Test the step shorthand."""

    def test_set_shorthand(self):
        step = Step.model_validate({"set": "age", "value": 3})
        assert (step.kind, step.property, step.value) == (StepKind.SET, "age", 3)
        assert step.describe() == "set age = 3"

    def test_get_shorthand(self):
        step = Step.model_validate({"get": "name"})
        assert step.kind == StepKind.GET
        assert step.describe() == "get name"

    def test_counter_shorthand(self):
        assert Step.model_validate({"increment": 4}).times == 4
        assert Step.model_validate({"decrement": None}).times == 1
        assert Step.model_validate({"decrement": 2}).describe() == "decrement x2"

    def test_unknown_step(self):
        with pytest.raises(ValidationError, match="step needs one of"):
            Step.model_validate({"jump": 1})

    def test_get_needs_property(self):
        with pytest.raises(ValidationError, match="needs a property name"):
            Step.model_validate({"kind": "get"})


class TestRunScript:
    """Test replaying steps."""

    def test_mixed_script(self, tmp_path, sink):
        path = tmp_path / "script.yaml"
        path.write_text(
            "initial: {name: Alice, age: 30}\n"
            "steps:\n"
            "  - {set: age, value: abc}\n"
            "  - {set: name, value: Al}\n"
            "  - {get: nickname}\n"
            "  - {increment: 3}\n"
            "  - {decrement: 1}\n"
        )
        config = GuardConfig(fields={"age": "numeric", "name": "string and min_length(2)"})
        results = run_script(load_script(path), config, sink)

        assert [r.ok for r in results] == [False, True, True, True, True]
        assert results[0].message == "age must be numeric, got str"
        assert results[2].value is NOT_FOUND
        assert results[2].message == "not found"
        assert results[4].value == 2
        # name write plus four counter steps
        assert len(sink) == 5

    def test_counter_step_stops_at_first_rejection(self, sink):
        script = Script.model_validate({"steps": [{"increment": 5}]})
        results = run_script(script, GuardConfig(fields={"count": "max(2)"}), sink)

        assert not results[0].ok
        assert results[0].value == 2
        assert results[0].message == "count must be <= 2, got 3"

    def test_format_results(self, sink):
        script = Script.model_validate({"initial": {"age": 1}, "steps": [{"set": "age", "value": "x"}, {"get": "age"}]})
        results = run_script(script, GuardConfig(fields={"age": "numeric"}), sink)
        output = format_results(results)

        assert "✗ 1. set age = 'x'" in output
        assert "✓ 2. get age -> 1" in output
        assert output.endswith("1 accepted, 1 rejected (2 total)")

    def test_strict_config_still_drives_the_counter(self, sink):
        script = Script.model_validate({"initial": {"age": 1}, "steps": [{"set": "nickname", "value": "x"}, {"increment": 1}]})
        results = run_script(script, GuardConfig(fields={"age": "numeric"}, strict=True), sink)

        assert results[0].message == "nickname is not an allowed property"
        assert results[1].ok
        assert results[1].value == 1
