"""
Tests for the guarded counter handle.

These tests verify that:
1. The handle drives the one shared counter
2. Steps go through validation and audit
3. Concurrent steps through handles and the holder lose no updates
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from guardstate.audit import MemorySink
from guardstate.config import GuardConfig
from guardstate.errors import ValidationRejected
from guardstate.handlers import AuditHandler, MissingPropertyNotice, RuleValidator
from guardstate.holder import get_instance
from guardstate.counter import GuardedCounter, counter_handlers, guarded_counter


class TestGuardedCounter:
    """Test counter steps through the proxy."""

    def test_three_increments_one_decrement(self):
        counter = guarded_counter()
        counter.increment()
        counter.increment()
        counter.increment()
        counter.decrement()
        assert counter.get_count() == 2

    def test_steps_return_new_value(self):
        counter = guarded_counter()
        assert counter.increment() == 1
        assert counter.decrement() == 0
        assert counter.decrement() == -1

    def test_handles_share_the_holder(self):
        first = guarded_counter()
        second = guarded_counter()
        first.increment()
        second.increment()
        assert first.get_count() == second.get_count() == get_instance().get_count() == 2

    def test_each_step_is_audited(self, sink):
        counter = guarded_counter(sink=sink)
        counter.increment()
        counter.decrement()
        assert [(e.old_value, e.new_value) for e in sink.entries] == [(0, 1), (1, 0)]
        assert all(e.property == "count" for e in sink.entries)

    def test_rejected_step_leaves_count(self, sink):
        counter = GuardedCounter(get_instance(), [RuleValidator({"count": "min(0)"}), AuditHandler(sink)])
        with pytest.raises(ValidationRejected, match="must be >= 0"):
            counter.decrement()
        assert counter.get_count() == 0
        assert len(sink) == 0

    def test_add_reports_without_raising(self):
        counter = GuardedCounter(get_instance(), [RuleValidator({"count": "max(5)"})])
        assert counter.add(5).accepted
        outcome = counter.add(1)
        assert not outcome.accepted
        assert counter.get_count() == 5

    def test_built_from_config(self, sink):
        config = GuardConfig(fields={"count": "between(0, 2)"}, notice_missing=False)
        counter = guarded_counter(config=config, sink=sink)
        counter.increment()
        counter.increment()
        with pytest.raises(ValidationRejected):
            counter.increment()
        assert counter.get_count() == 2
        assert len(sink) == 2

    def test_explicit_handlers_win_over_config(self):
        config = GuardConfig(fields={"count": "max(0)"})
        counter = guarded_counter([], config=config)
        assert counter.increment() == 1

    def test_counter_only_exposes_count(self):
        counter = guarded_counter()
        assert "count" in repr(counter)

    def test_concurrent_steps_lose_no_updates(self):
        counter = guarded_counter(sink=MemorySink())
        state = get_instance()
        rounds = 300

        def through_handle(_):
            for _ in range(rounds):
                counter.increment()

        def around_handle(_):
            for _ in range(rounds):
                state.decrement()

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(through_handle, i) for i in range(6)]
            futures += [pool.submit(around_handle, i) for i in range(2)]
            for f in futures:
                f.result()

        assert counter.get_count() == (6 - 2) * rounds

    def test_concurrent_audit_is_complete(self):
        sink = MemorySink()
        counter = guarded_counter(sink=sink)

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(lambda _: counter.increment(), range(200)))

        assert len(sink) == 200
        # Each step saw the value the previous one wrote
        assert sorted(e.new_value for e in sink.entries) == list(range(1, 201))

    def test_strict_config_without_count_rule(self, sink):
        config = GuardConfig(fields={"age": "numeric", "name": "min_length(2)"}, strict=True)
        counter = guarded_counter(config=config, sink=sink)

        assert counter.get_count() == 0
        assert counter.increment() == 1
        assert [e.new_value for e in sink.entries] == [1]

    def test_counter_chain_takes_only_the_count_rule(self):
        config = GuardConfig(fields={"age": "numeric", "count": "min(0)"}, strict=True)
        chain = counter_handlers(config, sink=MemorySink())

        assert [type(h) for h in chain] == [RuleValidator, MissingPropertyNotice, AuditHandler]
        assert list(chain[0].rules.fields) == ["count"]

    def test_handles_do_not_warn_about_sharing(self, caplog):
        with caplog.at_level(logging.WARNING, logger="guardstate"):
            guarded_counter()
            guarded_counter()
        assert "already behind a guarded proxy" not in caplog.text
