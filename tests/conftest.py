"""Shared fixtures for guardstate tests."""

import pytest

from guardstate.audit import MemorySink
from guardstate.holder import CounterState


@pytest.fixture(autouse=True)
def fresh_counter_state():
    """Give every test its own process-wide counter."""
    CounterState.reset_for_tests()
    yield
    CounterState.reset_for_tests()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


class Person:
    """Plain attribute target used across proxy tests."""

    def __init__(self, name: str = "Alice", age: int = 30):
        self.name = name
        self.age = age

    def greet(self) -> str:
        return f"Hello, {self.name}"


@pytest.fixture
def person() -> Person:
    return Person()
