"""Shared fixtures for the rate limiter tests."""

import pytest

from keylimiter.stores.memory import InMemoryStore


class FakeClock:
    """Controllable time source shared by a store and its limiters."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def set(self, now: float) -> None:
        self.now = now


@pytest.fixture
def clock():
    """Clock starting at t=0."""
    return FakeClock()


@pytest.fixture
def store(clock):
    """In-memory store driven by the fake clock."""
    return InMemoryStore(clock=clock)
