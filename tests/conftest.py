"""Shared fixtures for task board tests."""

import threading
from datetime import datetime, timedelta

import pytest

from taskboard.schema import BoardState, Card, Column, Project, DEFAULT_COLORS


class MemoryCache:
    """In-memory stand-in for LocalCache."""

    def __init__(self, values=None):
        self.values = dict(values or {})
        self.writes = 0

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.values[key] = value
        self.writes += 1


class BlockingCache(MemoryCache):
    """A cache whose writes wait until `release` is set, so a save stays in flight."""

    def __init__(self, values=None):
        super().__init__(values)
        self.entered = threading.Event()
        self.release = threading.Event()

    def set(self, key, value):
        self.entered.set()
        self.release.wait(5)
        super().set(key, value)


@pytest.fixture
def tomorrow():
    return datetime.now() + timedelta(days=1)


@pytest.fixture
def board():
    """Two projects, three columns, a handful of cards."""
    now = datetime(2024, 5, 1, 9, 0)
    todo = Column(id=10, title="To Do", project_id=1, cards=(
        Card(id=100, title="Fix login", color=DEFAULT_COLORS[0], due_date=now + timedelta(days=1)),
        Card(id=101, title="Write docs", color=DEFAULT_COLORS[3]),
        Card(id=102, title="Old task", color=DEFAULT_COLORS[0], archived=True),
    ))
    doing = Column(id=11, title="Doing", project_id=2, cards=(
        Card(id=110, title="Deploy", color=DEFAULT_COLORS[1], due_date=now),
        Card(id=111, title="Review PR", color="#123456"),
    ))
    loose = Column(id=12, title="Ideas", cards=(
        Card(id=120, title="Dark mode", color=DEFAULT_COLORS[5], progress=30),
    ))
    return BoardState(
        projects=(Project(id=1, name="Web"), Project(id=2, name="Ops")),
        columns=(todo, doing, loose),
        expanded_cards={100: True, 110: True},
        next_id=200,
    )
