"""
Shared fixtures: a controllable clock, seeded in-memory stores, the
service under test and a TestClient bound to an app built around them.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from database import MemoryStore
from main import create_app
from schemas import Dataset, User
from service import GatePassService

START = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


def seeded_dataset() -> Dataset:
    return Dataset(
        users=[
            User(id="S1", name="Alice", password="alice-pw", role="Student"),
            User(id="S2", name="Bob", password="bob-pw", role="Student"),
            User(id="M1", name="Mod1", password="mod-pw", role="Moderator"),
            User(id="G1", name="Gate1", password="gate-pw", role="Gatekeeper"),
        ]
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore(seeded_dataset())


@pytest.fixture
def service(store, clock):
    return GatePassService(store, clock=clock)


@pytest.fixture
def client(store, clock):
    app = create_app(store=store, clock=clock)
    return TestClient(app)
