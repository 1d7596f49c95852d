import os

# keep the module-level engine in server.py off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from smart_parking.allocation import ParkingManager
from smart_parking.db import make_engine, make_session_factory
from smart_parking.server import app, get_manager

ENTRY_TIME = datetime(2026, 3, 2, 8, 30)


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def manager(session_factory):
    m = ParkingManager(session_factory, clock=lambda: ENTRY_TIME)
    m.initialize()
    return m


@pytest.fixture
def client(manager):
    app.dependency_overrides[get_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()
