"""Shared fixtures: asyncio backend, in-memory store, fake LiveScore API."""

import pytest

from scoreline.database import build_engine, build_session_factory, init_db
from scoreline.etl.livescore import set_request_budget
from scoreline.store import SQLStore
from tests.helpers import FakeLiveScore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def unlimited_budget():
    set_request_budget(None)
    yield
    set_request_budget(None)


@pytest.fixture
async def db_engine():
    engine = build_engine("sqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def store(db_engine):
    return SQLStore(build_session_factory(db_engine))


@pytest.fixture
def fake_api():
    return FakeLiveScore()
