# tests/conftest.py
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kas_server.app.api import app, get_carrier, get_image_store
from kas_server.app.db import get_db, init_db
from tests.factories import FakeCarrier, FakeImageStore


@pytest.fixture
def engine():
    # one shared in-memory connection so every session sees the same tables
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture
def carrier():
    return FakeCarrier()


@pytest.fixture
def image_store():
    return FakeImageStore()


@pytest.fixture
def client(session_factory, carrier, image_store):
    def _get_db():
        sess = session_factory()
        try:
            yield sess
        finally:
            sess.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_carrier] = lambda: carrier
    app.dependency_overrides[get_image_store] = lambda: image_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
