from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ipgeo.auth import issue_token, register_user
from ipgeo.database import build_engine, get_session, init_db
from ipgeo.main import app, get_geolocation_client
from ipgeo.models.db_models import User
from tests.common import FakeGeolocationClient


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    """A fresh SQLite file per test, so sessions in the app and in the test see committed data only."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ipgeo-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def provider() -> FakeGeolocationClient:
    return FakeGeolocationClient()


@pytest.fixture
def client(session_factory: sessionmaker[Session], provider: FakeGeolocationClient) -> Iterator[TestClient]:
    def _get_session() -> Iterator[Session]:
        with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_geolocation_client] = lambda: provider
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _make_user(session_factory: sessionmaker[Session], name: str, email: str) -> User:
    with session_factory() as session:
        return register_user(session, name, email, "secret-password")


@pytest.fixture
def user(session_factory: sessionmaker[Session]) -> User:
    return _make_user(session_factory, "Jane Doe", "jane@example.com")


@pytest.fixture
def other_user(session_factory: sessionmaker[Session]) -> User:
    return _make_user(session_factory, "John Roe", "john@example.com")


@pytest.fixture
def token(session_factory: sessionmaker[Session], user: User) -> str:
    with session_factory() as session:
        return issue_token(session, user, "auth_token")
