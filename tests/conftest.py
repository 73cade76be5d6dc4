import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["AUTOMATION_ENABLED"] = "false"
os.environ["ADMIN_EMAILS"] = "admin@local.test"

import pytest
from sqlalchemy.pool import StaticPool

from evaluation_cycles.main import app
from evaluation_cycles.db.base import Base
from evaluation_cycles.db.session import get_db, make_engine, make_session_factory

engine = make_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
TestingSessionLocal = make_session_factory(engine)


@pytest.fixture()
def db_session():
    """
    Fresh schema per test on a single shared in-memory SQLite connection, so
    application code can commit freely and the TestClient worker thread sees
    the same data.
    """
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def override_get_db(request):
    if "db_session" not in request.fixturenames:
        yield
        return

    session = request.getfixturevalue("db_session")

    def _get_db_override():
        yield session

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def session_factory(db_session):
    """Session factory bound to the test database, for code that opens its own sessions."""
    return TestingSessionLocal
