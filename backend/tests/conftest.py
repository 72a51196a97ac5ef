import os
import pathlib
import sys
import tempfile

import httpx
import pytest


REPO_ROOT = pathlib.Path(__file__).resolve().parents[2]
sys.path.append(str(REPO_ROOT))

SPACE_ID = "space-test"

CARD_RATE_URL = "https://fx.test/tarjeta"
OFFICIAL_RATE_URL = "https://fx.test/oficial"


def pytest_configure():
    if os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URL"):
        return
    temp_dir = tempfile.mkdtemp(prefix="finflow-tests-")
    db_path = pathlib.Path(temp_dir) / "pytest.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"


@pytest.fixture(scope="session")
def sqlite_engine():
    from backend.app import models  # noqa: F401
    from backend.app.db import Base, engine

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def sqlite_session(sqlite_engine):
    from backend.app.db import Base, SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        session.close()


@pytest.fixture()
def store(sqlite_session):
    from backend.app.store import SqlStore

    return SqlStore(sqlite_session)


@pytest.fixture()
def audit(store):
    from backend.app.services.audit_service import StoreAuditRecorder

    return StoreAuditRecorder(store)


def quote_transport(card=None, official=None):
    """httpx transport answering the two rate URLs; None means 503."""

    def handler(request: httpx.Request) -> httpx.Response:
        value = card if str(request.url) == CARD_RATE_URL else official
        if value is None:
            return httpx.Response(503, json={"error": "down"})
        return httpx.Response(200, json={"compra": value, "venta": value})

    return httpx.MockTransport(handler)


def make_converter(card=None, official=None, **overrides):
    from backend.app.config import FxSettings
    from backend.app.services.fx_service import CurrencyConverter

    settings = FxSettings(
        card_rate_url=CARD_RATE_URL,
        official_rate_url=OFFICIAL_RATE_URL,
        **overrides,
    )
    client = httpx.Client(transport=quote_transport(card=card, official=official))
    return CurrencyConverter(settings, client=client)


@pytest.fixture()
def api_client(sqlite_engine, sqlite_session):
    from backend.app.api.deps import get_converter
    from backend.app.db import get_db
    from backend.app.main import app
    from fastapi.testclient import TestClient

    def _get_test_db():
        yield sqlite_session

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_converter] = lambda: make_converter(card=1300.0)
    client = TestClient(app, headers={"X-Space-Id": SPACE_ID})
    try:
        yield client
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_converter, None)


class FlakyStore:
    """Delegates to a real store, failing the chosen operations."""

    def __init__(
        self,
        inner,
        *,
        fail_insert=None,
        fail_update=None,
        update_matches_nothing=False,
        fail_delete=False,
    ):
        self.inner = inner
        self.fail_insert = fail_insert
        self.fail_update = fail_update
        self.update_matches_nothing = update_matches_nothing
        self.fail_delete = fail_delete

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def update(self, table, values, filters):
        from backend.app.errors import PersistenceError

        if table == self.fail_update:
            if self.update_matches_nothing:
                return None
            raise PersistenceError(f"could not update {table}")
        return self.inner.update(table, values, filters)

    def delete(self, table, filters):
        from backend.app.errors import PersistenceError

        if self.fail_delete:
            raise PersistenceError(f"could not delete {table}")
        return self.inner.delete(table, filters)

    def insert(self, table, values):
        from backend.app.errors import PersistenceError

        if table == self.fail_insert:
            raise PersistenceError(f"could not insert {table}")
        return self.inner.insert(table, values)


class NullAuditRecorder:
    """Audit recorder that drops every event."""

    def record(self, event):
        return None
