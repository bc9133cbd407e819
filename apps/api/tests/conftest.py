from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_DISABLED", "true")

from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from wbcrm import audit, events
from wbcrm.authz.models import User
from wbcrm.core.auth import issue_session_token
from wbcrm.core.config import get_settings
from wbcrm.core.database import Base, get_db
from wbcrm.main import app
from wbcrm.middleware.rate_limit import reset_rate_limiter


ADMIN_ID = "admin-1"
SDR_ID = "user-1"
CLOSER_ID = "user-2"
OTHER_SDR_ID = "user-3"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    events.published_events.clear()
    reset_rate_limiter()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
    reset_rate_limiter()
    get_settings.cache_clear()


@pytest.fixture()
def users(db_session: Session) -> dict[str, User]:
    started = datetime(2026, 1, 1, tzinfo=timezone.utc)
    rows = {
        "admin": User(id=ADMIN_ID, name="Ana Admin", email="ana@wb.com.br", role="admin", created_at=started),
        "sdr": User(id=SDR_ID, name="Bruno SDR", email="bruno@wb.com.br", role="sdr", created_at=started + timedelta(days=1)),
        "closer": User(
            id=CLOSER_ID,
            name="Carla Closer",
            email="carla@wb.com.br",
            role="closer",
            created_at=started + timedelta(days=2),
        ),
        "other": User(
            id=OTHER_SDR_ID,
            name="Diego SDR",
            email="diego@wb.com.br",
            role="sdr",
            created_at=started + timedelta(days=3),
        ),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


def bearer(user_id: str, role: str | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_session_token(user_id, role)}"}


@pytest.fixture()
def auth() -> dict[str, dict[str, str]]:
    return {
        "admin": bearer(ADMIN_ID, "admin"),
        "sdr": bearer(SDR_ID, "sdr"),
        "closer": bearer(CLOSER_ID, "closer"),
        "other": bearer(OTHER_SDR_ID, "sdr"),
    }


@pytest.fixture()
def client(db_session: Session, users: dict[str, User]) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def share(client: TestClient, auth: dict[str, dict[str, str]]) -> Callable[[str, str, str], None]:
    def _share(entity_type: str, entity_id: str, user_id: str) -> None:
        response = client.post(
            "/api/crm/shares",
            json={"entity_type": entity_type, "entity_id": entity_id, "user_id": user_id},
            headers=auth["admin"],
        )
        assert response.status_code == 201, response.text

    return _share
