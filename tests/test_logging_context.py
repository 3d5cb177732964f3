from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from projects_api.core.auth import AuthUser, get_current_user
from projects_api.core.config import get_settings
from projects_api.core.database import Base, get_db
from projects_api.logging import JsonLogFormatter
from projects_api.main import app


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
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(
            sub="log-user",
            roles=["admin"],
            permissions={"projects.read", "projects.write", "projects.custom_fields.manage"},
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.get(f"/api/projects/{uuid.uuid4()}", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "projects_api.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/projects/{id}"
        and getattr(record, "status_code", None) == 404
        and record.levelno == logging.WARNING
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_health_requests_are_not_logged(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    assert client.get("/health").status_code == 200

    assert not [record for record in caplog.records if record.name == "projects_api.request"]


def test_invalid_save_is_logged_with_failures(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    section = client.post("/api/projects/custom-field-sections", json={"name": "General"})
    assert section.status_code == 201
    field = client.post(
        "/api/projects/custom-fields",
        json={"name": "Owner", "field_format": "string", "section_id": section.json()["id"], "is_required": True},
    )
    assert field.status_code == 201

    response = client.post(
        "/api/projects",
        json={"name": "Unowned", "identifier": "unowned"},
        headers={"X-Correlation-Id": "log-invalid-1"},
    )
    assert response.status_code == 422

    records = [record for record in caplog.records if record.getMessage() == "project_save_invalid"]
    assert records
    record = records[-1]
    assert record.name == "projects_api.customfields"
    assert getattr(record, "correlation_id", None) == "log-invalid-1"
    assert getattr(record, "failure_count", None) == 1
    assert getattr(record, "failures", None) == [
        {"field_id": field.json()["id"], "field_name": "Owner", "reason": "blank"}
    ]


def test_json_formatter_keeps_known_fields_only() -> None:
    record = logging.makeLogRecord(
        {
            "name": "projects_api.customfields",
            "levelname": "INFO",
            "msg": "custom_field_created",
            "custom_field_id": "cf-1",
            "section_id": "sec-1",
            "password": "secret",
            "correlation_id": "fmt-1",
            "actor_user_id": "user-9",
        }
    )

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["msg"] == "custom_field_created"
    assert payload["correlation_id"] == "fmt-1"
    assert payload["actor_user_id"] == "user-9"
    assert payload["fields"] == {"custom_field_id": "cf-1", "section_id": "sec-1"}
