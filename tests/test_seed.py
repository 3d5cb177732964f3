from __future__ import annotations

from collections.abc import Generator
from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from projects_api.core.config import get_settings
from projects_api.core.database import Base
from projects_api.customfields.errors import ValidationFailed
from projects_api.customfields.models import Project, ProjectCustomField, ProjectCustomFieldSection
from projects_api.customfields.seed import DEV_PROJECT_IDENTIFIER, dev_custom_fields_seeder
from projects_api.customfields.service import mapping_store, value_store


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


def test_seed_creates_project_using_every_field(db_session: Session) -> None:
    assert dev_custom_fields_seeder.applicable(db_session) is True

    project = dev_custom_fields_seeder.seed(db_session)

    assert project.identifier == DEV_PROJECT_IDENTIFIER
    fields = db_session.scalars(select(ProjectCustomField)).all()
    assert {field.field_format for field in fields} == {"bool", "string", "text", "int", "float", "date", "list"}
    assert mapping_store.active_mappings(project) == {field.id for field in fields}

    by_format = {field.field_format: field for field in fields}
    assert value_store.custom_value_for(project, by_format["bool"]).typed_value is True
    assert value_store.custom_value_for(project, by_format["int"]).typed_value == 42
    assert value_store.custom_value_for(project, by_format["date"]).typed_value == date(2024, 1, 1)
    assert value_store.custom_value_for(project, by_format["list"]) is None

    assert dev_custom_fields_seeder.applicable(db_session) is False


def test_seed_is_repeatable(db_session: Session) -> None:
    first = dev_custom_fields_seeder.seed(db_session)
    first_id = first.id

    second = dev_custom_fields_seeder.seed(db_session)

    assert second.id != first_id
    assert db_session.scalar(select(func.count()).select_from(Project)) == 1
    assert db_session.scalar(select(func.count()).select_from(ProjectCustomFieldSection)) == 1
    assert db_session.scalar(select(func.count()).select_from(ProjectCustomField)) == 7


def test_failed_reseed_keeps_the_previous_project(db_session: Session) -> None:
    first = dev_custom_fields_seeder.seed(db_session)
    first_id = first.id
    other = ProjectCustomFieldSection(name="Other", position=2)
    db_session.add(other)
    db_session.flush()
    db_session.add(
        ProjectCustomField(name="Mandatory", field_format="string", section_id=other.id, is_required=True, position=1)
    )
    db_session.commit()

    with pytest.raises(ValidationFailed) as exc_info:
        dev_custom_fields_seeder.seed(db_session)

    assert [failure.field_name for failure in exc_info.value.failures] == ["Mandatory"]
    kept = db_session.scalar(select(Project).where(Project.identifier == DEV_PROJECT_IDENTIFIER))
    assert kept is not None
    assert kept.id == first_id
    assert db_session.scalar(select(func.count()).select_from(Project)) == 1
