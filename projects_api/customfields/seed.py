from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from projects_api.customfields.errors import CustomFieldsError, ValidationFailed
from projects_api.customfields.models import Project, ProjectCustomField, ProjectCustomFieldSection
from projects_api.customfields.service import ProjectService, project_service


logger = logging.getLogger("projects_api.customfields.seed")

DEV_SECTION_NAME = "Development"
DEV_PROJECT_IDENTIFIER = "dev-custom-fields"
DEV_FIELD_PREFIX = "CF DEV"

_DEV_FIELDS: list[dict[str, Any]] = [
    {"name": f"{DEV_FIELD_PREFIX} boolean", "field_format": "bool", "sample": True},
    {"name": f"{DEV_FIELD_PREFIX} string", "field_format": "string", "sample": "A short string"},
    {"name": f"{DEV_FIELD_PREFIX} text", "field_format": "text", "sample": "A longer text\nspanning lines"},
    {"name": f"{DEV_FIELD_PREFIX} integer", "field_format": "int", "sample": 42},
    {"name": f"{DEV_FIELD_PREFIX} float", "field_format": "float", "sample": 3.5},
    {"name": f"{DEV_FIELD_PREFIX} date", "field_format": "date", "sample": date(2024, 1, 1)},
    {
        "name": f"{DEV_FIELD_PREFIX} list",
        "field_format": "list",
        "possible_values": ["Option A", "Option B", "Option C"],
        "sample": None,
    },
]


class DevelopmentCustomFieldsSeeder:
    """Creates a section of sample fields and a project that uses all of them."""

    def __init__(self, service: ProjectService) -> None:
        self._service = service

    def applicable(self, session: Session) -> bool:
        return self._service.get_project_by_identifier(session, DEV_PROJECT_IDENTIFIER) is None

    def seed(self, session: Session) -> Project:
        section = self._ensure_section(session)
        fields = [
            self._ensure_field(session, section, position, definition)
            for position, definition in enumerate(_DEV_FIELDS, start=1)
        ]
        session.commit()

        values = {field.id: definition["sample"] for field, definition in zip(fields, _DEV_FIELDS)}
        project = self._service.build_project(
            session,
            name="[dev] Custom fields",
            identifier=DEV_PROJECT_IDENTIFIER,
            custom_field_values=values,
        )
        # the previous dev project stays until its replacement is known to be valid
        failures = self._service.validate(session, project)
        if failures:
            raise ValidationFailed(failures)

        existing = self._service.get_project_by_identifier(session, DEV_PROJECT_IDENTIFIER)
        try:
            if existing is not None:
                session.delete(existing)
                session.flush()
            self._service.save_or_raise(session, project)
        except CustomFieldsError:
            session.rollback()
            raise
        logger.info("dev_custom_fields_seeded", extra={"project_id": str(project.id), "section_id": str(section.id)})
        return project

    def _ensure_section(self, session: Session) -> ProjectCustomFieldSection:
        section = session.scalar(select(ProjectCustomFieldSection).where(ProjectCustomFieldSection.name == DEV_SECTION_NAME))
        if section is None:
            section = ProjectCustomFieldSection(name=DEV_SECTION_NAME, position=1)
            session.add(section)
            session.flush()
        return section

    def _ensure_field(
        self,
        session: Session,
        section: ProjectCustomFieldSection,
        position: int,
        definition: dict[str, Any],
    ) -> ProjectCustomField:
        field = session.scalar(select(ProjectCustomField).where(ProjectCustomField.name == definition["name"]))
        if field is None:
            field = ProjectCustomField(
                name=definition["name"],
                field_format=definition["field_format"],
                possible_values=definition.get("possible_values"),
                section_id=section.id,
                position=position,
            )
            session.add(field)
            session.flush()
        return field


dev_custom_fields_seeder = DevelopmentCustomFieldsSeeder(project_service)
