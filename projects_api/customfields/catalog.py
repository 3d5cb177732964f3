from __future__ import annotations

import uuid
from collections.abc import Iterable

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from projects_api.customfields.models import Project, ProjectCustomField, ProjectCustomFieldSection


class AttributeCatalog:
    """Read side of the custom field definitions."""

    def _ordered(self) -> Select[tuple[ProjectCustomField]]:
        return (
            select(ProjectCustomField)
            .join(ProjectCustomFieldSection, ProjectCustomField.section_id == ProjectCustomFieldSection.id)
            .order_by(
                ProjectCustomFieldSection.position.asc(),
                ProjectCustomField.position.asc(),
                ProjectCustomField.name.asc(),
            )
        )

    def all_fields(self, session: Session, section_id: uuid.UUID | None = None) -> list[ProjectCustomField]:
        stmt = self._ordered()
        if section_id is not None:
            stmt = stmt.where(ProjectCustomField.section_id == section_id)
        return list(session.scalars(stmt).all())

    def required_fields(self, session: Session) -> list[ProjectCustomField]:
        return list(session.scalars(self._ordered().where(ProjectCustomField.is_required.is_(True))).all())

    def get_field(self, session: Session, field_id: uuid.UUID) -> ProjectCustomField | None:
        return session.get(ProjectCustomField, field_id)

    def fields_by_id(self, session: Session, field_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, ProjectCustomField]:
        ids = set(field_ids)
        if not ids:
            return {}
        rows = session.scalars(select(ProjectCustomField).where(ProjectCustomField.id.in_(ids))).all()
        return {row.id: row for row in rows}

    def sections(self, session: Session) -> list[ProjectCustomFieldSection]:
        stmt = select(ProjectCustomFieldSection).order_by(
            ProjectCustomFieldSection.position.asc(),
            ProjectCustomFieldSection.name.asc(),
        )
        return list(session.scalars(stmt).all())

    def get_section(self, session: Session, section_id: uuid.UUID) -> ProjectCustomFieldSection | None:
        return session.get(ProjectCustomFieldSection, section_id)

    def available_fields(self, session: Session, project: Project) -> list[ProjectCustomField]:
        # nothing is mapped before the first save, so every field is on offer
        if not project.is_persisted:
            return self.all_fields(session)

        mapped: dict[uuid.UUID, ProjectCustomField] = {}
        for mapping in project.custom_field_mappings:
            mapped.setdefault(mapping.custom_field_id, mapping.custom_field)
        return sorted(mapped.values(), key=lambda field: (field.section.position, field.position, field.name))
