from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy.orm import Session

from projects_api.customfields.catalog import AttributeCatalog
from projects_api.customfields.errors import FieldParseError, IllegalScopeUsage, ValidationFailure
from projects_api.customfields.mappings import MappingStore
from projects_api.customfields.models import Project, ProjectCustomField
from projects_api.customfields.types import interpret, is_blank


@dataclass(frozen=True, slots=True)
class SaveRequest:
    """One save attempt of a project, optionally validating a single section only."""

    project: Project
    scope_section_id: uuid.UUID | None = None

    @classmethod
    def peek(cls, project: Project) -> SaveRequest:
        return cls(project=project, scope_section_id=project.validation_scope_section_id)

    @classmethod
    def consume(cls, project: Project) -> SaveRequest:
        request = cls.peek(project)
        project.validation_scope_section_id = None
        return request


class Validator:
    def __init__(self, catalog: AttributeCatalog, mapping_store: MappingStore) -> None:
        self._catalog = catalog
        self._mappings = mapping_store

    def universe(self, session: Session, request: SaveRequest) -> list[ProjectCustomField]:
        project = request.project
        # required fields bind even where auto-activation did not map them
        fields: dict[uuid.UUID, ProjectCustomField] = {field.id: field for field in self._catalog.required_fields(session)}
        for mapping in project.custom_field_mappings:
            fields.setdefault(mapping.custom_field_id, mapping.custom_field)

        if request.scope_section_id is not None:
            fields = {key: field for key, field in fields.items() if field.section_id == request.scope_section_id}
        return sorted(fields.values(), key=lambda field: (field.section.position, field.position, field.name))

    def validate(self, session: Session, request: SaveRequest) -> list[ValidationFailure]:
        project = request.project
        if request.scope_section_id is not None and not project.is_persisted:
            raise IllegalScopeUsage(request.scope_section_id)

        mapped = self._mappings.active_mappings(project)
        raw_values = {value.custom_field_id: value.value for value in project.custom_values}

        failures: list[ValidationFailure] = []
        for field in self.universe(session, request):
            raw = raw_values.get(field.id) if field.id in mapped else None
            if is_blank(raw):
                if field.is_required:
                    failures.append(ValidationFailure(field_id=field.id, reason="blank", field_name=field.name))
                continue
            try:
                interpret(field.field_type, raw)
            except FieldParseError as exc:
                failures.append(ValidationFailure(field_id=field.id, reason=exc.reason, field_name=field.name))
        return failures
