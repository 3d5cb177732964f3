from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from projects_api import audit, events
from projects_api.core.config import get_settings
from projects_api.customfields.catalog import AttributeCatalog
from projects_api.customfields.errors import CustomFieldsError, ValidationFailed, ValidationFailure
from projects_api.customfields.mappings import MappingStore
from projects_api.customfields.models import CustomValue, Project, ProjectCustomField, ProjectCustomFieldSection
from projects_api.customfields.schemas import (
    CustomFieldCreate,
    CustomFieldRead,
    CustomFieldUpdate,
    CustomValueRead,
    ProjectCreate,
    ProjectRead,
    ProjectUpdate,
    ProjectValidationRead,
    SectionCreate,
    SectionRead,
    ValidationFailureRead,
)
from projects_api.customfields.validation import SaveRequest, Validator
from projects_api.customfields.values import ValueStore
from projects_api.metrics import observe_project_save, observe_validation_failures


logger = logging.getLogger("projects_api.customfields")
tracer = trace.get_tracer("projects_api.customfields")

attribute_catalog = AttributeCatalog()
mapping_store = MappingStore()
value_store = ValueStore(attribute_catalog, mapping_store)
validator = Validator(attribute_catalog, mapping_store)


def _conflict_detail(exc: IntegrityError) -> str:
    message = str(exc.orig).lower()
    if "identifier" in message:
        return "project identifier already exists"
    return "project custom field data conflicts with stored rows"


class CustomFieldService:
    def __init__(self, catalog: AttributeCatalog = attribute_catalog, mappings: MappingStore = mapping_store) -> None:
        self.catalog = catalog
        self.mappings = mappings

    def list_sections(self, session: Session) -> list[SectionRead]:
        return [SectionRead.model_validate(section) for section in self.catalog.sections(session)]

    def create_section(self, session: Session, dto: SectionCreate) -> SectionRead:
        section = ProjectCustomFieldSection(name=dto.name.strip(), position=dto.position)
        session.add(section)
        session.commit()
        session.refresh(section)
        return SectionRead.model_validate(section)

    def list_definitions(self, session: Session, section_id: uuid.UUID | None = None) -> list[CustomFieldRead]:
        return [CustomFieldRead.model_validate(field) for field in self.catalog.all_fields(session, section_id)]

    def get_definition(self, session: Session, field_id: uuid.UUID) -> ProjectCustomField:
        field = self.catalog.get_field(session, field_id)
        if field is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="custom field not found")
        return field

    def create_definition(self, session: Session, dto: CustomFieldCreate) -> CustomFieldRead:
        if self.catalog.get_section(session, dto.section_id) is None:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="custom field section not found")
        self._validate_possible_values(dto.field_format, dto.possible_values)

        field = ProjectCustomField(
            name=dto.name.strip(),
            field_format=dto.field_format,
            section_id=dto.section_id,
            is_required=dto.is_required,
            possible_values=dto.possible_values,
            position=dto.position,
        )
        session.add(field)
        session.flush()
        if field.is_required:
            self._activate_required(session, field)
        session.commit()
        session.refresh(field)
        logger.info("custom_field_created", extra={"custom_field_id": str(field.id), "section_id": str(field.section_id)})
        return CustomFieldRead.model_validate(field)

    def update_definition(self, session: Session, field_id: uuid.UUID, dto: CustomFieldUpdate) -> CustomFieldRead:
        field = self.get_definition(session, field_id)
        payload = dto.model_dump(exclude_unset=True)
        if "possible_values" in payload:
            self._validate_possible_values(field.field_format, payload["possible_values"])

        became_required = payload.get("is_required") is True and not field.is_required
        for key in ["name", "is_required", "possible_values", "position"]:
            if key in payload and payload[key] is not None:
                setattr(field, key, payload[key])
        session.add(field)
        session.flush()
        if became_required:
            self._activate_required(session, field)
        session.commit()
        session.refresh(field)
        return CustomFieldRead.model_validate(field)

    def _activate_required(self, session: Session, field: ProjectCustomField) -> None:
        # required fields apply to every existing project, even ones that never set them
        if get_settings().custom_fields_activate_required:
            self.mappings.activate_for_all_projects(session, field)

    def _validate_possible_values(self, field_format: str, possible_values: list[str] | None) -> None:
        if field_format == "list":
            if not possible_values:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="possible_values required for list",
                )
            if any(not isinstance(item, str) or not item.strip() for item in possible_values):
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="possible_values must be non-empty strings",
                )
            if len(set(possible_values)) != len(possible_values):
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="possible_values must be unique",
                )
            return
        if possible_values:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="possible_values only supported for list",
            )


class ProjectService:
    def __init__(
        self,
        catalog: AttributeCatalog = attribute_catalog,
        mappings: MappingStore = mapping_store,
        values: ValueStore = value_store,
        project_validator: Validator = validator,
    ) -> None:
        self.catalog = catalog
        self.mappings = mappings
        self.values = values
        self.validator = project_validator

    def build_project(
        self,
        session: Session,
        *,
        name: str,
        identifier: str,
        custom_field_values: dict[Any, Any] | None = None,
        limit_validation_to_section_id: uuid.UUID | None = None,
    ) -> Project:
        project = Project(
            name=name,
            identifier=identifier,
            validation_scope_section_id=limit_validation_to_section_id,
        )
        if custom_field_values:
            self.values.assign_values(session, project, custom_field_values)
        return project

    def validate(self, session: Session, project: Project) -> list[ValidationFailure]:
        failures = self.validator.validate(session, SaveRequest.peek(project))
        project.custom_field_failures = failures
        return failures

    def is_valid(self, session: Session, project: Project) -> bool:
        return not self.validate(session, project)

    def save(self, session: Session, project: Project) -> bool:
        """Validate and commit ``project``.

        The validation scope is consumed by this attempt whatever its outcome.
        Returns False and leaves ``project.custom_field_failures`` populated
        when validation fails; nothing is committed in that case.
        """
        operation = "update" if project.is_persisted else "create"
        request = SaveRequest.consume(project)
        scoped = request.scope_section_id is not None

        with tracer.start_as_current_span("projects.project.save") as span:
            span.set_attribute("projects.operation", operation)
            span.set_attribute("projects.scoped_validation", scoped)
            try:
                failures = self.validator.validate(session, request)
            except CustomFieldsError as exc:
                span.set_status(Status(StatusCode.ERROR, type(exc).__name__))
                observe_project_save(operation, "rejected", scoped)
                raise

            project.custom_field_failures = failures
            if failures:
                span.set_status(Status(StatusCode.ERROR, "validation_failed"))
                observe_validation_failures([failure.reason for failure in failures])
                observe_project_save(operation, "invalid", scoped)
                logger.warning(
                    "project_save_invalid",
                    extra={
                        "project_id": str(project.id) if project.id else None,
                        "section_id": str(request.scope_section_id) if scoped else None,
                        "failure_count": len(failures),
                        "failures": [failure.as_dict() for failure in failures],
                    },
                )
                return False

            session.add(project)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                project.clear_released()
                observe_project_save(operation, "conflict", scoped)
                span.set_status(Status(StatusCode.ERROR, "integrity_error"))
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_conflict_detail(exc))
            project.clear_released()
            session.refresh(project)
            span.set_attribute("projects.project_id", str(project.id))

        observe_project_save(operation, "saved", scoped)
        return True

    def save_or_raise(self, session: Session, project: Project) -> None:
        if not self.save(session, project):
            raise ValidationFailed(project.custom_field_failures)

    def create_project(self, session: Session, dto: ProjectCreate) -> ProjectRead:
        project = self.build_project(
            session,
            name=dto.name.strip(),
            identifier=dto.identifier,
            custom_field_values=dto.custom_field_values,
            limit_validation_to_section_id=dto.limit_validation_to_section_id,
        )
        try:
            self.save_or_raise(session, project)
        except CustomFieldsError:
            session.rollback()
            raise

        after = self._snapshot(project)
        audit.record("projects.project", str(project.id), "create", None, after)
        events.publish(events.build_envelope("projects.project.created", {"project_id": str(project.id), **after}))
        return self.to_read(project)

    def update_project(self, session: Session, project_id: uuid.UUID, dto: ProjectUpdate) -> ProjectRead:
        project = self.get_project(session, project_id)
        before = self._snapshot(project)

        if dto.name is not None:
            project.name = dto.name.strip()
        try:
            if dto.custom_field_values:
                self.values.assign_values(session, project, dto.custom_field_values)
            project.validation_scope_section_id = dto.limit_validation_to_section_id
            self.save_or_raise(session, project)
        except CustomFieldsError:
            session.rollback()
            # rollback leaves unmapped attributes alone; the scope must not outlive this request
            project.validation_scope_section_id = None
            project.clear_released()
            raise

        after = self._snapshot(project)
        audit.record("projects.project", str(project.id), "update", before, after)
        events.publish(events.build_envelope("projects.project.updated", {"project_id": str(project.id), **after}))
        return self.to_read(project)

    def get_project(self, session: Session, project_id: uuid.UUID) -> Project:
        project = session.get(Project, project_id)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="project not found")
        return project

    def get_project_by_identifier(self, session: Session, identifier: str) -> Project | None:
        return session.scalar(select(Project).where(Project.identifier == identifier))

    def delete_project(self, session: Session, project_id: uuid.UUID) -> None:
        project = self.get_project(session, project_id)
        before = self._snapshot(project)
        session.delete(project)
        session.commit()
        audit.record("projects.project", str(project_id), "delete", before, None)
        events.publish(events.build_envelope("projects.project.deleted", {"project_id": str(project_id)}))

    def enable_custom_field(self, session: Session, project_id: uuid.UUID, field_id: uuid.UUID) -> ProjectRead:
        project = self.get_project(session, project_id)
        field = self.catalog.get_field(session, field_id)
        if field is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="custom field not found")
        _, created = self.mappings.ensure_mapped(project, field)
        if created:
            session.commit()
            project.clear_released()
            audit.record("projects.project", str(project.id), "custom_field_enabled", None, {"custom_field_id": str(field_id)})
        return self.to_read(project)

    def disable_custom_field(self, session: Session, project_id: uuid.UUID, field_id: uuid.UUID) -> ProjectRead:
        project = self.get_project(session, project_id)
        if not self.mappings.unmap(project, field_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="custom field not active for project")
        session.commit()
        project.clear_released()
        audit.record("projects.project", str(project.id), "custom_field_disabled", {"custom_field_id": str(field_id)}, None)
        return self.to_read(project)

    def available_custom_fields(self, session: Session, project_id: uuid.UUID) -> list[CustomFieldRead]:
        project = self.get_project(session, project_id)
        return [CustomFieldRead.model_validate(field) for field in self.catalog.available_fields(session, project)]

    def custom_value_for(self, session: Session, project_id: uuid.UUID, field_id: uuid.UUID) -> CustomValueRead:
        project = self.get_project(session, project_id)
        value = self.values.custom_value_for(project, field_id)
        if value is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="custom value not set")
        return self._to_value_read(value)

    def validation_report(
        self,
        session: Session,
        project_id: uuid.UUID,
        scope_section_id: uuid.UUID | None = None,
    ) -> ProjectValidationRead:
        project = self.get_project(session, project_id)
        project.validation_scope_section_id = scope_section_id
        try:
            failures = self.validate(session, project)
        finally:
            project.validation_scope_section_id = None
        return ProjectValidationRead(
            project_id=project.id,
            valid=not failures,
            scope_section_id=scope_section_id,
            failures=[
                ValidationFailureRead(field_id=item.field_id, field_name=item.field_name, reason=item.reason)
                for item in failures
            ],
        )

    def to_read(self, project: Project) -> ProjectRead:
        return ProjectRead(
            id=project.id,
            name=project.name,
            identifier=project.identifier,
            active_custom_field_ids=sorted(self.mappings.active_mappings(project), key=str),
            custom_field_values=[self._to_value_read(value) for value in self.values.custom_field_values(project)],
            created_at=project.created_at,
            updated_at=project.updated_at,
        )

    def _to_value_read(self, value: CustomValue) -> CustomValueRead:
        return CustomValueRead(
            custom_field_id=value.custom_field_id,
            field_format=value.custom_field.field_format,
            value=value.value,
            typed_value=value.typed_value,
        )

    def _snapshot(self, project: Project) -> dict[str, Any]:
        return {
            "name": project.name,
            "identifier": project.identifier,
            "custom_field_values": {
                str(value.custom_field_id): value.value for value in self.values.custom_field_values(project)
            },
        }


custom_field_service = CustomFieldService()
project_service = ProjectService()
