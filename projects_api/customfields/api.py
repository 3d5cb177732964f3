from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from projects_api.context import get_correlation_id
from projects_api.core.auth import AuthUser, get_current_user, require_permission
from projects_api.core.config import get_settings
from projects_api.core.database import get_db
from projects_api.customfields.errors import (
    CustomFieldsError,
    IllegalScopeUsage,
    UnknownField,
    ValidationFailed,
)
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
)
from projects_api.customfields.seed import dev_custom_fields_seeder
from projects_api.customfields.service import custom_field_service, project_service

custom_fields_router = APIRouter(prefix="/api/projects", tags=["projects.custom_fields"])
projects_router = APIRouter(prefix="/api/projects", tags=["projects"])


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    payload = ErrorEnvelope(code=code, message=message, details=details, correlation_id=correlation_id)
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def _failure_response(request: Request, exc: HTTPException | CustomFieldsError, code: str) -> JSONResponse:
    if isinstance(exc, HTTPException):
        return error_response(request, status_code=exc.status_code, code=code, message=str(exc.detail), details=exc.detail)
    if isinstance(exc, ValidationFailed):
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="projects_custom_fields_invalid",
            message=str(exc),
            details=[failure.as_dict() for failure in exc.failures],
        )
    if isinstance(exc, UnknownField):
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="projects_custom_fields_unknown",
            message=str(exc),
            details=exc.field_ids,
        )
    if isinstance(exc, IllegalScopeUsage):
        return error_response(
            request,
            status_code=status.HTTP_400_BAD_REQUEST,
            code="projects_validation_scope_not_allowed",
            message=str(exc),
            details={"section_id": str(exc.section_id)},
        )
    return error_response(request, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, code=code, message=str(exc))


@custom_fields_router.get("/custom-field-sections", response_model=list[SectionRead])
def list_sections(
    request: Request,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> list[SectionRead] | JSONResponse:
    try:
        require_permission(user, "projects.read")
        return custom_field_service.list_sections(db)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_sections_list_failed")


@custom_fields_router.post("/custom-field-sections", response_model=SectionRead, status_code=status.HTTP_201_CREATED)
def create_section(
    request: Request,
    dto: SectionCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> SectionRead | JSONResponse:
    try:
        require_permission(user, "projects.custom_fields.manage")
        return custom_field_service.create_section(db, dto)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_sections_create_failed")


@custom_fields_router.get("/custom-fields", response_model=list[CustomFieldRead])
def list_custom_fields(
    request: Request,
    section_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> list[CustomFieldRead] | JSONResponse:
    try:
        require_permission(user, "projects.read")
        return custom_field_service.list_definitions(db, section_id)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_custom_fields_list_failed")


@custom_fields_router.post("/custom-fields", response_model=CustomFieldRead, status_code=status.HTTP_201_CREATED)
def create_custom_field(
    request: Request,
    dto: CustomFieldCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> CustomFieldRead | JSONResponse:
    try:
        require_permission(user, "projects.custom_fields.manage")
        return custom_field_service.create_definition(db, dto)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_custom_fields_create_failed")


@custom_fields_router.patch("/custom-fields/{field_id}", response_model=CustomFieldRead)
def update_custom_field(
    request: Request,
    field_id: uuid.UUID,
    dto: CustomFieldUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> CustomFieldRead | JSONResponse:
    try:
        require_permission(user, "projects.custom_fields.manage")
        return custom_field_service.update_definition(db, field_id, dto)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_custom_fields_update_failed")


@projects_router.post("", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
def create_project(
    request: Request,
    dto: ProjectCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> ProjectRead | JSONResponse:
    try:
        require_permission(user, "projects.write")
        return project_service.create_project(db, dto)
    except (HTTPException, CustomFieldsError) as exc:
        return _failure_response(request, exc, "projects_create_failed")


@projects_router.get("/{project_id}", response_model=ProjectRead)
def get_project(
    request: Request,
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> ProjectRead | JSONResponse:
    try:
        require_permission(user, "projects.read")
        return project_service.to_read(project_service.get_project(db, project_id))
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_get_failed")


@projects_router.patch("/{project_id}", response_model=ProjectRead)
def update_project(
    request: Request,
    project_id: uuid.UUID,
    dto: ProjectUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> ProjectRead | JSONResponse:
    try:
        require_permission(user, "projects.write")
        return project_service.update_project(db, project_id, dto)
    except (HTTPException, CustomFieldsError) as exc:
        return _failure_response(request, exc, "projects_update_failed")


@projects_router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    request: Request,
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> Response:
    try:
        require_permission(user, "projects.write")
        project_service.delete_project(db, project_id)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_delete_failed")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@projects_router.get("/{project_id}/available-custom-fields", response_model=list[CustomFieldRead])
def list_available_custom_fields(
    request: Request,
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> list[CustomFieldRead] | JSONResponse:
    try:
        require_permission(user, "projects.read")
        return project_service.available_custom_fields(db, project_id)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_available_custom_fields_failed")


@projects_router.get("/{project_id}/custom-values/{field_id}", response_model=CustomValueRead)
def get_custom_value(
    request: Request,
    project_id: uuid.UUID,
    field_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> CustomValueRead | JSONResponse:
    try:
        require_permission(user, "projects.read")
        return project_service.custom_value_for(db, project_id, field_id)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_custom_value_get_failed")


@projects_router.put("/{project_id}/custom-fields/{field_id}", response_model=ProjectRead)
def enable_custom_field(
    request: Request,
    project_id: uuid.UUID,
    field_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> ProjectRead | JSONResponse:
    try:
        require_permission(user, "projects.write")
        return project_service.enable_custom_field(db, project_id, field_id)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_custom_field_enable_failed")


@projects_router.delete("/{project_id}/custom-fields/{field_id}", response_model=ProjectRead)
def disable_custom_field(
    request: Request,
    project_id: uuid.UUID,
    field_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> ProjectRead | JSONResponse:
    try:
        require_permission(user, "projects.write")
        return project_service.disable_custom_field(db, project_id, field_id)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_custom_field_disable_failed")


@projects_router.get("/{project_id}/validation", response_model=ProjectValidationRead)
def validate_project(
    request: Request,
    project_id: uuid.UUID,
    section_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> ProjectValidationRead | JSONResponse:
    try:
        require_permission(user, "projects.read")
        return project_service.validation_report(db, project_id, section_id)
    except HTTPException as exc:
        return _failure_response(request, exc, "projects_validation_failed")


@custom_fields_router.post("/seeds/dev-custom-fields", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
def seed_dev_custom_fields(
    request: Request,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> ProjectRead | JSONResponse:
    try:
        require_permission(user, "projects.custom_fields.manage")
        if get_settings().app_env == "production":
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
        return project_service.to_read(dev_custom_fields_seeder.seed(db))
    except (HTTPException, CustomFieldsError) as exc:
        return _failure_response(request, exc, "projects_seed_failed")
