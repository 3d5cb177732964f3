from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from projects_api.customfields.types import FieldFormat


class SectionCreate(BaseModel):
    name: str = Field(min_length=1)
    position: int = Field(default=1, ge=1)


class SectionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    position: int
    created_at: datetime
    updated_at: datetime


class CustomFieldCreate(BaseModel):
    name: str = Field(min_length=1)
    field_format: FieldFormat
    section_id: UUID
    is_required: bool = False
    possible_values: list[str] | None = None
    position: int = Field(default=1, ge=1)


class CustomFieldUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    is_required: bool | None = None
    possible_values: list[str] | None = None
    position: int | None = Field(default=None, ge=1)


class CustomFieldRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    field_format: FieldFormat
    section_id: UUID
    is_required: bool
    possible_values: list[str] | None
    position: int
    created_at: datetime
    updated_at: datetime


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1)
    identifier: str = Field(min_length=1, max_length=100, pattern=r"^[a-z][a-z0-9_-]*$")
    custom_field_values: dict[UUID, Any] | None = None
    limit_validation_to_section_id: UUID | None = None


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    custom_field_values: dict[UUID, Any] | None = None
    limit_validation_to_section_id: UUID | None = None


class CustomValueRead(BaseModel):
    custom_field_id: UUID
    field_format: FieldFormat
    value: str | None
    typed_value: Any = None


class ProjectRead(BaseModel):
    id: UUID
    name: str
    identifier: str
    active_custom_field_ids: list[UUID]
    custom_field_values: list[CustomValueRead]
    created_at: datetime
    updated_at: datetime


class ValidationFailureRead(BaseModel):
    field_id: UUID
    field_name: str | None
    reason: str


class ProjectValidationRead(BaseModel):
    project_id: UUID
    valid: bool
    scope_section_id: UUID | None
    failures: list[ValidationFailureRead]
