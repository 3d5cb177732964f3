from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, reconstructor, relationship

from projects_api.core.database import Base
from projects_api.customfields.errors import FieldParseError, ValidationFailure
from projects_api.customfields.types import FieldType, field_type_for, interpret


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectCustomFieldSection(Base):
    __tablename__ = "project_custom_field_section"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    custom_fields: Mapped[list[ProjectCustomField]] = relationship(
        "ProjectCustomField",
        back_populates="section",
        order_by="ProjectCustomField.position",
    )


class ProjectCustomField(Base):
    __tablename__ = "project_custom_field"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    field_format: Mapped[str] = mapped_column(String(16), nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    possible_values: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    section_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("project_custom_field_section.id", ondelete="RESTRICT"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    section: Mapped[ProjectCustomFieldSection] = relationship("ProjectCustomFieldSection", back_populates="custom_fields")

    @property
    def field_type(self) -> FieldType:
        return field_type_for(self.field_format, self.possible_values)


class Project(Base):
    __tablename__ = "project"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    identifier: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    custom_field_mappings: Mapped[list[ProjectCustomFieldProjectMapping]] = relationship(
        "ProjectCustomFieldProjectMapping",
        back_populates="project",
        cascade="all, delete-orphan",
    )
    custom_values: Mapped[list[CustomValue]] = relationship(
        "CustomValue",
        back_populates="project",
        cascade="all, delete-orphan",
    )

    def __init__(self, *, validation_scope_section_id: uuid.UUID | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._init_transient_state()
        self.validation_scope_section_id = validation_scope_section_id

    @reconstructor
    def _init_transient_state(self) -> None:
        # not persisted; consumed by the next save attempt
        self.validation_scope_section_id: uuid.UUID | None = None
        self.custom_field_failures: list[ValidationFailure] = []
        # rows unmapped since the last commit, revived if the field is assigned again
        self.released_mappings: dict[uuid.UUID, ProjectCustomFieldProjectMapping] = {}
        self.released_values: dict[uuid.UUID, CustomValue] = {}

    def clear_released(self) -> None:
        self.released_mappings.clear()
        self.released_values.clear()

    @property
    def is_persisted(self) -> bool:
        return inspect(self).has_identity


class ProjectCustomFieldProjectMapping(Base):
    __tablename__ = "project_custom_field_project_mapping"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("project.id", ondelete="CASCADE"),
        nullable=False,
    )
    custom_field_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("project_custom_field.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    project: Mapped[Project] = relationship("Project", back_populates="custom_field_mappings")
    custom_field: Mapped[ProjectCustomField] = relationship("ProjectCustomField")

    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "custom_field_id",
            name="uq_project_custom_field_project_mapping",
        ),
    )


class CustomValue(Base):
    __tablename__ = "custom_value"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("project.id", ondelete="CASCADE"),
        nullable=False,
    )
    custom_field_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("project_custom_field.id", ondelete="CASCADE"),
        nullable=False,
    )
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    project: Mapped[Project] = relationship("Project", back_populates="custom_values")
    custom_field: Mapped[ProjectCustomField] = relationship("ProjectCustomField")

    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "custom_field_id",
            name="uq_custom_value_project_field",
        ),
    )

    @property
    def typed_value(self) -> Any:
        """The raw value read through the field format, ``None`` when unset or unparsable."""
        try:
            return interpret(self.custom_field.field_type, self.value)
        except FieldParseError:
            return None


Index("ix_project_custom_field_section_position", ProjectCustomField.section_id, ProjectCustomField.position)
Index("ix_project_custom_field_project_mapping_field", ProjectCustomFieldProjectMapping.custom_field_id)
Index("ix_custom_value_project", CustomValue.project_id)
