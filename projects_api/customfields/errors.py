from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class ValidationFailure:
    field_id: uuid.UUID
    reason: str
    field_name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"field_id": str(self.field_id), "field_name": self.field_name, "reason": self.reason}


class CustomFieldsError(Exception):
    """Base error for the project custom field engine."""


class FieldParseError(CustomFieldsError):
    """Raised when a raw value does not fit the field format."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ValidationFailed(CustomFieldsError):
    """Raised by ``save_or_raise`` with every collected failure."""

    def __init__(self, failures: Iterable[ValidationFailure]) -> None:
        self.failures = list(failures)
        summary = ", ".join(f"{item.field_name or item.field_id}: {item.reason}" for item in self.failures)
        super().__init__(f"custom field validation failed: {summary}")


class IllegalScopeUsage(CustomFieldsError, ValueError):
    """Raised when a validation scope is supplied for a project that is being created."""

    def __init__(self, section_id: uuid.UUID) -> None:
        self.section_id = section_id
        super().__init__("custom field validation can only be limited to a section when updating a project")


class UnknownField(CustomFieldsError):
    def __init__(self, field_ids: Iterable[Any]) -> None:
        self.field_ids = sorted(str(item) for item in field_ids)
        super().__init__(f"unknown custom fields: {', '.join(self.field_ids)}")
