from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy.orm import Session

from projects_api.core.config import get_settings
from projects_api.customfields.catalog import AttributeCatalog
from projects_api.customfields.errors import UnknownField
from projects_api.customfields.mappings import MappingStore
from projects_api.customfields.models import CustomValue, Project, ProjectCustomField
from projects_api.customfields.types import normalize_raw
from projects_api.metrics import observe_auto_activations


logger = logging.getLogger("projects_api.customfields.values")


def _coerce_field_id(raw_id: Any) -> uuid.UUID | None:
    if isinstance(raw_id, ProjectCustomField):
        return raw_id.id
    if isinstance(raw_id, uuid.UUID):
        return raw_id
    try:
        return uuid.UUID(str(raw_id))
    except ValueError:
        return None


class ValueStore:
    def __init__(self, catalog: AttributeCatalog, mapping_store: MappingStore) -> None:
        self._catalog = catalog
        self._mappings = mapping_store

    def assign_values(self, session: Session, project: Project, values_by_id: Mapping[Any, Any]) -> None:
        """Activate and set every field in ``values_by_id``; other fields are left alone.

        Keys may be field ids (``UUID`` or string) or field objects. Nothing is
        written until the project is saved.
        """
        resolved: dict[uuid.UUID, Any] = {}
        unknown: list[Any] = []
        for raw_id, raw_value in values_by_id.items():
            field_id = _coerce_field_id(raw_id)
            if field_id is None:
                unknown.append(raw_id)
                continue
            resolved[field_id] = raw_value

        fields = self._catalog.fields_by_id(session, resolved.keys())
        unknown.extend(field_id for field_id in resolved if field_id not in fields)
        if unknown:
            if not get_settings().custom_fields_ignore_unknown:
                raise UnknownField(unknown)
            logger.warning("unknown_custom_fields_ignored", extra={"failures": [str(item) for item in unknown]})

        activated = 0
        for field_id, raw_value in resolved.items():
            custom_field = fields.get(field_id)
            if custom_field is None:
                continue
            _, created = self._mappings.ensure_mapped(project, custom_field)
            if created:
                activated += 1
            self._upsert(project, custom_field, normalize_raw(raw_value))

        observe_auto_activations("assignment", activated)

    def _upsert(self, project: Project, custom_field: ProjectCustomField, raw: str | None) -> CustomValue:
        existing = self._stored_value(project, custom_field.id)
        if existing is not None:
            existing.value = raw
            return existing

        value = project.released_values.pop(custom_field.id, None)
        if value is None:
            value = CustomValue(custom_field_id=custom_field.id, custom_field=custom_field, value=raw)
        else:
            value.value = raw
        project.custom_values.append(value)
        return value

    def _stored_value(self, project: Project, field_id: uuid.UUID) -> CustomValue | None:
        for value in project.custom_values:
            if value.custom_field_id == field_id:
                return value
        return None

    def custom_value_for(self, project: Project, field_id: uuid.UUID | ProjectCustomField) -> CustomValue | None:
        resolved_id = field_id.id if isinstance(field_id, ProjectCustomField) else field_id
        if resolved_id not in self._mappings.active_mappings(project):
            return None
        value = self._stored_value(project, resolved_id)
        if value is None or value.value is None:
            return None
        return value

    def custom_field_values(self, project: Project) -> list[CustomValue]:
        output: list[CustomValue] = []
        for mapping in project.custom_field_mappings:
            value = self._stored_value(project, mapping.custom_field_id)
            if value is None:
                # placeholder only, never attached to the project
                value = CustomValue(custom_field_id=mapping.custom_field_id, custom_field=mapping.custom_field, value=None)
            output.append(value)
        return output
