from __future__ import annotations

import logging
import uuid

from sqlalchemy import and_, exists, select
from sqlalchemy.orm import Session

from projects_api.customfields.models import (
    Project,
    ProjectCustomField,
    ProjectCustomFieldProjectMapping,
)
from projects_api.metrics import observe_auto_activations


logger = logging.getLogger("projects_api.customfields.mappings")


class MappingStore:
    def active_mappings(self, project: Project) -> set[uuid.UUID]:
        return {mapping.custom_field_id for mapping in project.custom_field_mappings}

    def find(self, project: Project, field_id: uuid.UUID) -> ProjectCustomFieldProjectMapping | None:
        for mapping in project.custom_field_mappings:
            if mapping.custom_field_id == field_id:
                return mapping
        return None

    def ensure_mapped(self, project: Project, custom_field: ProjectCustomField) -> tuple[ProjectCustomFieldProjectMapping, bool]:
        """Map ``custom_field`` to ``project`` unless it already is.

        Returns the mapping and whether it was created. The new mapping joins
        the project's collection and is written with the project's next commit.
        """
        existing = self.find(project, custom_field.id)
        if existing is not None:
            return existing, False

        # a row orphaned earlier in this unit of work goes back instead of a second INSERT
        mapping = project.released_mappings.pop(custom_field.id, None)
        if mapping is None:
            mapping = ProjectCustomFieldProjectMapping(custom_field_id=custom_field.id, custom_field=custom_field)
        project.custom_field_mappings.append(mapping)
        return mapping, True

    def unmap(self, project: Project, field_id: uuid.UUID) -> bool:
        mapping = self.find(project, field_id)
        if mapping is None:
            return False

        project.custom_field_mappings.remove(mapping)
        project.released_mappings[field_id] = mapping
        for value in [item for item in project.custom_values if item.custom_field_id == field_id]:
            project.custom_values.remove(value)
            project.released_values[field_id] = value
        return True

    def activate_for_all_projects(self, session: Session, custom_field: ProjectCustomField) -> int:
        already_mapped = exists().where(
            and_(
                ProjectCustomFieldProjectMapping.project_id == Project.id,
                ProjectCustomFieldProjectMapping.custom_field_id == custom_field.id,
            )
        )
        project_ids = session.scalars(select(Project.id).where(~already_mapped)).all()
        for project_id in project_ids:
            session.add(ProjectCustomFieldProjectMapping(project_id=project_id, custom_field_id=custom_field.id))

        if project_ids:
            observe_auto_activations("required_field", len(project_ids))
            logger.info(
                "custom_field_activated_for_all_projects",
                extra={"custom_field_id": str(custom_field.id), "activated_count": len(project_ids)},
            )
        return len(project_ids)
