from projects_api.customfields.api import custom_fields_router, projects_router
from projects_api.customfields.catalog import AttributeCatalog
from projects_api.customfields.errors import (
    CustomFieldsError,
    IllegalScopeUsage,
    UnknownField,
    ValidationFailed,
    ValidationFailure,
)
from projects_api.customfields.mappings import MappingStore
from projects_api.customfields.models import (
    CustomValue,
    Project,
    ProjectCustomField,
    ProjectCustomFieldProjectMapping,
    ProjectCustomFieldSection,
)
from projects_api.customfields.service import (
    CustomFieldService,
    ProjectService,
    custom_field_service,
    project_service,
)
from projects_api.customfields.validation import SaveRequest, Validator
from projects_api.customfields.values import ValueStore

__all__ = [
    "custom_fields_router",
    "projects_router",
    "AttributeCatalog",
    "MappingStore",
    "ValueStore",
    "Validator",
    "SaveRequest",
    "CustomFieldsError",
    "IllegalScopeUsage",
    "UnknownField",
    "ValidationFailed",
    "ValidationFailure",
    "CustomValue",
    "Project",
    "ProjectCustomField",
    "ProjectCustomFieldProjectMapping",
    "ProjectCustomFieldSection",
    "CustomFieldService",
    "ProjectService",
    "custom_field_service",
    "project_service",
]
