from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from projects_api.core.auth import AuthUser, get_current_user
from projects_api.core.config import get_settings
from projects_api.customfields.api import custom_fields_router, projects_router
from projects_api.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
# static custom-field paths must win over /api/projects/{project_id}
router.include_router(custom_fields_router)
router.include_router(projects_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict[str, str | list[str]]:
    return {
        "sub": user.sub,
        "roles": user.roles,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if "system.metrics.read" not in user.permissions:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: system.metrics.read")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
