from dataclasses import dataclass, field

from fastapi import HTTPException, status
from jose import JWTError, jwt
from starlette.requests import Request

from projects_api.context import set_actor_user_id
from projects_api.core.config import get_settings


@dataclass
class AuthUser:
    sub: str
    roles: list[str]
    correlation_id: str | None = None
    permissions: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if not self.permissions:
            self.permissions = {str(role) for role in self.roles}


async def get_current_user(request: Request) -> AuthUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""
    correlation_id = getattr(request.state, "correlation_id", None)

    if not token:
        return AuthUser(sub="anonymous", roles=["guest"], correlation_id=correlation_id)

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")

    subject = str(payload.get("sub", "anonymous"))
    roles = payload.get("roles", ["user"])
    if not isinstance(roles, list):
        roles = ["user"]
    context = getattr(request.state, "context", None)
    if context is not None:
        context.user_id = subject
    set_actor_user_id(subject)
    return AuthUser(sub=subject, roles=[str(role) for role in roles], correlation_id=correlation_id)


def require_permission(user: AuthUser, permission: str) -> None:
    if permission not in user.permissions:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing permission: {permission}")
