"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from drill_eval.config.container import ServiceContainer
from drill_eval.utils import AuthenticationError, decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    name: Optional[str] = None


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return container


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    container: ContainerDep,
) -> AuthenticatedUser:
    """Resolve the caller referenced by the bearer token."""

    try:
        payload = decode_access_token(token, container.settings.security)
    except AuthenticationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    name = (payload.user or {}).get("name")
    return AuthenticatedUser(id=payload.sub, name=name)


CurrentUserDep = Annotated[AuthenticatedUser, Depends(get_current_user)]


__all__ = [
    "AuthenticatedUser",
    "ContainerDep",
    "CurrentUserDep",
    "get_container",
    "get_current_user",
    "oauth2_scheme",
]
