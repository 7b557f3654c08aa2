"""FastAPI dependencies for authentication, authorization, and services."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..services.container import Services
from ..services.identity import IdentityUser
from .security import decode_token

logger = logging.getLogger(__name__)

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    """Service graph built in the application lifespan."""
    return request.app.state.services


def get_ws_services(websocket: WebSocket) -> Services:
    return websocket.app.state.services


ServicesDep = Annotated[Services, Depends(get_services)]


class CurrentUser:
    """Represents the authenticated user context."""

    def __init__(self, user: IdentityUser, role: str = "user"):
        self.user = user
        self.role = role

    @property
    def id(self) -> str:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_publisher(self) -> bool:
        return self.role == "publisher"

    @property
    def can_review(self) -> bool:
        return self.role in ("admin", "publisher")


async def authenticate_token(services: Services, token: str | None) -> CurrentUser | None:
    """Resolve a bearer token to a user; None when the token or user is invalid."""
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None

    user = await services.identity.get_user(payload.sub)
    if user is None:
        logger.warning(f"Token for unknown user {payload.sub}")
        return None

    role = await services.directory.get_role(user.id)
    return CurrentUser(user=user, role=role)


async def get_current_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    services: ServicesDep,
) -> CurrentUser:
    """Dependency to get the current authenticated user."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    current_user = await authenticate_token(services, credentials.credentials)
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_user


async def get_current_user_optional(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    services: ServicesDep,
) -> CurrentUser | None:
    """Optional authentication - returns None if not authenticated."""
    if not credentials:
        return None
    return await authenticate_token(services, credentials.credentials)


def require_reviewer(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Require admin or publisher role."""
    if not current_user.can_review:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin or publisher privileges required",
        )
    return current_user


def require_admin(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Require admin role."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


# Type aliases for cleaner dependency injection
CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]
OptionalUserDep = Annotated[CurrentUser | None, Depends(get_current_user_optional)]
ReviewerDep = Annotated[CurrentUser, Depends(require_reviewer)]
AdminDep = Annotated[CurrentUser, Depends(require_admin)]
