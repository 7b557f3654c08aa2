"""User API routes: the current user's role."""

from fastapi import APIRouter

from ..core.dependencies import CurrentUserDep, ServicesDep
from ..schemas import RoleResponse
from .admin import role_response

router = APIRouter(prefix="/me", tags=["user"])


@router.get("/role", response_model=RoleResponse)
async def get_my_role(current_user: CurrentUserDep, services: ServicesDep):
    """Whether the current user is an admin and/or publisher."""
    return await role_response(services, current_user.id)
