"""Admin user management routes.

Routes return the JSON form of an AdminResult; failures map to a status
code by error kind.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..core.dependencies import get_current_actor, get_service
from ..core.errors import ErrorKind
from ..core.models import User
from ..core.schemas import UserCreateRequest, UserUpdateRequest
from ..core.users import AdminResult, UserAdminService

router = APIRouter(prefix="/users", tags=["admin-users"])


STATUS_BY_KIND = {
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.LOCKOUT_PREVENTED: 409,
    ErrorKind.VALIDATION_FAILED: 422,
    ErrorKind.UNKNOWN_ROLE: 422,
    ErrorKind.UNKNOWN_PLUGIN: 422,
    ErrorKind.PERSIST_FAILURE: 503,
    ErrorKind.ROLLBACK_FAILURE: 500,
}


def respond(result: AdminResult, success_status: int = 200) -> JSONResponse:
    """Convert an AdminResult into a JSON response."""
    status_code = success_status if result.ok else STATUS_BY_KIND.get(result.kind, 400)
    return JSONResponse(result.as_dict(), status_code=status_code)


@router.get("")
async def list_users(
    actor: User = Depends(get_current_actor),
    service: UserAdminService = Depends(get_service),
):
    """List users ordered by username."""
    return respond(service.index(actor))


@router.get("/new")
async def new_user_form(
    actor: User = Depends(get_current_actor),
    service: UserAdminService = Depends(get_service),
):
    """Options for the new user form."""
    return respond(service.new(actor))


@router.post("")
async def create_user(
    params: UserCreateRequest,
    actor: User = Depends(get_current_actor),
    service: UserAdminService = Depends(get_service),
):
    """Create and invite a user."""
    return respond(service.create(actor, params), success_status=201)


@router.get("/{user_id}/edit")
async def edit_user_form(
    user_id: int,
    actor: User = Depends(get_current_actor),
    service: UserAdminService = Depends(get_service),
):
    """User details and options for the edit form."""
    return respond(service.edit(actor, user_id))


@router.patch("/{user_id}")
async def update_user(
    user_id: int,
    params: UserUpdateRequest,
    actor: User = Depends(get_current_actor),
    service: UserAdminService = Depends(get_service),
):
    """Update roles, plugins, profile and password of a user."""
    return respond(service.update(actor, user_id, params))


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    actor: User = Depends(get_current_actor),
    service: UserAdminService = Depends(get_service),
):
    """Delete a user."""
    return respond(service.destroy(actor, user_id))
