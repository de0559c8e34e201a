"""Admin API routes."""

from fastapi import APIRouter, Depends, HTTPException

from ..core.dependencies import AppState, get_app_state, get_current_actor
from ..core.models import Role, User
from ..core.schemas import SettingsUpdateRequest
from .user_routes import router as user_router

router = APIRouter(prefix="/admin", tags=["admin"])
router.include_router(user_router)


def require_superuser(actor: User = Depends(get_current_actor)) -> User:
    """Dependency to require the superuser role."""
    if not actor.has_role(Role.SUPERUSER):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return actor


# ============================================================================
# Plugins API
# ============================================================================

@router.get("/plugins")
async def list_plugins(
    actor: User = Depends(get_current_actor),
    state: AppState = Depends(get_app_state),
):
    """List registered plugins and whether the actor can access them."""
    authorized = set(actor.authorized_plugins(state.plugins))
    return {
        "plugins": [
            {
                "name": p.name,
                "title": p.title,
                "description": p.description,
                "in_menu": p.in_menu,
                "authorized": p.name in authorized,
            }
            for p in state.plugins.registered()
        ]
    }


# ============================================================================
# Settings API
# ============================================================================

@router.get("/settings")
async def get_settings(
    actor: User = Depends(require_superuser),
    state: AppState = Depends(get_app_state),
):
    """Get site settings."""
    return {"superuser_can_assign_roles": state.config.superuser_can_assign_roles}


@router.put("/settings")
async def update_settings(
    params: SettingsUpdateRequest,
    actor: User = Depends(require_superuser),
    state: AppState = Depends(get_app_state),
):
    """Update site settings."""
    state.config.set("superuser_can_assign_roles", params.superuser_can_assign_roles)
    state.audit_logger.log(
        "settings_change",
        actor.username,
        {"superuser_can_assign_roles": params.superuser_can_assign_roles},
    )
    return await get_settings(actor, state)


# ============================================================================
# Audit Log API
# ============================================================================

@router.get("/audit-log")
async def get_audit_log(
    actor: User = Depends(require_superuser),
    state: AppState = Depends(get_app_state),
    limit: int = 100,
):
    """Get recent audit log entries."""
    return {"entries": state.audit_logger.read_recent(limit)}
