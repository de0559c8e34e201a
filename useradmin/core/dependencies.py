"""FastAPI dependencies for the users admin.

Services live in an AppState stored on ``app.state.useradmin``; the current
actor is resolved from HTTP Basic credentials on every request.
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.concurrency import run_in_threadpool

from .audit_log import AuditLogger
from .auth import AuthManager
from .config import AppConfig, Config
from .logging import admin_logger as logger
from .models import User
from .plugins import PluginRegistry
from .storage import Storage, UserStore
from .users import UserAdminService


@dataclass
class AppState:
    """Application state container.

    This is stored in app.state and provides access to all
    initialized services.
    """

    app_config: AppConfig
    storage: Storage
    config: Config
    auth: AuthManager
    users: UserStore
    plugins: PluginRegistry
    audit_logger: AuditLogger
    service: UserAdminService


basic_auth = HTTPBasic(auto_error=False)


def get_app_state(request: Request) -> AppState:
    """Get application state from request.

    Raises:
        HTTPException: If app state not initialized.
    """
    state = getattr(request.app.state, "useradmin", None)
    if state is None or not state.storage.exists:
        raise HTTPException(status_code=503, detail="Application not initialized")
    return state


def get_service(state: AppState = Depends(get_app_state)) -> UserAdminService:
    return state.service


async def get_current_actor(
    credentials: HTTPBasicCredentials | None = Depends(basic_auth),
    state: AppState = Depends(get_app_state),
) -> User:
    """Resolve the acting user from HTTP Basic credentials.

    Raises:
        HTTPException: 401 if credentials are missing or invalid.
    """
    unauthorized = HTTPException(
        status_code=401,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Basic"},
    )
    if credentials is None:
        raise unauthorized

    # bcrypt blocks for the whole check; run it in the threadpool
    actor = await run_in_threadpool(
        state.auth.authenticate, state.users, credentials.username, credentials.password
    )
    if actor is None:
        logger.info(f"Failed authentication for {credentials.username!r}")
        raise unauthorized
    return actor
