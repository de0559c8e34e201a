"""FastAPI application for the users admin."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .admin.routes import router as admin_router
from .core.audit_log import AuditLogger
from .core.auth import AuthManager
from .core.config import AppConfig, Config
from .core.dependencies import AppState
from .core.hooks import HookManager
from .core.logging import logger, setup_logging
from .core.plugins import PluginRegistry
from .core.storage import Storage, UserStore
from .core.users import UserAdminService


def build_state(app_config: AppConfig, hooks: HookManager | None = None) -> AppState:
    """Initialize all services for a site.

    Args:
        app_config: Application configuration.
        hooks: Hook manager to fire user events on.

    Returns:
        AppState with every service wired up.
    """
    storage = Storage(app_config.db_path)
    if storage.exists:
        storage.load()
    else:
        logger.warning(f"No database at {app_config.db_path}; run 'useradmin init' first")

    config = Config(app_config, storage)
    auth = AuthManager(bcrypt_rounds=app_config.bcrypt_rounds)
    users = UserStore(storage)

    plugins = PluginRegistry()
    discovered = plugins.discover(app_config.plugins_dir)
    if discovered:
        logger.info(f"Registered {discovered} plugins from {app_config.plugins_dir}")

    audit_logger = AuditLogger(app_config.audit_log_path)
    service = UserAdminService(
        store=users,
        registry=plugins,
        settings=config,
        auth=auth,
        hooks=hooks,
        audit=audit_logger,
        password_min_length=app_config.password_min_length,
    )

    return AppState(
        app_config=app_config,
        storage=storage,
        config=config,
        auth=auth,
        users=users,
        plugins=plugins,
        audit_logger=audit_logger,
        service=service,
    )


def create_app(app_config: AppConfig | None = None, hooks: HookManager | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        app_config: Configuration; read from the environment when None.
        hooks: Hook manager shared with the service.

    Returns:
        FastAPI app whose state is built on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - initialize on startup."""
        config = app_config or AppConfig.from_env()
        setup_logging(config.log_level, None if config.debug else config.log_file, debug=config.debug)
        app.state.useradmin = build_state(config, hooks)
        logger.info(f"Users admin ready (data dir {config.data_dir})")
        yield

    app = FastAPI(
        title="Users Admin",
        description="User, role and plugin access management for the admin panel",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(admin_router)

    @app.get("/health")
    async def health():
        """Liveness check."""
        return {"status": "ok"}

    return app


app = create_app()
