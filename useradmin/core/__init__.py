"""Core modules for the users admin."""

from .storage import Storage, UserStore
from .config import AppConfig, Config
from .auth import AuthManager
from .authorizer import UserAdminAuthorizer
from .hooks import HookManager
from .audit_log import AuditLogger
from .plugins import PluginRegistry
from .users import AdminResult, UserAdminService

__all__ = [
    "Storage",
    "UserStore",
    "AppConfig",
    "Config",
    "AuthManager",
    "UserAdminAuthorizer",
    "HookManager",
    "AuditLogger",
    "PluginRegistry",
    "AdminResult",
    "UserAdminService",
]
