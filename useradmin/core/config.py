"""Application configuration management."""

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class AppConfig(BaseModel):
    """Application-wide configuration.

    These settings come from environment variables or defaults.
    Site settings are stored separately in the JSON database.
    """

    # Paths
    base_dir: Path = Field(default_factory=lambda: Path.cwd())
    data_dir: Path = Field(default=None)
    plugins_dir: Path = Field(default=None)

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    log_level: str = "INFO"

    # Security
    password_min_length: int = 12
    bcrypt_rounds: int = 12

    # Users admin
    superuser_can_assign_roles: bool = True

    def __init__(self, **data):
        super().__init__(**data)
        # Set derived paths if not provided
        if self.data_dir is None:
            self.data_dir = self.base_dir / "data"
        if self.plugins_dir is None:
            self.plugins_dir = self.base_dir / "plugins"

    @property
    def db_path(self) -> Path:
        """Path to the JSON database file."""
        return self.data_dir / "db.json"

    @property
    def backups_dir(self) -> Path:
        """Path to backups directory."""
        return self.data_dir / "backups"

    @property
    def audit_log_path(self) -> Path:
        """Path to audit log file."""
        return self.data_dir / "audit.log"

    @property
    def log_file(self) -> Path:
        return self.data_dir / "useradmin.log"

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.backups_dir.mkdir(parents=True, exist_ok=True)
        self.plugins_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls, base_dir: Path | None = None) -> "AppConfig":
        """Create configuration from environment variables.

        Args:
            base_dir: Base directory for the application.

        Returns:
            AppConfig instance.

        Raises:
            ValueError: If environment variable values are invalid.
        """
        if base_dir is None:
            base_dir = Path(os.getenv("USERADMIN_BASE_DIR", Path.cwd()))

        def get_int_env(name: str, default: int, min_val: int, max_val: int) -> int:
            """Parse and validate integer environment variable."""
            value_str = os.getenv(name, str(default))
            try:
                value = int(value_str)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got: {value_str}")
            if value < min_val or value > max_val:
                raise ValueError(f"{name} must be between {min_val} and {max_val}, got: {value}")
            return value

        def get_bool_env(name: str, default: bool) -> bool:
            return os.getenv(name, str(default)).lower() in ("1", "true", "yes")

        port = get_int_env("USERADMIN_PORT", 8000, 1, 65535)
        password_min_length = get_int_env("USERADMIN_PASSWORD_MIN_LENGTH", 12, 6, 128)
        bcrypt_rounds = get_int_env("USERADMIN_BCRYPT_ROUNDS", 12, 4, 31)

        log_level = os.getenv("USERADMIN_LOG_LEVEL", "INFO").upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"USERADMIN_LOG_LEVEL is not a logging level: {log_level}")

        return cls(
            base_dir=base_dir,
            host=os.getenv("USERADMIN_HOST", "127.0.0.1"),
            port=port,
            debug=get_bool_env("USERADMIN_DEBUG", False),
            log_level=log_level,
            password_min_length=password_min_length,
            bcrypt_rounds=bcrypt_rounds,
            superuser_can_assign_roles=get_bool_env("USERADMIN_SUPERUSER_CAN_ASSIGN_ROLES", True),
        )


class Config:
    """Configuration manager that combines app config with database settings."""

    def __init__(self, app_config: AppConfig, storage: Any = None):
        """Initialize config manager.

        Args:
            app_config: Application configuration.
            storage: Storage instance for database settings.
        """
        self.app = app_config
        self._storage = storage

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value.

        First checks database settings, then app config.

        Args:
            key: Configuration key.
            default: Default value if not found.

        Returns:
            Configuration value.
        """
        if self._storage is not None and self._storage.exists:
            db_value = self._storage.get(f"config.{key}")
            if db_value is not None:
                return db_value

        if hasattr(self.app, key):
            return getattr(self.app, key)

        return default

    def set(self, key: str, value: Any) -> None:
        """Set configuration value in database.

        Args:
            key: Configuration key.
            value: Value to set.
        """
        if self._storage is not None:
            self._storage.set(f"config.{key}", value)

    @property
    def superuser_can_assign_roles(self) -> bool:
        """Whether superusers may assign roles on this site."""
        return bool(self.get("superuser_can_assign_roles", True))
