"""JSON flat-file database for users and site settings.

Layout of ``db.json``::

    {
      "config": {"superuser_can_assign_roles": true, "last_modified": "..."},
      "sequences": {"users": 3},
      "users": {"1": {...}, "3": {...}}
    }
"""

import copy
import fcntl
import json
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from pydantic import ValidationError

from .errors import ValidationFailed
from .logging import storage_logger as logger
from .models import BASELINE_PLUGIN, Role, SiteSettings, User, utc_now

REQUIRED_SECTIONS = {"config", "users"}


class StorageError(Exception):
    """The database could not be read or written."""


class Storage:
    """JSON database kept in memory and written atomically.

    Reads take a shared ``flock``; writes go to a temp file in the same
    directory which replaces the database once fully written.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._data: dict | None = None

    @property
    def exists(self) -> bool:
        return self.db_path.exists()

    @property
    def data(self) -> dict:
        """Database contents, loaded on first access."""
        if self._data is None:
            self.load()
        return self._data

    def load(self) -> dict:
        """Read the database from disk, replacing the in-memory copy.

        Raises:
            StorageError: If the file is missing or not valid JSON.
        """
        if not self.db_path.exists():
            raise StorageError(f"Database file not found: {self.db_path}")

        try:
            with open(self.db_path, "r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    self._data = json.load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in database: {e}")
        except OSError as e:
            raise StorageError(f"Cannot read database: {e}")
        return self._data

    def save(self, data: dict | None = None) -> None:
        """Write the database atomically.

        Args:
            data: New contents. If None, the in-memory copy is written.

        Raises:
            StorageError: If nothing is loaded or the write fails.
        """
        if data is not None:
            self._data = data
        elif self._data is None:
            raise StorageError("No data to save")

        if "config" in self._data:
            self._data["config"]["last_modified"] = datetime.now(timezone.utc).isoformat()
        self._write_json(self.db_path, self._data)

    @staticmethod
    def _write_json(path: Path, data: dict) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
            try:
                with open(fd, "w", encoding="utf-8") as f:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                    try:
                        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
                        f.flush()
                        os.fsync(f.fileno())
                    finally:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                os.replace(temp_path, path)
            except BaseException:
                Path(temp_path).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Cannot write {path}: {e}")

    @contextmanager
    def transaction(self) -> Iterator[dict]:
        """Apply several changes and write them once.

        Yields the in-memory database. If the block raises or the write
        fails, the in-memory database is put back as it was.
        """
        data = self.data
        snapshot = copy.deepcopy(data)
        try:
            yield data
            self.save()
        except Exception:
            self._data = snapshot
            raise

    @staticmethod
    def _parent(data: dict, keys: list[str], create: bool) -> dict | None:
        """Dict holding ``keys[-1]``, creating intermediate dicts if asked."""
        node = data
        for key in keys[:-1]:
            if not isinstance(node.get(key), dict):
                if not create:
                    return None
                node[key] = {}
            node = node[key]
        return node

    def get(self, path: str, default: Any = None) -> Any:
        """Read a value by dot path, e.g. ``"config.superuser_can_assign_roles"``."""
        keys = path.split(".")
        parent = self._parent(self.data, keys, create=False)
        if parent is None:
            return default
        return parent.get(keys[-1], default)

    def set(self, path: str, value: Any) -> None:
        """Write a value by dot path and save.

        Raises:
            StorageError: If the database cannot be written; the in-memory
                value is left unchanged.
        """
        keys = path.split(".")
        with self.transaction() as data:
            self._parent(data, keys, create=True)[keys[-1]] = value

    def delete(self, path: str) -> bool:
        """Remove a value by dot path and save.

        Returns:
            True if the value existed.
        """
        keys = path.split(".")
        parent = self._parent(self.data, keys, create=False)
        if parent is None or keys[-1] not in parent:
            return False
        with self.transaction() as data:
            del self._parent(data, keys, create=False)[keys[-1]]
        return True

    def initialize(
        self,
        superuser_password_hash: str,
        username: str = "admin",
        email: str = "admin@example.com",
        settings: SiteSettings | None = None,
    ) -> dict:
        """Create a fresh database holding one superuser.

        The superuser gets both roles and the authentication plugin so
        they can reach the users admin.

        Args:
            superuser_password_hash: bcrypt hash of the superuser password.
            username: Superuser username.
            email: Superuser email.
            settings: Initial site settings, e.g. seeded from ``AppConfig``.

        Returns:
            The new database contents.
        """
        superuser = User(
            id=1,
            username=username,
            email=email,
            password_hash=superuser_password_hash,
            roles=[Role.REFINERY, Role.SUPERUSER],
            plugins=[BASELINE_PLUGIN],
        )
        self.save(
            {
                "config": (settings or SiteSettings()).model_dump(mode="json"),
                "sequences": {"users": 1},
                "users": {"1": superuser.model_dump(mode="json")},
            }
        )
        logger.info(f"Initialized database at {self.db_path} with superuser {superuser.username}")
        return self._data

    def backup(self, backup_dir: Path) -> Path:
        """Copy the current database to a timestamped file in ``backup_dir``."""
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        backup_path = backup_dir / f"db_backup_{timestamp}.json"
        self._write_json(backup_path, self.data)
        logger.info(f"Backed up database to {backup_path}")
        return backup_path

    def restore(self, backup_path: Path) -> None:
        """Replace the database with a backup.

        Raises:
            StorageError: If the backup is unreadable or lacks the
                ``config`` and ``users`` sections.
        """
        try:
            with open(backup_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid backup JSON: {e}")
        except OSError as e:
            raise StorageError(f"Cannot read backup: {e}")

        if not isinstance(data, dict) or not REQUIRED_SECTIONS.issubset(data):
            raise StorageError("Invalid backup: missing required keys")

        self.save(data)
        logger.warning(f"Restored database from {backup_path}")


class UserStore:
    """User records inside the JSON database.

    Users live under ``users.<id>``; ids come from ``sequences.users``
    and are never reused.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def _load(self, data: dict) -> User:
        try:
            return User.model_validate(data)
        except ValidationError as e:
            raise StorageError(f"Corrupt user record {data.get('id')}: {e}")

    def get(self, user_id: int) -> User | None:
        data = self.storage.get(f"users.{user_id}")
        if not data:
            return None
        return self._load(data)

    def find_by_username(self, username: str) -> User | None:
        """Case-insensitive lookup, ignoring surrounding whitespace."""
        username = username.strip().lower()
        return next((u for u in self.all() if u.username == username), None)

    def all(self) -> list[User]:
        """All users ordered by username ascending."""
        users = [self._load(data) for data in self.storage.get("users", {}).values()]
        return sorted(users, key=lambda u: u.username)

    def validate(self, user: User) -> None:
        """Check username and email are not taken by another user.

        Raises:
            ValidationFailed: With ``username`` and/or ``email`` errors.
        """
        errors: dict[str, list[str]] = {}
        for other in self.all():
            if other.id == user.id:
                continue
            if other.username == user.username:
                errors.setdefault("username", []).append("has already been taken")
            if other.email == user.email:
                errors.setdefault("email", []).append("has already been taken")
        if errors:
            raise ValidationFailed(errors)

    def save(self, user: User) -> User:
        """Validate and persist a user.

        New users get the next id from the users sequence. The record and
        the sequence are written together.

        Raises:
            ValidationFailed: If a uniqueness constraint is violated.
            StorageError: If the database cannot be written.
        """
        self.validate(user)

        is_new = user.id is None
        try:
            with self.storage.transaction() as data:
                if is_new:
                    sequences = data.setdefault("sequences", {})
                    user.id = int(sequences.get("users", 0)) + 1
                    sequences["users"] = user.id
                user.updated_at = utc_now()
                data.setdefault("users", {})[str(user.id)] = user.model_dump(mode="json")
        except StorageError:
            if is_new:
                user.id = None
            raise

        logger.debug(f"Saved user {user.id} ({user.username})")
        return user

    def delete(self, user_id: int) -> bool:
        """Delete a user. Returns True if the user existed."""
        deleted = self.storage.delete(f"users.{user_id}")
        if deleted:
            logger.debug(f"Deleted user {user_id}")
        return deleted
