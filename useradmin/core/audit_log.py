"""Audit logging for user administration events."""

import json
from pathlib import Path
from typing import Any

from .models import AuditEvent, UserMemento


class AuditLogger:
    """Append-only audit log for user administration.

    Logs are stored in JSON Lines format for easy parsing.
    Each line is a complete JSON object.
    """

    def __init__(self, log_path: Path):
        """Initialize audit logger.

        Args:
            log_path: Path to audit log file.
        """
        self.log_path = log_path

    def log(
        self,
        event: str,
        actor: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log an audit event.

        Args:
            event: Event type (e.g., "user_create", "user_update").
            actor: Username of who performed the action.
            details: Additional event-specific details.
        """
        entry = AuditEvent(event=event, actor=actor, details=details or {})

        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.model_dump(), default=str) + "\n")

    def log_user_change(self, action: str, username: str, actor: str, **details: Any) -> None:
        """Log a create, update or destroy of a user.

        Args:
            action: Action type (create, update, destroy).
            username: Affected user.
            actor: User who made the change.
            details: Extra details, e.g. roles and plugins.
        """
        self.log(event=f"user_{action}", actor=actor, details={"user": username, **details})

    def log_unauthorized(self, action: str, username: str | None, actor: str) -> None:
        self.log(
            event="user_unauthorized",
            actor=actor,
            details={"action": action, "user": username},
        )

    def log_lockout_prevented(self, actor: str, plugins: list[str], roles: list[str]) -> None:
        """Log a rejected self-edit that would have locked the actor out."""
        self.log(
            event="user_lockout_prevented",
            actor=actor,
            details={"plugins": plugins, "roles": roles},
        )

    def log_rollback(self, username: str, actor: str, memento: UserMemento, failed: bool = False) -> None:
        """Log a rollback of a failed update.

        Args:
            username: User that was rolled back.
            actor: User whose update failed.
            memento: State that was restored.
            failed: Whether the rollback itself failed.
        """
        self.log(
            event="user_rollback_failed" if failed else "user_rollback",
            actor=actor,
            details={
                "user": username,
                "roles": [role.value for role in memento.roles],
                "plugins": list(memento.plugins),
            },
        )

    def read_recent(self, limit: int = 100) -> list[dict]:
        """Read recent audit log entries.

        Args:
            limit: Maximum entries to return.

        Returns:
            List of recent log entries (newest first).
        """
        if not self.log_path.exists():
            return []

        entries = []
        try:
            with open(self.log_path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        try:
                            entries.append(json.loads(line))
                        except json.JSONDecodeError:
                            continue
        except OSError:
            return []

        return list(reversed(entries[-limit:]))
