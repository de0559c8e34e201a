"""Event hooks fired by user administration actions.

Callbacks receive a payload dict and may return a replacement payload,
which is handed to the next callback in priority order.
"""

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .logging import hooks_logger as logger


class UserEvent(str, Enum):
    """Events emitted by the users admin service."""

    CREATE_AFTER = "user_create_after"  # payload: user, actor
    INVITED = "user_invited"  # payload: user, inviting_user
    UPDATE_AFTER = "user_update_after"  # payload: user, actor
    DESTROY_AFTER = "user_destroy_after"  # payload: user, actor
    ROLLBACK = "user_rollback"  # payload: user, actor


def _event_name(event: UserEvent | str) -> str:
    return event.value if isinstance(event, UserEvent) else event


@dataclass
class Hook:
    """Registered hook callback."""

    event: str
    callback: Callable[[Any], Any]
    priority: int = 50  # Lower = runs earlier
    owner: str | None = None


class HookManager:
    """Dispatches user events to registered callbacks.

    A failing callback is logged and skipped; the remaining callbacks
    still run and the action that emitted the event is not affected.
    """

    def __init__(self):
        self._hooks: dict[str, list[Hook]] = defaultdict(list)

    def register(
        self,
        event: UserEvent | str,
        callback: Callable[[Any], Any],
        priority: int = 50,
        owner: str | None = None,
    ) -> Hook:
        """Register a callback for an event.

        Args:
            event: Event to listen for.
            callback: Called with the payload; may return a new payload.
            priority: Execution order (lower = earlier).
            owner: Name of the component registering the hook.

        Returns:
            The registered hook.
        """
        name = _event_name(event)
        if name not in {e.value for e in UserEvent}:
            logger.warning(f"Registering hook for unknown event '{name}'")

        hook = Hook(event=name, callback=callback, priority=priority, owner=owner)
        hooks = self._hooks[name]
        hooks.append(hook)
        # Stable sort keeps registration order within a priority
        hooks.sort(key=lambda h: h.priority)
        return hook

    def on(self, event: UserEvent | str, priority: int = 50, owner: str | None = None):
        """Decorator form of ``register``.

        Usage:
            @hooks.on(UserEvent.INVITED)
            def send_invitation(payload):
                mailer.invite(payload["user"], payload["inviting_user"])
        """

        def decorator(func: Callable[[Any], Any]) -> Callable[[Any], Any]:
            self.register(event, func, priority, owner)
            return func

        return decorator

    def unregister(self, event: UserEvent | str, callback: Callable[[Any], Any]) -> bool:
        """Remove a callback. Returns True if it was registered."""
        hooks = self._hooks.get(_event_name(event), [])
        remaining = [h for h in hooks if h.callback != callback]
        removed = len(remaining) < len(hooks)
        if removed:
            self._hooks[_event_name(event)] = remaining
        return removed

    def unregister_owner(self, owner: str) -> int:
        """Remove every hook registered by ``owner``.

        Returns:
            Number of hooks removed.
        """
        removed = 0
        for name, hooks in self._hooks.items():
            remaining = [h for h in hooks if h.owner != owner]
            removed += len(hooks) - len(remaining)
            self._hooks[name] = remaining
        return removed

    def emit(self, event: UserEvent | str, payload: Any = None) -> Any:
        """Pass the payload through every callback for the event.

        Returns:
            The payload as returned by the last callback that returned one.
        """
        name = _event_name(event)
        for hook in list(self._hooks.get(name, [])):
            try:
                result = hook.callback(payload)
            except Exception:
                logger.exception(f"Hook error in {hook.owner or 'unknown'}:{name}")
                continue
            if result is not None:
                payload = result
        return payload

    def has_hooks(self, event: UserEvent | str) -> bool:
        return bool(self._hooks.get(_event_name(event)))

    def clear(self, event: UserEvent | str | None = None) -> None:
        """Clear all hooks or hooks for specific event."""
        if event is None:
            self._hooks.clear()
        else:
            self._hooks.pop(_event_name(event), None)
