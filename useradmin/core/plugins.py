"""Registry of admin plugins users can be granted access to."""

import json
from dataclasses import dataclass
from pathlib import Path

from .logging import plugins_logger as logger
from .models import BASELINE_PLUGIN


@dataclass(frozen=True)
class Plugin:
    """A named capability shown as an entry in the admin menu."""

    name: str
    title: str
    description: str = ""
    in_menu: bool = True

    def as_option(self) -> dict[str, str]:
        return {"name": self.name, "title": self.title}


# Plugins that ship with the admin panel
BUILTIN_PLUGINS = (
    Plugin("refinery_dashboard", "Dashboard", "Overview of recent activity"),
    Plugin(BASELINE_PLUGIN, "Users", "Manage users"),
    Plugin("refinery_pages", "Pages", "Manage content pages"),
    Plugin("refinery_files", "Files", "Upload and link to files"),
    Plugin("refinery_images", "Images", "Manage images"),
    Plugin("refinery_core", "Refinery", "Core admin functionality", in_menu=False),
)


class PluginError(Exception):
    """Plugin registration error."""

    pass


class PluginRegistry:
    """Process-wide collection of registered plugins, keyed by name.

    Plugins come from the built-in list and from ``plugin.json`` manifests
    found in the plugins directory.
    """

    def __init__(self, plugins: tuple[Plugin, ...] | list[Plugin] = BUILTIN_PLUGINS):
        self._plugins: dict[str, Plugin] = {}
        for plugin in plugins:
            self.register(plugin)

    def register(self, plugin: Plugin) -> None:
        """Register a plugin.

        Args:
            plugin: Plugin to register.

        Raises:
            PluginError: If a plugin with the same name is registered.
        """
        if plugin.name in self._plugins:
            raise PluginError(f"Plugin already registered: {plugin.name}")
        self._plugins[plugin.name] = plugin

    def unregister(self, name: str) -> bool:
        return self._plugins.pop(name, None) is not None

    def lookup_by_name(self, name: str) -> Plugin | None:
        """Get a plugin by name.

        Args:
            name: Plugin name.

        Returns:
            The plugin, or None if not registered.
        """
        return self._plugins.get(name)

    def registered(self) -> list[Plugin]:
        """All plugins in registration order."""
        return list(self._plugins.values())

    def in_menu(self) -> list[Plugin]:
        """Plugins that appear in the admin menu."""
        return [p for p in self._plugins.values() if p.in_menu]

    def names(self) -> list[str]:
        return list(self._plugins)

    def menu_options(self) -> list[dict[str, str]]:
        """Menu plugins as ``{name, title}`` options sorted by title."""
        return sorted((p.as_option() for p in self.in_menu()), key=lambda o: o["title"])

    def discover(self, plugins_dir: Path) -> int:
        """Register plugins described by ``plugin.json`` manifests.

        Each subdirectory of ``plugins_dir`` holding a manifest is one
        plugin. Invalid manifests and duplicate names are skipped.

        Args:
            plugins_dir: Directory to scan.

        Returns:
            Number of plugins registered.
        """
        if not plugins_dir.exists():
            return 0

        registered = 0
        for plugin_dir in sorted(plugins_dir.iterdir()):
            if not plugin_dir.is_dir() or plugin_dir.name.startswith("."):
                continue

            plugin = self._load_manifest(plugin_dir)
            if plugin is None:
                continue

            try:
                self.register(plugin)
                registered += 1
            except PluginError as e:
                logger.warning(f"Skipping plugin in '{plugin_dir.name}': {e}")

        return registered

    def _load_manifest(self, plugin_dir: Path) -> Plugin | None:
        """Load plugin metadata from plugin.json.

        Args:
            plugin_dir: Plugin directory.

        Returns:
            Plugin or None if the manifest is missing or invalid.
        """
        json_path = plugin_dir / "plugin.json"
        if not json_path.exists():
            return None

        try:
            with open(json_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Cannot read manifest for plugin '{plugin_dir.name}': {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Manifest for plugin '{plugin_dir.name}' is not an object")
            return None

        name = data.get("name", plugin_dir.name)
        title = data.get("title", name.replace("_", " ").title() if isinstance(name, str) else None)
        description = data.get("description", "")
        for field, value in (("name", name), ("title", title), ("description", description)):
            if not isinstance(value, str) or (field != "description" and not value.strip()):
                logger.warning(f"Manifest for plugin '{plugin_dir.name}' has an invalid {field}: {value!r}")
                return None

        return Plugin(
            name=name,
            title=title,
            description=description,
            in_menu=bool(data.get("in_menu", True)),
        )
