"""Command-line interface for the users admin."""

import os
import sys
from pathlib import Path

import click

from .core.audit_log import AuditLogger
from .core.auth import AuthManager
from .core.config import AppConfig
from .core.models import SiteSettings
from .core.plugins import PluginRegistry
from .core.storage import Storage, StorageError, UserStore


def _load_config(base_dir: Path | None) -> AppConfig:
    """Read USERADMIN_* settings; ``--dir`` overrides USERADMIN_BASE_DIR."""
    try:
        return AppConfig.from_env(base_dir=base_dir)
    except ValueError as e:
        click.echo(click.style("Error: ", fg="red") + str(e))
        sys.exit(1)


def _open_storage(config: AppConfig) -> Storage:
    """Load the site database or exit with an error."""
    storage = Storage(config.db_path)
    if not storage.exists:
        click.echo(
            click.style("Error: ", fg="red")
            + "Site not initialized. Run 'useradmin init' first."
        )
        sys.exit(1)
    try:
        storage.load()
    except StorageError as e:
        click.echo(click.style("Error: ", fg="red") + str(e))
        sys.exit(1)
    return storage


dir_option = click.option(
    "--dir",
    "-d",
    "base_dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Base directory for the site (default: current directory)",
)


@click.group()
@click.version_option(prog_name="useradmin")
def main():
    """Users admin - manage users, roles and plugin access."""
    pass


@main.command()
@dir_option
@click.option("--username", "-u", default="admin", help="Superuser username")
@click.option("--email", "-e", default="admin@example.com", help="Superuser email")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing database",
)
def init(base_dir: Path | None, username: str, email: str, force: bool):
    """Initialize a new database with a superuser.

    The superuser gets a generated password that is shown once.
    """
    config = _load_config(base_dir)
    config.ensure_directories()

    storage = Storage(config.db_path)

    if storage.exists and not force:
        click.echo(
            click.style("Error: ", fg="red")
            + f"Database already exists at {config.db_path}"
        )
        click.echo("Use --force to overwrite.")
        sys.exit(1)

    auth = AuthManager(bcrypt_rounds=config.bcrypt_rounds)
    password = auth.friendly_token()
    storage.initialize(
        auth.hash_password(password),
        username=username,
        email=email,
        settings=SiteSettings(superuser_can_assign_roles=config.superuser_can_assign_roles),
    )

    click.echo()
    click.echo(click.style("Users admin initialized successfully!", fg="green", bold=True))
    click.echo()
    click.echo(click.style("=" * 60, fg="yellow"))
    click.echo(click.style("IMPORTANT: Save these credentials securely!", fg="yellow", bold=True))
    click.echo(click.style("=" * 60, fg="yellow"))
    click.echo()
    click.echo(f"  Username:   {username.lower()}")
    click.echo(f"  Password:   {password}")
    click.echo()


@main.command()
@dir_option
@click.option("--host", "-h", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
@click.option("--port", "-p", default=8000, type=int, help="Port to bind to (default: 8000)")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def run(base_dir: Path | None, host: str, port: int, reload: bool):
    """Start the users admin server."""
    import uvicorn

    config = _load_config(base_dir)
    if not config.db_path.exists():
        click.echo(
            click.style("Error: ", fg="red")
            + "Site not initialized. Run 'useradmin init' first."
        )
        sys.exit(1)

    # The app reads its configuration from the environment
    os.environ["USERADMIN_BASE_DIR"] = str(config.base_dir)

    click.echo(f"Starting users admin on http://{host}:{port}")
    uvicorn.run("useradmin.main:app", host=host, port=port, reload=reload)


@main.command()
@dir_option
def users(base_dir: Path | None):
    """List users with their roles and plugins."""
    config = _load_config(base_dir)
    store = UserStore(_open_storage(config))

    for user in store.all():
        roles = ", ".join(user.role_names) or "-"
        plugins = ", ".join(user.plugins) or "-"
        click.echo(f"{user.id:>4}  {user.username:<24} {user.email:<32} roles: {roles}  plugins: {plugins}")


@main.command()
@dir_option
def plugins(base_dir: Path | None):
    """List registered plugins."""
    config = _load_config(base_dir)
    registry = PluginRegistry()
    registry.discover(config.plugins_dir)

    for plugin in registry.registered():
        menu = "" if plugin.in_menu else click.style(" (hidden)", fg="yellow")
        click.echo(f"{plugin.name:<36} {plugin.title}{menu}")


@main.command()
@dir_option
@click.option("--limit", "-n", default=20, type=int, help="Number of entries to show")
def audit(base_dir: Path | None, limit: int):
    """Show recent audit log entries."""
    config = _load_config(base_dir)
    entries = AuditLogger(config.audit_log_path).read_recent(limit)

    if not entries:
        click.echo("No audit entries.")
        return

    for entry in entries:
        details = entry.get("details") or {}
        click.echo(f"{entry.get('timestamp')}  {entry.get('event'):<24} {entry.get('actor'):<16} {details}")


@main.command()
@dir_option
def backup(base_dir: Path | None):
    """Create a backup of the user database."""
    config = _load_config(base_dir)
    storage = _open_storage(config)
    backup_path = storage.backup(config.backups_dir)
    click.echo(click.style("Backup created: ", fg="green") + str(backup_path))


@main.command()
@click.argument("backup_file", type=click.Path(exists=True, path_type=Path))
@dir_option
@click.option("--force", "-f", is_flag=True, help="Overwrite the existing database")
def restore(backup_file: Path, base_dir: Path | None, force: bool):
    """Restore the user database from a backup made with 'backup'."""
    config = _load_config(base_dir)
    storage = Storage(config.db_path)

    if storage.exists and not force:
        click.echo(
            click.style("Error: ", fg="red")
            + "Existing database found. Use --force to overwrite."
        )
        sys.exit(1)

    try:
        storage.restore(backup_file)
    except StorageError as e:
        click.echo(click.style("Error: ", fg="red") + str(e))
        sys.exit(1)

    users = UserStore(storage).all()
    click.echo(click.style("Restored ", fg="green") + f"{len(users)} users from {backup_file}")


@main.command("hash-password")
@click.option(
    "--password",
    "-p",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Password to hash",
)
def hash_password(password: str):
    """Generate a bcrypt hash for a password."""
    auth = AuthManager()
    click.echo(auth.hash_password(password))


if __name__ == "__main__":
    main()
