"""Adapter and service factory.

Supports two configuration modes:
1. Profile mode (db-snapshot.toml): named connection profiles, selected by
   argument, ``{prefix}DB_PROFILE`` env var, or ``default_profile``
2. URL mode (``{prefix}DATABASE_URL`` env var): single connection that
   overrides every profile
"""

import os
from urllib.parse import quote

from db_snapshot.adapters import AsyncSQLAlchemyAdapter
from db_snapshot.config.models import DatabaseProfile, SnapshotConfig
from db_snapshot.service import BackupService


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


# ============================================================================
# Profile resolution
# ============================================================================


def get_active_profile_name(
    config: SnapshotConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
) -> str:
    """Get the active profile name.

    Priority:
    1. ``profile_name`` argument (e.g. ``--profile``)
    2. ``{env_prefix}DB_PROFILE`` env var
    3. ``default_profile`` from the config file
    4. Raise ProfileNotFoundError

    Args:
        config: Loaded configuration.
        profile_name: Explicit profile name.
        env_prefix: Prefix for environment variable lookup.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is selected or the selected
            profile is not defined.
    """
    name = (
        profile_name
        or os.environ.get(f"{env_prefix}DB_PROFILE")
        or config.default_profile
    )
    if not name:
        raise ProfileNotFoundError(
            "No database profile configured.\n"
            f"Pass --profile, set {env_prefix}DB_PROFILE, or set default_profile "
            "in db-snapshot.toml.\n"
            f"Available profiles: {', '.join(config.profiles) or '(none)'}"
        )

    if name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{name}' not found in db-snapshot.toml.\n"
            f"Available profiles: {', '.join(config.profiles) or '(none)'}"
        )
    return name


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_database_url(
    config: SnapshotConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
) -> str:
    """Return the connection URL for the active configuration.

    ``{env_prefix}DATABASE_URL`` wins over every profile.

    Raises:
        ProfileNotFoundError: If neither an env URL nor a profile is usable.
    """
    database_url = os.environ.get(f"{env_prefix}DATABASE_URL")
    if database_url:
        return database_url

    name = get_active_profile_name(config, profile_name, env_prefix)
    return resolve_url(config.profiles[name])


# ============================================================================
# Adapter / Service Factory
# ============================================================================


async def get_adapter(
    config: SnapshotConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
) -> AsyncSQLAlchemyAdapter:
    """Create an adapter for the active profile.

    Args:
        config: Loaded configuration.
        profile_name: Explicit profile name.
        env_prefix: Prefix for environment variable lookup.
        database_url: Direct URL; skips profile resolution.

    Returns:
        AsyncSQLAlchemyAdapter instance

    Raises:
        ProfileNotFoundError: If no database configuration found

    Example:
        >>> adapter = await get_adapter(config, profile_name="local")
        >>> await adapter.test_connection()
    """
    if database_url is None:
        database_url = get_database_url(config, profile_name, env_prefix)
    return AsyncSQLAlchemyAdapter(database_url=database_url)


async def create_service(
    config: SnapshotConfig,
    adapter: AsyncSQLAlchemyAdapter,
) -> BackupService:
    """Build and initialize a ``BackupService`` from config.

    Creates the backup directory and the ``backups`` table if absent.

    Raises:
        RegistryError: If ``[[tables]]`` is inconsistent.
    """
    service = BackupService(adapter, config.registry(), config.backup)
    await service.initialize()
    return service
