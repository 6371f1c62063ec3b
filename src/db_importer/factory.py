"""Database client factory.

Resolves a db.toml profile into a ready ``AsyncSqlAdapter``.

Profile selection priority:
1. Explicit ``profile_name`` argument
2. ``{env_prefix}DB_PROFILE`` environment variable
3. Raise ``ProfileNotFoundError``

Usage:
    from db_importer.factory import get_adapter

    adapter = await get_adapter("local")
    try:
        ...
    finally:
        await adapter.close()
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from db_importer.adapters import AsyncSqlAdapter
from db_importer.config import load_db_config
from db_importer.config.models import DatabaseProfile

logger = logging.getLogger(__name__)


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured or the name is unknown."""

    pass


# ============================================================================
# Profile Resolution
# ============================================================================


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from the environment.

    Args:
        env_prefix: Prefix for the environment variable
            (``"APP_"`` reads ``APP_DB_PROFILE``).

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If the variable is unset or empty
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Set {env_var}=<name> or pass --profile <name>."
    )


def get_active_profile(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile configured or it is missing
            from db.toml
        FileNotFoundError: If db.toml does not exist
    """
    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)
    config = load_db_config(config_path)

    if profile_name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return profile_name, config.profiles[profile_name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    The password is URL-quoted so special characters survive.

    Example:
        >>> resolve_url(DatabaseProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db", db_password="p@ss"))
        'postgresql://u:p%40ss@h/db'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


# ============================================================================
# Adapter Factory
# ============================================================================


async def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> AsyncSqlAdapter:
    """Create an adapter for the selected profile.

    A new adapter is created on every call; the caller owns it and must
    ``await adapter.close()``.

    Args:
        profile_name: Profile name from db.toml.  If None, uses the
            ``{env_prefix}DB_PROFILE`` environment variable.
        env_prefix: Prefix for the environment variable lookup.
        config_path: Path to db.toml (default: ``Path.cwd() / "db.toml"``).

    Returns:
        AsyncSqlAdapter connected to the profile's database

    Raises:
        ProfileNotFoundError: If no profile is configured
        FileNotFoundError: If db.toml does not exist
    """
    name, profile = get_active_profile(profile_name, env_prefix, config_path)
    logger.info(f"Using database profile {name}")
    return AsyncSqlAdapter(database_url=resolve_url(profile))
