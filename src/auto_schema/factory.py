"""Schema client factory.

Supports two configuration modes:
1. Profile mode (db.toml + <PREFIX>DB_PROFILE): named database profiles
2. Legacy mode (<PREFIX>DATABASE_URL): a single connection URL from the environment
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from auto_schema.adapters.sql import SqlSchemaAdapter
from auto_schema.config.loader import load_db_config
from auto_schema.config.models import DatabaseConfig, DatabaseProfile
from auto_schema.errors import AutoSchemaError

logger = logging.getLogger(__name__)


class ProfileNotFoundError(AutoSchemaError):
    """Raised when no database profile is configured."""

    pass


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from the environment.

    Args:
        env_prefix: Prefix for the variable name (``APP_`` reads
            ``APP_DB_PROFILE``).

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Set {env_prefix}DB_PROFILE=<name> or pass --profile <name>."
    )


def get_profile(
    profile_name: str, config: DatabaseConfig
) -> DatabaseProfile:
    """Look up a profile by name.

    Raises:
        ProfileNotFoundError: If the profile is not in db.toml
    """
    if profile_name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )
    return config.profiles[profile_name]


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


def resolve_database_url(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> tuple[str | None, str]:
    """Resolve the connection URL to reconcile against.

    Priority:
    1. Explicit ``profile_name``
    2. ``<PREFIX>DB_PROFILE`` env var
    3. ``<PREFIX>DATABASE_URL`` env var (legacy mode, no profile)

    Returns:
        Tuple of (profile_name or None in legacy mode, url)

    Raises:
        ProfileNotFoundError: If nothing is configured, or the named profile
            is missing from db.toml
        FileNotFoundError: If a profile is requested and db.toml is missing
    """
    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix)
        except ProfileNotFoundError:
            legacy_url = os.environ.get(f"{env_prefix}DATABASE_URL")
            if legacy_url:
                logger.debug(f"[auto-schema] Using {env_prefix}DATABASE_URL (no profile)")
                return None, legacy_url
            raise

    config = load_db_config(config_path)
    return profile_name, resolve_url(get_profile(profile_name, config))


def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
    database_url: str | None = None,
) -> SqlSchemaAdapter:
    """Create a schema client for the active profile.

    Args:
        profile_name: Profile to use instead of the environment's.
        env_prefix: Prefix for environment variable lookup.
        config_path: Path to db.toml.
        database_url: Explicit URL; skips profile resolution entirely.

    Returns:
        ``SqlSchemaAdapter`` connected lazily to the resolved URL.
    """
    if database_url is None:
        resolved_name, database_url = resolve_database_url(
            profile_name, env_prefix=env_prefix, config_path=config_path
        )
        if resolved_name:
            logger.info(f"[auto-schema] Using profile '{resolved_name}'")
    return SqlSchemaAdapter(database_url)
