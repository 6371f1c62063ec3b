"""TOML configuration loader for db.toml."""

import tomllib
from pathlib import Path

from db_importer.config.models import DatabaseConfig, DatabaseProfile, ImporterSettings


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load database and importer configuration from a TOML file.

    Args:
        config_path: Path to db.toml (default: ``Path.cwd() / "db.toml"``)

    Returns:
        DatabaseConfig with all profiles and importer settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid

    Example:
        >>> config = load_db_config(Path("db.toml"))
        >>> config.importer.schema_dir
        'install/install_schema'
    """
    if config_path is None:
        config_path = Path.cwd() / "db.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Copy db.toml.example to db.toml and configure your profiles."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DatabaseProfile(**profile_data)

    # Parse importer settings
    importer_settings = ImporterSettings(**data.get("importer", {}))

    return DatabaseConfig(profiles=profiles, importer=importer_settings)
