"""Pydantic models for database and importer configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class ImporterSettings(BaseModel):
    """``[importer]`` section of db.toml.

    Every field can be overridden per run from the CLI.
    """

    schema_dir: str = "install/install_schema"
    die_on_error: bool = False
    redundant_tables: bool = False
    log_file: str = "cache/logs/Importer.log"


class DatabaseConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    importer: ImporterSettings = Field(default_factory=ImporterSettings)
