"""Configuration management: profiles, importer settings and TOML loading.

Usage:
    >>> from db_importer.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from db_importer.config.loader import load_db_config
from db_importer.config.models import DatabaseConfig, DatabaseProfile, ImporterSettings

__all__ = ["load_db_config", "DatabaseConfig", "DatabaseProfile", "ImporterSettings"]
