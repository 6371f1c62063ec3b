"""db-importer: declarative schema and data importer.

Creates and evolves relational schemas (tables, columns, indexes, primary
and foreign keys) from descriptor modules, reconciling a live database
idempotently across MySQL, PostgreSQL and SQLite.

Usage:
    from db_importer import Importer, get_adapter
    from db_importer import TableDescriptor, ColumnSpec, BaseDescriptorModule
    from db_importer import load_db_config, ImportAbortedError
"""

__version__ = "0.1.0"

# Adapters
from db_importer.adapters.base import DatabaseClient
from db_importer.adapters.sql import AsyncSqlAdapter

# Config
from db_importer.config.loader import load_db_config
from db_importer.config.models import DatabaseConfig, DatabaseProfile, ImporterSettings

# Descriptors
from db_importer.descriptors import (
    BaseDescriptorModule,
    ColumnSpec,
    DescriptorBundle,
    DescriptorModule,
    DescriptorRegistry,
    ForeignKeySpec,
    IndexSpec,
    PrimaryKeySpec,
    SeedDataBlock,
    TableDescriptor,
    load_descriptors,
)

# Errors
from db_importer.errors import (
    DataInsertError,
    DescriptorLoadError,
    ErrorCode,
    ForeignKeyError,
    ImportAbortedError,
    ImporterError,
    SchemaOperationError,
    SequenceResetError,
)

# Factory
from db_importer.factory import ProfileNotFoundError, get_adapter, resolve_url

# Importer
from db_importer.importer import Importer, ImportMode
from db_importer.log import ImportLog, LogEvent

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncSqlAdapter",
    # Config
    "load_db_config",
    "DatabaseConfig",
    "DatabaseProfile",
    "ImporterSettings",
    # Descriptors
    "BaseDescriptorModule",
    "ColumnSpec",
    "DescriptorBundle",
    "DescriptorModule",
    "DescriptorRegistry",
    "ForeignKeySpec",
    "IndexSpec",
    "PrimaryKeySpec",
    "SeedDataBlock",
    "TableDescriptor",
    "load_descriptors",
    # Errors
    "ErrorCode",
    "ImporterError",
    "SchemaOperationError",
    "DataInsertError",
    "SequenceResetError",
    "ForeignKeyError",
    "ImportAbortedError",
    "DescriptorLoadError",
    # Factory
    "get_adapter",
    "ProfileNotFoundError",
    "resolve_url",
    # Importer
    "Importer",
    "ImportMode",
    "ImportLog",
    "LogEvent",
]
