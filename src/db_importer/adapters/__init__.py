"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the SQLAlchemy-based
``AsyncSqlAdapter`` implementation.

Usage:
    from db_importer.adapters import DatabaseClient, AsyncSqlAdapter
"""

from db_importer.adapters.base import DatabaseClient
from db_importer.adapters.sql import AsyncSqlAdapter

__all__ = [
    "DatabaseClient",
    "AsyncSqlAdapter",
]
