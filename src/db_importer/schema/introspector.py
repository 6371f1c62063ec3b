"""Live schema introspection via SQLAlchemy's runtime inspector.

This module reads what the database actually contains:
- Tables and columns (normalized type token, nullability, default,
  unsigned, auto-increment)
- Indexes (name, ordered columns, uniqueness), primary key excluded
- Primary key (constraint name and columns)
- Foreign keys (columns, referenced table/columns, actions)

Reflection runs on the injected client's connection through
``DatabaseClient.run_sync()``, so it works for every engine SQLAlchemy
can inspect.  Results are cached per table until ``invalidate()`` or
``refresh()`` is called.
"""

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Inspector
from sqlalchemy.engine.interfaces import Dialect
from sqlalchemy.exc import CompileError
from sqlalchemy.types import TypeEngine

from db_importer.adapters.base import DatabaseClient
from db_importer.schema.dialect import normalize_default, normalize_type_token
from db_importer.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    DatabaseSchema,
    IndexSchema,
    TableSchema,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Reflection (sync, runs inside run_sync)
# ============================================================================


def _type_token(column_type: TypeEngine, dialect: Dialect) -> str:
    try:
        return normalize_type_token(column_type.compile(dialect=dialect))
    except CompileError:
        # NullType and engine types the dialect cannot render
        return type(column_type).__name__.lower()


def _is_autoincrement(column: dict) -> bool:
    if column.get("autoincrement") is True or column.get("identity"):
        return True
    default = column.get("default")
    return isinstance(default, str) and default.lower().startswith("nextval(")


def reflect_table(inspector: Inspector, table_name: str) -> TableSchema:
    """Build a ``TableSchema`` from a SQLAlchemy inspector.

    Args:
        inspector: Inspector bound to a live connection.
        table_name: Table to read.

    Returns:
        ``TableSchema`` with ``exists=False`` when the table is missing.
    """
    if not inspector.has_table(table_name):
        return TableSchema(name=table_name, exists=False)

    dialect = inspector.dialect
    table = TableSchema(name=table_name)

    for column in inspector.get_columns(table_name):
        table.columns[column["name"]] = ColumnSchema(
            name=column["name"],
            data_type=_type_token(column["type"], dialect),
            is_nullable=bool(column.get("nullable", True)),
            default=normalize_default(column.get("default")),
            unsigned=bool(getattr(column["type"], "unsigned", False)),
            autoincrement=_is_autoincrement(column),
        )

    for index in inspector.get_indexes(table_name):
        if not index.get("name"):
            continue
        table.indexes[index["name"]] = IndexSchema(
            name=index["name"],
            columns=[c for c in index.get("column_names", []) if c is not None],
            is_unique=bool(index.get("unique", False)),
        )

    primary_key = inspector.get_pk_constraint(table_name)
    if primary_key and primary_key.get("constrained_columns"):
        table.primary_keys[primary_key.get("name") or ""] = list(primary_key["constrained_columns"])

    for foreign_key in inspector.get_foreign_keys(table_name):
        options = foreign_key.get("options") or {}
        table.foreign_keys.append(
            ConstraintSchema(
                name=foreign_key.get("name"),
                columns=list(foreign_key["constrained_columns"]),
                references_table=foreign_key["referred_table"],
                references_columns=list(foreign_key["referred_columns"]),
                on_delete=options.get("ondelete"),
                on_update=options.get("onupdate"),
            )
        )

    return table


def _reflect_table(connection: Connection, table_name: str) -> TableSchema:
    return reflect_table(inspect(connection), table_name)


def _table_names(connection: Connection) -> list[str]:
    return inspect(connection).get_table_names()


# ============================================================================
# Introspector
# ============================================================================


class SchemaIntrospector:
    """Reads and caches live table definitions.

    The cache is never refreshed implicitly: callers invalidate a table
    after mutating it, or drop everything with ``refresh()`` after bulk
    changes.

    Usage:
        introspector = SchemaIntrospector(client)
        table = await introspector.get_table("widget")
        if table.exists:
            print(list(table.columns))
        introspector.invalidate("widget")
    """

    # Engine bookkeeping tables never reported by introspect()
    DEFAULT_EXCLUDED_TABLES = frozenset({"sqlite_sequence"})

    def __init__(
        self,
        client: DatabaseClient,
        excluded_tables: set[str] | frozenset[str] | None = None,
    ) -> None:
        """Initialize with the run's database client.

        Args:
            client: Database client providing ``run_sync()``.
            excluded_tables: Table names skipped by ``introspect()`` and
                ``get_table_names()``.  Defaults to
                ``DEFAULT_EXCLUDED_TABLES``.
        """
        self._client = client
        self._excluded_tables = frozenset(
            excluded_tables if excluded_tables is not None else self.DEFAULT_EXCLUDED_TABLES
        )
        self._cache: dict[str, TableSchema] = {}

    async def get_table_names(self) -> list[str]:
        """All table names in the default schema, sorted."""
        names = await self._client.run_sync(_table_names)
        return sorted(n for n in names if n not in self._excluded_tables)

    async def get_table(self, table_name: str) -> TableSchema:
        """Live definition of *table_name* (cached)."""
        if table_name not in self._cache:
            logger.debug(f"Reflecting table {table_name}")
            self._cache[table_name] = await self._client.run_sync(_reflect_table, table_name)
        return self._cache[table_name]

    async def table_exists(self, table_name: str) -> bool:
        return (await self.get_table(table_name)).exists

    async def introspect(self) -> DatabaseSchema:
        """Full live schema of every non-excluded table."""
        db_schema = DatabaseSchema()
        for table_name in await self.get_table_names():
            db_schema.tables[table_name] = await self.get_table(table_name)
        return db_schema

    def invalidate(self, table_name: str) -> None:
        """Forget the cached definition of one table."""
        self._cache.pop(table_name, None)

    def refresh(self) -> None:
        """Forget every cached table definition."""
        self._cache.clear()
