"""Schema rendering, introspection and reconciliation.

Provides per-engine SQL rendering (``get_dialect``), live database
introspection (``SchemaIntrospector``) and the diff engine
(``plan_update``, ``plan_import``).

Usage:
    from db_importer.schema import get_dialect, SchemaIntrospector, plan_update
"""

from db_importer.schema.dialect import (
    MySqlDialect,
    PostgresDialect,
    SqlDialect,
    SqliteDialect,
    get_dialect,
    normalize_default,
    normalize_type_token,
)
from db_importer.schema.diff import (
    MigrationPlan,
    MigrationStep,
    OperationKind,
    SchemaOperation,
    columns_equivalent,
    diff_columns,
    diff_foreign_keys,
    diff_indexes,
    diff_primary_keys,
    foreign_key_exists,
    index_needs_update,
    plan_import,
    plan_import_foreign_keys,
    plan_table_update,
    plan_update,
    primary_key_needs_update,
)
from db_importer.schema.introspector import SchemaIntrospector
from db_importer.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    DatabaseSchema,
    IndexSchema,
    TableSchema,
)

__all__ = [
    "get_dialect",
    "SqlDialect",
    "MySqlDialect",
    "PostgresDialect",
    "SqliteDialect",
    "normalize_default",
    "normalize_type_token",
    "SchemaIntrospector",
    "ColumnSchema",
    "ConstraintSchema",
    "IndexSchema",
    "TableSchema",
    "DatabaseSchema",
    "MigrationPlan",
    "MigrationStep",
    "OperationKind",
    "SchemaOperation",
    "columns_equivalent",
    "index_needs_update",
    "primary_key_needs_update",
    "foreign_key_exists",
    "diff_columns",
    "diff_indexes",
    "diff_primary_keys",
    "diff_foreign_keys",
    "plan_import",
    "plan_import_foreign_keys",
    "plan_table_update",
    "plan_update",
]
