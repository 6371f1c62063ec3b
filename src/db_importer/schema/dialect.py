"""Per-engine SQL rendering.

Each ``SqlDialect`` turns descriptor specs into engine-specific SQL:
column types (compiled through SQLAlchemy's type compilers), quoted
identifiers, default literals, table options and the DDL statements the
executor issues.  Everything here is pure -- no I/O, no connections.

Statements a given engine cannot express raise ``NotImplementedError``;
the executor records those like any other failed operation.

Usage:
    from db_importer.schema.dialect import get_dialect

    dialect = get_dialect("mysql")
    for sql in dialect.create_table(descriptor, descriptor.columns_for(dialect.name)):
        await client.execute(sql)
"""

import re
from decimal import Decimal
from functools import lru_cache
from typing import Any

from sqlalchemy import types as sa_types
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine.default import DefaultDialect
from sqlalchemy.engine.interfaces import Dialect

from db_importer.descriptors.models import (
    ColumnSpec,
    ForeignKeySpec,
    IndexSpec,
    PrimaryKeySpec,
    TableDescriptor,
)

# ============================================================================
# Normalization helpers (shared with the introspector)
# ============================================================================

_PAREN_ARGS = re.compile(r"\(([^)]*)\)")
_TYPE_NAME = re.compile(r"^([a-z_][a-z0-9_]*)(\([^)]*\))?")
_CAST_SUFFIX = re.compile(r"::[\w\s\[\]\"]+$")

_TYPE_ALIASES = {
    "integer": "int",
    "int4": "int",
    "int2": "smallint",
    "int8": "bigint",
    "serial": "int",
    "bigserial": "bigint",
    "bool": "boolean",
    "numeric": "decimal",
    "float8": "double",
}

_INTEGER_TYPES = frozenset({"tinyint", "smallint", "mediumint", "int", "bigint"})

_NUMERIC_TYPES = frozenset({"tinyint", "smallint", "int", "bigint", "decimal", "float", "double"})

_SQL_KEYWORD_DEFAULTS = frozenset({"CURRENT_TIMESTAMP", "CURRENT_DATE", "CURRENT_TIME"})


def normalize_type_token(type_string: str) -> str:
    """Reduce a column type string to its comparable base token.

    Lowercases, keeps only the first word (``"VARCHAR(20) CHARACTER SET
    utf8"`` -> ``"varchar(20)"``), maps engine aliases and drops integer
    display widths.

    Examples:
        >>> normalize_type_token("INTEGER(11) UNSIGNED")
        'int'
        >>> normalize_type_token("NUMERIC(10, 2)")
        'decimal(10,2)'
        >>> normalize_type_token("TIMESTAMP WITHOUT TIME ZONE")
        'timestamp'
    """
    text = type_string.strip().lower()
    text = _PAREN_ARGS.sub(lambda m: "(" + m.group(1).replace(" ", "") + ")", text)
    match = _TYPE_NAME.match(text)
    if not match:
        return text.split()[0] if text else ""
    name = _TYPE_ALIASES.get(match.group(1), match.group(1))
    args = match.group(2) or ""
    if name in _INTEGER_TYPES:
        args = ""
    return name + args


def normalize_default(value: Any) -> str | None:
    """Normalize a default value (declared or reflected) for comparison.

    Strips PostgreSQL casts and surrounding quotes, treats sequence
    defaults as no default and maps boolean spellings to ``"1"``/``"0"``.

    Examples:
        >>> normalize_default("'new'::character varying")
        'new'
        >>> normalize_default("nextval('widget_id_seq'::regclass)") is None
        True
        >>> normalize_default(True)
        '1'
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    text = str(value).strip()
    if text.upper() == "NULL" or text.lower().startswith("nextval("):
        return None
    if text.startswith("(") and text.endswith(")"):
        text = text[1:-1].strip()
    text = _CAST_SUFFIX.sub("", text)
    if len(text) >= 2 and text[0] == text[-1] == "'":
        text = text[1:-1].replace("''", "'")
    if text.lower() in ("true", "false"):
        return "1" if text.lower() == "true" else "0"
    if text.upper().removesuffix("()") in _SQL_KEYWORD_DEFAULTS:
        return text.upper().removesuffix("()")
    return text


# ============================================================================
# Dialects
# ============================================================================


class SqlDialect:
    """Generic SQL rendering; engine subclasses override what differs.

    Unknown engine names get this class: standard DDL and no table options.
    """

    name = "generic"
    supports_unsigned = False
    # Primary keys are part of CREATE TABLE and cannot be added afterwards.
    inline_primary_keys = False

    def __init__(self, name: str | None = None) -> None:
        if name:
            self.name = name
        self.sa_dialect: Dialect = self._create_sa_dialect()

    def _create_sa_dialect(self) -> Dialect:
        return DefaultDialect()

    # ------------------------------------------------------------------
    # Identifiers, types, literals
    # ------------------------------------------------------------------

    def quote(self, identifier: str) -> str:
        """Quote an identifier if the engine requires it."""
        return self.sa_dialect.identifier_preparer.quote(identifier)

    def _columns(self, columns: list[str]) -> str:
        return ", ".join(self.quote(c) for c in columns)

    def table_options(self, descriptor: TableDescriptor) -> str | None:
        """Engine-specific fragment appended to CREATE TABLE."""
        return None

    def sa_type(self, spec: ColumnSpec) -> sa_types.TypeEngine:
        """Map a semantic column type to a SQLAlchemy type object."""
        kind = spec.type
        if kind == "string":
            return sa_types.VARCHAR(spec.length or 255)
        if kind == "char":
            return sa_types.CHAR(spec.length or 1)
        if kind in ("text", "mediumtext", "longtext"):
            return sa_types.TEXT()
        if kind in ("tinyint", "smallint"):
            return sa_types.SMALLINT()
        if kind == "int":
            return sa_types.INTEGER()
        if kind == "bigint":
            return sa_types.BIGINT()
        if kind == "boolean":
            return sa_types.BOOLEAN()
        if kind == "decimal":
            return sa_types.DECIMAL(spec.precision or 10, spec.scale or 0)
        if kind == "float":
            return sa_types.FLOAT()
        if kind == "double":
            return sa_types.DOUBLE()
        if kind == "date":
            return sa_types.DATE()
        if kind == "time":
            return sa_types.TIME()
        if kind == "datetime":
            return sa_types.DATETIME()
        if kind == "timestamp":
            return sa_types.TIMESTAMP()
        if kind in ("binary", "blob"):
            return sa_types.LargeBinary()
        if kind == "json":
            return sa_types.JSON()
        raise ValueError(f"Unsupported column type: {kind}")

    def column_type(self, spec: ColumnSpec) -> str:
        """Rendered type portion of a column definition."""
        if spec.raw_type:
            return spec.raw_type
        return self.sa_type(spec).compile(dialect=self.sa_dialect)

    def type_token(self, spec: ColumnSpec) -> str:
        """Comparable base type token of a declared column."""
        return normalize_type_token(self.column_type(spec))

    def is_unsigned(self, spec: ColumnSpec) -> bool:
        """Effective unsigned flag; always False where the engine has none."""
        if not self.supports_unsigned:
            return False
        if spec.raw_type:
            return spec.unsigned or "unsigned" in spec.raw_type.lower()
        return spec.unsigned and spec.type in _NUMERIC_TYPES

    def literal(self, value: Any) -> str:
        """Render a Python value as a SQL literal."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        text = str(value)
        if text.upper() in _SQL_KEYWORD_DEFAULTS:
            return text.upper()
        return self._quote_string(text)

    def _quote_string(self, text: str) -> str:
        return "'" + text.replace("'", "''") + "'"

    def autoincrement_definition(self, spec: ColumnSpec, inline_primary_key: bool) -> str:
        suffix = " PRIMARY KEY" if inline_primary_key else ""
        return f"{self.column_type(spec)} NOT NULL{suffix}"

    def column_definition(self, name: str, spec: ColumnSpec, inline_primary_key: bool = True) -> str:
        """Full column definition: name, type, nullability, default."""
        if spec.autoincrement:
            return f"{self.quote(name)} {self.autoincrement_definition(spec, inline_primary_key)}"
        parts = [self.quote(name), self.column_type(spec)]
        if not spec.is_nullable:
            parts.append("NOT NULL")
        if spec.default is not None:
            parts.append(f"DEFAULT {self.literal(spec.default)}")
        return " ".join(parts)

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    def create_table(self, descriptor: TableDescriptor, columns: dict[str, ColumnSpec]) -> list[str]:
        definitions = ",\n    ".join(self.column_definition(name, spec) for name, spec in columns.items())
        sql = f"CREATE TABLE {self.quote(descriptor.name)} (\n    {definitions}\n)"
        options = self.table_options(descriptor)
        if options:
            sql = f"{sql} {options}"
        return [sql]

    def add_column(self, table: str, name: str, spec: ColumnSpec) -> list[str]:
        return [f"ALTER TABLE {self.quote(table)} ADD COLUMN {self.column_definition(name, spec)}"]

    def alter_column(self, table: str, name: str, spec: ColumnSpec) -> list[str]:
        column = self.quote(name)
        column_type = self.column_type(spec)
        actions = [f"ALTER COLUMN {column} TYPE {column_type} USING {column}::{column_type}"]
        actions.append(f"ALTER COLUMN {column} {'DROP' if spec.is_nullable else 'SET'} NOT NULL")
        if not spec.autoincrement:
            if spec.default is None:
                actions.append(f"ALTER COLUMN {column} DROP DEFAULT")
            else:
                actions.append(f"ALTER COLUMN {column} SET DEFAULT {self.literal(spec.default)}")
        return [f"ALTER TABLE {self.quote(table)} " + ", ".join(actions)]

    def create_index(self, table: str, index: IndexSpec) -> list[str]:
        unique = "UNIQUE " if index.unique else ""
        return [
            f"CREATE {unique}INDEX {self.quote(index.name)} "
            f"ON {self.quote(table)} ({self._columns(index.columns)})"
        ]

    def drop_index(self, table: str, name: str) -> list[str]:
        return [f"DROP INDEX {self.quote(name)}"]

    def add_primary_key(self, table: str, primary_key: PrimaryKeySpec) -> list[str]:
        return [
            f"ALTER TABLE {self.quote(table)} ADD CONSTRAINT {self.quote(primary_key.name)} "
            f"PRIMARY KEY ({self._columns(primary_key.columns)})"
        ]

    def drop_primary_key(self, table: str, name: str) -> list[str]:
        if not name:
            raise NotImplementedError(f"{self.name}: cannot drop an unnamed primary key")
        return [f"ALTER TABLE {self.quote(table)} DROP CONSTRAINT {self.quote(name)}"]

    def add_foreign_key(self, foreign_key: ForeignKeySpec) -> list[str]:
        sql = (
            f"ALTER TABLE {self.quote(foreign_key.table)} "
            f"ADD CONSTRAINT {self.quote(foreign_key.name)} "
            f"FOREIGN KEY ({self._columns(foreign_key.columns)}) "
            f"REFERENCES {self.quote(foreign_key.ref_table)} ({self._columns(foreign_key.ref_columns)})"
        )
        if foreign_key.on_delete:
            sql += f" ON DELETE {foreign_key.on_delete}"
        if foreign_key.on_update:
            sql += f" ON UPDATE {foreign_key.on_update}"
        return [sql]

    def rename_table(self, old: str, new: str) -> list[str]:
        return [f"ALTER TABLE {self.quote(old)} RENAME TO {self.quote(new)}"]

    def drop_table(self, table: str) -> list[str]:
        return [f"DROP TABLE {self.quote(table)}"]

    def rename_column(self, table: str, old: str, new: str) -> list[str]:
        return [f"ALTER TABLE {self.quote(table)} RENAME COLUMN {self.quote(old)} TO {self.quote(new)}"]

    def drop_column(self, table: str, name: str) -> list[str]:
        return [f"ALTER TABLE {self.quote(table)} DROP COLUMN {self.quote(name)}"]

    def reset_sequence(self, table: str, column: str, next_value: int) -> list[str]:
        raise NotImplementedError(f"{self.name}: sequence reset is not supported")


class MySqlDialect(SqlDialect):
    """MySQL / MariaDB."""

    name = "mysql"
    supports_unsigned = True

    def _create_sa_dialect(self) -> Dialect:
        return mysql.dialect()

    def table_options(self, descriptor: TableDescriptor) -> str | None:
        return f"ENGINE={descriptor.engine} DEFAULT CHARSET={descriptor.charset}"

    def sa_type(self, spec: ColumnSpec) -> sa_types.TypeEngine:
        kind = spec.type
        unsigned = spec.unsigned
        if kind == "tinyint":
            return mysql.TINYINT(unsigned=unsigned)
        if kind == "smallint":
            return mysql.SMALLINT(unsigned=unsigned)
        if kind == "int":
            return mysql.INTEGER(unsigned=unsigned)
        if kind == "bigint":
            return mysql.BIGINT(unsigned=unsigned)
        if kind == "boolean":
            return mysql.TINYINT(1)
        if kind == "decimal":
            return mysql.DECIMAL(spec.precision or 10, spec.scale or 0, unsigned=unsigned)
        if kind == "float":
            return mysql.FLOAT(unsigned=unsigned)
        if kind == "double":
            return mysql.DOUBLE(unsigned=unsigned)
        if kind == "mediumtext":
            return mysql.MEDIUMTEXT()
        if kind == "longtext":
            return mysql.LONGTEXT()
        if kind in ("binary", "blob"):
            return mysql.BLOB()
        return super().sa_type(spec)

    def literal(self, value: Any) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        return super().literal(value)

    def _quote_string(self, text: str) -> str:
        return super()._quote_string(text.replace("\\", "\\\\"))

    def autoincrement_definition(self, spec: ColumnSpec, inline_primary_key: bool) -> str:
        suffix = " PRIMARY KEY" if inline_primary_key else ""
        return f"{self.column_type(spec)} NOT NULL AUTO_INCREMENT{suffix}"

    def alter_column(self, table: str, name: str, spec: ColumnSpec) -> list[str]:
        definition = self.column_definition(name, spec, inline_primary_key=False)
        return [f"ALTER TABLE {self.quote(table)} MODIFY COLUMN {definition}"]

    def drop_index(self, table: str, name: str) -> list[str]:
        return [f"DROP INDEX {self.quote(name)} ON {self.quote(table)}"]

    def drop_primary_key(self, table: str, name: str) -> list[str]:
        return [f"ALTER TABLE {self.quote(table)} DROP PRIMARY KEY"]

    def rename_table(self, old: str, new: str) -> list[str]:
        return [f"RENAME TABLE {self.quote(old)} TO {self.quote(new)}"]

    def reset_sequence(self, table: str, column: str, next_value: int) -> list[str]:
        return [f"ALTER TABLE {self.quote(table)} AUTO_INCREMENT = {int(next_value)}"]


class PostgresDialect(SqlDialect):
    """PostgreSQL."""

    name = "postgresql"

    def _create_sa_dialect(self) -> Dialect:
        return postgresql.dialect()

    def sa_type(self, spec: ColumnSpec) -> sa_types.TypeEngine:
        kind = spec.type
        if kind == "datetime":
            return sa_types.TIMESTAMP()
        if kind == "float":
            return postgresql.REAL()
        if kind == "double":
            return postgresql.DOUBLE_PRECISION()
        return super().sa_type(spec)

    def autoincrement_definition(self, spec: ColumnSpec, inline_primary_key: bool) -> str:
        serial = "BIGSERIAL" if spec.type == "bigint" else "SERIAL"
        suffix = " PRIMARY KEY" if inline_primary_key else ""
        return f"{serial}{suffix}"

    def alter_column(self, table: str, name: str, spec: ColumnSpec) -> list[str]:
        if spec.autoincrement and not spec.raw_type:
            spec = spec.model_copy(update={"type": "bigint" if spec.type == "bigint" else "int"})
        return super().alter_column(table, name, spec)

    def reset_sequence(self, table: str, column: str, next_value: int) -> list[str]:
        return [
            f"SELECT setval(pg_get_serial_sequence({self.literal(self.quote(table))}, "
            f"{self.literal(column)}), {int(next_value)}, false)"
        ]


class SqliteDialect(SqlDialect):
    """SQLite; table-level constraints only exist inside CREATE TABLE."""

    name = "sqlite"
    inline_primary_keys = True

    def _create_sa_dialect(self) -> Dialect:
        return sqlite.dialect()

    def create_table(self, descriptor: TableDescriptor, columns: dict[str, ColumnSpec]) -> list[str]:
        definitions = [self.column_definition(name, spec) for name, spec in columns.items()]
        # An autoincrement column already carries the table's only primary key.
        if descriptor.primary_keys and not any(spec.autoincrement for spec in columns.values()):
            primary_key = descriptor.primary_keys[0]
            definitions.append(
                f"CONSTRAINT {self.quote(primary_key.name)} PRIMARY KEY ({self._columns(primary_key.columns)})"
            )
        body = ",\n    ".join(definitions)
        return [f"CREATE TABLE {self.quote(descriptor.name)} (\n    {body}\n)"]

    def autoincrement_definition(self, spec: ColumnSpec, inline_primary_key: bool) -> str:
        return "INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT"

    def alter_column(self, table: str, name: str, spec: ColumnSpec) -> list[str]:
        raise NotImplementedError("sqlite: ALTER COLUMN is not supported")

    def add_primary_key(self, table: str, primary_key: PrimaryKeySpec) -> list[str]:
        raise NotImplementedError("sqlite: primary keys can only be declared in CREATE TABLE")

    def drop_primary_key(self, table: str, name: str) -> list[str]:
        raise NotImplementedError("sqlite: primary keys can only be declared in CREATE TABLE")

    def add_foreign_key(self, foreign_key: ForeignKeySpec) -> list[str]:
        raise NotImplementedError("sqlite: foreign keys can only be declared in CREATE TABLE")

    def reset_sequence(self, table: str, column: str, next_value: int) -> list[str]:
        return [
            f"UPDATE sqlite_sequence SET seq = {int(next_value) - 1} "
            f"WHERE name = {self.literal(table)}"
        ]


_DIALECTS: dict[str, type[SqlDialect]] = {
    "mysql": MySqlDialect,
    "mariadb": MySqlDialect,
    "postgresql": PostgresDialect,
    "postgres": PostgresDialect,
    "sqlite": SqliteDialect,
}


@lru_cache
def get_dialect(name: str) -> SqlDialect:
    """Return the dialect for an engine name (``engine.dialect.name``).

    MySQL-family names share ``MySqlDialect``.  Unknown engines get the
    generic ``SqlDialect`` carrying the given name, so per-dialect
    descriptor overrides keyed by that name still apply.

    Example:
        >>> get_dialect("mariadb").name
        'mysql'
        >>> get_dialect("oracle").name
        'oracle'
    """
    key = name.lower()
    cls = _DIALECTS.get(key)
    if cls is None:
        return SqlDialect(key)
    return cls()
