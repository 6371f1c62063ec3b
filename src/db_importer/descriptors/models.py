"""Pydantic models for declarative schema descriptors.

Descriptors are the target structure the importer reconciles a live
database against:

- ColumnSpec, IndexSpec, PrimaryKeySpec, ForeignKeySpec
- TableDescriptor (columns, per-dialect overrides, indexes, primary keys)
- SeedDataBlock (rows inserted after the schema exists)
- DescriptorBundle (one descriptor unit: tables, seed data, foreign keys)

All models are frozen once validated.  Index, primary key and foreign key
specs also accept the compact positional form used in descriptor files::

    ["widget_name_idx", ["name"], True]
    ["widget_pk", ["id"]]
    ["fk_widget_owner", "widget", ["owner_id"], "owner", ["id"], "CASCADE", None]
"""

from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SEMANTIC_TYPES = frozenset(
    {
        "string",
        "char",
        "text",
        "mediumtext",
        "longtext",
        "tinyint",
        "smallint",
        "int",
        "bigint",
        "boolean",
        "decimal",
        "float",
        "double",
        "date",
        "time",
        "datetime",
        "timestamp",
        "binary",
        "blob",
        "json",
    }
)

_TYPE_ALIASES = {
    "integer": "int",
    "varchar": "string",
    "bool": "boolean",
    "numeric": "decimal",
}


def _as_list(value: Any) -> Any:
    """Accept a bare column name where a column list is expected."""
    if isinstance(value, str):
        return [value]
    return value


# ============================================================================
# Column / Index / Key Specs
# ============================================================================


class ColumnSpec(BaseModel):
    """Target definition of a single column.

    Example:
        >>> col = ColumnSpec(type="string", length=255, nullable=False)
        >>> col.is_nullable
        False
    """

    model_config = ConfigDict(frozen=True)

    type: str = "string"
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    nullable: bool = True
    default: Any = None
    unsigned: bool = False
    autoincrement: bool = False
    raw_type: str | None = None  # dialect-specific type string, used verbatim

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            value = _TYPE_ALIASES.get(value, value)
            if value not in SEMANTIC_TYPES:
                raise ValueError(f"Unknown column type: {value}")
        return value

    @property
    def is_nullable(self) -> bool:
        """Auto-increment columns are the table's primary key and never NULL."""
        return self.nullable and not self.autoincrement


class IndexSpec(BaseModel):
    """Target definition of a named index."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: list[str]
    unique: bool = False

    @model_validator(mode="before")
    @classmethod
    def _from_positional(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return {
                "name": data[0],
                "columns": data[1],
                "unique": bool(data[2]) if len(data) > 2 else False,
            }
        return data

    @field_validator("columns", mode="before")
    @classmethod
    def _columns_as_list(cls, value: Any) -> Any:
        return _as_list(value)


class PrimaryKeySpec(BaseModel):
    """Target definition of a named primary key."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: list[str]

    @model_validator(mode="before")
    @classmethod
    def _from_positional(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return {"name": data[0], "columns": data[1]}
        return data

    @field_validator("columns", mode="before")
    @classmethod
    def _columns_as_list(cls, value: Any) -> Any:
        return _as_list(value)


class ForeignKeySpec(BaseModel):
    """Foreign key constraint added in the post-pass.

    Foreign keys are only ever added: an existing constraint with the same
    referenced table and column mapping is left untouched.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    table: str
    columns: list[str]
    ref_table: str
    ref_columns: list[str]
    on_delete: str | None = None
    on_update: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_positional(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            keys = ("name", "table", "columns", "ref_table", "ref_columns", "on_delete", "on_update")
            return dict(zip(keys, data))
        return data

    @field_validator("columns", "ref_columns", mode="before")
    @classmethod
    def _columns_as_list(cls, value: Any) -> Any:
        return _as_list(value)

    @model_validator(mode="after")
    def _check_column_counts(self) -> "ForeignKeySpec":
        if len(self.columns) != len(self.ref_columns):
            raise ValueError(
                f"Foreign key {self.name}: {len(self.columns)} columns "
                f"reference {len(self.ref_columns)} columns"
            )
        return self

    def column_mapping(self) -> dict[str, str]:
        """Map each owning column to the column it references."""
        return dict(zip(self.columns, self.ref_columns))


# ============================================================================
# Table Descriptor
# ============================================================================


class TableDescriptor(BaseModel):
    """Target structure of one table.

    Per-dialect overrides are given in descriptor files as
    ``columns_<dialect>`` / ``index_<dialect>`` keys and are collected into
    ``dialect_columns`` / ``dialect_indexes``.  A column override may be a
    full ``ColumnSpec`` or a bare type string that replaces only the type
    of the generic column.

    Example:
        >>> table = TableDescriptor(
        ...     name="widget",
        ...     columns={"id": {"type": "int", "autoincrement": True}},
        ...     columns_mysql={"id": "int(10) unsigned"},
        ... )
        >>> table.columns_for("mysql")["id"].raw_type
        'int(10) unsigned'
    """

    model_config = ConfigDict(frozen=True)

    name: str
    columns: dict[str, ColumnSpec] = Field(default_factory=dict)
    dialect_columns: dict[str, dict[str, ColumnSpec | str]] = Field(default_factory=dict)
    indexes: list[IndexSpec] = Field(default_factory=list)
    dialect_indexes: dict[str, list[IndexSpec]] = Field(default_factory=dict)
    primary_keys: list[PrimaryKeySpec] = Field(default_factory=list)
    engine: str = "InnoDB"
    charset: str = "utf8"

    @model_validator(mode="before")
    @classmethod
    def _collect_dialect_overrides(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "index" in data and "indexes" not in data:
            data["indexes"] = data.pop("index")
        if "primaryKeys" in data and "primary_keys" not in data:
            data["primary_keys"] = data.pop("primaryKeys")
        dialect_columns = dict(data.get("dialect_columns") or {})
        dialect_indexes = dict(data.get("dialect_indexes") or {})
        for key in list(data):
            if key.startswith("columns_"):
                dialect_columns[key[len("columns_"):]] = data.pop(key)
            elif key.startswith("index_"):
                dialect_indexes[key[len("index_"):]] = data.pop(key)
        data["dialect_columns"] = dialect_columns
        data["dialect_indexes"] = dialect_indexes
        return data

    def column_overrides(self, dialect_name: str) -> dict[str, ColumnSpec]:
        """Resolve the column overrides declared for *dialect_name*."""
        resolved: dict[str, ColumnSpec] = {}
        for column, override in self.dialect_columns.get(dialect_name, {}).items():
            if isinstance(override, str):
                base = self.columns.get(column, ColumnSpec())
                override = base.model_copy(update={"raw_type": override})
            resolved[column] = override
        return resolved

    def columns_for(self, dialect_name: str) -> dict[str, ColumnSpec]:
        """Columns in declared order with dialect overrides applied."""
        columns = dict(self.columns)
        columns.update(self.column_overrides(dialect_name))
        return columns

    def indexes_for(self, dialect_name: str) -> list[IndexSpec]:
        """Indexes with same-named dialect overrides swapped in."""
        overrides = {i.name: i for i in self.dialect_indexes.get(dialect_name, [])}
        return [overrides.get(index.name, index) for index in self.indexes]

    def index_overrides(self, dialect_name: str) -> list[IndexSpec]:
        """Dialect index overrides that replace a declared index."""
        declared = {index.name for index in self.indexes}
        return [i for i in self.dialect_indexes.get(dialect_name, []) if i.name in declared]

    @property
    def autoincrement_column(self) -> str | None:
        """Name of the first auto-increment column, if any."""
        for name, column in self.columns.items():
            if column.autoincrement:
                return name
        return None


# ============================================================================
# Seed Data
# ============================================================================


class SeedDataBlock(BaseModel):
    """Rows inserted into one table, positionally matched to ``columns``."""

    model_config = ConfigDict(frozen=True)

    table: str
    columns: list[str]
    values: list[list[Any]] = Field(default_factory=list)

    def rows(self) -> Iterator[dict[str, Any]]:
        """Yield each value row keyed by column name.

        Raises:
            ValueError: If a row's length differs from the column list.
        """
        for position, values in enumerate(self.values):
            if len(values) != len(self.columns):
                raise ValueError(
                    f"Row {position} of {self.table} has {len(values)} values "
                    f"for {len(self.columns)} columns"
                )
            yield dict(zip(self.columns, values))


# ============================================================================
# Descriptor Units
# ============================================================================


class DescriptorBundle(BaseModel):
    """A descriptor unit declared as data (used for JSON descriptor files).

    Implements the same capability interface as ``BaseDescriptorModule``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    tables: list[TableDescriptor] = Field(default_factory=list)
    data: list[SeedDataBlock] = Field(default_factory=list)
    foreign_keys: list[ForeignKeySpec] = Field(default_factory=list)

    def describe_schema(self) -> list[TableDescriptor]:
        return list(self.tables)

    def describe_seed_data(self) -> list[SeedDataBlock]:
        return list(self.data)

    def describe_foreign_keys(self) -> list[ForeignKeySpec]:
        return list(self.foreign_keys)
