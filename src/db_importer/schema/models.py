"""Pydantic models for live schema introspection.

These describe what the database actually contains, as read by
``SchemaIntrospector``:

- ColumnSchema, IndexSchema, ConstraintSchema
- TableSchema, DatabaseSchema

Type tokens and defaults are stored normalized so they can be compared
directly against descriptor specs.
"""

from pydantic import BaseModel, Field


class ColumnSchema(BaseModel):
    """Schema for a live database column.

    Example:
        >>> col = ColumnSchema(name="id", data_type="int")
        >>> col.is_nullable
        True
    """

    name: str
    data_type: str  # normalized base type token, e.g. "varchar(20)"
    is_nullable: bool = True
    default: str | None = None
    unsigned: bool = False
    autoincrement: bool = False


class IndexSchema(BaseModel):
    """Schema for a live index (primary keys excluded)."""

    name: str
    columns: list[str] = Field(default_factory=list)
    is_unique: bool = False


class ConstraintSchema(BaseModel):
    """Schema for a live foreign key constraint."""

    name: str | None = None
    constraint_type: str = "FOREIGN KEY"
    columns: list[str] = Field(default_factory=list)
    references_table: str | None = None
    references_columns: list[str] = Field(default_factory=list)
    on_delete: str | None = None
    on_update: str | None = None

    def column_mapping(self) -> dict[str, str]:
        """Map each local column to the column it references."""
        return dict(zip(self.columns, self.references_columns))


class TableSchema(BaseModel):
    """Schema for a live database table.

    ``exists`` is False for tables the database does not have; all other
    fields are then empty.  ``primary_keys`` maps constraint name to its
    column list (the name is ``""`` when the engine reports none).
    """

    name: str
    exists: bool = True
    columns: dict[str, ColumnSchema] = Field(default_factory=dict)
    indexes: dict[str, IndexSchema] = Field(default_factory=dict)
    primary_keys: dict[str, list[str]] = Field(default_factory=dict)
    foreign_keys: list[ConstraintSchema] = Field(default_factory=list)

    @property
    def autoincrement_column(self) -> str | None:
        for name, column in self.columns.items():
            if column.autoincrement:
                return name
        return None


class DatabaseSchema(BaseModel):
    """Complete live database schema."""

    tables: dict[str, TableSchema] = Field(default_factory=dict)
