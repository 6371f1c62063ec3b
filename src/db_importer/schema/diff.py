"""Diff & reconciliation engine.

Compares descriptors against live ``TableSchema`` objects and plans the
DDL needed to converge them.  Everything here is pure: functions take
descriptors, live schemas and a ``SqlDialect`` and return operations;
nothing touches a database.

Operations are grouped into ``MigrationStep`` objects -- one per log
line -- each tagged with the ``ErrorCode`` reported if it fails.  An
index update, for example, is one step holding a DropIndex and a
CreateIndex.

Update-mode rules per table:

1. Table missing -> CreateTable.
2. Each declared column: absent -> AddColumn; not equivalent -> AlterColumn.
3. Each index: absent -> CreateIndex; column list or uniqueness differs ->
   DropIndex + CreateIndex.
4. Each primary key: any live key with a different column set -> DropPrimaryKey +
   AddPrimaryKey; no live key at all -> AddPrimaryKey.
5. Foreign keys (post-pass): added when no live key on the owning table has
   the same referenced table and column mapping.  Never dropped.

Usage:
    from db_importer.schema.diff import plan_update

    plan = plan_update(descriptors, await introspector.introspect(), dialect)
    for step in plan.steps:
        print(step.label, [op.to_sql(dialect) for op in step.operations])
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from db_importer.descriptors.models import (
    ColumnSpec,
    ForeignKeySpec,
    IndexSpec,
    PrimaryKeySpec,
    TableDescriptor,
)
from db_importer.errors import ErrorCode
from db_importer.schema.dialect import SqlDialect, normalize_default
from db_importer.schema.models import (
    ColumnSchema,
    ConstraintSchema,
    DatabaseSchema,
    IndexSchema,
    TableSchema,
)


# ------------------------------------------------------------------
# Operations
# ------------------------------------------------------------------


class OperationKind(str, Enum):
    CREATE_TABLE = "create_table"
    ADD_COLUMN = "add_column"
    ALTER_COLUMN = "alter_column"
    CREATE_INDEX = "create_index"
    DROP_INDEX = "drop_index"
    ADD_PRIMARY_KEY = "add_primary_key"
    DROP_PRIMARY_KEY = "drop_primary_key"
    ADD_FOREIGN_KEY = "add_foreign_key"
    RENAME_TABLE = "rename_table"
    DROP_TABLE = "drop_table"
    RENAME_COLUMN = "rename_column"
    DROP_COLUMN = "drop_column"


@dataclass
class SchemaOperation:
    """One physical schema change.

    ``target`` names the column, index or constraint acted on (the old name
    for renames).  Only the fields the kind needs are set.

    Example:
        op = SchemaOperation(OperationKind.DROP_INDEX, table="widget", target="widget_name_idx")
        op.to_sql(get_dialect("mysql"))
        # ['DROP INDEX widget_name_idx ON widget']
    """

    kind: OperationKind
    table: str
    target: str = ""
    descriptor: TableDescriptor | None = None
    columns: dict[str, ColumnSpec] | None = None
    column: ColumnSpec | None = None
    index: IndexSpec | None = None
    primary_key: PrimaryKeySpec | None = None
    foreign_key: ForeignKeySpec | None = None
    new_name: str | None = None

    def to_sql(self, dialect: SqlDialect) -> list[str]:
        """Render the statements for *dialect*.

        Raises:
            NotImplementedError: If the dialect cannot express the operation.
        """
        kind = self.kind
        if kind == OperationKind.CREATE_TABLE:
            return dialect.create_table(self.descriptor, self.columns)
        if kind == OperationKind.ADD_COLUMN:
            return dialect.add_column(self.table, self.target, self.column)
        if kind == OperationKind.ALTER_COLUMN:
            return dialect.alter_column(self.table, self.target, self.column)
        if kind == OperationKind.CREATE_INDEX:
            return dialect.create_index(self.table, self.index)
        if kind == OperationKind.DROP_INDEX:
            return dialect.drop_index(self.table, self.target)
        if kind == OperationKind.ADD_PRIMARY_KEY:
            return dialect.add_primary_key(self.table, self.primary_key)
        if kind == OperationKind.DROP_PRIMARY_KEY:
            return dialect.drop_primary_key(self.table, self.target)
        if kind == OperationKind.ADD_FOREIGN_KEY:
            return dialect.add_foreign_key(self.foreign_key)
        if kind == OperationKind.RENAME_TABLE:
            return dialect.rename_table(self.table, self.new_name)
        if kind == OperationKind.DROP_TABLE:
            return dialect.drop_table(self.table)
        if kind == OperationKind.RENAME_COLUMN:
            return dialect.rename_column(self.table, self.target, self.new_name)
        if kind == OperationKind.DROP_COLUMN:
            return dialect.drop_column(self.table, self.target)
        raise ValueError(f"Unknown operation kind: {kind}")


@dataclass
class MigrationStep:
    """Operations reported as one log line, failing as one unit."""

    label: str
    code: ErrorCode
    operations: list[SchemaOperation] = field(default_factory=list)

    @property
    def table(self) -> str:
        return self.operations[0].table if self.operations else ""


@dataclass
class MigrationPlan:
    """Ordered steps that bring the database in line with the descriptors.

    Attributes:
        steps: Steps in execution order.
    """

    steps: list[MigrationStep] = field(default_factory=list)

    @property
    def operations(self) -> list[SchemaOperation]:
        return [op for step in self.steps for op in step.operations]

    @property
    def has_changes(self) -> bool:
        """True if any operation is planned."""
        return bool(self.steps)

    @property
    def operation_count(self) -> int:
        """Total number of physical operations."""
        return len(self.operations)


# ------------------------------------------------------------------
# Equivalence predicates
# ------------------------------------------------------------------


def columns_equivalent(dialect: SqlDialect, spec: ColumnSpec, live: ColumnSchema) -> bool:
    """True iff type token, nullability, default and unsigned flag all match.

    Example:
        >>> from db_importer.schema.dialect import get_dialect
        >>> spec = ColumnSpec(type="string", length=20, nullable=False, default="new")
        >>> live = ColumnSchema(name="status", data_type="varchar(20)", is_nullable=True, default="new")
        >>> columns_equivalent(get_dialect("postgresql"), spec, live)
        False
    """
    if dialect.type_token(spec) != live.data_type:
        return False
    if spec.is_nullable != live.is_nullable:
        return False
    if not spec.autoincrement and normalize_default(spec.default) != live.default:
        return False
    return dialect.is_unsigned(spec) == live.unsigned


def index_needs_update(spec: IndexSpec, live: IndexSchema) -> bool:
    """Column sequence or uniqueness differs from the live index."""
    return list(spec.columns) != list(live.columns) or spec.unique != live.is_unique


def primary_key_needs_update(spec: PrimaryKeySpec, live_primary_keys: Mapping[str, list[str]]) -> bool:
    """True if ANY live primary key has a different column set.

    Every live key is compared, and one disagreement is enough -- even when
    another live key matches.
    """
    declared = set(spec.columns)
    mismatch = False
    for columns in live_primary_keys.values():
        if declared != set(columns):
            mismatch = True
    return mismatch


def foreign_key_exists(spec: ForeignKeySpec, live_foreign_keys: Iterable[ConstraintSchema]) -> bool:
    """A live key references the same table and covers the same column mapping."""
    wanted = spec.column_mapping()
    for live in live_foreign_keys:
        if live.references_table != spec.ref_table:
            continue
        mapping = live.column_mapping()
        if all(mapping.get(column) == ref for column, ref in wanted.items()):
            return True
    return False


# ------------------------------------------------------------------
# Update-mode diff (per table)
# ------------------------------------------------------------------


def diff_columns(
    descriptor: TableDescriptor,
    columns: dict[str, ColumnSpec],
    live: TableSchema,
    dialect: SqlDialect,
) -> list[MigrationStep]:
    """Create the table, or add/alter its columns in declared order."""
    table = descriptor.name
    if not live.exists:
        op = SchemaOperation(
            OperationKind.CREATE_TABLE, table=table, descriptor=descriptor, columns=columns
        )
        return [MigrationStep(f"add table: {table}", ErrorCode.UPDATE_TABLE, [op])]

    steps: list[MigrationStep] = []
    for name, spec in columns.items():
        live_column = live.columns.get(name)
        if live_column is None:
            op = SchemaOperation(OperationKind.ADD_COLUMN, table=table, target=name, column=spec)
            steps.append(MigrationStep(f"add column: {table}:{name}", ErrorCode.UPDATE_TABLE, [op]))
        elif not columns_equivalent(dialect, spec, live_column):
            op = SchemaOperation(OperationKind.ALTER_COLUMN, table=table, target=name, column=spec)
            steps.append(MigrationStep(f"alter column: {table}:{name}", ErrorCode.UPDATE_TABLE, [op]))
    return steps


def diff_indexes(table: str, indexes: list[IndexSpec], live: TableSchema) -> list[MigrationStep]:
    """Create missing indexes; drop and recreate changed ones."""
    steps: list[MigrationStep] = []
    for index in indexes:
        create = SchemaOperation(OperationKind.CREATE_INDEX, table=table, target=index.name, index=index)
        live_index = live.indexes.get(index.name)
        if live_index is None:
            steps.append(MigrationStep(f"create index: {index.name}", ErrorCode.UPDATE_INDEX, [create]))
        elif index_needs_update(index, live_index):
            drop = SchemaOperation(OperationKind.DROP_INDEX, table=table, target=index.name)
            steps.append(MigrationStep(f"update index: {index.name}", ErrorCode.UPDATE_INDEX, [drop, create]))
    return steps


def diff_primary_keys(
    table: str,
    primary_keys: list[PrimaryKeySpec],
    live: TableSchema,
) -> list[MigrationStep]:
    """Replace mismatching primary keys; add one where the table has none."""
    steps: list[MigrationStep] = []
    for primary_key in primary_keys:
        add = SchemaOperation(
            OperationKind.ADD_PRIMARY_KEY, table=table, target=primary_key.name, primary_key=primary_key
        )
        if not live.primary_keys:
            steps.append(MigrationStep(f"add primary key: {primary_key.name}", ErrorCode.UPDATE_PRIMARY_KEY, [add]))
        elif primary_key_needs_update(primary_key, live.primary_keys):
            if primary_key.name in live.primary_keys:
                live_name = primary_key.name
            else:
                live_name = next(iter(live.primary_keys))
            drop = SchemaOperation(OperationKind.DROP_PRIMARY_KEY, table=table, target=live_name)
            steps.append(
                MigrationStep(f"update primary key: {primary_key.name}", ErrorCode.UPDATE_PRIMARY_KEY, [drop, add])
            )
    return steps


def diff_foreign_keys(
    foreign_keys: list[ForeignKeySpec],
    live_tables: Mapping[str, TableSchema],
) -> list[MigrationStep]:
    """Add foreign keys that no live constraint already covers."""
    steps: list[MigrationStep] = []
    for foreign_key in foreign_keys:
        live = live_tables.get(foreign_key.table)
        live_foreign_keys = live.foreign_keys if live is not None else []
        if foreign_key_exists(foreign_key, live_foreign_keys):
            continue
        steps.append(_foreign_key_step(foreign_key, ErrorCode.UPDATE_FOREIGN_KEY))
    return steps


def _foreign_key_step(foreign_key: ForeignKeySpec, code: ErrorCode) -> MigrationStep:
    op = SchemaOperation(
        OperationKind.ADD_FOREIGN_KEY,
        table=foreign_key.table,
        target=foreign_key.name,
        foreign_key=foreign_key,
    )
    return MigrationStep(f"add: {foreign_key.name}, {foreign_key.table}", code, [op])


def plan_table_update(
    descriptor: TableDescriptor,
    live: TableSchema,
    dialect: SqlDialect,
) -> list[MigrationStep]:
    """All update-mode steps for one table against a single snapshot.

    A table that does not exist yet is planned as created with no indexes
    and no primary key constraint, unless the dialect declares primary keys
    inside CREATE TABLE.
    """
    table = descriptor.name
    steps = diff_columns(descriptor, descriptor.columns_for(dialect.name), live, dialect)
    created = not live.exists
    if created:
        live = TableSchema(name=table)
    steps += diff_indexes(table, descriptor.indexes_for(dialect.name), live)
    if not (created and dialect.inline_primary_keys):
        steps += diff_primary_keys(table, descriptor.primary_keys, live)
    return steps


def plan_update(
    descriptors: Iterable[TableDescriptor],
    live_schema: DatabaseSchema,
    dialect: SqlDialect,
    foreign_keys: Iterable[ForeignKeySpec] = (),
) -> MigrationPlan:
    """Plan a whole update run (tables first, foreign keys last).

    Args:
        descriptors: Tables in processing order.
        live_schema: Introspected live schema; absent tables are missing.
        dialect: Target dialect.
        foreign_keys: Foreign keys for the post-pass.

    Returns:
        MigrationPlan; empty when the database already matches.
    """
    plan = MigrationPlan()
    for descriptor in descriptors:
        live = live_schema.tables.get(descriptor.name) or TableSchema(name=descriptor.name, exists=False)
        plan.steps += plan_table_update(descriptor, live, dialect)
    plan.steps += diff_foreign_keys(list(foreign_keys), live_schema.tables)
    return plan


# ------------------------------------------------------------------
# Fresh import
# ------------------------------------------------------------------


def plan_import(descriptor: TableDescriptor, dialect: SqlDialect) -> list[MigrationStep]:
    """CreateTable, CreateIndex and AddPrimaryKey steps for one table.

    Dialects that declare primary keys inside CREATE TABLE get no separate
    AddPrimaryKey step.
    """
    table = descriptor.name
    steps = [
        MigrationStep(
            f"add table: {table}",
            ErrorCode.CREATE_TABLE,
            [
                SchemaOperation(
                    OperationKind.CREATE_TABLE,
                    table=table,
                    descriptor=descriptor,
                    columns=descriptor.columns_for(dialect.name),
                )
            ],
        )
    ]
    for index in descriptor.indexes_for(dialect.name):
        op = SchemaOperation(OperationKind.CREATE_INDEX, table=table, target=index.name, index=index)
        steps.append(MigrationStep(f"create index: {index.name}", ErrorCode.CREATE_INDEX, [op]))
    primary_keys = [] if dialect.inline_primary_keys else descriptor.primary_keys
    for primary_key in primary_keys:
        op = SchemaOperation(
            OperationKind.ADD_PRIMARY_KEY, table=table, target=primary_key.name, primary_key=primary_key
        )
        steps.append(MigrationStep(f"add primary key: {primary_key.name}", ErrorCode.ADD_PRIMARY_KEY, [op]))
    return steps


def plan_import_foreign_keys(foreign_keys: Iterable[ForeignKeySpec]) -> list[MigrationStep]:
    """Fresh-import foreign key steps (no existence check)."""
    return [_foreign_key_step(fk, ErrorCode.ADD_FOREIGN_KEY) for fk in foreign_keys]
