"""Tests for the diff and reconciliation engine."""

import pytest

from db_importer.descriptors import ColumnSpec, ForeignKeySpec, IndexSpec, PrimaryKeySpec, TableDescriptor
from db_importer.errors import ErrorCode
from db_importer.schema.dialect import get_dialect
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
from db_importer.schema.models import ColumnSchema, ConstraintSchema, DatabaseSchema, IndexSchema, TableSchema

PG = get_dialect("postgresql")
MYSQL = get_dialect("mysql")
SQLITE = get_dialect("sqlite")


def _widget(**updates) -> TableDescriptor:
    data = {
        "name": "widget",
        "columns": {
            "id": ColumnSpec(type="int", autoincrement=True),
            "name": ColumnSpec(type="string", length=255, nullable=False),
            "status": ColumnSpec(type="string", length=20, default="new"),
        },
        "indexes": [IndexSpec(name="widget_name_idx", columns=["name"], unique=True)],
        "primary_keys": [PrimaryKeySpec(name="widget_pkey", columns=["id"])],
    }
    data.update(updates)
    return TableDescriptor(**data)


def _live_widget(**updates) -> TableSchema:
    data = {
        "name": "widget",
        "columns": {
            "id": ColumnSchema(name="id", data_type="int", is_nullable=False, autoincrement=True),
            "name": ColumnSchema(name="name", data_type="varchar(255)", is_nullable=False),
            "status": ColumnSchema(name="status", data_type="varchar(20)", default="new"),
        },
        "indexes": {"widget_name_idx": IndexSchema(name="widget_name_idx", columns=["name"], is_unique=True)},
        "primary_keys": {"widget_pkey": ["id"]},
    }
    data.update(updates)
    return TableSchema(**data)


def _owner_fk() -> ForeignKeySpec:
    return ForeignKeySpec(
        name="fk_widget_owner", table="widget", columns=["owner_id"], ref_table="owner", ref_columns=["id"]
    )


def _kinds(steps: list[MigrationStep]) -> list[list[OperationKind]]:
    return [[op.kind for op in step.operations] for step in steps]


# ============================================================================
# Equivalence predicates
# ============================================================================


class TestColumnsEquivalent:
    def test_identical(self) -> None:
        spec = ColumnSpec(type="string", length=20, default="new")
        live = ColumnSchema(name="status", data_type="varchar(20)", default="new")
        assert columns_equivalent(PG, spec, live) is True

    @pytest.mark.parametrize(
        "live",
        [
            ColumnSchema(name="status", data_type="varchar(10)", default="new"),
            ColumnSchema(name="status", data_type="varchar(20)", is_nullable=False, default="new"),
            ColumnSchema(name="status", data_type="varchar(20)", default="old"),
            ColumnSchema(name="status", data_type="varchar(20)", default=None),
            ColumnSchema(name="status", data_type="text", default="new"),
        ],
    )
    def test_single_difference(self, live: ColumnSchema) -> None:
        spec = ColumnSpec(type="string", length=20, default="new")
        assert columns_equivalent(PG, spec, live) is False

    def test_numeric_default_matches_reflected_string(self) -> None:
        spec = ColumnSpec(type="int", default=0)
        live = ColumnSchema(name="qty", data_type="int", default="0")
        assert columns_equivalent(PG, spec, live) is True

    def test_unsigned_difference(self) -> None:
        spec = ColumnSpec(type="int", unsigned=True)
        assert columns_equivalent(MYSQL, spec, ColumnSchema(name="qty", data_type="int", unsigned=False)) is False
        assert columns_equivalent(MYSQL, spec, ColumnSchema(name="qty", data_type="int", unsigned=True)) is True

    def test_autoincrement_ignores_default(self) -> None:
        spec = ColumnSpec(type="int", autoincrement=True)
        live = ColumnSchema(name="id", data_type="int", is_nullable=False, default="something")
        assert columns_equivalent(PG, spec, live) is True

    def test_keyword_default_case_insensitive(self) -> None:
        spec = ColumnSpec(type="timestamp", default="current_timestamp")
        live = ColumnSchema(name="at", data_type="timestamp", default="CURRENT_TIMESTAMP")
        assert columns_equivalent(PG, spec, live) is True


class TestIndexNeedsUpdate:
    def test_same(self) -> None:
        live = IndexSchema(name="ix", columns=["a", "b"], is_unique=False)
        assert index_needs_update(IndexSpec(name="ix", columns=["a", "b"]), live) is False

    def test_column_order_matters(self) -> None:
        live = IndexSchema(name="ix", columns=["b", "a"])
        assert index_needs_update(IndexSpec(name="ix", columns=["a", "b"]), live) is True

    def test_uniqueness(self) -> None:
        live = IndexSchema(name="ix", columns=["a"], is_unique=False)
        assert index_needs_update(IndexSpec(name="ix", columns=["a"], unique=True), live) is True


class TestPrimaryKeyNeedsUpdate:
    def test_matching_set(self) -> None:
        spec = PrimaryKeySpec(name="pk", columns=["a", "b"])
        assert primary_key_needs_update(spec, {"pk": ["b", "a"]}) is False

    def test_different_set(self) -> None:
        spec = PrimaryKeySpec(name="pk", columns=["a"])
        assert primary_key_needs_update(spec, {"pk": ["a", "b"]}) is True

    def test_any_live_mismatch_triggers_update(self) -> None:
        # One matching key does not outweigh another that differs
        spec = PrimaryKeySpec(name="pk_a", columns=["id"])
        assert primary_key_needs_update(spec, {"pk_a": ["id"], "pk_b": ["other"]}) is True

    def test_no_live_keys(self) -> None:
        assert primary_key_needs_update(PrimaryKeySpec(name="pk", columns=["id"]), {}) is False


class TestForeignKeyExists:
    def test_covered_mapping(self) -> None:
        live = [
            ConstraintSchema(
                name="any_name", columns=["owner_id"], references_table="owner", references_columns=["id"]
            )
        ]
        assert foreign_key_exists(_owner_fk(), live) is True

    def test_different_referenced_table(self) -> None:
        live = [ConstraintSchema(columns=["owner_id"], references_table="person", references_columns=["id"])]
        assert foreign_key_exists(_owner_fk(), live) is False

    def test_different_referenced_column(self) -> None:
        live = [ConstraintSchema(columns=["owner_id"], references_table="owner", references_columns=["uuid"])]
        assert foreign_key_exists(_owner_fk(), live) is False

    def test_no_live_keys(self) -> None:
        assert foreign_key_exists(_owner_fk(), []) is False


# ============================================================================
# Per-table diff
# ============================================================================


class TestDiffColumns:
    def test_missing_table_creates_it(self) -> None:
        descriptor = _widget()
        missing = TableSchema(name="widget", exists=False)
        steps = diff_columns(descriptor, descriptor.columns_for("postgresql"), missing, PG)
        assert [s.label for s in steps] == ["add table: widget"]
        assert steps[0].code == ErrorCode.UPDATE_TABLE
        assert steps[0].operations[0].kind == OperationKind.CREATE_TABLE

    def test_matching_table_no_steps(self) -> None:
        descriptor = _widget()
        assert diff_columns(descriptor, descriptor.columns_for("postgresql"), _live_widget(), PG) == []

    def test_missing_column_added(self) -> None:
        descriptor = _widget()
        live = _live_widget()
        del live.columns["status"]
        steps = diff_columns(descriptor, descriptor.columns_for("postgresql"), live, PG)
        assert [s.label for s in steps] == ["add column: widget:status"]
        assert steps[0].operations[0].kind == OperationKind.ADD_COLUMN
        assert steps[0].operations[0].to_sql(PG) == [
            "ALTER TABLE widget ADD COLUMN status VARCHAR(20) DEFAULT 'new'"
        ]

    def test_changed_column_altered(self) -> None:
        descriptor = _widget()
        live = _live_widget()
        live.columns["status"] = ColumnSchema(name="status", data_type="varchar(10)", default="new")
        steps = diff_columns(descriptor, descriptor.columns_for("postgresql"), live, PG)
        assert [s.label for s in steps] == ["alter column: widget:status"]
        assert steps[0].code == ErrorCode.UPDATE_TABLE

    def test_one_step_per_column_in_declared_order(self) -> None:
        descriptor = _widget()
        live = TableSchema(name="widget", columns={})
        steps = diff_columns(descriptor, descriptor.columns_for("postgresql"), live, PG)
        assert [s.label for s in steps] == [
            "add column: widget:id",
            "add column: widget:name",
            "add column: widget:status",
        ]

    def test_extra_live_columns_ignored(self) -> None:
        descriptor = _widget()
        live = _live_widget()
        live.columns["legacy"] = ColumnSchema(name="legacy", data_type="text")
        assert diff_columns(descriptor, descriptor.columns_for("postgresql"), live, PG) == []


class TestDiffIndexes:
    def test_missing_index_created(self) -> None:
        steps = diff_indexes("widget", _widget().indexes, _live_widget(indexes={}))
        assert [s.label for s in steps] == ["create index: widget_name_idx"]
        assert steps[0].code == ErrorCode.UPDATE_INDEX
        assert _kinds(steps) == [[OperationKind.CREATE_INDEX]]

    def test_changed_index_dropped_and_recreated_in_one_step(self) -> None:
        live = _live_widget(indexes={"widget_name_idx": IndexSchema(name="widget_name_idx", columns=["name"])})
        steps = diff_indexes("widget", _widget().indexes, live)
        assert [s.label for s in steps] == ["update index: widget_name_idx"]
        assert _kinds(steps) == [[OperationKind.DROP_INDEX, OperationKind.CREATE_INDEX]]

    def test_matching_index_untouched(self) -> None:
        assert diff_indexes("widget", _widget().indexes, _live_widget()) == []


class TestDiffPrimaryKeys:
    def test_matching_key(self) -> None:
        assert diff_primary_keys("widget", _widget().primary_keys, _live_widget()) == []

    def test_no_live_key_adds_only(self) -> None:
        """A table without any live primary key gets the declared one added.

        The earlier importer ran no comparison pass in this case and emitted
        nothing; adding the key is a deliberate departure from it.
        """
        steps = diff_primary_keys("widget", _widget().primary_keys, _live_widget(primary_keys={}))
        assert [s.label for s in steps] == ["add primary key: widget_pkey"]
        assert _kinds(steps) == [[OperationKind.ADD_PRIMARY_KEY]]
        assert steps[0].code == ErrorCode.UPDATE_PRIMARY_KEY

    def test_mismatch_drops_live_key_then_adds(self) -> None:
        live = _live_widget(primary_keys={"widget_old_pk": ["id", "name"]})
        steps = diff_primary_keys("widget", _widget().primary_keys, live)
        assert [s.label for s in steps] == ["update primary key: widget_pkey"]
        drop, add = steps[0].operations
        assert drop.kind == OperationKind.DROP_PRIMARY_KEY
        assert drop.target == "widget_old_pk"
        assert add.primary_key.columns == ["id"]

    def test_mismatch_prefers_same_named_live_key(self) -> None:
        live = _live_widget(primary_keys={"other_pk": ["id"], "widget_pkey": ["name"]})
        [step] = diff_primary_keys("widget", _widget().primary_keys, live)
        assert step.operations[0].target == "widget_pkey"


class TestDiffForeignKeys:
    def test_missing_key_added(self) -> None:
        steps = diff_foreign_keys([_owner_fk()], {"widget": _live_widget()})
        assert [s.label for s in steps] == ["add: fk_widget_owner, widget"]
        assert steps[0].code == ErrorCode.UPDATE_FOREIGN_KEY

    def test_existing_key_skipped(self) -> None:
        live = _live_widget(
            foreign_keys=[ConstraintSchema(columns=["owner_id"], references_table="owner", references_columns=["id"])]
        )
        assert diff_foreign_keys([_owner_fk()], {"widget": live}) == []

    def test_unknown_table_added(self) -> None:
        assert len(diff_foreign_keys([_owner_fk()], {})) == 1


# ============================================================================
# Whole-run planning
# ============================================================================


class TestPlanUpdate:
    def test_matching_schema_is_empty(self) -> None:
        schema = DatabaseSchema(tables={"widget": _live_widget()})
        plan = plan_update([_widget()], schema, PG)
        assert plan.has_changes is False
        assert plan.operation_count == 0

    def test_status_change_is_exactly_one_alter(self) -> None:
        descriptor = _widget(
            columns={
                "id": ColumnSpec(type="int", autoincrement=True),
                "name": ColumnSpec(type="string", length=255, nullable=False),
                "status": ColumnSpec(type="string", length=20, nullable=False, default="new"),
            }
        )
        schema = DatabaseSchema(tables={"widget": _live_widget()})
        plan = plan_update([descriptor], schema, PG)
        assert [op.kind for op in plan.operations] == [OperationKind.ALTER_COLUMN]
        assert plan.operations[0].target == "status"

    def test_missing_table_planned_with_indexes_and_keys(self) -> None:
        plan = plan_update([_widget()], DatabaseSchema(), PG)
        assert [s.label for s in plan.steps] == [
            "add table: widget",
            "create index: widget_name_idx",
            "add primary key: widget_pkey",
        ]

    def test_missing_table_on_sqlite_keeps_key_in_create(self) -> None:
        plan = plan_update([_widget()], DatabaseSchema(), SQLITE)
        assert [s.label for s in plan.steps] == ["add table: widget", "create index: widget_name_idx"]

    def test_foreign_keys_planned_last(self) -> None:
        live = _live_widget()
        del live.columns["status"]
        plan = plan_update([_widget()], DatabaseSchema(tables={"widget": live}), PG, [_owner_fk()])
        assert [s.code for s in plan.steps] == [ErrorCode.UPDATE_TABLE, ErrorCode.UPDATE_FOREIGN_KEY]

    def test_plan_table_update_uses_dialect_overrides(self) -> None:
        descriptor = TableDescriptor.model_validate(
            {
                "name": "post",
                "columns": {"body": {"type": "text"}},
                "columns_mysql": {"body": "mediumtext"},
            }
        )
        live = TableSchema(name="post", columns={"body": ColumnSchema(name="body", data_type="text")})
        [step] = plan_table_update(descriptor, live, MYSQL)
        assert step.label == "alter column: post:body"
        assert plan_table_update(descriptor, live, PG) == []


class TestPlanImport:
    def test_steps_and_codes(self) -> None:
        steps = plan_import(_widget(), PG)
        assert [(s.label, s.code) for s in steps] == [
            ("add table: widget", ErrorCode.CREATE_TABLE),
            ("create index: widget_name_idx", ErrorCode.CREATE_INDEX),
            ("add primary key: widget_pkey", ErrorCode.ADD_PRIMARY_KEY),
        ]

    def test_sqlite_has_no_separate_primary_key_step(self) -> None:
        steps = plan_import(_widget(), SQLITE)
        assert [s.code for s in steps] == [ErrorCode.CREATE_TABLE, ErrorCode.CREATE_INDEX]

    def test_foreign_keys(self) -> None:
        [step] = plan_import_foreign_keys([_owner_fk()])
        assert step.label == "add: fk_widget_owner, widget"
        assert step.code == ErrorCode.ADD_FOREIGN_KEY
        assert step.table == "widget"


class TestOperations:
    def test_to_sql_dispatch(self) -> None:
        op = SchemaOperation(OperationKind.DROP_INDEX, table="widget", target="widget_name_idx")
        assert op.to_sql(MYSQL) == ["DROP INDEX widget_name_idx ON widget"]

    def test_rename_column(self) -> None:
        op = SchemaOperation(OperationKind.RENAME_COLUMN, table="widget", target="label", new_name="title")
        assert op.to_sql(PG) == ["ALTER TABLE widget RENAME COLUMN label TO title"]

    def test_plan_counts(self) -> None:
        plan = MigrationPlan(
            steps=[
                MigrationStep("a", ErrorCode.UPDATE_INDEX, [SchemaOperation(OperationKind.DROP_INDEX, "t", "i")] * 2),
                MigrationStep("b", ErrorCode.UPDATE_TABLE, [SchemaOperation(OperationKind.DROP_TABLE, "t")]),
            ]
        )
        assert plan.has_changes is True
        assert plan.operation_count == 3

    def test_empty_step_has_no_table(self) -> None:
        assert MigrationStep("x", ErrorCode.UPDATE_TABLE).table == ""
