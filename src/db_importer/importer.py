"""Schema and data importer.

The ``Importer`` runs descriptor units against one database:

- Fresh import: ``import_schema()`` creates every declared table, index and
  primary key; ``import_data()`` inserts seed rows and resets sequences;
  ``post_import_foreign_keys()`` adds every foreign key.
- Update: ``update_schema()`` diffs each table against the live database and
  patches it; ``post_update_foreign_keys()`` adds missing foreign keys.
- Maintenance: ``rename_tables()``, ``drop_tables()``, ``rename_columns()``,
  ``drop_columns()`` skip when their precondition does not hold.

Foreign keys always run after the table work of every unit, because they
may reference tables created later in the batch.

Usage:
    adapter = await get_adapter("local")
    importer = Importer(adapter, schema_dir="install/install_schema")
    importer.load_descriptors()
    await importer.update_schema()
    await importer.post_update_foreign_keys()
    importer.flush_log(show=True)
    await adapter.close()
"""

import logging
from collections.abc import Iterable
from enum import Enum
from pathlib import Path

from db_importer.adapters.base import DatabaseClient
from db_importer.config.models import ImporterSettings
from db_importer.descriptors.loader import DescriptorModule, DescriptorRegistry, load_descriptors
from db_importer.descriptors.models import TableDescriptor
from db_importer.errors import ImportAbortedError
from db_importer.executor import Executor
from db_importer.log import DEFAULT_LOG_FILE, ImportLog
from db_importer.schema.diff import (
    MigrationPlan,
    MigrationStep,
    OperationKind,
    SchemaOperation,
    diff_columns,
    diff_foreign_keys,
    diff_indexes,
    diff_primary_keys,
    plan_import,
    plan_import_foreign_keys,
    plan_update,
)
from db_importer.schema.dialect import get_dialect
from db_importer.schema.introspector import SchemaIntrospector
from db_importer.schema.models import DatabaseSchema

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_DIR = "install/install_schema"


class ImportMode(str, Enum):
    IMPORT = "import"
    UPDATE = "update"


class Importer:
    """Reconciles a database with a batch of descriptor units.

    Args:
        client: Database client for the whole run.
        schema_dir: Directory scanned by ``load_descriptors()``.
        die_on_error: Abort on the first failed step instead of logging
            and continuing.
        redundant_tables: Flag ``<table>_seq`` data blocks next to
            auto-increment tables.
        log: Log to record into.  A new one is created when None.
        log_file: Target of ``flush_log(show=False)`` for a new log.
        dry_run: Record and log steps without executing them.
    """

    def __init__(
        self,
        client: DatabaseClient,
        schema_dir: str | Path = DEFAULT_SCHEMA_DIR,
        die_on_error: bool = False,
        redundant_tables: bool = False,
        log: ImportLog | None = None,
        log_file: str | Path = DEFAULT_LOG_FILE,
        dry_run: bool = False,
    ) -> None:
        self.client = client
        self.schema_dir = Path(schema_dir)
        self.die_on_error = die_on_error
        self.redundant_tables = redundant_tables
        self.log = log if log is not None else ImportLog(log_file)
        self.dialect = get_dialect(client.dialect_name)
        self.introspector = SchemaIntrospector(client)
        self.executor = Executor(client, self.dialect, self.log, die_on_error=die_on_error, dry_run=dry_run)
        self.registry = DescriptorRegistry()

    @classmethod
    def from_settings(cls, client: DatabaseClient, settings: ImporterSettings, **kwargs) -> "Importer":
        """Build an importer from the ``[importer]`` section of db.toml."""
        return cls(
            client,
            schema_dir=settings.schema_dir,
            die_on_error=settings.die_on_error,
            redundant_tables=settings.redundant_tables,
            log_file=settings.log_file,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Descriptors
    # ------------------------------------------------------------------

    def load_descriptors(self, path: str | Path | None = None) -> DescriptorRegistry:
        """Load every descriptor file from *path* (default ``schema_dir``)."""
        load_descriptors(path if path is not None else self.schema_dir, self.registry)
        logger.info(f"Loaded {len(self.registry)} descriptor modules: {', '.join(self.registry.names)}")
        return self.registry

    def register(self, module: DescriptorModule) -> DescriptorModule:
        """Add a descriptor unit programmatically."""
        return self.registry.register(module)

    def _log_overrides(self, descriptor: TableDescriptor) -> None:
        driver = self.dialect.name
        for column, spec in descriptor.column_overrides(driver).items():
            self.log.detail(
                f"custom column type, name: {column}, driver: {driver}, type: {self.dialect.column_type(spec)}"
            )
        for index in descriptor.index_overrides(driver):
            self.log.detail(f"custom index, driver: {driver}, type: {index.name}")

    # ------------------------------------------------------------------
    # Fresh import
    # ------------------------------------------------------------------

    async def import_schema(self) -> None:
        """Create every declared table, index and primary key."""
        for module in self.registry:
            await self._add_tables(module)

    async def _add_tables(self, module: DescriptorModule) -> None:
        with self.log.section("add tables"):
            for descriptor in module.describe_schema():
                self._log_overrides(descriptor)
                await self.executor.run_steps(plan_import(descriptor, self.dialect))
                self.introspector.invalidate(descriptor.name)

    async def import_data(self) -> None:
        """Insert seed rows, then reset auto-increment sequences."""
        for module in self.registry:
            await self._add_data(module)

    async def _add_data(self, module: DescriptorModule) -> None:
        blocks = module.describe_seed_data()
        if not blocks:
            return

        with self.log.section("add data rows"):
            for block in blocks:
                await self.executor.insert_rows(f"add data to table: {block.table}", block.table, block.rows())

        declared = {t.name: t.autoincrement_column for t in module.describe_schema()}
        tables = list(dict.fromkeys(block.table for block in blocks))
        with self.log.section("reset sequence"):
            for table in tables:
                live = await self.introspector.get_table(table)
                column = live.autoincrement_column or declared.get(table)
                if not live.exists or column is None:
                    continue
                await self.executor.reset_sequence(f"reset sequence: {table}", table, column)
                if self.redundant_tables and f"{table}_seq" in tables:
                    self._redundant_table(f"{table}_seq")

    def _redundant_table(self, name: str) -> None:
        self.log.error(f"redundant table {name}")
        if self.die_on_error:
            raise ImportAbortedError(f"Importer error: redundant table {name}")

    async def post_import_foreign_keys(self) -> None:
        """Add every declared foreign key (fresh import post-pass)."""
        for module in self.registry:
            foreign_keys = module.describe_foreign_keys()
            if not foreign_keys:
                continue
            with self.log.section("add foreign key"):
                for step in plan_import_foreign_keys(foreign_keys):
                    await self.executor.run_step(step)
                    self.introspector.invalidate(step.table)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_schema(self) -> None:
        """Diff every declared table against the database and patch it."""
        for module in self.registry:
            await self._update_tables(module)

    async def _update_tables(self, module: DescriptorModule) -> None:
        with self.log.section("update tables"):
            for descriptor in module.describe_schema():
                await self._update_table(descriptor)

    async def _update_table(self, descriptor: TableDescriptor) -> None:
        table = descriptor.name
        self._log_overrides(descriptor)

        # Columns, then indexes, then primary keys; each against a fresh read
        live = await self.introspector.get_table(table)
        steps = diff_columns(descriptor, descriptor.columns_for(self.dialect.name), live, self.dialect)
        await self._run_and_invalidate(table, steps)

        live = await self.introspector.get_table(table)
        steps = diff_indexes(table, descriptor.indexes_for(self.dialect.name), live)
        await self._run_and_invalidate(table, steps)

        live = await self.introspector.get_table(table)
        steps = diff_primary_keys(table, descriptor.primary_keys, live)
        await self._run_and_invalidate(table, steps)

    async def _run_and_invalidate(self, table: str, steps: list[MigrationStep]) -> None:
        if not steps:
            return
        await self.executor.run_steps(steps)
        self.introspector.invalidate(table)

    async def post_update_foreign_keys(self) -> None:
        """Add foreign keys no live constraint covers (update post-pass)."""
        for module in self.registry:
            foreign_keys = module.describe_foreign_keys()
            if not foreign_keys:
                continue
            with self.log.section("update foreign key"):
                for foreign_key in foreign_keys:
                    live = await self.introspector.get_table(foreign_key.table)
                    steps = diff_foreign_keys([foreign_key], {foreign_key.table: live})
                    await self._run_and_invalidate(foreign_key.table, steps)

    async def plan_update(self) -> MigrationPlan:
        """Plan ``update_schema()`` + ``post_update_foreign_keys()`` without executing."""
        descriptors: list[TableDescriptor] = []
        foreign_keys = []
        for module in self.registry:
            descriptors += module.describe_schema()
            foreign_keys += module.describe_foreign_keys()

        live_schema = DatabaseSchema()
        for name in dict.fromkeys([d.name for d in descriptors] + [fk.table for fk in foreign_keys]):
            live_schema.tables[name] = await self.introspector.get_table(name)
        return plan_update(descriptors, live_schema, self.dialect, foreign_keys)

    # ------------------------------------------------------------------
    # Two-phase protocol
    # ------------------------------------------------------------------

    async def apply_structure(self, mode: ImportMode | str) -> None:
        """Phase one: tables, columns, indexes and primary keys."""
        if ImportMode(mode) == ImportMode.IMPORT:
            await self.import_schema()
        else:
            await self.update_schema()

    async def apply_references(self, mode: ImportMode | str) -> None:
        """Phase two: foreign keys across all units."""
        if ImportMode(mode) == ImportMode.IMPORT:
            await self.post_import_foreign_keys()
        else:
            await self.post_update_foreign_keys()

    async def run(self, mode: ImportMode | str = ImportMode.UPDATE, with_data: bool = True) -> ImportLog:
        """Structure, seed data (import mode only), then references.

        Returns:
            The run's log.
        """
        mode = ImportMode(mode)
        await self.apply_structure(mode)
        if mode == ImportMode.IMPORT and with_data:
            await self.import_data()
        await self.apply_references(mode)
        return self.log

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def rename_tables(self, pairs: Iterable[tuple[str, str]]) -> None:
        """Rename ``(old, new)`` tables; missing tables are skipped."""
        for old, new in pairs:
            if await self.introspector.table_exists(old):
                await self.executor.apply(SchemaOperation(OperationKind.RENAME_TABLE, table=old, new_name=new))
                self.introspector.invalidate(old)
                self.introspector.invalidate(new)

    async def drop_tables(self, names: str | Iterable[str]) -> None:
        """Drop tables that exist."""
        if isinstance(names, str):
            names = [names]
        for name in names:
            if await self.introspector.table_exists(name):
                await self.executor.apply(SchemaOperation(OperationKind.DROP_TABLE, table=name))
                self.introspector.invalidate(name)

    async def rename_columns(self, triples: Iterable[tuple[str, str, str]]) -> None:
        """Rename ``(table, old, new)`` columns.

        Skipped unless the table has ``old`` and does not yet have ``new``.
        """
        for table, old, new in triples:
            live = await self.introspector.get_table(table)
            if live.exists and old in live.columns and new not in live.columns:
                await self.executor.apply(
                    SchemaOperation(OperationKind.RENAME_COLUMN, table=table, target=old, new_name=new)
                )
                self.introspector.invalidate(table)

    async def drop_columns(self, pairs: Iterable[tuple[str, str]]) -> None:
        """Drop ``(table, column)`` columns that exist."""
        for table, column in pairs:
            live = await self.introspector.get_table(table)
            if live.exists and column in live.columns:
                await self.executor.apply(SchemaOperation(OperationKind.DROP_COLUMN, table=table, target=column))
                self.introspector.invalidate(table)

    def refresh_schema(self) -> None:
        """Drop every cached table definition."""
        self.introspector.refresh()

    def flush_log(self, show: bool = True) -> Path | None:
        """Print the transcript (``show=True``) or append it to the log file."""
        return self.log.flush(show)
