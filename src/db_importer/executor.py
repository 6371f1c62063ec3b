"""Operation executor.

Runs planned ``MigrationStep`` objects (and seed-data inserts / sequence
resets) against the injected ``DatabaseClient``, one statement at a time.
Every step is caught on its own: a failure is wrapped in the category error
for its ``ErrorCode``, recorded in the ``ImportLog``, and then either the
run continues (default) or an ``ImportAbortedError`` is raised
(``die_on_error=True``).

There is no wrapping transaction and no retry; each statement commits
independently.

Usage:
    executor = Executor(client, get_dialect(client.dialect_name), log)
    await executor.run_step(step)
    print(len(executor.applied))
"""

import logging
from collections.abc import Iterable
from typing import Any

from db_importer.adapters.base import DatabaseClient
from db_importer.errors import ERROR_TYPES, ErrorCode, ImportAbortedError, ImporterError
from db_importer.log import ImportLog, LogEvent
from db_importer.schema.dialect import SqlDialect
from db_importer.schema.diff import MigrationStep, SchemaOperation

logger = logging.getLogger(__name__)


class Executor:
    """Applies operations and records each outcome in the log.

    Attributes:
        applied: Operations whose statements all succeeded (or, in dry-run
            mode, that would have been executed), in order.
        statements: SQL statements issued (or rendered, in dry-run mode).
    """

    def __init__(
        self,
        client: DatabaseClient,
        dialect: SqlDialect,
        log: ImportLog,
        die_on_error: bool = False,
        dry_run: bool = False,
    ) -> None:
        self.client = client
        self.dialect = dialect
        self.log = log
        self.die_on_error = die_on_error
        self.dry_run = dry_run
        self.applied: list[SchemaOperation] = []
        self.statements: list[str] = []

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _fail(self, step: LogEvent, error: Exception, code: ErrorCode, statement: str | None = None) -> None:
        """Record a failed step; abort the run when ``die_on_error`` is set."""
        if isinstance(error, ImporterError):
            wrapped = error
        else:
            error_type = ERROR_TYPES[code]
            wrapped = error_type(str(error), code=int(code), statement=statement)
            wrapped.__cause__ = error
        self.log.fail(step, wrapped, code)
        if self.die_on_error:
            raise ImportAbortedError(
                f"Importer error: {wrapped}",
                code=wrapped.code,
                statement=wrapped.statement,
            ) from wrapped

    async def _execute(self, sql: str) -> None:
        self.statements.append(sql)
        if self.dry_run:
            logger.debug(f"[dry-run] {sql}")
            return
        await self.client.execute(sql)

    # ------------------------------------------------------------------
    # Schema steps
    # ------------------------------------------------------------------

    async def run_step(self, step: MigrationStep, depth: int = 1) -> bool:
        """Execute every operation of *step* as one log line.

        Returns:
            True if all statements succeeded, False if the step failed (and
            ``die_on_error`` is off).

        Raises:
            ImportAbortedError: On failure when ``die_on_error`` is set.
        """
        event = self.log.begin(step.label, depth=depth)
        statement: str | None = None
        try:
            for operation in step.operations:
                for statement in operation.to_sql(self.dialect):
                    await self._execute(statement)
                self.applied.append(operation)
        except Exception as e:
            self._fail(event, e, step.code, statement)
            return False
        self.log.done(event)
        return True

    async def run_steps(self, steps: Iterable[MigrationStep], depth: int = 1) -> int:
        """Execute steps in order; returns the number that failed."""
        failed = 0
        for step in steps:
            if not await self.run_step(step, depth=depth):
                failed += 1
        return failed

    async def apply(self, operation: SchemaOperation) -> None:
        """Execute one operation without logging or error wrapping.

        Used by maintenance operations, which propagate failures.
        """
        for sql in operation.to_sql(self.dialect):
            await self._execute(sql)
        self.applied.append(operation)

    # ------------------------------------------------------------------
    # Data steps
    # ------------------------------------------------------------------

    async def insert_rows(self, label: str, table: str, rows: Iterable[dict[str, Any]], depth: int = 1) -> bool:
        """Insert rows as one step; the first failing row stops the block.

        Rows are produced lazily, so a malformed row (wrong value count) is
        reported as an insert failure of this block.
        """
        event = self.log.begin(label, depth=depth)
        count = 0
        try:
            for row in rows:
                if not self.dry_run:
                    await self.client.insert(table, row)
                count += 1
        except Exception as e:
            self._fail(event, e, ErrorCode.INSERT_DATA)
            return False
        logger.debug(f"Inserted {count} rows into {table}")
        self.log.done(event)
        return True

    async def reset_sequence(self, label: str, table: str, column: str, depth: int = 1) -> bool:
        """Set the auto-increment counter of *table* to ``MAX(column) + 1``."""
        event = self.log.begin(label, depth=depth)
        statement: str | None = None
        try:
            quoted = self.dialect.quote(column)
            rows = await self.client.select(self.dialect.quote(table), f"MAX({quoted}) AS max_value")
            current = rows[0]["max_value"] if rows else None
            next_value = int(current or 0) + 1
            for statement in self.dialect.reset_sequence(table, column, next_value):
                await self._execute(statement)
        except Exception as e:
            self._fail(event, e, ErrorCode.RESET_SEQUENCE, statement)
            return False
        self.log.done(event)
        return True
