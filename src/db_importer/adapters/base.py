"""The connection seam between the importer and a database.

``DatabaseClient`` is everything the importer, executor and introspector
need from a database: row reads for sequence maxima, row inserts for seed
data, raw statements for DDL, and a synchronous hook for reflection.
Clients are passed in by the caller; all I/O is ``async def``.

Usage:
    async def seed(client: DatabaseClient) -> None:
        await client.execute("CREATE TABLE widget (id INTEGER PRIMARY KEY)")
        await client.insert("widget", {"id": 1})
        rows = await client.select("widget", "MAX(id) AS max_value")
"""

from collections.abc import Callable
from typing import Any, Protocol, TypeVar

T = TypeVar("T")


class DatabaseClient(Protocol):
    """What an adapter provides to an import run.

    One client is one database connection for the duration of a run;
    statements are issued strictly one at a time.
    """

    @property
    def dialect_name(self) -> str:
        """Engine name as reported by SQLAlchemy (``"mysql"``, ``"postgresql"``, ...)."""
        ...

    async def select(self, table: str, columns: str) -> list[dict]:
        """Read rows from ``table``.

        Args:
            table: Table name (already quoted if needed).
            columns: Comma-separated column expressions
                (e.g., ``"MAX(id) AS max_value"``).

        Returns:
            One dict per row, possibly empty.
        """
        ...

    async def insert(self, table: str, data: dict) -> None:
        """Insert a single seed row.

        Args:
            table: Table name.
            data: Column name to value.

        Raises:
            Exception: Driver error on a constraint violation; the executor
                wraps it in ``DataInsertError``.
        """
        ...

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Run one statement and commit it before returning.

        Args:
            sql: DDL or other statement rendered by the dialect.
            params: Named bind parameters, if any.
        """
        ...

    async def run_sync(self, fn: Callable[..., T], *args: Any) -> T:
        """Run ``fn(connection, *args)`` against a synchronous connection.

        Used for SQLAlchemy schema reflection, which is synchronous.
        """
        ...

    async def close(self) -> None:
        """Dispose of the engine."""
        ...
