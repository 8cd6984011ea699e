"""Relational store protocol definitions.

Defines the ``DatabaseClient`` and ``TransactionClient`` Protocols the
snapshot engine depends on.  All I/O methods are ``async def``.

The engine never issues a statement outside a transaction it opened:
exports, restores, and backup-record updates each obtain their own
connection, so independent operations can run concurrently against the
same database.

Usage:
    from db_snapshot.adapters.base import DatabaseClient

    async def count_brands(client: DatabaseClient) -> int:
        async with client.transaction(client.snapshot_isolation_level) as tx:
            return await tx.count("brands")
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncConnection


class TransactionClient(Protocol):
    """Operations bound to one open database transaction.

    Every call runs on the same connection, so reads observe one
    consistent view (subject to the isolation level the transaction was
    opened with) and writes commit or roll back together.
    """

    @property
    def server_version(self) -> str:
        """Dialect name and server version, e.g. ``"postgresql 16.2"``."""
        ...

    async def select_page(
        self,
        table: str,
        pk: str,
        after: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        """Select one keyset page.

        Runs ``SELECT * FROM table WHERE pk > :after ORDER BY pk ASC
        LIMIT :limit``.

        Args:
            table: Table name.
            pk: Primary key column (numeric, strictly increasing).
            after: Last primary key seen (``0`` for the first page).
            limit: Page size.

        Returns:
            List of row dicts in primary key order.
        """
        ...

    async def insert_rows(
        self,
        table: str,
        rows: list[dict[str, Any]],
        timestamp_fields: frozenset[str] = frozenset(),
    ) -> int:
        """Bulk-insert rows and return the number inserted."""
        ...

    async def upsert_row(
        self,
        table: str,
        pk: str,
        row: dict[str, Any],
        timestamp_fields: frozenset[str] = frozenset(),
    ) -> None:
        """Insert a row, or overwrite every column when ``pk`` exists."""
        ...

    async def delete_all(self, table: str) -> int:
        """Delete every row from ``table`` and return the deleted count."""
        ...

    async def count(self, table: str) -> int:
        """Return the number of rows in ``table``."""
        ...

    async def reset_sequence(self, table: str, pk: str) -> None:
        """Advance the key sequence behind ``pk`` past ``MAX(pk)``.

        Adapters whose backends have no sequences treat this as a no-op.
        """
        ...


class DatabaseClient(Protocol):
    """Database client interface the snapshot engine requires.

    This Protocol keeps the engine independent of the concrete driver:
    the SQLAlchemy adapter covers PostgreSQL and SQLite, and tests may
    supply their own implementation.
    """

    @property
    def dialect_name(self) -> str:
        """Backend name (``"postgresql"``, ``"sqlite"``, ...)."""
        ...

    @property
    def snapshot_isolation_level(self) -> str | None:
        """Strongest isolation level giving a stable multi-query snapshot."""
        ...

    def transaction(
        self, isolation_level: str | None = None
    ) -> AbstractAsyncContextManager[TransactionClient]:
        """Open a transaction; commit on clean exit, roll back on error.

        Example:
            async with client.transaction("REPEATABLE READ") as tx:
                page = await tx.select_page("brands", "id", 0, 500)
        """
        ...

    def connection(self) -> AbstractAsyncContextManager[AsyncConnection]:
        """Yield a raw ``AsyncConnection`` inside a short transaction."""
        ...

    async def create_all(self, metadata: MetaData) -> None:
        """Create every table in ``metadata`` that does not exist yet."""
        ...

    async def test_connection(self) -> bool:
        """Return ``True`` when ``SELECT 1`` succeeds."""
        ...

    async def close(self) -> None:
        """Close the connection pool and release resources."""
        ...
