"""Database adapters package.

Provides the ``DatabaseClient`` / ``TransactionClient`` Protocols and the
async SQLAlchemy adapter that implements them for PostgreSQL (``asyncpg``)
and SQLite (``aiosqlite``).

Usage:
    from db_snapshot.adapters import DatabaseClient, AsyncSQLAlchemyAdapter
"""

from db_snapshot.adapters.base import DatabaseClient, TransactionClient
from db_snapshot.adapters.sqlalchemy_adapter import AsyncSQLAlchemyAdapter

__all__ = [
    "DatabaseClient",
    "TransactionClient",
    "AsyncSQLAlchemyAdapter",
]
