"""Shared fixtures: a seeded SQLite database and an archive builder.

The application schema mirrors a small inventory app:

    user_roles <- users
    brands <- models
"""

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey as SAForeignKey,
    Integer,
    MetaData,
    Table,
    Text,
    func,
    insert,
    select,
)

from db_snapshot.adapters import AsyncSQLAlchemyAdapter
from db_snapshot.backup.archive import file_checksum, package_archive
from db_snapshot.backup.exporter import record_file_name
from db_snapshot.backup.manifest import SCHEMA_VERSION, build_manifest, write_manifest
from db_snapshot.backup.models import ForeignKey, TableDef
from db_snapshot.backup.registry import TableRegistry
from db_snapshot.backup.rows import encode_row
from db_snapshot.config.models import BackupSettings

app_metadata = MetaData()

user_roles = Table(
    "user_roles",
    app_metadata,
    Column("id", Integer, primary_key=True),
    Column("name", Text, nullable=False),
)

users = Table(
    "users",
    app_metadata,
    Column("id", Integer, primary_key=True),
    Column("role_id", Integer, SAForeignKey("user_roles.id"), nullable=False),
    Column("email", Text, nullable=False),
    Column("password", Text),
    Column("created_at", DateTime),
)

brands = Table(
    "brands",
    app_metadata,
    Column("id", Integer, primary_key=True),
    Column("name", Text, nullable=False),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
)

models = Table(
    "models",
    app_metadata,
    Column("id", Integer, primary_key=True),
    Column("brand_id", Integer, SAForeignKey("brands.id"), nullable=False),
    Column("name", Text, nullable=False),
    Column("created_at", DateTime),
)

CREATED = datetime(2026, 1, 15, 9, 30, 0)

SEED_ROWS: dict[Table, list[dict]] = {
    user_roles: [{"id": 1, "name": "admin"}],
    users: [
        {
            "id": 1,
            "role_id": 1,
            "email": "admin@example.com",
            "password": "s3cret",
            "created_at": CREATED,
        }
    ],
    brands: [
        {"id": 1, "name": "Toyota", "created_at": CREATED, "updated_at": None},
        {"id": 2, "name": "Honda", "created_at": CREATED, "updated_at": CREATED},
        {"id": 3, "name": "Mazda", "created_at": CREATED, "updated_at": None},
    ],
    models: [
        {"id": 1, "brand_id": 1, "name": "Corolla", "created_at": CREATED},
        {"id": 2, "brand_id": 2, "name": "Civic", "created_at": CREATED},
    ],
}


def sample_tables() -> list[TableDef]:
    """Registry entries for the test schema, in dependency order."""
    return [
        TableDef(name="user_roles", timestamp_fields=[]),
        TableDef(
            name="users",
            parent=ForeignKey(table="user_roles", field="role_id"),
            timestamp_fields=["created_at"],
            redact_fields=["password"],
        ),
        TableDef(name="brands"),
        TableDef(
            name="models",
            parent=ForeignKey(table="brands", field="brand_id"),
            timestamp_fields=["created_at"],
        ),
    ]


# ------------------------------------------------------------------
# Database fixtures
# ------------------------------------------------------------------


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'app.db'}"


@pytest_asyncio.fixture
async def adapter(db_url):
    """Adapter over an empty SQLite file with the application schema."""
    adapter = AsyncSQLAlchemyAdapter(db_url)
    await adapter.create_all(app_metadata)
    yield adapter
    await adapter.close()


@pytest_asyncio.fixture
async def seeded(adapter):
    """``adapter`` with ``SEED_ROWS`` inserted."""
    async with adapter.connection() as conn:
        for table, rows in SEED_ROWS.items():
            await conn.execute(insert(table), rows)
    return adapter


@pytest.fixture
def registry() -> TableRegistry:
    return TableRegistry(sample_tables())


@pytest.fixture
def backup_dir(tmp_path) -> Path:
    return tmp_path / "backups"


@pytest.fixture
def settings(backup_dir) -> BackupSettings:
    return BackupSettings(directory=backup_dir, page_size=2)


async def table_count(adapter: AsyncSQLAlchemyAdapter, table: Table) -> int:
    async with adapter.connection() as conn:
        result = await conn.execute(select(func.count()).select_from(table))
        return result.scalar()


async def table_rows(adapter: AsyncSQLAlchemyAdapter, table: Table) -> list[dict]:
    async with adapter.connection() as conn:
        result = await conn.execute(select(table).order_by(table.c.id))
        return [dict(r) for r in result.mappings().all()]


@pytest.fixture
def count_rows():
    return table_count


@pytest.fixture
def fetch_rows():
    return table_rows


# ------------------------------------------------------------------
# Archive builder
# ------------------------------------------------------------------


@pytest.fixture
def make_archive(tmp_path) -> Callable[..., Path]:
    """Build a ``.tar.gz`` archive from in-memory rows.

    Args (of the returned callable):
        tables: ``{table_name: [row, ...]}`` in export order.
        name: Archive file name.
        schema_version: Version written to the manifest.
        tamper: Called with the staging directory after the manifest is
            written and before packaging.
    """
    counter = {"n": 0}

    def _make(
        tables: dict[str, list[dict]],
        name: str = "archive.tar.gz",
        schema_version: str = SCHEMA_VERSION,
        tamper: Callable[[Path], None] | None = None,
    ) -> Path:
        counter["n"] += 1
        staging = tmp_path / f"staging-{counter['n']}"
        staging.mkdir()

        counts: dict[str, int] = {}
        checksums: dict[str, str] = {}
        for table, rows in tables.items():
            path = staging / record_file_name(table)
            with open(path, "w", encoding="utf-8") as f:
                for row in rows:
                    f.write(encode_row(row) + "\n")
            counts[table] = len(rows)
            checksums[table] = file_checksum(path)

        manifest = build_manifest(
            list(tables),
            counts,
            checksums,
            created_by=1,
            schema_version=schema_version,
            db_version="sqlite 3",
        )
        write_manifest(manifest, staging)

        if tamper is not None:
            tamper(staging)

        target = tmp_path / "archives" / name
        target.parent.mkdir(exist_ok=True)
        package_archive(staging, target)
        return target

    return _make
