"""Tests for keyset-paginated table export."""

import hashlib
import json

import pytest

from db_snapshot.backup.errors import ExportError
from db_snapshot.backup.exporter import export_table, record_file_name
from db_snapshot.backup.models import TableDef
from db_snapshot.backup.rows import encode_row


class FakeTransaction:
    """TransactionClient stand-in serving fixed rows by keyset."""

    server_version = "fake 1.0"

    def __init__(self, rows):
        self.rows = rows
        self.calls = []

    async def select_page(self, table, pk, after, limit):
        self.calls.append((after, limit))
        return [r for r in self.rows if r[pk] > after][:limit]


class BrokenTransaction(FakeTransaction):

    async def select_page(self, table, pk, after, limit):
        raise ConnectionError("server closed the connection")


class UnorderedTransaction(FakeTransaction):
    """Ignores the keyset predicate and returns a duplicate key."""

    async def select_page(self, table, pk, after, limit):
        return [{"id": 2}, {"id": 2}]


class TestPagination:
    """Export paginates with WHERE pk > last_seen ORDER BY pk LIMIT n."""

    async def test_three_rows_page_size_two(self, seeded, tmp_path):
        """ids 1,2,3 with page size 2 -> pages [1,2] then [3]."""
        pages = []

        async with seeded.transaction(seeded.snapshot_isolation_level) as tx:
            select_page = tx.select_page

            async def spy(table, pk, after, limit):
                page = await select_page(table, pk, after, limit)
                pages.append((after, [r["id"] for r in page]))
                return page

            tx.select_page = spy
            result = await export_table(tx, TableDef(name="brands"), tmp_path, page_size=2)

        assert pages == [(0, [1, 2]), (2, [3])]
        assert result.table == "brands"
        assert result.row_count == 3

        content = (tmp_path / record_file_name("brands")).read_bytes()
        lines = content.decode("utf-8").splitlines()
        assert [json.loads(line)["id"] for line in lines] == [1, 2, 3]
        assert result.checksum == hashlib.sha256(content).hexdigest()

    async def test_checksum_is_hash_of_lines_in_id_order(self, tmp_path):
        rows = [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}, {"id": 3, "name": "c"}]
        tx = FakeTransaction(rows)

        result = await export_table(tx, TableDef(name="brands"), tmp_path, page_size=2)

        expected = hashlib.sha256(
            "".join(encode_row(r) + "\n" for r in rows).encode("utf-8")
        ).hexdigest()
        assert result.checksum == expected

    async def test_exact_multiple_ends_on_empty_page(self, tmp_path):
        tx = FakeTransaction([{"id": 1}, {"id": 2}])

        result = await export_table(tx, TableDef(name="brands"), tmp_path, page_size=2)

        assert result.row_count == 2
        assert tx.calls == [(0, 2), (2, 2)]

    async def test_empty_table(self, tmp_path):
        tx = FakeTransaction([])

        result = await export_table(tx, TableDef(name="brands"), tmp_path)

        assert result.row_count == 0
        assert (tmp_path / "brands.jsonl").read_bytes() == b""
        assert result.checksum == hashlib.sha256(b"").hexdigest()

    async def test_gaps_in_keys(self, tmp_path):
        tx = FakeTransaction([{"id": 5}, {"id": 40}, {"id": 41}])

        result = await export_table(tx, TableDef(name="brands"), tmp_path, page_size=1)

        assert result.row_count == 3
        assert [after for after, _ in tx.calls] == [0, 5, 40, 41]


class TestDeterminism:

    async def test_same_content_same_checksum(self, seeded, tmp_path):
        first_dir = tmp_path / "first"
        second_dir = tmp_path / "second"
        first_dir.mkdir()
        second_dir.mkdir()

        async with seeded.transaction() as tx:
            first = await export_table(tx, TableDef(name="brands"), first_dir, page_size=2)
        async with seeded.transaction() as tx:
            second = await export_table(tx, TableDef(name="brands"), second_dir, page_size=500)

        assert first.checksum == second.checksum


class TestRedaction:

    async def test_redacted_fields_masked_in_file(self, seeded, tmp_path):
        table_def = TableDef(name="users", redact_fields=["password"])

        async with seeded.transaction() as tx:
            await export_table(tx, table_def, tmp_path)

        line = (tmp_path / "users.jsonl").read_text(encoding="utf-8")
        assert "s3cret" not in line
        assert json.loads(line)["password"] == "[REDACTED]"


class TestFailures:

    async def test_query_failure_wrapped(self, tmp_path):
        with pytest.raises(ExportError, match="brands") as exc_info:
            await export_table(BrokenTransaction([]), TableDef(name="brands"), tmp_path)
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    async def test_missing_table_fails(self, adapter, tmp_path):
        async with adapter.transaction() as tx:
            with pytest.raises(ExportError):
                await export_table(tx, TableDef(name="ghosts"), tmp_path)

    async def test_non_increasing_key_rejected(self, tmp_path):
        with pytest.raises(ExportError, match="strictly"):
            await export_table(UnorderedTransaction([]), TableDef(name="brands"), tmp_path)

    async def test_non_integer_key_rejected(self, tmp_path):
        tx = FakeTransaction([])

        async def text_keys(table, pk, after, limit):
            return [{"id": "abc"}]

        tx.select_page = text_keys
        with pytest.raises(ExportError, match="integer"):
            await export_table(tx, TableDef(name="brands"), tmp_path)

    async def test_page_size_must_be_positive(self, tmp_path):
        with pytest.raises(ValueError):
            await export_table(FakeTransaction([]), TableDef(name="brands"), tmp_path, page_size=0)
