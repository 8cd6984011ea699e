"""Streaming table export with keyset pagination.

Each table is read page by page (``WHERE pk > last_seen ORDER BY pk
LIMIT page_size``) and written as one JSON line per row.  The SHA-256 is
fed the exact bytes written, so only one page is ever held in memory and
the checksum equals the hash of the finished record file.
"""

import hashlib
import logging
from pathlib import Path

from db_snapshot.adapters.base import TransactionClient
from db_snapshot.backup.errors import ExportError
from db_snapshot.backup.models import TableDef, TableExport
from db_snapshot.backup.rows import encode_row

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500
RECORD_SUFFIX = ".jsonl"


def record_file_name(table_name: str) -> str:
    return f"{table_name}{RECORD_SUFFIX}"


async def export_table(
    tx: TransactionClient,
    table_def: TableDef,
    directory: str | Path,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> TableExport:
    """Export one table to ``<directory>/<table>.jsonl``.

    Pagination starts at ``last_seen = 0`` and stops on the first page
    shorter than ``page_size`` (an empty page included).

    Args:
        tx: Open transaction; every page is read from its snapshot.
        table_def: Table to export.
        directory: Working directory receiving the record file.
        page_size: Rows per page.

    Returns:
        ``TableExport`` with the row count and hex SHA-256.

    Raises:
        ExportError: On a query or write failure, or when the primary key
            is not a strictly increasing integer.

    Example:
        async with adapter.transaction(adapter.snapshot_isolation_level) as tx:
            result = await export_table(tx, TableDef(name="brands"), workdir)
    """
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")

    path = Path(directory) / record_file_name(table_def.name)
    hasher = hashlib.sha256()
    row_count = 0
    last_seen = 0

    try:
        with open(path, "wb") as f:
            while True:
                page = await tx.select_page(
                    table_def.name, table_def.pk, last_seen, page_size
                )

                for row in page:
                    key = row.get(table_def.pk)
                    if isinstance(key, bool) or not isinstance(key, int):
                        raise ExportError(
                            f"{table_def.name}.{table_def.pk} is not an integer "
                            f"key: {key!r}"
                        )
                    if key <= last_seen:
                        raise ExportError(
                            f"{table_def.name}.{table_def.pk} is not strictly "
                            f"increasing ({key} after {last_seen})"
                        )

                    line = (encode_row(row, table_def) + "\n").encode("utf-8")
                    f.write(line)
                    hasher.update(line)
                    last_seen = key
                    row_count += 1

                logger.debug(
                    "%s: page of %d rows (last %s)",
                    table_def.name, len(page), last_seen,
                )

                if len(page) < page_size:
                    break
    except ExportError:
        raise
    except Exception as e:
        raise ExportError(f"Failed to export {table_def.name}: {e}") from e

    logger.info("Exported %s: %d rows", table_def.name, row_count)

    return TableExport(
        table=table_def.name,
        row_count=row_count,
        checksum=hasher.hexdigest(),
    )
