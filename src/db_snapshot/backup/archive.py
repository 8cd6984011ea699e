"""Archive packaging and extraction (tar + gzip).

Archives are plain ``.tar.gz`` streams with ``manifest.json`` and one
``<table>.jsonl`` per table at the top level, so they can be inspected
with ``tar -tzf``.
"""

import hashlib
import logging
import os
import tarfile
from pathlib import Path

from db_snapshot.backup.errors import ArchiveError
from db_snapshot.backup.manifest import MANIFEST_FILE

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 8192


def file_checksum(path: str | Path) -> str:
    """Compute the hex SHA-256 of a file."""
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()


def package_archive(source_dir: str | Path, target_path: str | Path) -> str:
    """Bundle every file of ``source_dir`` into ``target_path``.

    The archive is written next to the target under a ``.partial`` name
    and renamed into place once complete, so ``target_path`` only ever
    holds a finished archive.

    Args:
        source_dir: Working directory with ``manifest.json`` and record files.
        target_path: Destination ``.tar.gz`` path.

    Returns:
        Hex SHA-256 of the finished archive.

    Raises:
        ArchiveError: If the archive cannot be written.
    """
    source = Path(source_dir)
    target = Path(target_path)
    partial = target.with_name(target.name + ".partial")

    files = sorted(p for p in source.iterdir() if p.is_file())
    # Manifest first so ``tar -tzf | head`` shows it.
    files.sort(key=lambda p: p.name != MANIFEST_FILE)

    try:
        with tarfile.open(partial, "w:gz") as tar:
            for path in files:
                tar.add(path, arcname=path.name, recursive=False)
        os.replace(partial, target)
    except (OSError, tarfile.TarError) as e:
        partial.unlink(missing_ok=True)
        raise ArchiveError(f"Failed to create archive {target}: {e}") from e

    checksum = file_checksum(target)
    logger.debug("Packaged %d files into %s", len(files), target)
    return checksum


def extract_archive(archive_path: str | Path, dest_dir: str | Path) -> None:
    """Extract a ``.tar.gz`` archive into ``dest_dir``.

    Uses the ``"data"`` extraction filter, which refuses absolute paths,
    parent-directory escapes, and special files.

    Raises:
        ArchiveError: If the file is missing, not a gzip tar stream, or
            truncated.
    """
    path = Path(archive_path)
    if not path.is_file():
        raise ArchiveError(f"Backup file not found: {path}")

    try:
        with tarfile.open(path, "r:gz") as tar:
            tar.extractall(dest_dir, filter="data")
    except (OSError, EOFError, tarfile.TarError) as e:
        raise ArchiveError(f"Failed to extract {path}: {e}") from e


def count_records(path: str | Path) -> int:
    """Count the non-blank lines of a record file."""
    count = 0
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                count += 1
    return count
