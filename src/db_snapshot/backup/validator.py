"""Archive validation without touching the database.

Every check runs even after an earlier one fails, so a caller receives
the complete error list in one pass.  The manifest is only returned for
a valid archive.

Usage:
    from db_snapshot.backup.validator import validate_archive

    report = validate_archive("backups/backup-2026-01-15.tar.gz")
    if not report.valid:
        for error in report.errors:
            print(error)
"""

import logging
from pathlib import Path

from pydantic import ValidationError

from db_snapshot.backup.archive import count_records, extract_archive, file_checksum
from db_snapshot.backup.errors import ArchiveError
from db_snapshot.backup.exporter import RECORD_SUFFIX, record_file_name
from db_snapshot.backup.manifest import MANIFEST_FILE, SCHEMA_VERSION, read_manifest
from db_snapshot.backup.models import Manifest, ValidationResult, check_identifier
from db_snapshot.backup.workspace import working_directory

logger = logging.getLogger(__name__)


def _load_manifest(workdir: Path, errors: list[str]) -> Manifest | None:
    manifest_path = workdir / MANIFEST_FILE
    if not manifest_path.is_file():
        errors.append("Manifest file not found in archive")
        return None
    try:
        return read_manifest(manifest_path)
    except ValidationError as e:
        errors.append(f"Invalid manifest: {e.error_count()} field error(s): {e}")
    except (ValueError, RecursionError) as e:
        errors.append(f"Invalid manifest JSON: {e}")
    return None


def _check_manifest_shape(manifest: Manifest, errors: list[str]) -> list[str]:
    """Check table bookkeeping; return the table names safe to look up."""
    order = manifest.table_order
    if len(set(order)) != len(order):
        errors.append("Manifest tableOrder contains duplicate tables")

    if len(order) != len(manifest.table_counts) or len(order) != len(manifest.checksums):
        errors.append(
            f"Manifest lists {len(order)} tables but has "
            f"{len(manifest.table_counts)} row counts and "
            f"{len(manifest.checksums)} checksums"
        )
    for name in order:
        if name not in manifest.table_counts:
            errors.append(f"Manifest has no row count for table {name}")
        if name not in manifest.checksums:
            errors.append(f"Manifest has no checksum for table {name}")

    safe: list[str] = []
    for name in order:
        try:
            safe.append(check_identifier(name))
        except ValueError:
            errors.append(f"Manifest table name is not a valid identifier: {name!r}")
    return safe


def _check_tables(
    workdir: Path,
    manifest: Manifest,
    tables: list[str],
    errors: list[str],
) -> None:
    for name in tables:
        record_file = workdir / record_file_name(name)
        if not record_file.is_file():
            errors.append(f"Record file for table {name} not found in archive")
            continue

        expected = manifest.checksums.get(name)
        if expected is None:
            continue

        actual = file_checksum(record_file)
        if actual != expected:
            errors.append(
                f"Checksum mismatch for table {name}: "
                f"expected {expected[:16]}..., got {actual[:16]}..."
            )
            continue

        expected_count = manifest.table_counts.get(name)
        if expected_count is not None:
            actual_count = count_records(record_file)
            if actual_count != expected_count:
                errors.append(
                    f"Row count mismatch for table {name}: "
                    f"manifest {expected_count}, file {actual_count}"
                )

    listed = set(manifest.table_order)
    for path in sorted(workdir.iterdir()):
        if path.is_file() and path.name.endswith(RECORD_SUFFIX):
            name = path.name[: -len(RECORD_SUFFIX)]
            if name not in listed:
                errors.append(f"Record file {path.name} is not listed in the manifest")


def validate_archive(
    archive_path: str | Path,
    work_root: str | Path | None = None,
    expected_version: str = SCHEMA_VERSION,
) -> ValidationResult:
    """Validate an archive's structure and integrity.

    Checks, accumulated rather than short-circuited:

    - the archive exists and extracts;
    - ``manifest.json`` is present and well-formed;
    - ``schemaVersion`` equals ``expected_version``;
    - ``tableOrder``, ``tableCounts`` and ``checksums`` agree;
    - every listed table has a record file and vice versa;
    - every record file's SHA-256 (and line count) matches the manifest.

    This function is **sync** -- it only reads local files.  Extraction
    happens in a throwaway directory under ``work_root`` (default: the
    archive's directory) that is removed before returning.

    Args:
        archive_path: Path to the ``.tar.gz`` archive.
        work_root: Parent directory for the extraction directory.
        expected_version: Schema version the engine accepts.

    Returns:
        ``ValidationResult``; ``manifest`` is set only when ``valid``.
    """
    errors: list[str] = []
    path = Path(archive_path)

    if not path.is_file():
        return ValidationResult(valid=False, errors=[f"Backup file not found: {path}"])

    root = Path(work_root) if work_root is not None else path.parent
    manifest: Manifest | None = None

    try:
        with working_directory(root, "validate-") as workdir:
            extract_archive(path, workdir)

            manifest = _load_manifest(workdir, errors)
            if manifest is not None:
                if manifest.schema_version != expected_version:
                    errors.append(
                        f"Incompatible schema version. Backup: "
                        f"{manifest.schema_version}, engine: {expected_version}"
                    )
                tables = _check_manifest_shape(manifest, errors)
                _check_tables(workdir, manifest, tables, errors)
    except ArchiveError as e:
        errors.append(str(e))
    except (OSError, UnicodeDecodeError) as e:
        errors.append(f"Validation error: {e}")

    valid = not errors
    if valid:
        logger.info("Backup %s is valid", path.name)
    else:
        logger.info("Backup %s is invalid: %d error(s)", path.name, len(errors))

    return ValidationResult(
        valid=valid,
        manifest=manifest if valid else None,
        errors=errors,
    )
