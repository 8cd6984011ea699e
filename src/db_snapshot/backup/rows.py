"""Serialized row codec for record files.

A record file holds one JSON object per line.  Values are plain JSON
(numbers, strings, booleans, null); temporal columns travel as ISO-8601
strings and binary columns as base64.  Both are converted back only for
the columns a ``TableDef`` declares in ``timestamp_fields`` and
``binary_fields``, so no value is type-guessed on restore.
"""

import base64
import binascii
import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from db_snapshot.backup.errors import RowConversionError
from db_snapshot.backup.models import TableDef, check_identifier

REDACTED = "[REDACTED]"


def to_json_value(value: Any) -> Any:
    """Convert a driver value into a JSON-compatible value."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


def encode_row(row: dict[str, Any], table_def: TableDef | None = None) -> str:
    """Serialize one row to a compact JSON line (no trailing newline).

    Columns listed in ``table_def.redact_fields`` are replaced by the
    ``REDACTED`` marker when they hold a value.
    """
    redact = set(table_def.redact_fields) if table_def else set()
    out: dict[str, Any] = {}
    for column, value in row.items():
        if column in redact and value is not None:
            out[column] = REDACTED
        else:
            out[column] = to_json_value(value)
    return json.dumps(out, ensure_ascii=False, separators=(",", ":"))


def _parse_temporal(value: str) -> datetime | date:
    # Date-only strings come from DATE columns.
    if len(value) == 10 and "T" not in value and " " not in value:
        return date.fromisoformat(value)
    return datetime.fromisoformat(value)


def decode_row(line: str, table_def: TableDef) -> dict[str, Any]:
    """Parse one record line and re-hydrate declared timestamp and binary columns.

    Raises:
        RowConversionError: If the line is not a JSON object, a column name
            is not a plain identifier, or a timestamp or base64 value cannot
            be parsed.
    """
    try:
        row = json.loads(line)
    except json.JSONDecodeError as e:
        raise RowConversionError(f"{table_def.name}: malformed row: {e}") from e

    if not isinstance(row, dict):
        raise RowConversionError(f"{table_def.name}: row is not a JSON object")

    for column in row:
        try:
            check_identifier(column)
        except ValueError as e:
            raise RowConversionError(f"{table_def.name}: {e}") from e

    for column in table_def.timestamp_fields:
        value = row.get(column)
        if value is None:
            continue
        if not isinstance(value, str):
            raise RowConversionError(
                f"{table_def.name}.{column}: expected ISO-8601 string, "
                f"got {type(value).__name__}"
            )
        try:
            row[column] = _parse_temporal(value)
        except ValueError as e:
            raise RowConversionError(
                f"{table_def.name}.{column}: invalid timestamp {value!r}"
            ) from e

    for column in table_def.binary_fields:
        value = row.get(column)
        if value is None or value == REDACTED:
            continue
        if not isinstance(value, str):
            raise RowConversionError(
                f"{table_def.name}.{column}: expected base64 string, "
                f"got {type(value).__name__}"
            )
        try:
            row[column] = base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise RowConversionError(
                f"{table_def.name}.{column}: invalid base64 value"
            ) from e

    return row


def is_redacted(row: dict[str, Any], table_def: TableDef) -> bool:
    """True when any of the table's redacted columns holds the marker."""
    return any(row.get(column) == REDACTED for column in table_def.redact_fields)
