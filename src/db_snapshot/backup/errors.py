"""Exception types raised by the snapshot engine."""


class SnapshotError(Exception):
    """Base class for snapshot engine errors."""

    pass


class RegistryError(SnapshotError):
    """Raised when a table registry is inconsistent or unsupported."""

    pass


class ExportError(SnapshotError):
    """Raised when a table cannot be exported."""

    pass


class ArchiveError(SnapshotError):
    """Raised when an archive cannot be written or extracted."""

    pass


class RestoreError(SnapshotError):
    """Raised inside a restore transaction to force a rollback."""

    pass


class RowConversionError(RestoreError):
    """Raised when a serialized row cannot be converted back to native values."""

    pass


class BackupStateError(SnapshotError):
    """Raised on an illegal or lost backup status transition."""

    pass
