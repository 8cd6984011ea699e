"""Configuration loading from db-snapshot.toml."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from db_snapshot.backup.models import TableDef
from db_snapshot.config.models import BackupSettings, DatabaseProfile, SnapshotConfig

CONFIG_FILE = "db-snapshot.toml"


def load_config(config_path: Path | None = None) -> SnapshotConfig:
    """Load configuration from a TOML file.

    A relative ``[backup] directory`` is resolved against the directory
    holding the config file.

    Args:
        config_path: Path to the TOML file (default: ``db-snapshot.toml``
            in the current working directory).

    Returns:
        SnapshotConfig with profiles, backup settings and tables

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid

    Example:
        >>> config = load_config(Path("db-snapshot.toml"))
        >>> registry = config.registry()
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Config not found: {config_path}\n"
            f"Copy db-snapshot.toml.example to {CONFIG_FILE} and configure "
            f"your profiles and tables."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        # Parse profiles
        profiles = {}
        for name, profile_data in data.get("profiles", {}).items():
            profiles[name] = DatabaseProfile(**profile_data)

        # Parse backup settings
        backup = BackupSettings(**data.get("backup", {}))
        if not backup.directory.is_absolute():
            backup.directory = config_path.parent / backup.directory

        # Parse table registry
        tables = [TableDef(**t) for t in data.get("tables", [])]
    except ValidationError as e:
        raise ValueError(f"Invalid config {config_path}: {e}") from e

    default_profile = data.get("default_profile")
    if default_profile is not None and default_profile not in profiles:
        raise ValueError(
            f"default_profile '{default_profile}' is not defined in {config_path}.\n"
            f"Available profiles: {', '.join(profiles) or '(none)'}"
        )

    return SnapshotConfig(
        profiles=profiles,
        default_profile=default_profile,
        backup=backup,
        tables=tables,
    )
