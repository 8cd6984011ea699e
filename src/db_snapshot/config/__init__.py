"""Configuration management: profiles, backup settings, and table registry.

Usage:
    >>> from db_snapshot.config import load_config, SnapshotConfig, DatabaseProfile
"""

from db_snapshot.config.loader import load_config
from db_snapshot.config.models import BackupSettings, DatabaseProfile, SnapshotConfig

__all__ = ["load_config", "BackupSettings", "DatabaseProfile", "SnapshotConfig"]
