"""Per-operation working directories.

Each create, validate, or restore call owns a uniquely named directory
under the backup root and removes it on every exit path.  Cleanup
failures are logged and never replace the operation's own result.
"""

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


def remove_tree(path: str | Path) -> None:
    """Delete a directory tree, logging (not raising) on failure."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove working directory %s: %s", path, e)


def remove_file(path: str | Path) -> None:
    """Delete a file if present, logging (not raising) on failure."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)


@contextmanager
def working_directory(root: str | Path, prefix: str) -> Iterator[Path]:
    """Create ``<root>/<prefix><random>`` and remove it afterwards.

    Example:
        with working_directory(backup_dir, "restore-") as workdir:
            extract_archive(path, workdir)
    """
    Path(root).mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=root))
    try:
        yield path
    finally:
        remove_tree(path)
