"""Catalog persistence as a single JSON document."""

from __future__ import annotations

import contextlib
import os
import stat
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ecowatch.catalog.models import Catalog
from ecowatch.core.errors import CatalogError, PersistenceFailure
from ecowatch.core.log import logger


class CatalogStore:
    """Reads and writes the catalog file.

    The document is always written in full: serialized to a temporary
    file next to the target and moved over it with os.replace(), so a
    crash leaves either the old or the new catalog, never half of one.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Catalog:
        """Read the catalog; a missing file is an empty catalog.

        Raises:
            CatalogError: if the file cannot be read or parsed
        """
        if not self.path.exists():
            logger.info("No catalog yet, starting empty", path=str(self.path))
            return Catalog()

        try:
            catalog = Catalog.model_validate_json(
                self.path.read_bytes()
            )
        except (OSError, ValidationError) as e:
            raise CatalogError(f"Cannot load catalog {self.path}: {e}") from e

        logger.debug(
            "Loaded catalog", path=str(self.path), projects=len(catalog)
        )
        return catalog

    def save(self, catalog: Catalog) -> None:
        """Atomically replace the catalog file.

        Raises:
            PersistenceFailure: if the file cannot be written
        """
        data = catalog.model_dump_json(indent=2) + "\n"
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                os.fchmod(f.fileno(), self._file_mode())
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            _fsync_directory(self.path.parent)
        except OSError as e:
            if tmp_name:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            raise PersistenceFailure(
                f"Cannot save catalog {self.path}: {e}"
            ) from e

        logger.debug(
            "Saved catalog", path=str(self.path), projects=len(catalog)
        )

    def _file_mode(self) -> int:
        """Mode of the file being replaced, else 0o666 less the umask.

        mkstemp creates 0600 files; without this every save would
        narrow the catalog's permissions.
        """
        try:
            return stat.S_IMODE(self.path.stat().st_mode)
        except FileNotFoundError:
            umask = os.umask(0)
            os.umask(umask)
            return 0o666 & ~umask


def _fsync_directory(path: Path) -> None:
    """Best-effort fsync of a directory so a rename survives a crash."""
    if os.name == "nt":
        return
    flags = os.O_RDONLY | getattr(os, "O_DIRECTORY", 0)
    try:
        fd = os.open(path, flags)
    except OSError:
        return
    try:
        with contextlib.suppress(OSError):
            os.fsync(fd)
    finally:
        os.close(fd)
