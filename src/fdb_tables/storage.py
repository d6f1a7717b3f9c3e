"""Reading and writing FDB files on disk."""

from __future__ import annotations

import logging
import mmap
import os
from pathlib import Path
from typing import Any

from fdb_tables.encoder import encode
from fdb_tables.model import Database as BuilderDatabase
from fdb_tables.view import Database, decode

logger = logging.getLogger(__name__)


class FdbFile:
    """A memory-mapped FDB file and the read-only database decoded from it."""

    def __init__(self, file_path: Path | str, *, validate: bool = True) -> None:
        """Open and decode a file.

        Args:
            file_path: Path of the file to open.
            validate: Passed to ``decode``.
        """
        self.file_path = Path(file_path)
        self._file: Any = None
        self._mmap: mmap.mmap | None = None
        self._database: Database | None = None

        self._open(validate)

    def _open(self, validate: bool) -> None:
        """Open the file, map it and decode it."""
        self._file = open(self.file_path, "rb")
        try:
            size = os.fstat(self._file.fileno()).st_size
            if size == 0:
                # Empty files cannot be mapped; decode reports the truncation
                buffer: Any = b""
            else:
                self._mmap = mmap.mmap(self._file.fileno(), 0, access=mmap.ACCESS_READ)
                buffer = self._mmap
            self._database = decode(buffer, validate=validate)
        except BaseException:
            self.close()
            raise
        logger.debug("Opened %s (%d bytes)", self.file_path, size)

    @property
    def database(self) -> Database:
        """Return the decoded database."""
        if self._database is None:
            raise ValueError(f"File is closed: {self.file_path}")
        return self._database

    def close(self) -> None:
        """Release the decoded views, the map and the file."""
        if self._database is not None:
            self._database.release()
            self._database = None
        if self._mmap is not None:
            self._mmap.close()
            self._mmap = None
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> FdbFile:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def load(file_path: Path | str, *, validate: bool = True) -> BuilderDatabase:
    """Read a file into a mutable database that does not depend on the file."""
    with FdbFile(file_path, validate=validate) as fdb:
        return BuilderDatabase.from_view(fdb.database)


def save(file_path: Path | str, database: Any) -> int:
    """Encode ``database`` and write it to ``file_path``.

    The file is only written once encoding has succeeded.

    Returns:
        The number of bytes written.
    """
    data = encode(database)
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, "wb") as f:
        f.write(data)
    logger.debug("Wrote %s (%d bytes)", file_path, len(data))
    return len(data)
