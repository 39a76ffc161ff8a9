from __future__ import annotations

import logging
import os
import warnings
import zipfile
from pathlib import Path
from typing import IO

from ..constants import ARCHIVE_COMPRESSLEVEL
from ..errors import ArchiveWriteError
from ..shared.storage import commit_staging, discard_staging, open_staging

logger = logging.getLogger("certbatch.archive")


class ArchiveBuilder:
    """Write certificates into a ZIP as they are produced.

    Entries are streamed into a staging file beside ``path`` and moved into
    place by :meth:`finalize`. Entry names are flat. Adding a name twice keeps
    the last copy for readers (``ZipFile.read`` resolves to the latest entry).
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._stream: IO[bytes] | None = None
        self._tmp_path: str | None = None
        self._zip: zipfile.ZipFile | None = None
        self._names: list[str] = []
        self._finalized = False

    def __enter__(self) -> "ArchiveBuilder":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None or not self._finalized:
            self.discard()

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._names)

    def open(self) -> "ArchiveBuilder":
        if self._zip is not None:
            return self
        try:
            self._stream, self._tmp_path = open_staging(str(self.path))
            self._zip = zipfile.ZipFile(
                self._stream,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=ARCHIVE_COMPRESSLEVEL,
            )
        except OSError as exc:
            self.discard()
            raise ArchiveWriteError(f"Cannot open archive {self.path}: {exc}") from exc
        logger.info("[ARCHIVE] opened path=%s", self.path)
        return self

    def add(self, file_name: str, image_bytes: bytes) -> None:
        if self._zip is None:
            raise ArchiveWriteError("Archive is not open")
        duplicate = file_name in self._names
        try:
            with warnings.catch_warnings():
                if duplicate:
                    warnings.simplefilter("ignore", UserWarning)
                self._zip.writestr(file_name, image_bytes)
        except OSError as exc:
            self.discard()
            raise ArchiveWriteError(f"Cannot write {file_name} to {self.path}: {exc}") from exc
        if duplicate:
            logger.warning("[ARCHIVE] duplicate entry name=%s; last write wins", file_name)
            self._names.remove(file_name)
        self._names.append(file_name)

    def finalize(self) -> Path:
        if self._zip is None or self._tmp_path is None:
            raise ArchiveWriteError("Archive is not open")
        try:
            self._zip.close()
            self._stream.flush()
            os.fsync(self._stream.fileno())
            self._stream.close()
            commit_staging(self._tmp_path, str(self.path))
        except OSError as exc:
            self.discard()
            raise ArchiveWriteError(f"Cannot finalize archive {self.path}: {exc}") from exc
        self._zip = None
        self._stream = None
        self._tmp_path = None
        self._finalized = True
        logger.info(
            "[ARCHIVE] finalized path=%s entries=%s bytes=%s",
            self.path,
            len(self._names),
            self.path.stat().st_size,
        )
        return self.path

    def discard(self) -> None:
        """Drop any partially written archive."""
        if self._zip is not None:
            try:
                self._zip.close()
            except OSError:
                logger.warning("[ARCHIVE] could not close partial archive %s", self.path)
        if self._stream is not None and not self._stream.closed:
            self._stream.close()
        if self._tmp_path is not None:
            discard_staging(self._tmp_path)
            logger.info("[ARCHIVE] discarded partial archive path=%s", self.path)
        self._zip = None
        self._stream = None
        self._tmp_path = None
