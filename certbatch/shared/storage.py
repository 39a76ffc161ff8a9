import os
import tempfile
from typing import IO


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def open_staging(path: str, suffix: str = ".part") -> tuple[IO[bytes], str]:
    """Open a temporary file beside ``path`` for writing; returns (file, tmp_path)."""
    dir_path = os.path.dirname(path) or "."
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path, suffix=suffix)
    return os.fdopen(fd, "w+b"), tmp_path


def commit_staging(tmp_path: str, path: str) -> None:
    """Atomically move a finished staging file into place."""
    os.replace(tmp_path, path)


def discard_staging(tmp_path: str) -> None:
    if os.path.exists(tmp_path):
        os.remove(tmp_path)


def write_atomic(path: str, data, mode: str = "wb") -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path) or "."
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, mode) as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
