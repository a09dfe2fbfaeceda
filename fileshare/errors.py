"""Typed failures raised by the file repository.

The HTTP layer maps each class to a status code; nothing in here logs.
"""
from typing import Optional


class FileShareError(Exception):
    """Base class for repository failures tied to a path."""

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        super().__init__(message or f"{self.__class__.__name__}: {path}")


class InvalidPath(FileShareError):
    """Caller input rejected before touching the filesystem."""


class NotFound(FileShareError):
    pass


class NotADirectory(FileShareError):
    pass


class IsADirectory(FileShareError):
    pass


class StorageIOError(FileShareError):
    """Any other filesystem failure (permissions, disk errors, ...)."""


class ArchiveStreamError(StorageIOError):
    """Raised from an archive stream's read when the producer's walk failed."""


def translate_os_error(exc: OSError, path: str) -> FileShareError:
    """Map an OSError onto the repository taxonomy."""
    if isinstance(exc, FileNotFoundError):
        return NotFound(path, f"Path not found: {path}")
    if isinstance(exc, NotADirectoryError):
        return NotADirectory(path, f"Not a directory: {path}")
    if isinstance(exc, IsADirectoryError):
        return IsADirectory(path, f"Is a directory: {path}")
    return StorageIOError(path, f"I/O error on {path}: {exc.strerror or exc}")
