from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, BinaryIO, List, NamedTuple, Optional

from fileshare.errors import FileShareError


@dataclass
class FileEntry:
    """One child of a listed directory."""
    name: str
    is_dir: bool
    size: Optional[int]
    display_size: str
    url: str
    zip_url: str
    modified: datetime


class ServedFile(NamedTuple):
    stream: BinaryIO
    name: str


@dataclass
class UploadItem:
    """Destination name plus an async readable content (``read(size)``/``close()``).

    The upload service takes ownership of ``content`` and closes it.
    """
    name: str
    content: Any


@dataclass
class UploadedFile:
    name: str
    size: int


@dataclass
class UploadFailure:
    name: str
    error: FileShareError


@dataclass
class UploadBatchResult:
    successes: List[UploadedFile] = field(default_factory=list)
    failures: List[UploadFailure] = field(default_factory=list)
    error: Optional[FileShareError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
