import os
import posixpath
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import List

import aiofiles
import aiofiles.os

from fileshare.errors import IsADirectory, NotADirectory, NotFound, translate_os_error
from fileshare.models import FileEntry, ServedFile
from fileshare.services.archive_streamer import ArchiveStream, ArchiveStreamer
from fileshare.services.path_resolver import resolve_path

DIRECTORY_MARKER = "[Directory]"
_UNIT_PREFIXES = "KMGTPE"


def format_file_size(size: int, is_dir: bool = False) -> str:
    """Human readable size: "1023 B", "1.0 KiB", "3.5 MiB"..."""
    if is_dir:
        return DIRECTORY_MARKER
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {_UNIT_PREFIXES[exp]}iB"


class LocalFileRepository:
    """Directory tree on the local disk, addressed by root-relative paths.

    Every public method takes a caller-supplied relative path and resolves it
    against ``root`` first, so nothing outside the root is ever touched.
    """

    def __init__(self, root: Path, archive_suffix: str = ".zip",
                 chunk_size: int = 8192, archive_capacity: int = 64 * 1024):
        self._root = Path(root).resolve()
        self.archive_suffix = archive_suffix
        self.chunk_size = chunk_size
        self._archiver = ArchiveStreamer(capacity=archive_capacity, chunk_size=chunk_size)

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, relative: str) -> Path:
        return resolve_path(self._root, relative)

    def relative_name(self, path: Path) -> str:
        """Root-relative, forward-slash form of a resolved path ("" for the root)."""
        rel = path.relative_to(self._root).as_posix()
        return "" if rel == "." else rel

    def _stat(self, relative: str, full: Path) -> os.stat_result:
        try:
            return os.stat(full)
        except OSError as exc:
            raise translate_os_error(exc, relative) from exc

    def list_directory(self, relative: str) -> List[FileEntry]:
        full = self.resolve(relative)
        try:
            with os.scandir(full) as it:
                children = list(it)
        except OSError as exc:
            raise translate_os_error(exc, relative) from exc

        base = self.relative_name(full)
        entries = []
        for child in children:
            child_rel = posixpath.join(base, child.name)
            try:
                try:
                    info = child.stat()
                except FileNotFoundError:
                    # Dangling symlink, or removed between scandir and stat
                    info = child.stat(follow_symlinks=False)
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise translate_os_error(exc, child_rel) from exc

            is_dir = stat.S_ISDIR(info.st_mode)
            size = None if is_dir else info.st_size
            url = "/" + child_rel
            entries.append(FileEntry(
                name=child.name,
                is_dir=is_dir,
                size=size,
                display_size=format_file_size(size or 0, is_dir),
                url=url,
                zip_url=url + self.archive_suffix,
                modified=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
            ))
        return entries

    def exists(self, relative: str) -> bool:
        full = self.resolve(relative)
        try:
            os.stat(full)
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as exc:
            raise translate_os_error(exc, relative) from exc
        return True

    def is_directory(self, relative: str) -> bool:
        full = self.resolve(relative)
        return stat.S_ISDIR(self._stat(relative, full).st_mode)

    def serve_file(self, relative: str) -> ServedFile:
        """Open a file for sequential reading. The caller must close the stream."""
        full = self.resolve(relative)
        if stat.S_ISDIR(self._stat(relative, full).st_mode):
            raise IsADirectory(relative, f"Is a directory: {relative or '/'}")
        try:
            stream = open(full, "rb")
        except OSError as exc:
            raise translate_os_error(exc, relative) from exc
        return ServedFile(stream=stream, name=full.name)

    def zip_directory(self, relative: str) -> ArchiveStream:
        """Start streaming a ZIP of the directory; read the result to the end or close it."""
        full = self.resolve(relative)
        if not stat.S_ISDIR(self._stat(relative, full).st_mode):
            raise NotADirectory(relative, f"Not a directory: {relative}")
        return self._archiver.open(full, label=self.relative_name(full) or "/")

    def archive_name(self, relative: str) -> str:
        full = self.resolve(relative)
        name = "archive" if full == self._root else full.name
        return name + self.archive_suffix

    async def create_directory(self, relative: str) -> None:
        full = self.resolve(relative)
        try:
            await aiofiles.os.makedirs(full, exist_ok=True)
        except OSError as exc:
            raise translate_os_error(exc, relative) from exc

    async def write_file(self, relative: str, content) -> int:
        """Create or overwrite a file with everything ``content`` yields; returns bytes written.

        ``content`` is read with ``await content.read(n)`` and is not closed here.
        """
        full = self.resolve(relative)
        if full == self._root:
            raise IsADirectory(relative, "Cannot write over the repository root")

        written = 0
        try:
            async with aiofiles.open(full, "wb") as f:
                while chunk := await content.read(self.chunk_size):
                    written += len(chunk)
                    await f.write(chunk)
        except OSError as exc:
            raise translate_os_error(exc, relative) from exc
        return written
