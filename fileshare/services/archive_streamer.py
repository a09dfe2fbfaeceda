import io
import os
import shutil
import threading
import zipfile
from pathlib import Path
from typing import Optional

from fileshare.errors import ArchiveStreamError, FileShareError


class BytePipe:
    """Bounded in-memory byte channel between one writer thread and one reader.

    The writer blocks while ``capacity`` bytes are buffered, the reader blocks
    while nothing is buffered and the writer is still open.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("Pipe capacity must be positive")
        self._capacity = capacity
        self._buffer = bytearray()
        self._cond = threading.Condition()
        self._writer_closed = False
        self._reader_closed = False
        self._error: Optional[BaseException] = None

    def write(self, data) -> int:
        view = memoryview(data).cast("B")
        written = 0
        with self._cond:
            while written < len(view):
                while len(self._buffer) >= self._capacity and not self._reader_closed:
                    self._cond.wait()
                if self._reader_closed:
                    raise BrokenPipeError("Archive consumer went away")
                if self._writer_closed:
                    raise ValueError("Write to a closed pipe")
                room = self._capacity - len(self._buffer)
                self._buffer += view[written:written + room]
                written += min(room, len(view) - written)
                self._cond.notify_all()
        return written

    def close_writer(self, error: Optional[BaseException] = None) -> None:
        """Signal end of stream, optionally with an error for the reader. Only the first call counts."""
        with self._cond:
            if self._writer_closed:
                return
            self._writer_closed = True
            self._error = error
            self._cond.notify_all()

    def read(self, size: int) -> bytes:
        with self._cond:
            while not self._buffer and not self._writer_closed and not self._reader_closed:
                self._cond.wait()
            if self._buffer:
                chunk = bytes(self._buffer[:size])
                del self._buffer[:size]
                self._cond.notify_all()
                return chunk
            if self._error is not None and not self._reader_closed:
                raise self._error
            return b""

    def close_reader(self) -> None:
        with self._cond:
            self._reader_closed = True
            self._buffer.clear()
            self._cond.notify_all()


class ArchiveStream(io.RawIOBase):
    """Read end of an archive being produced on another thread."""

    def __init__(self, pipe: BytePipe, producer: threading.Thread):
        super().__init__()
        self._pipe = pipe
        self._producer = producer

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if self.closed:
            raise ValueError("I/O operation on closed archive stream")
        if size is None or size < 0:
            return self.readall()
        return self._pipe.read(size)

    def readall(self) -> bytes:
        return b"".join(iter(lambda: self.read(64 * 1024), b""))

    def readinto(self, buffer) -> int:
        chunk = self.read(len(buffer))
        buffer[:len(chunk)] = chunk
        return len(chunk)

    def close(self) -> None:
        if not self.closed:
            self._pipe.close_reader()
        super().close()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the producer; True once its walk has finished."""
        self._producer.join(timeout)
        return not self._producer.is_alive()


class _PipeSink(io.RawIOBase):
    """Unseekable write target handed to ZipFile, so it emits data descriptors."""

    def __init__(self, pipe: BytePipe):
        super().__init__()
        self._pipe = pipe
        self._discard = False

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        if self._discard:
            return len(data)
        return self._pipe.write(data)

    def discard(self) -> None:
        """Drop everything written from now on (abandoned archive tail)."""
        self._discard = True


class ArchiveStreamer:
    """Builds ZIP archives of directory trees on the fly.

    Each ``open`` call starts one producer thread that walks the tree
    depth-first and writes deflated entries into a bounded pipe; the caller
    reads the archive from the returned ArchiveStream while it is produced.
    """

    def __init__(self, capacity: int = 64 * 1024, chunk_size: int = 8192):
        self.capacity = capacity
        self.chunk_size = chunk_size

    def open(self, directory: Path, label: Optional[str] = None) -> ArchiveStream:
        pipe = BytePipe(self.capacity)
        producer = threading.Thread(
            target=self._produce,
            args=(Path(directory), pipe, label or str(directory)),
            name=f"archive-{Path(directory).name or 'root'}",
            daemon=True,
        )
        stream = ArchiveStream(pipe, producer)
        producer.start()
        return stream

    def _produce(self, directory: Path, pipe: BytePipe, label: str) -> None:
        sink = _PipeSink(pipe)
        error: Optional[FileShareError] = ArchiveStreamError(label, f"Archive of {label} stopped unexpectedly")
        try:
            # Entries older than 1980 get clamped instead of rejected
            archive = zipfile.ZipFile(sink, "w", compression=zipfile.ZIP_DEFLATED,
                                      allowZip64=True, strict_timestamps=False)
            try:
                self._walk(archive, directory, "")
                archive.close()
                error = None
            except BrokenPipeError:
                # Consumer closed its end; stop walking
                error = None
                sink.discard()
                archive.close()
            except OSError as exc:
                error = ArchiveStreamError(label, f"Archive of {label} failed: {exc}")
                error.__cause__ = exc
                # No central directory: the consumer sees a truncated archive
                sink.discard()
                archive.close()
            except Exception as exc:
                error = ArchiveStreamError(label, f"Archive of {label} stopped unexpectedly: {exc}")
                error.__cause__ = exc
                sink.discard()
                archive.close()
        finally:
            pipe.close_writer(error)

    def _walk(self, archive: zipfile.ZipFile, directory: Path, prefix: str) -> None:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)

        for entry in entries:
            arcname = prefix + entry.name
            if entry.is_dir():
                archive.write(entry.path, arcname=arcname + "/")
                self._walk(archive, Path(entry.path), arcname + "/")
            else:
                self._add_file(archive, entry.path, arcname)

    def _add_file(self, archive: zipfile.ZipFile, path: str, arcname: str) -> None:
        info = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
        info.compress_type = zipfile.ZIP_DEFLATED
        with open(path, "rb") as src, archive.open(info, "w") as dest:
            shutil.copyfileobj(src, dest, self.chunk_size)
