import os
import re
from pathlib import Path, PureWindowsPath

from fileshare.errors import InvalidPath

_SEPARATORS = re.compile(r"[\\/]+")


def url_to_relative(url_path: str) -> str:
    """Turn a URL-style path ("/docs/a.txt") into a root-relative one ("docs/a.txt")."""
    return (url_path or "").lstrip("/")


def resolve_path(root: Path, relative: str) -> Path:
    """Map a caller-supplied relative path onto an absolute path inside ``root``.

    Raises InvalidPath for parent segments, absolute inputs and anything that
    would land outside ``root`` after normalization. Pure string work: the
    filesystem is never consulted.
    """
    relative = relative or ""
    if relative == "/":
        relative = ""

    if "\x00" in relative:
        raise InvalidPath(relative, "Path contains a NUL byte")

    segments = [s for s in _SEPARATORS.split(relative) if s]
    if ".." in segments:
        raise InvalidPath(relative, "Path traversal detected")

    if relative[:1] in ("/", "\\") or os.path.isabs(relative) or PureWindowsPath(relative).anchor:
        raise InvalidPath(relative, "Absolute paths are not allowed")

    root_str = os.path.normpath(str(root))
    candidate = os.path.normpath(os.path.join(root_str, *segments))
    if os.path.commonpath([root_str, candidate]) != root_str:
        raise InvalidPath(relative, "Path escapes the repository root")

    return Path(candidate)
