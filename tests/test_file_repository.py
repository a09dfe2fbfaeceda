import os
from datetime import datetime, timezone

import pytest

from fileshare.errors import InvalidPath, IsADirectory, NotADirectory, NotFound
from fileshare.services.file_repository import DIRECTORY_MARKER, LocalFileRepository, format_file_size


@pytest.mark.parametrize("size, expected", [
    (0, "0 B"),
    (10, "10 B"),
    (1023, "1023 B"),
    (1024, "1.0 KiB"),
    (1536, "1.5 KiB"),
    (1024 * 1024 - 1, "1024.0 KiB"),
    (1024 * 1024, "1.0 MiB"),
    (5 * 1024 ** 3, "5.0 GiB"),
    (3 * 1024 ** 4 + 1024 ** 4 // 2, "3.5 TiB"),
    (2 * 1024 ** 6, "2.0 EiB"),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


def test_format_file_size_directory():
    assert format_file_size(4096, is_dir=True) == DIRECTORY_MARKER


def test_root_is_absolute_and_read_only(root_dir, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    repository = LocalFileRepository("root")
    assert repository.root == root_dir.resolve()
    with pytest.raises(AttributeError):
        repository.root = tmp_path


def test_list_root(repository):
    entries = {entry.name: entry for entry in repository.list_directory("")}

    assert set(entries) == {"a.txt", "sub"}

    a_txt = entries["a.txt"]
    assert not a_txt.is_dir
    assert a_txt.size == 10
    assert a_txt.display_size == "10 B"
    assert a_txt.url == "/a.txt"
    assert a_txt.zip_url == "/a.txt.zip"

    sub = entries["sub"]
    assert sub.is_dir
    assert sub.size is None
    assert sub.display_size == DIRECTORY_MARKER
    assert sub.url == "/sub"
    assert sub.zip_url == "/sub.zip"


def test_list_reports_modification_time(root_dir, repository):
    os.utime(root_dir / "a.txt", (1_700_000_000, 1_700_000_000))

    entries = {entry.name: entry for entry in repository.list_directory("")}

    assert entries["a.txt"].modified == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert entries["sub"].modified.tzinfo is timezone.utc


def test_list_keeps_dangling_symlink(root_dir, repository):
    os.symlink(root_dir / "nowhere", root_dir / "broken")

    entries = {entry.name: entry for entry in repository.list_directory("")}

    assert set(entries) == {"a.txt", "sub", "broken"}
    assert not entries["broken"].is_dir
    assert entries["broken"].url == "/broken"


def test_list_root_with_slash_matches_empty(repository):
    assert sorted(e.url for e in repository.list_directory("/")) == ["/a.txt", "/sub"]


def test_list_nested_directory(root_dir, repository):
    (root_dir / "sub" / "deeper").mkdir()
    (root_dir / "sub" / "notes.md").write_bytes(b"x" * 1024)

    entries = {entry.name: entry for entry in repository.list_directory("sub")}

    assert entries["notes.md"].url == "/sub/notes.md"
    assert entries["notes.md"].display_size == "1.0 KiB"
    assert entries["deeper"].url == "/sub/deeper"
    assert entries["deeper"].zip_url == "/sub/deeper.zip"


def test_list_empty_directory(repository):
    assert repository.list_directory("sub") == []


def test_list_is_never_cached(root_dir, repository):
    assert len(repository.list_directory("")) == 2
    (root_dir / "new.txt").write_bytes(b"")
    assert len(repository.list_directory("")) == 3


def test_list_missing_directory(repository):
    with pytest.raises(NotFound):
        repository.list_directory("nope")


def test_list_file_is_not_a_directory(repository):
    with pytest.raises(NotADirectory):
        repository.list_directory("a.txt")


def test_list_rejects_traversal(repository):
    with pytest.raises(InvalidPath):
        repository.list_directory("../")


def test_exists(repository):
    assert repository.exists("a.txt")
    assert repository.exists("sub")
    assert repository.exists("")
    assert not repository.exists("missing.txt")
    assert not repository.exists("a.txt/child")


def test_is_directory(repository):
    assert repository.is_directory("sub")
    assert repository.is_directory("")
    assert not repository.is_directory("a.txt")
    with pytest.raises(NotFound):
        repository.is_directory("missing")


def test_serve_file(repository):
    served = repository.serve_file("a.txt")
    try:
        assert served.name == "a.txt"
        assert served.stream.read() == b"0123456789"
    finally:
        served.stream.close()


def test_serve_nested_file_reports_last_segment(root_dir, repository):
    (root_dir / "sub" / "report.pdf").write_bytes(b"%PDF")
    served = repository.serve_file("sub/report.pdf")
    served.stream.close()
    assert served.name == "report.pdf"


def test_serve_directory_fails(repository):
    with pytest.raises(IsADirectory):
        repository.serve_file("sub")
    with pytest.raises(IsADirectory):
        repository.serve_file("")


def test_serve_missing_file(repository):
    with pytest.raises(NotFound):
        repository.serve_file("missing.bin")


def test_zip_file_is_not_a_directory(repository):
    with pytest.raises(NotADirectory):
        repository.zip_directory("a.txt")


def test_zip_missing_directory(repository):
    with pytest.raises(NotFound):
        repository.zip_directory("missing")


def test_archive_name(repository):
    assert repository.archive_name("sub") == "sub.zip"
    assert repository.archive_name("") == "archive.zip"
