import os
import sys
from pathlib import Path

import pytest

# Add the project root to sys.path so tests can import main, config and fileshare
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fileshare.services.file_repository import LocalFileRepository


@pytest.fixture
def root_dir(tmp_path) -> Path:
    """Repository root holding a.txt (10 bytes) and an empty sub/ directory."""
    root = tmp_path / "root"
    root.mkdir()
    (root / "a.txt").write_bytes(b"0123456789")
    (root / "sub").mkdir()
    return root


@pytest.fixture
def repository(root_dir) -> LocalFileRepository:
    return LocalFileRepository(root_dir)
