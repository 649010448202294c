from pathlib import Path

import pytest

from settings import Settings
from utils.storage import FileSystemStore


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a fresh temp data directory. No object store, no public host."""
    return Settings(
        data_dir=tmp_path / "data",
        base_url="http://testserver",
        public_host=None,
        blob_bucket=None,
    )


@pytest.fixture
def store(settings: Settings) -> FileSystemStore:
    """Filesystem album store under the temp data directory."""
    return FileSystemStore(settings.albums_dir)
