import pytest

from dynamo_archive.config.settings import ArchiveSettings
from dynamo_archive.tests.helpers.fakes import FakeObjectArchive, FakeTableStore

BUCKET = "backups"


@pytest.fixture
def settings() -> ArchiveSettings:
    return ArchiveSettings(
        bucket=BUCKET,
        backup_path="nightly",
        retry_backoff_seconds=0,
        request_interval_seconds=0,
        table_poll_interval_seconds=0.01,
        max_concurrency=8,
        restore_write_capacity=50,
    )


@pytest.fixture
def store() -> FakeTableStore:
    return FakeTableStore()


@pytest.fixture
def archive() -> FakeObjectArchive:
    return FakeObjectArchive()
