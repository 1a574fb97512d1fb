"""Pytest configuration and fixtures."""

import logging
import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from s3input.lib.checkpoint import FileCheckpointStore  # noqa: E402
from s3input.lib.storage.local import LocalObjectStore  # noqa: E402
from tests.helpers import FakeClock, utc  # noqa: E402


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def clock():
    """Clock pinned to 2024-01-15 12:00 UTC."""
    return FakeClock(utc(2024, 1, 15, 12, 0))


@pytest.fixture
def local_store(tmp_path):
    """Local object store with an existing 'logs' bucket."""
    store = LocalObjectStore(tmp_path / "buckets", "logs")
    store.create_bucket("logs")
    return store


@pytest.fixture
def checkpoint(tmp_path, clock):
    """Checkpoint store in a temporary directory."""
    return FileCheckpointStore(tmp_path / "sincedb", clock=clock)


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests against a mocked AWS S3 endpoint")


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way setup_logging found it."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
