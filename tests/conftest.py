"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Test configuration and fixtures for the tmsync project.

Registers the pytest markers and provides the store, cache and configuration
fixtures shared by the unit and integration suites.
"""

import logging

import pytest

from tmsync.core.config import DatabaseConfig, SyncConfig
from tmsync.core.db_manager import CanonicalStore
from tmsync.identity_cache import IdentityCache


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark a test as a unit test")
    config.addinivalue_line("markers", "integration: mark a test as an integration test")
    config.addinivalue_line("markers", "db: mark a test that requires database access")
    config.addinivalue_line("markers", "cli: mark a test that tests CLI functionality")


class RecordingHandler(logging.Handler):
    """Collects the records emitted to the logger it is attached to."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record):
        self.records.append(record)

    def messages(self) -> list[str]:
        return [record.getMessage() for record in self.records]


@pytest.fixture
def recording_handler():
    return RecordingHandler()


@pytest.fixture
def db_config(tmp_path) -> DatabaseConfig:
    """SQLite configuration pointing at a fresh file in the test's temp directory."""
    return DatabaseConfig(db_type="sqlite", db_path=str(tmp_path / "canonical.db"))


@pytest.fixture
def store(db_config):
    """An initialized canonical store, disposed after the test."""
    canonical_store = CanonicalStore(db_config)
    canonical_store.initialize_database()
    yield canonical_store
    canonical_store.dispose()


@pytest.fixture
def cache(store) -> IdentityCache:
    return IdentityCache(store)


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(partition_size=500, worker_count=2, retry_initial_delay=0)


@pytest.fixture
def no_sleep():
    """Sleep replacement recording the requested delays."""
    delays: list[float] = []
    return delays.append, delays
