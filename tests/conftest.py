"""
Test configuration and fixtures for the URL shortener.
This centralizes all test setup, making individual tests clean.
"""

import os

# Settings are read once at import time, so configure them before the app loads
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["DELETE_QUEUE_BACKEND"] = "memory"
os.environ["DELETE_WORKER_BLOCK_TIME"] = "50"
os.environ["BASE_URL"] = "http://testserver"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from main import app
from shortener.dependencies import get_queue, get_storage
from shortener.logging_config import get_logger
from shortener.queue.factory import QueueFactory
from shortener.storage.factory import StorageFactory
from shortener.storage.strategies import InMemoryURLStorage, FileURLStorage, DatabaseURLStorage


@pytest.fixture
def logger():
    return get_logger("shortener.tests")


@pytest.fixture
def make_storage(tmp_path, logger):
    """
    Build a storage backend by name.
    Backends created here are closed after the test.
    """
    created = []

    def _make(kind: str, hide_deleted: bool = True):
        if kind == "memory":
            storage = InMemoryURLStorage(hide_deleted=hide_deleted, logger=logger)
        elif kind == "file":
            storage = FileURLStorage(str(tmp_path / "storage.json"), hide_deleted=hide_deleted, logger=logger)
        elif kind == "database":
            storage = DatabaseURLStorage(
                f"sqlite:///{tmp_path / 'urls.db'}",
                pool_size=5,
                hide_deleted=hide_deleted,
                logger=logger
            )
        else:
            raise ValueError(kind)
        created.append(storage)
        return storage

    yield _make

    for storage in created:
        storage.close()


@pytest.fixture(params=["memory", "file", "database"])
def storage(request, make_storage):
    """Every test using this fixture runs once per backend"""
    return make_storage(request.param)


def _reset_singletons():
    StorageFactory.clear_instance()
    QueueFactory.clear_instance()
    get_storage.cache_clear()
    get_queue.cache_clear()


@pytest.fixture(scope="function")
def client():
    """
    Create a test client with fresh in-memory storage and delete queue.
    The delete worker runs for the lifetime of the client.
    """
    _reset_singletons()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    _reset_singletons()
