"""
Pytest configuration and shared fixtures.

Registers the integration marker and provides a temporary SQLite store,
an in-memory Dropbox double and a scripted OCR analyzer.
"""

import os
import tempfile
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from keiri_docs.api import deps
from keiri_docs.api.main import app
from keiri_docs.services.dropbox_client import FileStorage
from keiri_docs.services.errors import StorageError
from keiri_docs.services.events.event_publisher import EventPublisher
from keiri_docs.services.ocr_types import OcrResult, fallback_result
from keiri_docs.services.storage import SQLiteAccountingStore


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against the real Dropbox API"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real Dropbox credentials"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


class FakeStorage(FileStorage):
    """Records every call; paths listed in fail_on raise StorageError"""

    def __init__(self, fail_on: set[str] | None = None):
        self.fail_on = fail_on or set()
        self.folders: list[str] = []
        self.uploads: dict[str, bytes] = {}
        self.copies: list[tuple[str, str]] = []
        self.moves: list[tuple[str, str]] = []

    def _check(self, *paths: str):
        for path in paths:
            if path in self.fail_on:
                raise StorageError(f"simulated failure for {path}", status_code=500)

    async def ensure_folder(self, path: str) -> None:
        self.folders.append(path)

    async def upload(self, path: str, data: bytes) -> str:
        self._check(path)
        self.uploads[path] = data
        return path

    async def copy(self, from_path: str, to_path: str) -> str:
        self._check(from_path, to_path)
        self.copies.append((from_path, to_path))
        return to_path

    async def move(self, from_path: str, to_path: str) -> str:
        self._check(from_path, to_path)
        self.moves.append((from_path, to_path))
        return to_path


class FakeAnalyzer:
    """Returns a fixed OcrResult and remembers what it was asked"""

    def __init__(self, result: OcrResult | None = None):
        self.result = result or fallback_result()
        self.default_model = "gemini-test"
        self.calls: list[dict] = []

    async def analyze(self, base64_data, mime_type, model_id=None, document_types=None):
        self.calls.append({
            "base64_data": base64_data,
            "mime_type": mime_type,
            "model_id": model_id,
            "document_types": document_types,
        })
        return self.result


@pytest.fixture
def temp_db():
    """Create temporary database file"""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    if os.path.exists(path):
        os.remove(path)


@pytest.fixture
def store(temp_db):
    return SQLiteAccountingStore(temp_db)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def client(store, storage, analyzer):
    """TestClient wired to the temporary store and the in-memory doubles"""
    app.dependency_overrides[deps.store_dependency] = lambda: store
    app.dependency_overrides[deps.storage_dependency] = lambda: storage
    app.dependency_overrides[deps.analyzer_dependency] = lambda: analyzer
    app.dependency_overrides[deps.publisher_dependency] = lambda: EventPublisher(service_bus_sender=Mock())
    yield TestClient(app)
    app.dependency_overrides.clear()
