"""
Pytest configuration for the snmpdash tests.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from snmpdash.logging import ROOT_LOGGER_NAME
from snmpdash.metrics.storage import SampleStore

# Configure pytest-asyncio mode
pytest_plugins = ["pytest_asyncio"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Undo setup_logging() side effects between tests."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a fresh sample database."""
    return tmp_path / "samples.db"


@pytest.fixture
def store(db_path: Path) -> Iterator[SampleStore]:
    """An initialized, empty SampleStore."""
    store = SampleStore.open(db_path)
    yield store
    store.db.close()
