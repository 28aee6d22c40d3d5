"""Unit test fixtures: auto-clear caches between tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from freight_board_service.config import clear_settings_cache
from freight_board_service.core.state import reset_app_state
from freight_board_service.services.task_store import TaskStore
from tests.helpers import FakeUserDirectory

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "freight-board.db")


@pytest.fixture
def store(db_path: str) -> Iterator[TaskStore]:
    """A TaskStore on a fresh temporary database."""
    task_store = TaskStore(db_path=db_path)
    yield task_store
    task_store.close()


@pytest.fixture
def directory() -> FakeUserDirectory:
    return FakeUserDirectory()
