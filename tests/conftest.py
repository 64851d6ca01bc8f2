"""Shared fixtures: every test gets its own database and public directory."""

from __future__ import annotations

import pytest

from config.settings import Settings
from core.database import HistoryStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        anthropic_api_key="test-key",
        db_path=tmp_path / "data" / "history.db",
        public_dir=tmp_path / "public",
        loc_base_url="https://www.loc.gov",
        max_media_results=10,
        download_timeout=30.0,
        page_fact_limit=10,
        consolidation_delay=60.0,
        consolidate_all_delay=0.0,
    )


@pytest.fixture
def store(settings):
    """A seeded store, closed after the test."""
    with HistoryStore(settings.db_path) as history_store:
        history_store.init_db()
        history_store.seed()
        yield history_store


@pytest.fixture
def empty_store(settings):
    """Schema only, no reference data."""
    with HistoryStore(settings.db_path) as history_store:
        history_store.init_db()
        yield history_store
