"""Shared test fixtures and configuration."""

import copy
import os
from pathlib import Path
import sys

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


# Complete test environment that overrides every engine setting
TEST_ENV = {
    "MICRO_SEARCH_INDEX_ROOT": "index",
    "MICRO_SEARCH_SNAPSHOT_FILENAME": "index.gz",
    "MICRO_SEARCH_EXPORT_DIRNAME": "export",
    "MICRO_SEARCH_COMPRESSION_LEVEL": "6",
    "MICRO_SEARCH_DEFAULT_PAGE_SIZE": "20",
    "MICRO_SEARCH_NGRAM_LENGTHS": "[1, 2]",
    "MICRO_SEARCH_LOG_LEVEL": "info",
    "MICRO_SEARCH_LOG_JSON": "true",
}

# Set environment variables immediately when conftest.py is loaded
for key, value in TEST_ENV.items():
    os.environ[key] = value
os.environ.pop("MICRO_SEARCH_STOPWORDS", None)

from micro_search.config import Settings
from tests.fixtures.programming_books import PROGRAMMING_BOOKS


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset engine environment variables before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("MICRO_SEARCH_STOPWORDS", raising=False)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings rooted in a per-test temporary directory."""
    return Settings(index_root=tmp_path / "index")


@pytest.fixture
def books() -> list[dict]:
    """A private deep copy of the programming books corpus."""
    return copy.deepcopy(PROGRAMMING_BOOKS)
