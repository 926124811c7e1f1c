"""Unit tests for the config module."""

import os
from pathlib import Path
from unittest.mock import patch

from pydantic import ValidationError
import pytest

from micro_search.config import Settings
from micro_search.search.analyzers import DEFAULT_STOPWORDS


pytestmark = pytest.mark.unit


class TestConfig:
    """Test configuration loading and validation."""

    def test_config_defaults_are_applied(self):
        settings = Settings()
        assert settings.index_root == Path("index")
        assert settings.snapshot_filename == "index.gz"
        assert settings.compression_level == 6
        assert settings.default_page_size == 20
        assert settings.ngram_lengths == [1, 2]
        assert settings.log_json is True

    def test_default_stopwords_match_built_in_list(self):
        settings = Settings()
        assert settings.get_stopwords() == DEFAULT_STOPWORDS

    @patch.dict(os.environ, {"MICRO_SEARCH_STOPWORDS": " The, A ,,of "}, clear=False)
    def test_stopwords_parsing_from_environment(self):
        settings = Settings()
        assert settings.get_stopwords() == ["the", "a", "of"]

    @patch.dict(os.environ, {"MICRO_SEARCH_DEFAULT_PAGE_SIZE": "50"}, clear=False)
    def test_environment_overrides_page_size(self):
        assert Settings().default_page_size == 50

    @patch.dict(os.environ, {"MICRO_SEARCH_NGRAM_LENGTHS": "[3, 1, 1]"}, clear=False)
    def test_ngram_lengths_are_deduplicated_and_sorted(self):
        assert Settings().ngram_lengths == [1, 3]

    def test_snapshot_and_export_paths(self, tmp_path):
        settings = Settings(index_root=tmp_path)
        assert settings.snapshot_path() == tmp_path / "index.gz"
        assert settings.export_path() == tmp_path / "export" / "index.gz"
        assert settings.snapshot_path(tmp_path / "other") == tmp_path / "other" / "index.gz"


class TestConfigValidation:
    """Invalid values are rejected at construction time."""

    @pytest.mark.parametrize("lengths", [[], [0], [1, -2]])
    def test_invalid_ngram_lengths(self, lengths):
        with pytest.raises(ValidationError):
            Settings(ngram_lengths=lengths)

    @pytest.mark.parametrize("level", [-1, 10])
    def test_compression_level_bounds(self, level):
        with pytest.raises(ValidationError):
            Settings(compression_level=level)

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(default_page_size=0)
