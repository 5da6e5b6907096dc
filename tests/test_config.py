"""Tests for Settings, PipelineConfig and the query-mode enum."""

from __future__ import annotations

import pytest

from src.config import Settings, get_settings
from src.pipeline_config import PipelineConfig, QueryMode

# ---------------------------------------------------------------------------
# Settings tests
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self, monkeypatch) -> None:
        monkeypatch.delenv("EMBEDDING_DIMENSIONS", raising=False)
        monkeypatch.delenv("SIMILARITY_THRESHOLD", raising=False)
        cfg = Settings(_env_file=None)  # type: ignore[call-arg]
        assert cfg.embedding_dimensions == 3072
        assert cfg.similarity_threshold == 0.25
        assert cfg.upsert_batch_size == 100
        assert cfg.vector_text_limit == 5000
        assert cfg.processing_timeout_seconds == 1800
        assert (cfg.min_duration_minutes, cfg.max_duration_minutes) == (2, 25)

    def test_env_override(self, monkeypatch) -> None:
        monkeypatch.setenv("JOB_TTL_SECONDS", "120")
        monkeypatch.setenv("KV_PREFIX", "staging:")
        cfg = Settings(_env_file=None)  # type: ignore[call-arg]
        assert cfg.job_ttl_seconds == 120
        assert cfg.kv_prefix == "staging:"

    def test_cached(self) -> None:
        assert get_settings() is get_settings()


# ---------------------------------------------------------------------------
# Enum tests
# ---------------------------------------------------------------------------


class TestQueryMode:
    def test_values(self) -> None:
        assert QueryMode.RAW.value == "raw"
        assert QueryMode.PREPROCESSED.value == "preprocessed"

    def test_from_string(self) -> None:
        assert QueryMode("raw") is QueryMode.RAW

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            QueryMode("invalid")

    def test_is_str_subclass(self) -> None:
        """Enum values behave as plain strings for JSON serialization."""
        assert isinstance(QueryMode.RAW, str)


# ---------------------------------------------------------------------------
# PipelineConfig tests
# ---------------------------------------------------------------------------


class TestPipelineConfig:
    def test_defaults(self) -> None:
        cfg = PipelineConfig()
        assert cfg.query_mode is QueryMode.RAW
        assert (cfg.semantic_weight, cfg.keyword_weight) == (0.7, 0.3)
        assert cfg.overlap_boost == 0.1

    def test_custom_values(self) -> None:
        cfg = PipelineConfig(query_mode=QueryMode.PREPROCESSED, semantic_weight=0.5)
        assert cfg.query_mode is QueryMode.PREPROCESSED
        assert cfg.semantic_weight == 0.5

    def test_immutable(self) -> None:
        cfg = PipelineConfig()
        with pytest.raises(AttributeError):
            cfg.query_mode = QueryMode.PREPROCESSED  # type: ignore[misc]
