"""Tests for YAML configuration loading."""

from pathlib import Path

import pytest

from crm_rag.config import AppConfig, ChunkingConfig, load_config
from crm_rag.errors import ConfigError

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config" / "config.yaml"


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("CRM_RAG_CONFIG", raising=False)
        cfg = load_config()
        assert cfg == AppConfig()
        assert cfg.chunking.chunk_size == 1000
        assert cfg.context.max_tokens == 2000
        assert cfg.query.clarification_threshold == 3

    def test_repository_config_matches_defaults(self, monkeypatch):
        monkeypatch.delenv("CRM_RAG_LOG_LEVEL", raising=False)
        assert load_config(REPO_CONFIG) == AppConfig()

    def test_partial_file_overrides_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("retrieval:\n  max_results: 7\ncontext:\n  estimator: tiktoken\n")
        cfg = load_config(path)
        assert cfg.retrieval.max_results == 7
        assert cfg.retrieval.max_chunks_per_file == 5
        assert cfg.context.estimator == "tiktoken"

    def test_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("embedding:\n  batch_size: 16\n")
        monkeypatch.setenv("CRM_RAG_CONFIG", str(path))
        assert load_config().embedding.batch_size == 16

    def test_env_log_level(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("CRM_RAG_CONFIG", raising=False)
        monkeypatch.setenv("CRM_RAG_LOG_LEVEL", "DEBUG")
        assert load_config().logging.level == "DEBUG"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("chunking: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("chunking:\n  chunk_size: 100\n  overlap: 500\n")
        with pytest.raises(ConfigError):
            load_config(path)


class TestChunkingConfig:
    def test_overlap_must_be_smaller_than_chunk(self):
        with pytest.raises(ValueError):
            ChunkingConfig(chunk_size=100, overlap=100)
