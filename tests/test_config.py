"""Tests for configuration loading, saving and validation."""
from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from doc_study.config import DEFAULTS, Settings, load_settings, save_settings, validate_ollama_url


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.ollama_url == "http://localhost:11434"
        assert s.llm_model == "llama3"
        assert s.chunk_size == 6000
        assert s.chunk_overlap == 500
        assert s.max_prompt_length == 8000

    def test_to_dict(self):
        d = Settings().to_dict()
        assert d == DEFAULTS
        assert len(d) == 7  # all fields present

    def test_to_dict_roundtrip(self):
        s = Settings(llm_model="mistral", chunk_size=4000)
        s2 = Settings(**s.to_dict())
        assert s2.llm_model == "mistral"
        assert s2.chunk_size == 4000

    def test_db_full_path(self):
        s = Settings(db_path="data/test.db")
        assert s.db_full_path == s.project_root / "data" / "test.db"


class TestUpdate:
    def test_applies_known_keys(self):
        s = Settings()
        applied = s.update({"llm_model": "mistral", "bogus": 1})
        assert applied == ["llm_model"]
        assert s.llm_model == "mistral"
        assert not hasattr(s, "bogus")

    def test_accepts_local_urls(self):
        s = Settings()
        s.update({"ollama_url": "http://127.0.0.1:11434"})
        assert s.ollama_url == "http://127.0.0.1:11434"

    def test_rejects_remote_url(self):
        s = Settings()
        with pytest.raises(ValueError, match="Invalid Ollama URL"):
            s.update({"ollama_url": "http://example.com:11434", "llm_model": "x"})
        # Nothing applied on rejection
        assert s.ollama_url == DEFAULTS["ollama_url"]
        assert s.llm_model == DEFAULTS["llm_model"]

    @pytest.mark.parametrize("changes", [
        {"chunk_overlap": 7000},
        {"chunk_overlap": -1},
        {"chunk_size": "abc"},
        {"chunk_size": 0},
        {"chunk_size": 400},  # below the default overlap of 500
        {"chunk_size": 6000.5},
        {"chunk_overlap": True},
        {"max_prompt_length": 0},
        {"generation_timeout": "fast"},
        {"generation_timeout": -5},
        {"llm_model": ""},
        {"db_path": None},
    ])
    def test_rejects_unusable_values(self, changes):
        s = Settings()
        with pytest.raises(ValueError):
            s.update(changes)
        assert s.to_dict() == DEFAULTS

    def test_size_and_overlap_checked_together(self):
        s = Settings()
        applied = s.update({"chunk_size": 400, "chunk_overlap": 50})
        assert sorted(applied) == ["chunk_overlap", "chunk_size"]
        assert (s.chunk_size, s.chunk_overlap) == (400, 50)

    def test_integer_timeout_accepted(self):
        s = Settings()
        s.update({"generation_timeout": 60})
        assert s.generation_timeout == 60


class TestValidateOllamaUrl:
    @pytest.mark.parametrize("url", [
        "http://localhost:11434",
        "https://localhost",
        "http://127.0.0.1:8080/",
    ])
    def test_valid(self, url):
        validate_ollama_url(url)

    @pytest.mark.parametrize("url", [
        "http://192.168.1.5:11434",
        "ftp://localhost:11434",
        "localhost:11434",
        "http://localhost.evil.com",
        "",
        None,
        11434,
    ])
    def test_invalid(self, url):
        with pytest.raises(ValueError):
            validate_ollama_url(url)


class TestLoadSaveSettings:
    def test_load_from_file(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"llm_model": "mistral", "chunk_size": 3000}))

        with patch("doc_study.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.llm_model == "mistral"
        assert s.chunk_size == 3000
        # Defaults for unspecified fields
        assert s.chunk_overlap == 500

    def test_load_missing_file(self, tmp_path):
        with patch("doc_study.config.CONFIG_PATH", tmp_path / "nonexistent.json"):
            s = load_settings()
        assert s.to_dict() == DEFAULTS

    def test_load_migrates_dotted_keys(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({
            "ollama.url": "http://127.0.0.1:11434",
            "ollama.model": "phi3",
        }))
        with patch("doc_study.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.ollama_url == "http://127.0.0.1:11434"
        assert s.llm_model == "phi3"

    def test_load_ignores_unknown_keys(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"llm_model": "phi3", "theme": "dark"}))
        with patch("doc_study.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.llm_model == "phi3"

    def test_save_creates_file(self, tmp_path):
        config_path = tmp_path / "config.json"
        with patch("doc_study.config.CONFIG_PATH", config_path):
            save_settings(Settings(llm_model="phi3"))
            loaded = load_settings()
        assert json.loads(config_path.read_text())["llm_model"] == "phi3"
        assert loaded.llm_model == "phi3"
