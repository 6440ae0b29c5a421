from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from urllib.parse import urlparse

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"

DEFAULTS = {
    "ollama_url": "http://localhost:11434",
    "llm_model": "llama3",
    "generation_timeout": 120.0,
    "chunk_size": 6000,
    "chunk_overlap": 500,
    "max_prompt_length": 8000,
    "db_path": "doc_study.db",
}

ALLOWED_OLLAMA_HOSTS = ("localhost", "127.0.0.1")


def validate_ollama_url(url: str) -> None:
    """Only local http(s) servers are accepted."""
    if not isinstance(url, str):
        raise ValueError(f"Invalid Ollama URL {url!r}")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or parsed.hostname not in ALLOWED_OLLAMA_HOSTS:
        raise ValueError(
            f"Invalid Ollama URL {url!r}. Must be http(s)://localhost or http(s)://127.0.0.1"
        )


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_settings(values: dict) -> None:
    """Raise ``ValueError`` unless *values* form a usable configuration."""
    validate_ollama_url(values["ollama_url"])
    for key in ("llm_model", "db_path"):
        if not isinstance(values[key], str) or not values[key].strip():
            raise ValueError(f"{key} must be a non-empty string (got {values[key]!r})")
    timeout = values["generation_timeout"]
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValueError(f"generation_timeout must be a positive number (got {timeout!r})")
    for key in ("chunk_size", "chunk_overlap", "max_prompt_length"):
        if not _is_int(values[key]):
            raise ValueError(f"{key} must be an integer (got {values[key]!r})")
    if values["chunk_size"] <= 0:
        raise ValueError(f"chunk_size must be positive (got {values['chunk_size']})")
    if not 0 <= values["chunk_overlap"] < values["chunk_size"]:
        raise ValueError(
            f"chunk_overlap must be in [0, chunk_size) (got {values['chunk_overlap']}, "
            f"chunk_size {values['chunk_size']})"
        )
    if values["max_prompt_length"] <= 0:
        raise ValueError(
            f"max_prompt_length must be positive (got {values['max_prompt_length']})"
        )


@dataclass
class Settings:
    ollama_url: str = DEFAULTS["ollama_url"]
    llm_model: str = DEFAULTS["llm_model"]
    generation_timeout: float = DEFAULTS["generation_timeout"]
    chunk_size: int = DEFAULTS["chunk_size"]
    chunk_overlap: int = DEFAULTS["chunk_overlap"]
    max_prompt_length: int = DEFAULTS["max_prompt_length"]
    db_path: str = DEFAULTS["db_path"]

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parent.parent

    @property
    def db_full_path(self) -> Path:
        return self.project_root / self.db_path

    def to_dict(self) -> dict:
        return {
            "ollama_url": self.ollama_url,
            "llm_model": self.llm_model,
            "generation_timeout": self.generation_timeout,
            "chunk_size": self.chunk_size,
            "chunk_overlap": self.chunk_overlap,
            "max_prompt_length": self.max_prompt_length,
            "db_path": self.db_path,
        }

    def update(self, changes: dict) -> list[str]:
        """Apply known keys from *changes*; return the keys that were set.

        The merged result is validated first, so a rejected update leaves
        every field untouched.
        """
        known = {f.name for f in fields(self)}
        applied = {k: v for k, v in changes.items() if k in known}
        validate_settings({**self.to_dict(), **applied})
        for key, value in applied.items():
            setattr(self, key, value)
        return list(applied)


def load_settings() -> Settings:
    if CONFIG_PATH.exists():
        raw = json.loads(CONFIG_PATH.read_text())
        # Migrate dotted keys: ollama.url -> ollama_url, ollama.model -> llm_model
        for old, new in (("ollama.url", "ollama_url"), ("ollama.model", "llm_model")):
            if old in raw:
                raw.setdefault(new, raw[old])
                del raw[old]
        known = {f.name for f in Settings.__dataclass_fields__.values()}
        filtered = {k: v for k, v in raw.items() if k in known}
        return Settings(**filtered)
    return Settings()


def save_settings(settings: Settings) -> None:
    CONFIG_PATH.write_text(json.dumps(settings.to_dict(), indent=4) + "\n")
