"""Runtime configuration for the Omega Codex services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="omegacodex_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"

    # Embedding cache
    cache_db_path: Path = Path("./data/omegacodex.db")

    # Remote API
    openai_api_key: SecretStr | None = None
    embeddings_endpoint: str = "https://api.openai.com/v1/embeddings"
    responses_endpoint: str = "https://api.openai.com/v1/responses"
    embedding_model: str = "text-embedding-3-small"
    response_model: str = "gpt-5.2"
    embedding_input_limit: int = 20_000
    rate_limit_delay_ms: int = 200
    http_timeout_seconds: float | None = None
    debug_requests: bool = False

    # Offline mode swaps the remote embedding API for hashed vectors
    use_remote_embeddings: bool = True

    # Vector index
    chroma_persist_dir: Path = Path("./.chroma")
    chroma_collection: str = "omegacodex_chunks"
    chroma_host: str | None = None
    chroma_port: int | None = None
    chroma_ssl: bool = False
    embedding_dim: int = 1536

    # Ingestion
    chunker_command: tuple[str, ...] | None = None
    default_document: Path = Path("readme.md")

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def api_key_value(self) -> str | None:
        if self.openai_api_key is None:
            return None
        return self.openai_api_key.get_secret_value()


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
