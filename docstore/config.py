"""Store configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env_api_key() -> str | None:
    return (
        os.environ.get("OPENAI_API_KEY")
        or os.environ.get("GOOGLE_API_KEY")
        or os.environ.get("GEMINI_API_KEY")
    )


@dataclass(frozen=True, slots=True)
class StoreConfig:
    """Store configuration with sensible defaults.

    Environment defaults are read when the config is constructed, so tests can
    set variables before building one.
    """

    db_path: Path = field(
        default_factory=lambda: Path(
            os.environ.get("DOCSTORE_DB_PATH", Path.cwd() / "data" / "lancedb")
        )
    )
    table_name: str = "documents"
    embedding_provider: str = field(
        default_factory=lambda: os.environ.get("EMBEDDING_PROVIDER", "openai")
    )  # openai | google
    embedding_model: str = field(
        default_factory=lambda: os.environ.get("EMBEDDING_MODEL", "text-embedding-ada-002")
    )
    embedding_dim: int = field(
        default_factory=lambda: int(os.environ.get("EMBEDDING_DIM", "1536"))
    )
    api_key: str | None = field(default_factory=_env_api_key)
    openai_base_url: str = field(
        default_factory=lambda: os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")
    )
    embedding_timeout: float = field(
        default_factory=lambda: float(os.environ.get("EMBEDDING_TIMEOUT", "30"))
    )
    embedding_concurrency: int = 4
    distance_metric: str = "l2"
    default_limit: int = 5
    max_limit: int = 50
