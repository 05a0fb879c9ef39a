"""Shared fixtures: isolated on-disk stores with a small embedding dimension."""

from __future__ import annotations

import pytest

from docstore import DocumentStore, EmbeddingProvider, StoreConfig

DIM = 8


class LookupProvider(EmbeddingProvider):
    """Deterministic vectors: known texts map to fixed vectors, others to a hash."""

    name = "lookup"

    def __init__(self, dim: int = DIM, vectors: dict[str, list[float]] | None = None):
        super().__init__(dim)
        self.vectors = vectors or {}
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        bucket = sum(text.encode()) % self.dim
        return [1.0 if i == bucket else 0.0 for i in range(self.dim)]


def one_hot(index: int, dim: int = DIM) -> list[float]:
    return [1.0 if i == index else 0.0 for i in range(dim)]


def make_config(path, **overrides) -> StoreConfig:
    overrides.setdefault("embedding_dim", DIM)
    overrides.setdefault("api_key", None)
    return StoreConfig(db_path=path, **overrides)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "lancedb"


@pytest.fixture
async def store(db_path):
    """Initialized store using random fallback embeddings."""
    instance = DocumentStore(make_config(db_path))
    await instance.initialize()
    return instance
