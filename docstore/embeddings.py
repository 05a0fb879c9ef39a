"""
Embedding Provider Adapter.

Turns text into fixed-dimension vectors. A real provider is used when a
credential is configured; otherwise, and whenever a real call fails or times
out, a pseudo-random vector is returned so ingestion never blocks on a missing
or unreachable provider.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Sequence

import numpy as np
import requests
import structlog

from .config import StoreConfig
from .exceptions import EmbeddingProviderError

if TYPE_CHECKING:
    from google.genai import Client as GenAIClient

log = structlog.get_logger("docstore.embeddings")


def fit_dimension(values: Sequence[float], dim: int) -> list[float]:
    """Truncate or zero-pad to ``dim`` and scale to unit length."""
    embedding = np.asarray(values, dtype=np.float64)
    if len(embedding) > dim:
        embedding = embedding[:dim]
    elif len(embedding) < dim:
        embedding = np.concatenate([embedding, np.zeros(dim - len(embedding))])

    norm = np.linalg.norm(embedding)
    return (embedding / norm).tolist() if norm > 0 else embedding.tolist()


class EmbeddingProvider:
    """Synchronous single-text embedding call. Real providers raise on failure."""

    name = "base"

    def __init__(self, dim: int):
        self.dim = dim

    def embed(self, text: str) -> list[float]:
        raise NotImplementedError


class RandomEmbeddingProvider(EmbeddingProvider):
    """Stand-in vectors with no semantic meaning. Ranking degrades to random."""

    name = "random"

    def __init__(self, dim: int, seed: int | None = None):
        super().__init__(dim)
        self._rng = np.random.default_rng(seed)

    def embed(self, text: str) -> list[float]:
        return fit_dimension(self._rng.random(self.dim), self.dim)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI-compatible ``/embeddings`` endpoint over HTTP."""

    name = "openai"

    def __init__(self, dim: int, api_key: str, model: str, base_url: str, timeout: float):
        super().__init__(dim)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def embed(self, text: str) -> list[float]:
        try:
            response = requests.post(
                f"{self.base_url}/embeddings",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"model": self.model, "input": text},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()["data"]
            return fit_dimension(data[0]["embedding"], self.dim)
        except requests.HTTPError as e:
            raise EmbeddingProviderError(
                str(e), provider=self.name, status_code=e.response.status_code
            ) from e
        except (requests.RequestException, KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingProviderError(str(e), provider=self.name) from e


class GoogleEmbeddingProvider(EmbeddingProvider):
    """Google GenAI ``embed_content`` with the requested output dimensionality."""

    name = "google"

    def __init__(self, dim: int, api_key: str, model: str):
        super().__init__(dim)
        self.api_key = api_key
        self.model = model
        self._client: GenAIClient | None = None

    def _get_client(self) -> GenAIClient:
        if self._client is None:
            from google import genai

            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def embed(self, text: str) -> list[float]:
        try:
            from google.genai import types

            response = self._get_client().models.embed_content(
                model=self.model,
                contents=text,
                config=types.EmbedContentConfig(output_dimensionality=self.dim),
            )
            return fit_dimension(response.embeddings[0].values, self.dim)
        except Exception as e:
            raise EmbeddingProviderError(str(e), provider=self.name) from e


def select_provider(config: StoreConfig, credential: str | None) -> EmbeddingProvider:
    """Pick the provider strategy once, at initialization."""
    if not credential:
        log.warning("no_embedding_credential", fallback="random", dim=config.embedding_dim)
        return RandomEmbeddingProvider(config.embedding_dim)

    provider = config.embedding_provider.lower()
    if provider == "google":
        return GoogleEmbeddingProvider(config.embedding_dim, credential, config.embedding_model)
    if provider != "openai":
        raise ValueError(f"Unknown embedding provider '{config.embedding_provider}'")
    return OpenAIEmbeddingProvider(
        config.embedding_dim,
        credential,
        config.embedding_model,
        config.openai_base_url,
        config.embedding_timeout,
    )


class Embedder:
    """Provider strategy plus the random fallback, bounded by a timeout."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        timeout: float = 30.0,
        concurrency: int = 4,
        fallback: RandomEmbeddingProvider | None = None,
    ):
        self.provider = provider
        self.timeout = timeout
        self.concurrency = max(1, concurrency)
        self.fallback = fallback or RandomEmbeddingProvider(provider.dim)

    @classmethod
    def from_config(cls, config: StoreConfig, credential: str | None = None) -> Embedder:
        return cls(
            select_provider(config, credential),
            timeout=config.embedding_timeout,
            concurrency=config.embedding_concurrency,
        )

    @property
    def dim(self) -> int:
        return self.provider.dim

    @property
    def is_fallback(self) -> bool:
        return isinstance(self.provider, RandomEmbeddingProvider)

    async def embed(self, text: str) -> list[float]:
        """One attempt per text. Failures and timeouts yield a random vector."""
        if self.is_fallback:
            log.warning("embedding_fallback", reason="no_provider", chars=len(text))
            return self.provider.embed(text)

        try:
            vector = await asyncio.wait_for(
                asyncio.to_thread(self.provider.embed, text), timeout=self.timeout
            )
            return fit_dimension(vector, self.dim)
        except asyncio.TimeoutError:
            log.warning(
                "embedding_fallback", reason="timeout", provider=self.provider.name, timeout=self.timeout
            )
        except EmbeddingProviderError as e:
            log.warning(
                "embedding_fallback", reason="provider_error", provider=self.provider.name, error=str(e)
            )
        except Exception as e:
            log.warning(
                "embedding_fallback", reason="unexpected_error", provider=self.provider.name, error=repr(e)
            )
        return self.fallback.embed(text)

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed concurrently; results keep the input order."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(text: str) -> list[float]:
            async with semaphore:
                return await self.embed(text)

        return list(await asyncio.gather(*(_bounded(t) for t in texts)))
