"""
Tests for the embedding provider adapter.

Run with: pytest test_embeddings.py -v
"""

import time
from types import SimpleNamespace

import numpy as np
import pytest
import requests
from google import genai
from structlog.testing import capture_logs

import docstore.embeddings as embeddings_module
from conftest import DIM, LookupProvider, make_config, one_hot
from docstore import (
    Embedder,
    EmbeddingProviderError,
    GoogleEmbeddingProvider,
    OpenAIEmbeddingProvider,
    RandomEmbeddingProvider,
)
from docstore.embeddings import fit_dimension, select_provider


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        return self.payload


class FailingProvider(LookupProvider):
    name = "failing"

    def embed(self, text):
        raise EmbeddingProviderError("provider down", provider=self.name)


class SlowProvider(LookupProvider):
    name = "slow"

    def embed(self, text):
        time.sleep(0.5)
        return super().embed(text)


class CrashingProvider(LookupProvider):
    name = "crashing"

    def embed(self, text):
        raise RuntimeError("unexpected")


# =============================================================================
# Vector shaping
# =============================================================================


class TestFitDimension:
    """Tests for dimension fitting and normalization."""

    def test_pads_short_vectors(self):
        result = fit_dimension([3.0, 4.0], 4)
        assert result == pytest.approx([0.6, 0.8, 0.0, 0.0])

    def test_truncates_long_vectors(self):
        result = fit_dimension([1.0] * 10, 4)
        assert len(result) == 4
        assert np.linalg.norm(result) == pytest.approx(1.0)

    def test_zero_vector_stays_zero(self):
        assert fit_dimension([0.0, 0.0], 3) == [0.0, 0.0, 0.0]


class TestRandomProvider:
    """Tests for the fallback provider."""

    def test_dimension_and_norm(self):
        provider = RandomEmbeddingProvider(DIM)
        vector = provider.embed("anything")
        assert len(vector) == DIM
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_vectors_differ_between_calls(self):
        provider = RandomEmbeddingProvider(DIM, seed=7)
        assert provider.embed("same") != provider.embed("same")


# =============================================================================
# Provider selection
# =============================================================================


class TestSelectProvider:
    """Provider strategy is chosen once from config and credential."""

    def test_no_credential_selects_random(self, tmp_path):
        with capture_logs() as logs:
            provider = select_provider(make_config(tmp_path), None)
        assert isinstance(provider, RandomEmbeddingProvider)
        assert provider.dim == DIM
        assert any(
            e["event"] == "no_embedding_credential" and e["log_level"] == "warning" for e in logs
        )

    def test_openai_with_credential(self, tmp_path):
        provider = select_provider(make_config(tmp_path, embedding_provider="openai"), "sk-test")
        assert isinstance(provider, OpenAIEmbeddingProvider)
        assert provider.api_key == "sk-test"
        assert provider.model == "text-embedding-ada-002"

    def test_google_with_credential(self, tmp_path):
        config = make_config(tmp_path, embedding_provider="Google", embedding_model="gemini-embedding-001")
        provider = select_provider(config, "g-key")
        assert isinstance(provider, GoogleEmbeddingProvider)
        assert provider.model == "gemini-embedding-001"

    def test_unknown_provider_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            select_provider(make_config(tmp_path, embedding_provider="cohere"), "key")

    def test_embedder_from_config(self, tmp_path):
        embedder = Embedder.from_config(make_config(tmp_path, embedding_timeout=2.5), None)
        assert embedder.is_fallback
        assert embedder.timeout == 2.5
        assert embedder.dim == DIM


# =============================================================================
# OpenAI-compatible HTTP provider
# =============================================================================


class TestOpenAIProvider:
    """Tests for the HTTP provider with requests patched out."""

    def test_posts_and_fits_dimension(self, monkeypatch):
        captured = {}

        def fake_post(url, headers, json, timeout):
            captured.update(url=url, headers=headers, json=json, timeout=timeout)
            return FakeResponse({"data": [{"embedding": [1.0, 0.0, 0.0]}]})

        monkeypatch.setattr(embeddings_module.requests, "post", fake_post)
        provider = OpenAIEmbeddingProvider(DIM, "sk-test", "text-embedding-ada-002", "https://api.test/v1/", 5)

        vector = provider.embed("hello")

        assert vector == [1.0] + [0.0] * (DIM - 1)
        assert captured["url"] == "https://api.test/v1/embeddings"
        assert captured["headers"]["Authorization"] == "Bearer sk-test"
        assert captured["json"] == {"model": "text-embedding-ada-002", "input": "hello"}
        assert captured["timeout"] == 5

    def test_http_error_raises_provider_error(self, monkeypatch):
        monkeypatch.setattr(
            embeddings_module.requests, "post", lambda *a, **kw: FakeResponse(status_code=401)
        )
        provider = OpenAIEmbeddingProvider(DIM, "bad", "m", "https://api.test/v1", 5)
        with pytest.raises(EmbeddingProviderError) as excinfo:
            provider.embed("hello")
        assert excinfo.value.status_code == 401
        assert excinfo.value.provider == "openai"

    def test_malformed_payload_raises_provider_error(self, monkeypatch):
        monkeypatch.setattr(
            embeddings_module.requests, "post", lambda *a, **kw: FakeResponse({"data": []})
        )
        provider = OpenAIEmbeddingProvider(DIM, "key", "m", "https://api.test/v1", 5)
        with pytest.raises(EmbeddingProviderError):
            provider.embed("hello")

    def test_connection_error_raises_provider_error(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(embeddings_module.requests, "post", refuse)
        provider = OpenAIEmbeddingProvider(DIM, "key", "m", "https://api.test/v1", 5)
        with pytest.raises(EmbeddingProviderError, match="refused"):
            provider.embed("hello")


# =============================================================================
# Google GenAI provider
# =============================================================================


class FakeGenAIClient:
    """Records ``embed_content`` calls; returns ``values`` or raises ``error``."""

    instances = []

    def __init__(self, api_key, values=(3.0, 4.0), error=None):
        self.api_key = api_key
        self.calls = []
        self.values = list(values)
        self.error = error
        self.models = self
        FakeGenAIClient.instances.append(self)

    def embed_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error:
            raise self.error
        return SimpleNamespace(embeddings=[SimpleNamespace(values=self.values)])


class TestGoogleProvider:
    """Tests for the GenAI provider with the client patched out."""

    @pytest.fixture(autouse=True)
    def reset_clients(self):
        FakeGenAIClient.instances = []

    def test_requests_output_dimensionality(self, monkeypatch):
        monkeypatch.setattr(genai, "Client", FakeGenAIClient)
        provider = GoogleEmbeddingProvider(DIM, "g-key", "gemini-embedding-001")

        vector = provider.embed("hello")

        client = FakeGenAIClient.instances[0]
        assert client.api_key == "g-key"
        call = client.calls[0]
        assert call["model"] == "gemini-embedding-001"
        assert call["contents"] == "hello"
        assert call["config"].output_dimensionality == DIM
        assert vector == pytest.approx([0.6, 0.8] + [0.0] * (DIM - 2))

    def test_client_created_once(self, monkeypatch):
        monkeypatch.setattr(genai, "Client", FakeGenAIClient)
        provider = GoogleEmbeddingProvider(DIM, "g-key", "m")
        provider.embed("one")
        provider.embed("two")
        assert len(FakeGenAIClient.instances) == 1
        assert len(FakeGenAIClient.instances[0].calls) == 2

    def test_client_error_raises_provider_error(self, monkeypatch):
        monkeypatch.setattr(
            genai, "Client", lambda api_key: FakeGenAIClient(api_key, error=RuntimeError("quota exceeded"))
        )
        provider = GoogleEmbeddingProvider(DIM, "g-key", "m")
        with pytest.raises(EmbeddingProviderError, match="quota exceeded") as excinfo:
            provider.embed("hello")
        assert excinfo.value.provider == "google"


# =============================================================================
# Embedder (fallback + timeout)
# =============================================================================


class TestEmbedder:
    """Tests for the adapter's fallback behaviour."""

    async def test_real_provider_result_used(self):
        provider = LookupProvider(vectors={"hi": [0.0, 2.0] + [0.0] * (DIM - 2)})
        embedder = Embedder(provider)
        assert await embedder.embed("hi") == [0.0, 1.0] + [0.0] * (DIM - 2)
        assert not embedder.is_fallback

    async def test_provider_error_falls_back(self):
        embedder = Embedder(FailingProvider())
        with capture_logs() as logs:
            vector = await embedder.embed("text")
        assert len(vector) == DIM
        fallbacks = [e for e in logs if e["event"] == "embedding_fallback"]
        assert fallbacks and fallbacks[0]["reason"] == "provider_error"
        assert fallbacks[0]["log_level"] == "warning"

    async def test_unexpected_error_falls_back(self):
        embedder = Embedder(CrashingProvider())
        with capture_logs() as logs:
            vector = await embedder.embed("text")
        assert len(vector) == DIM
        assert any(e.get("reason") == "unexpected_error" for e in logs)

    async def test_timeout_falls_back(self):
        embedder = Embedder(SlowProvider(), timeout=0.05)
        with capture_logs() as logs:
            vector = await embedder.embed("text")
        assert len(vector) == DIM
        assert any(e.get("reason") == "timeout" for e in logs)

    async def test_unconfigured_warns_on_every_call(self):
        embedder = Embedder(RandomEmbeddingProvider(DIM))
        with capture_logs() as logs:
            await embedder.embed("one")
            await embedder.embed("two")
        assert [e["reason"] for e in logs if e["event"] == "embedding_fallback"] == [
            "no_provider",
            "no_provider",
        ]

    async def test_embed_many_preserves_order(self):
        vectors = {f"t{i}": one_hot(i) for i in range(6)}
        provider = LookupProvider(vectors=vectors)
        embedder = Embedder(provider, concurrency=2)

        results = await embedder.embed_many([f"t{i}" for i in range(6)])

        assert results == [vectors[f"t{i}"] for i in range(6)]
        assert sorted(provider.calls) == sorted(vectors)
