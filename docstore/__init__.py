"""
docstore - Embedded semantic document store (LanceDB).

Turns text chunks into vector records on local disk and answers
nearest-neighbour queries scoped by agent. Embeddings come from a pluggable
provider with a random-vector fallback; schema drift rebuilds the table and
failing vector searches degrade to unranked scans.

Usage:
    from docstore import DocumentStore, StoreConfig

    store = DocumentStore(StoreConfig(db_path=Path("data/lancedb")))
    await store.initialize(api_key)
    await store.add_document("text", {"source": "a.pdf", "fileType": "pdf", "agentId": "a1"})
    hits = await store.search_documents("query", limit=5, agent_id="a1")
"""

from .config import StoreConfig
from .embeddings import (
    Embedder,
    EmbeddingProvider,
    GoogleEmbeddingProvider,
    OpenAIEmbeddingProvider,
    RandomEmbeddingProvider,
)
from .exceptions import (
    DocumentStoreError,
    EmbeddingProviderError,
    IngestionError,
    SchemaConflictError,
    StoreNotInitializedError,
)
from .models import DocumentMetadata, DocumentStats, SearchResult, SourceSummary, StoredDocument
from .store import DocumentStore
from .table import MetadataFilter, VectorTable

__version__ = "0.1.0"

__all__ = [
    "DocumentMetadata",
    "DocumentStats",
    "DocumentStore",
    "DocumentStoreError",
    "Embedder",
    "EmbeddingProvider",
    "EmbeddingProviderError",
    "GoogleEmbeddingProvider",
    "IngestionError",
    "MetadataFilter",
    "OpenAIEmbeddingProvider",
    "RandomEmbeddingProvider",
    "SchemaConflictError",
    "SearchResult",
    "SourceSummary",
    "StoreConfig",
    "StoredDocument",
    "StoreNotInitializedError",
    "VectorTable",
    "__version__",
]
