"""
Document Store facade.

Ties the embedding adapter, the vector table, schema recovery, degraded search
and stats together behind one explicit handle. Construct it once, await
``initialize()``, and pass it to whatever needs it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Mapping

import structlog

from .config import StoreConfig
from .embeddings import Embedder
from .exceptions import StoreNotInitializedError
from .models import (
    DocumentMetadata,
    DocumentStats,
    SearchResult,
    SourceSummary,
    StoredDocument,
    build_record,
)
from .search import degraded_search
from .stats import aggregate_stats, group_by_source
from .table import MetadataFilter, VectorTable
from .utils import generate_document_id, now_iso

log = structlog.get_logger("docstore.store")


def _metadata_for_insert(
    metadata: DocumentMetadata | Mapping[str, Any] | None, timestamp: str
) -> DocumentMetadata:
    if metadata is None:
        return DocumentMetadata(timestamp=timestamp)
    if isinstance(metadata, DocumentMetadata):
        return metadata.model_copy(update={"timestamp": timestamp})
    return DocumentMetadata.model_validate({**metadata, "timestamp": timestamp})


class DocumentStore:
    """Embedded semantic document store scoped by agent."""

    def __init__(self, config: StoreConfig | None = None):
        self.config = config or StoreConfig()
        self.table = VectorTable(
            self.config.db_path,
            table_name=self.config.table_name,
            dim=self.config.embedding_dim,
            metric=self.config.distance_metric,
        )
        self.embedder: Embedder | None = None

    @property
    def is_initialized(self) -> bool:
        return self.embedder is not None and self.table.is_open

    def _require_initialized(self) -> Embedder:
        if not self.is_initialized:
            raise StoreNotInitializedError()
        return self.embedder

    async def initialize(self, credential: str | None = None) -> None:
        """Open (or create) the table and select the embedding provider.

        Args:
            credential: Provider API key; overrides ``StoreConfig.api_key``.
        """
        await asyncio.to_thread(self.table.open)
        self.embedder = Embedder.from_config(self.config, credential or self.config.api_key)
        log.info(
            "store_initialized",
            path=str(self.config.db_path),
            provider=self.embedder.provider.name,
            dim=self.config.embedding_dim,
        )

    # =========================================================================
    # Ingestion
    # =========================================================================

    async def add_document(
        self, content: str, metadata: DocumentMetadata | Mapping[str, Any] | None = None
    ) -> str:
        """Embed and store one chunk. Returns its generated id."""
        ids = await self.add_documents([{"content": content, "metadata": metadata}])
        return ids[0]

    async def add_documents(self, documents: Iterable[Mapping[str, Any]]) -> list[str]:
        """Embed and store a batch as a single table append.

        Args:
            documents: ``{"content": str, "metadata": {source, fileType, pageNumber?, agentId?}}``
                items; snake_case metadata keys are accepted too.

        Returns:
            Generated ids, in input order.
        """
        embedder = self._require_initialized()
        documents = list(documents)
        if not documents:
            return []

        timestamp = now_iso()
        contents = [str(doc.get("content") or "") for doc in documents]
        metadata = [_metadata_for_insert(doc.get("metadata"), timestamp) for doc in documents]
        embeddings = await embedder.embed_many(contents)

        ids = [generate_document_id() for _ in documents]
        records = [
            build_record(doc_id, content, embedding, meta)
            for doc_id, content, embedding, meta in zip(ids, contents, embeddings, metadata)
        ]
        await asyncio.to_thread(self.table.add, records)
        log.info("documents_added", count=len(records))
        return ids

    # =========================================================================
    # Search
    # =========================================================================

    async def search_documents(
        self, query: str, limit: int | None = None, agent_id: str | None = None
    ) -> list[SearchResult]:
        """Nearest chunks to ``query``, best match first.

        Args:
            query: Free text, embedded with the same provider as the documents
            limit: Max results (default ``config.default_limit``, clamped to ``config.max_limit``)
            agent_id: Only search chunks ingested for this agent
        """
        embedder = self._require_initialized()
        limit = self.config.default_limit if limit is None else limit
        if limit <= 0:
            return []
        limit = min(limit, self.config.max_limit)

        embedding = await embedder.embed(query)
        where = MetadataFilter("agent_id", agent_id) if agent_id else None
        return await asyncio.to_thread(degraded_search, self.table, embedding, limit, where)

    # =========================================================================
    # Deletion
    # =========================================================================

    async def delete_documents_by_source(self, source: str) -> int:
        self._require_initialized()
        return await asyncio.to_thread(self.table.delete, MetadataFilter("source", source))

    async def delete_documents_by_agent(self, agent_id: str) -> int:
        self._require_initialized()
        return await asyncio.to_thread(self.table.delete, MetadataFilter("agent_id", agent_id))

    async def delete_document(self, document_id: str) -> int:
        self._require_initialized()
        return await asyncio.to_thread(self.table.delete, MetadataFilter("id", document_id))

    # =========================================================================
    # Listing & Stats
    # =========================================================================

    async def get_all_documents(self, agent_id: str | None = None) -> list[StoredDocument]:
        self._require_initialized()
        where = MetadataFilter("agent_id", agent_id) if agent_id else None
        rows = await asyncio.to_thread(self.table.scan, where)
        return [StoredDocument.from_row(row) for row in rows]

    async def get_document(self, document_id: str) -> StoredDocument | None:
        self._require_initialized()
        rows = await asyncio.to_thread(self.table.scan, MetadataFilter("id", document_id), 1)
        return StoredDocument.from_row(rows[0]) if rows else None

    async def get_document_stats(self, agent_id: str | None = None) -> DocumentStats:
        """Total chunks, chunks per file type and distinct sources."""
        return aggregate_stats(await self.get_all_documents(agent_id))

    async def list_sources(self, agent_id: str | None = None) -> list[SourceSummary]:
        """One entry per ingested source."""
        return group_by_source(await self.get_all_documents(agent_id))

    async def get_document_content(self, source: str, agent_id: str | None = None) -> str:
        """Reassemble a source from its chunks in page order."""
        self._require_initialized()
        rows = await asyncio.to_thread(self.table.scan, MetadataFilter("source", source))
        chunks = [StoredDocument.from_row(row) for row in rows]
        if agent_id:
            chunks = [c for c in chunks if c.metadata.agent_id == agent_id]
        chunks.sort(key=lambda c: c.metadata.page_number)
        return "\n\n".join(c.content for c in chunks)

    async def health(self) -> dict[str, Any]:
        """Table size, embedding provider and recovery count."""
        embedder = self._require_initialized()
        info = await asyncio.to_thread(self.table.describe)
        info["provider"] = embedder.provider.name
        info["fallback_embeddings"] = embedder.is_fallback
        return info
