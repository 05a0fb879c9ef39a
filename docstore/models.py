"""Shared data models for docstore."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Mapping

import pyarrow as pa
from lancedb.pydantic import LanceModel, Vector
from pydantic import AliasChoices, BaseModel, Field, create_model, field_validator


class DocumentMetadata(BaseModel):
    """Fixed-shape metadata stored as a struct column.

    Every field is coerced to one primitive type so that batches never disagree
    with the committed table schema. Accepts the camelCase keys produced by the
    upload pipeline as well as snake_case.
    """

    source: str = ""
    file_type: str = Field(default="", validation_alias=AliasChoices("file_type", "fileType"))
    page_number: int = Field(default=1, validation_alias=AliasChoices("page_number", "pageNumber"))
    agent_id: str = Field(default="", validation_alias=AliasChoices("agent_id", "agentId"))
    timestamp: str = ""

    @field_validator("source", "file_type", "agent_id", "timestamp", mode="before")
    @classmethod
    def _as_string(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("page_number", mode="before")
    @classmethod
    def _as_page(cls, value: Any) -> int:
        return int(value or 1)


class _DocumentRecordBase(LanceModel):
    id: str
    content: str


@lru_cache(maxsize=None)
def document_model(dim: int) -> type[LanceModel]:
    """LanceDB schema for document records with a ``dim``-wide embedding.

    IMPORTANT: Any changes to this schema trigger schema recovery on existing
    tables, which drops their rows.
    """
    return create_model(
        f"DocumentRecord{dim}",
        __base__=_DocumentRecordBase,
        embedding=(Vector(dim), ...),  # type: ignore[valid-type]
        metadata=(DocumentMetadata, ...),
    )


def document_schema(dim: int) -> pa.Schema:
    return document_model(dim).to_arrow_schema()


def build_record(
    record_id: str, content: str, embedding: list[float], metadata: DocumentMetadata
) -> dict[str, Any]:
    """Validate one record against the model for its embedding width."""
    model = document_model(len(embedding))
    return model(
        id=record_id,
        content=str(content),
        embedding=embedding,
        metadata=metadata,
    ).model_dump()


@dataclass(slots=True)
class StoredDocument:
    id: str
    content: str
    metadata: DocumentMetadata
    embedding: list[float] = field(repr=False, default_factory=list)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> StoredDocument:
        return cls(
            id=row["id"],
            content=row["content"],
            metadata=DocumentMetadata.model_validate(row["metadata"]),
            embedding=list(row.get("embedding") or []),
        )


@dataclass(slots=True)
class SearchResult:
    """A search hit. ``score`` is a distance: lower means more similar."""

    id: str
    content: str
    metadata: DocumentMetadata
    score: float


@dataclass(slots=True)
class DocumentStats:
    total_documents: int
    file_types: dict[str, int]
    sources: list[str]


@dataclass(slots=True)
class SourceSummary:
    source: str
    file_type: str
    chunks: int
    agent_ids: list[str]
