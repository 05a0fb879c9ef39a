"""Stats Aggregator: point-in-time reductions over a table scan."""

from __future__ import annotations

from typing import Iterable

from .models import DocumentStats, SourceSummary, StoredDocument


def aggregate_stats(documents: Iterable[StoredDocument]) -> DocumentStats:
    """Total rows, per-file-type histogram and distinct sources (first-seen order)."""
    total = 0
    file_types: dict[str, int] = {}
    sources: dict[str, None] = {}

    for doc in documents:
        total += 1
        file_type = doc.metadata.file_type
        file_types[file_type] = file_types.get(file_type, 0) + 1
        sources.setdefault(doc.metadata.source, None)

    return DocumentStats(total_documents=total, file_types=file_types, sources=list(sources))


def group_by_source(documents: Iterable[StoredDocument]) -> list[SourceSummary]:
    """One summary per source with its chunk count and the agents it is scoped to."""
    groups: dict[str, SourceSummary] = {}
    for doc in documents:
        meta = doc.metadata
        summary = groups.get(meta.source)
        if summary is None:
            summary = groups[meta.source] = SourceSummary(
                source=meta.source, file_type=meta.file_type, chunks=0, agent_ids=[]
            )
        summary.chunks += 1
        if meta.agent_id and meta.agent_id not in summary.agent_ids:
            summary.agent_ids.append(meta.agent_id)

    for summary in groups.values():
        summary.agent_ids.sort()
    return list(groups.values())
