"""
Search Degradation Controller.

Vector search that never raises: an empty table yields no results, and any
other failure falls back to an unranked scan.
"""

from __future__ import annotations

from typing import Any, Sequence

import structlog

from .models import DocumentMetadata, SearchResult
from .table import MetadataFilter, VectorTable

log = structlog.get_logger("docstore.search")

# Score given to rows returned by the fallback scan; no distance was computed.
FALLBACK_SCORE = 0.0

_EMPTY_TABLE_HINTS = ("no vector column", "empty table")


def _to_result(row: dict[str, Any], score: float) -> SearchResult:
    return SearchResult(
        id=row["id"],
        content=row["content"],
        metadata=DocumentMetadata.model_validate(row["metadata"]),
        score=float(score),
    )


def _is_empty_table_error(error: BaseException) -> bool:
    message = str(error).lower()
    return any(hint in message for hint in _EMPTY_TABLE_HINTS)


def _is_empty(table: VectorTable, where: MetadataFilter | None, error: BaseException) -> bool:
    """Row count decides; the error message is only consulted when counting fails."""
    try:
        return table.count(where) == 0
    except Exception:
        return _is_empty_table_error(error)


def degraded_search(
    table: VectorTable,
    embedding: Sequence[float],
    limit: int,
    where: MetadataFilter | None = None,
) -> list[SearchResult]:
    """Ranked results, or scan results with ``FALLBACK_SCORE``, or ``[]``."""
    try:
        rows = table.vector_search(embedding, limit, where)
        return [_to_result(row, row.get("_distance", 0.0)) for row in rows]
    except Exception as e:
        if _is_empty(table, where, e):
            log.info("vector_search_empty", error=str(e))
            return []
        log.warning("vector_search_failed", error=str(e), fallback="scan")

    try:
        rows = table.scan(where, limit=limit)
        return [_to_result(row, FALLBACK_SCORE) for row in rows]
    except Exception as e:
        log.error("fallback_scan_failed", error=str(e))
        return []
