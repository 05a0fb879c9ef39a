"""
Vector Table Manager.

Owns the on-disk LanceDB table and exposes add / vector search / scan /
delete primitives. Mutations are serialized behind the write side of a
read/write lock; reads share the read side and never overlap a table drop.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import lancedb
import pyarrow as pa
import structlog

from .exceptions import IngestionError, SchemaConflictError, StoreNotInitializedError
from .models import DocumentMetadata, build_record, document_schema
from .recovery import SchemaRecovery, find_schema_drift, is_schema_conflict, to_arrow
from .utils import ReadWriteLock, escape_filter_value, now_iso

log = structlog.get_logger("docstore.table")

PLACEHOLDER_ID = "__schema_seed__"
METADATA_FIELDS = frozenset({"source", "file_type", "page_number", "agent_id"})


@dataclass(frozen=True, slots=True)
class MetadataFilter:
    """Equality predicate on ``id`` or one metadata field."""

    field: str
    value: str | int

    def __post_init__(self) -> None:
        if self.field != "id" and self.field not in METADATA_FIELDS:
            raise ValueError(
                f"Cannot filter on '{self.field}'. Valid: {sorted(METADATA_FIELDS | {'id'})}"
            )

    @property
    def column(self) -> str:
        return "id" if self.field == "id" else f"metadata.{self.field}"

    def to_sql(self) -> str:
        if self.field == "page_number":
            return f"{self.column} = {int(self.value)}"
        return f"{self.column} = '{escape_filter_value(str(self.value))}'"


def _where(where: MetadataFilter | None) -> str | None:
    return where.to_sql() if where is not None else None


def _table_names(db: lancedb.DBConnection) -> list[str]:
    try:
        response = db.list_tables()
    except AttributeError:
        return list(db.table_names())
    return list(getattr(response, "tables", response))


class VectorTable:
    """LanceDB table of document records with a fixed embedding dimension."""

    def __init__(
        self,
        db_path: Path | str,
        table_name: str = "documents",
        dim: int = 1536,
        metric: str = "l2",
    ):
        self.db_path = Path(db_path)
        self.table_name = table_name
        self.dim = dim
        self.metric = metric
        self.recoveries = 0
        self._db: lancedb.DBConnection | None = None
        self._table: lancedb.table.Table | None = None
        self._recovery: SchemaRecovery | None = None
        self._lock = ReadWriteLock()

    @property
    def schema(self) -> pa.Schema:
        return document_schema(self.dim)

    @property
    def is_open(self) -> bool:
        return self._table is not None

    def _require_table(self) -> lancedb.table.Table:
        if self._table is None:
            raise StoreNotInitializedError(f"Table '{self.table_name}' is not open")
        return self._table

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def open(self) -> None:
        """Open the table, creating it on first use. Safe to call repeatedly."""
        with self._lock.write():
            self.db_path.mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(str(self.db_path))
            self._recovery = SchemaRecovery(self._db, self.table_name)

            table = self._open_existing()
            if table is None:
                table = self._bootstrap()
            else:
                drift = find_schema_drift(table.schema, self.schema)
                if drift:
                    # Left as is; the next add rebuilds it.
                    log.warning("table_schema_drift", table=self.table_name, drift=drift)
                log.info("table_opened", table=self.table_name, rows=table.count_rows())
            self._table = table

    def _open_existing(self) -> lancedb.table.Table | None:
        try:
            return self._db.open_table(self.table_name)
        except Exception:
            try:
                names = _table_names(self._db)
            except Exception:
                names = []
            if self.table_name in names:
                raise
            return None

    def _bootstrap(self) -> lancedb.table.Table:
        """Create the table from a placeholder row, then remove the placeholder."""
        placeholder = build_record(
            PLACEHOLDER_ID,
            "Initial document",
            [0.0] * self.dim,
            DocumentMetadata(
                source="init", file_type="text", page_number=1, agent_id="init", timestamp=now_iso()
            ),
        )
        table = self._db.create_table(
            self.table_name, data=to_arrow([placeholder], self.schema), schema=self.schema
        )
        table.delete(f"id = '{PLACEHOLDER_ID}'")
        log.info("table_created", table=self.table_name, dim=self.dim, path=str(self.db_path))
        return table

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add(self, records: Sequence[dict[str, Any]]) -> None:
        """Append one batch. A schema conflict rebuilds the table from this batch."""
        if not records:
            return
        dims = {len(r["embedding"]) for r in records}
        if len(dims) > 1:
            raise ValueError(f"Embeddings in one batch must share a dimension, got {sorted(dims)}")

        with self._lock.write():
            table = self._require_table()
            batch_schema = document_schema(dims.pop())
            try:
                drift = find_schema_drift(table.schema, batch_schema)
                if drift:
                    raise SchemaConflictError(drift)
                table.add(to_arrow(records, batch_schema))
            except Exception as e:
                if not is_schema_conflict(e):
                    log.error("add_failed", table=self.table_name, error=str(e))
                    raise IngestionError(f"Failed to add {len(records)} documents: {e}") from e
                self._table = self._recovery.recover(table, records, e)
                self.recoveries += 1

    def delete(self, where: MetadataFilter) -> int:
        """Remove every row matching ``where``. Returns the number removed."""
        with self._lock.write():
            table = self._require_table()
            predicate = where.to_sql()
            matched = table.count_rows(predicate)
            if matched:
                table.delete(predicate)
            log.info("documents_deleted", table=self.table_name, where=predicate, count=matched)
            return matched

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def vector_search(
        self, embedding: Sequence[float], limit: int, where: MetadataFilter | None = None
    ) -> list[dict[str, Any]]:
        """Nearest rows first, each with ``_distance``. The filter is applied before the scan."""
        with self._lock.read():
            query = (
                self._require_table()
                .search(list(embedding), vector_column_name="embedding")
                .distance_type(self.metric)
            )
            if where is not None:
                query = query.where(where.to_sql(), prefilter=True)
            return query.limit(limit).to_list()

    def scan(self, where: MetadataFilter | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        """Unordered enumeration of matching rows. ``limit=None`` means all of them."""
        with self._lock.read():
            table = self._require_table()
            if limit is not None and limit <= 0:
                return []
            total = table.count_rows(_where(where))
            if total == 0:
                return []
            query = table.search()
            if where is not None:
                query = query.where(where.to_sql())
            return query.limit(min(limit, total) if limit is not None else total).to_list()

    def count(self, where: MetadataFilter | None = None) -> int:
        with self._lock.read():
            return self._require_table().count_rows(_where(where))

    def describe(self) -> dict[str, Any]:
        """Row count, size on disk and recovery count."""
        with self._lock.read():
            rows = self._require_table().count_rows()
            db_size = sum(f.stat().st_size for f in self.db_path.rglob("*") if f.is_file()) / 1024
        return {
            "table": self.table_name,
            "rows": rows,
            "dim": self.dim,
            "metric": self.metric,
            "db_size_kb": round(db_size, 1),
            "recoveries": self.recoveries,
        }
