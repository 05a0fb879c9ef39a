"""
Schema Recovery Controller.

LanceDB commits to a schema when a table is created and rejects (or silently
casts) later batches whose shape differs. Drift is detected structurally by
comparing the table schema with the batch schema; engine errors that slip past
that check are classified by type and message. Recovery drops the table and
rebuilds it from the conflicting batch. Every row stored before the conflict
is lost.
"""

from __future__ import annotations

from typing import Any, Sequence

import lancedb
import pyarrow as pa
import structlog

from .exceptions import IngestionError, SchemaConflictError
from .models import document_schema

log = structlog.get_logger("docstore.recovery")

SCHEMA_ERROR_KEYWORDS = ("schema", "type", "dictionary")
_ARROW_SCHEMA_ERRORS = (pa.ArrowInvalid, pa.ArrowTypeError)


def _kind(dtype: pa.DataType) -> str:
    """Primitive kind of an arrow type; width and nullability are ignored."""
    if pa.types.is_dictionary(dtype):
        return _kind(dtype.value_type)
    if pa.types.is_string(dtype) or pa.types.is_large_string(dtype):
        return "string"
    if pa.types.is_integer(dtype):
        return "integer"
    if pa.types.is_floating(dtype):
        return "float"
    if pa.types.is_boolean(dtype):
        return "boolean"
    if pa.types.is_timestamp(dtype):
        return "timestamp"
    if pa.types.is_fixed_size_list(dtype):
        return f"vector[{dtype.list_size}]"
    if pa.types.is_list(dtype) or pa.types.is_large_list(dtype):
        return "list"
    if pa.types.is_struct(dtype):
        return "struct"
    return str(dtype)


def _struct_fields(dtype: pa.StructType) -> list[pa.Field]:
    return [dtype.field(i) for i in range(dtype.num_fields)]


def _diff_fields(actual: Sequence[pa.Field], expected: Sequence[pa.Field], prefix: str = "") -> str | None:
    actual_types = {f.name: f.type for f in actual}
    expected_types = {f.name: f.type for f in expected}

    for name in expected_types:
        if name not in actual_types:
            return f"missing column '{prefix}{name}'"
    for name in actual_types:
        if name not in expected_types:
            return f"unexpected column '{prefix}{name}'"

    for name, expected_type in expected_types.items():
        actual_type = actual_types[name]
        if pa.types.is_struct(expected_type) and pa.types.is_struct(actual_type):
            drift = _diff_fields(
                _struct_fields(actual_type), _struct_fields(expected_type), f"{prefix}{name}."
            )
            if drift:
                return drift
        elif _kind(actual_type) != _kind(expected_type):
            return f"'{prefix}{name}' is {_kind(actual_type)} in table, {_kind(expected_type)} in batch"
    return None


def find_schema_drift(actual: pa.Schema, expected: pa.Schema) -> str | None:
    """Describe the first incompatibility between two schemas, or None."""
    return _diff_fields(list(actual), list(expected))


def is_schema_conflict(error: BaseException) -> bool:
    """Typed check first, then the message heuristic."""
    if isinstance(error, SchemaConflictError):
        return True
    if isinstance(error, _ARROW_SCHEMA_ERRORS):
        return True
    message = str(error).lower()
    return any(keyword in message for keyword in SCHEMA_ERROR_KEYWORDS)


def to_arrow(records: Sequence[dict[str, Any]], schema: pa.Schema) -> pa.Table:
    return pa.Table.from_pylist(list(records), schema=schema)


class SchemaRecovery:
    """Drops and recreates a table seeded by the batch that conflicted with it."""

    def __init__(self, db: lancedb.DBConnection, table_name: str):
        self.db = db
        self.table_name = table_name

    def recover(
        self,
        table: lancedb.table.Table | None,
        records: Sequence[dict[str, Any]],
        error: BaseException,
    ) -> lancedb.table.Table:
        """Replace ``table`` with one built from ``records``.

        The first record defines the new schema (including the embedding
        dimension); the remainder is appended afterwards. Raises
        IngestionError if rebuilding fails.
        """
        rows_lost = 0
        if table is not None:
            try:
                rows_lost = table.count_rows()
            except Exception as e:
                log.debug("row_count_unavailable", error=str(e))

        log.warning(
            "schema_recovery_started",
            table=self.table_name,
            error=str(error),
            rows_lost=rows_lost,
            batch_size=len(records),
        )

        seed, rest = records[0], records[1:]
        schema = document_schema(len(seed["embedding"]))
        try:
            self.db.drop_table(self.table_name, ignore_missing=True)
            rebuilt = self.db.create_table(
                self.table_name, data=to_arrow([seed], schema), schema=schema, mode="overwrite"
            )
            if rest:
                rebuilt.add(to_arrow(rest, schema))
        except Exception as e:
            log.error("schema_recovery_failed", table=self.table_name, error=str(e))
            raise IngestionError(f"Schema recovery failed for '{self.table_name}': {e}") from e

        log.warning(
            "schema_recovery_completed",
            table=self.table_name,
            rows=len(records),
            dim=len(seed["embedding"]),
        )
        return rebuilt
