"""
Exceptions raised by the document store.
"""


class DocumentStoreError(Exception):
    """Base exception for all document store errors."""
    pass


class StoreNotInitializedError(DocumentStoreError):
    """Raised when an operation runs before ``initialize()`` has completed."""

    def __init__(self, message: str = "Document store not initialized"):
        super().__init__(message)


class SchemaConflictError(DocumentStoreError):
    """
    A batch cannot be appended because its shape disagrees with the table.

    Raised when:
    - The embedding dimension differs from the table's vector column
    - A column or metadata field changed primitive type
    - Columns were added or removed since the table was created
    """

    def __init__(self, reason: str):
        super().__init__(f"Schema conflict: {reason}")
        self.reason = reason


class IngestionError(DocumentStoreError):
    """
    Fatal failure while appending documents.

    Raised when the storage engine rejects a batch for a reason other than a
    schema conflict, or when rebuilding the table after a conflict fails.
    """
    pass


class EmbeddingProviderError(DocumentStoreError):
    """An embedding provider call failed or returned an unusable payload."""

    def __init__(self, message: str, provider: str = None, status_code: int = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
