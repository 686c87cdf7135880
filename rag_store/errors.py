"""
Exception hierarchy for the retrieval core.

Only conditions that make a request meaningless reach the caller
(EmptyDocumentError, NoEmbeddingsGeneratedError, a failed query embedding).
Index outages are absorbed by the orchestrator and served from the local
fallback store.
"""


class RagStoreError(Exception):
    """Base class for every error raised by rag_store."""


class ConfigurationError(RagStoreError):
    """Invalid or malformed settings."""


class EmptyDocumentError(RagStoreError):
    """The document produced no chunks to index."""

    def __init__(self, document_name: str = ""):
        label = f" '{document_name}'" if document_name else ""
        super().__init__(
            f"Document{label} contains no extractable text; nothing to index"
        )
        self.document_name = document_name


class NoEmbeddingsGeneratedError(RagStoreError):
    """Every chunk of a document failed to embed."""

    def __init__(self, document_name: str = "", chunk_count: int = 0):
        super().__init__(
            f"Failed to generate any embeddings for '{document_name}' "
            f"({chunk_count} chunks). The document may be too large or the "
            f"embedding service is unavailable; try again later."
        )
        self.document_name = document_name
        self.chunk_count = chunk_count


class EmbeddingError(RagStoreError):
    """The embedding provider could not embed a piece of text."""

    transient = False


class RateLimitedError(EmbeddingError):
    """The embedding provider throttled the request."""

    transient = True


class ProviderUnavailableError(EmbeddingError):
    """The embedding provider is unreachable or failed internally."""

    transient = True


class InvalidInputError(EmbeddingError):
    """The provider rejected the text (empty or too long)."""


class IndexUnavailableError(RagStoreError):
    """A call to the remote vector index failed."""

    def __init__(self, operation: str, cause: Exception = None):
        message = f"Vector index unavailable during {operation}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.operation = operation


class MetadataError(RagStoreError, ValueError):
    """A metadata bag from the vector index is missing required fields."""
