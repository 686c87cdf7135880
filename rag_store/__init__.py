"""
rag_store - Document chunking, embedding & similarity retrieval

Splits free text into bounded chunks, embeds them with Amazon Titan,
stores the vectors in a namespaced Pinecone index (or an in-process
fallback store during outages) and returns ranked context for questions.
"""

from .chunking import TextChunker
from .config import Settings, configure_logging
from .dimensions import reconcile_dimension
from .embedding import EmbeddingClient, EmbeddingProvider, cosine_similarity
from .errors import (
    ConfigurationError,
    EmbeddingError,
    EmptyDocumentError,
    IndexUnavailableError,
    InvalidInputError,
    MetadataError,
    NoEmbeddingsGeneratedError,
    ProviderUnavailableError,
    RagStoreError,
    RateLimitedError,
)
from .indexing import PineconeIndex
from .local_store import LocalVectorStore
from .models import (
    NO_RELEVANT_INFORMATION,
    Chunk,
    ChunkMetadata,
    DocumentInfo,
    IngestResult,
    Match,
    QueryResult,
    VectorRecord,
)
from .registry import DocumentRegistry
from .store import DocumentStore

__all__ = [
    "DocumentStore",
    "Settings",
    "configure_logging",
    "TextChunker",
    "reconcile_dimension",
    "EmbeddingClient",
    "EmbeddingProvider",
    "cosine_similarity",
    "PineconeIndex",
    "LocalVectorStore",
    "DocumentRegistry",
    "Chunk",
    "ChunkMetadata",
    "VectorRecord",
    "Match",
    "DocumentInfo",
    "IngestResult",
    "QueryResult",
    "NO_RELEVANT_INFORMATION",
    "RagStoreError",
    "ConfigurationError",
    "EmptyDocumentError",
    "NoEmbeddingsGeneratedError",
    "EmbeddingError",
    "RateLimitedError",
    "ProviderUnavailableError",
    "InvalidInputError",
    "IndexUnavailableError",
    "MetadataError",
]
