"""
Settings for the retrieval core.

Values come from the environment (optionally a .env file) and fall back to
the defaults the service has always run with.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

MAX_UPSERT_BATCH_SIZE = 100
TRUE_VALUES = ("1", "true", "yes", "on")

@dataclass
class Settings:
    """Tunables for chunking, embedding, indexing and retrieval."""

    # Pinecone
    pinecone_api_key: Optional[str] = None
    index_name: str = "lang-chain"
    namespace: str = "rag-docs"
    pinecone_cloud: str = "aws"
    pinecone_region: str = "us-east-1"
    metric: str = "cosine"
    create_index_if_missing: bool = True
    index_dimension: int = 1024

    # Bedrock embeddings
    aws_region: str = "us-east-1"
    embedding_model: str = "amazon.titan-embed-text-v2:0"
    embedding_dimensions: int = 1024
    normalize_embeddings: bool = True
    embedding_cache_size: int = 1000

    # Chunking
    chunk_size: int = 1000
    chunk_overlap: int = 200
    max_embedding_chars: int = 30000
    metadata_text_limit: int = 1000

    # Rate limiting
    upsert_batch_size: int = 25
    embedding_group_size: int = 3
    embedding_delay: float = 0.3
    batch_delay: float = 1.0
    max_workers: int = 1

    # Retries
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    upsert_retry_delay: float = 2.0

    # Retrieval
    top_k: int = 5
    list_sample_size: int = 100
    query_timeout: float = 20.0
    ingest_timeout: float = 300.0

    show_progress: bool = False

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from environment variables (and .env if present)."""
        load_dotenv(dotenv_path)
        d = cls()
        try:
            settings = cls(
                pinecone_api_key=os.getenv("PINECONE_API_KEY"),
                index_name=os.getenv("PINECONE_INDEX_NAME", d.index_name),
                namespace=os.getenv("PINECONE_NAMESPACE", d.namespace),
                pinecone_cloud=os.getenv("PINECONE_CLOUD", d.pinecone_cloud),
                pinecone_region=os.getenv("PINECONE_REGION", d.pinecone_region),
                metric=os.getenv("PINECONE_METRIC", d.metric),
                create_index_if_missing=os.getenv("PINECONE_CREATE_INDEX", "true").lower() in TRUE_VALUES,
                index_dimension=int(os.getenv("INDEX_DIMENSION", d.index_dimension)),
                aws_region=os.getenv("AWS_DEFAULT_REGION", d.aws_region),
                embedding_model=os.getenv("AWS_BEDROCK_TITAN_EMBEDDING_MODEL", d.embedding_model),
                embedding_dimensions=int(os.getenv("EMBEDDING_DIMENSIONS", d.embedding_dimensions)),
                chunk_size=int(os.getenv("CHUNK_SIZE", d.chunk_size)),
                chunk_overlap=int(os.getenv("CHUNK_OVERLAP", d.chunk_overlap)),
                max_embedding_chars=int(os.getenv("MAX_EMBEDDING_CHARS", d.max_embedding_chars)),
                upsert_batch_size=int(os.getenv("UPSERT_BATCH_SIZE", d.upsert_batch_size)),
                embedding_delay=float(os.getenv("EMBEDDING_DELAY", d.embedding_delay)),
                batch_delay=float(os.getenv("BATCH_DELAY", d.batch_delay)),
                max_workers=int(os.getenv("EMBEDDING_MAX_WORKERS", d.max_workers)),
                top_k=int(os.getenv("RETRIEVAL_TOP_K", d.top_k)),
                query_timeout=float(os.getenv("QUERY_TIMEOUT", d.query_timeout)),
                ingest_timeout=float(os.getenv("INGEST_TIMEOUT", d.ingest_timeout)),
                show_progress=os.getenv("SHOW_PROGRESS", "false").lower() in TRUE_VALUES,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting in environment: {e}") from e
        return settings.validate()

    def validate(self) -> "Settings":
        """Reject settings the pipeline cannot honour."""
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive")
        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ConfigurationError(
                f"chunk_overlap ({self.chunk_overlap}) must be in "
                f"[0, chunk_size={self.chunk_size})"
            )
        if self.max_embedding_chars <= 0:
            raise ConfigurationError("max_embedding_chars must be positive")
        if not 1 <= self.upsert_batch_size <= MAX_UPSERT_BATCH_SIZE:
            raise ConfigurationError(
                f"upsert_batch_size must be between 1 and {MAX_UPSERT_BATCH_SIZE}"
            )
        if self.embedding_group_size < 1 or self.max_workers < 1:
            raise ConfigurationError(
                "embedding_group_size and max_workers must be at least 1"
            )
        if self.retry_attempts < 1:
            raise ConfigurationError("retry_attempts must be at least 1")
        if self.index_dimension <= 0 or self.top_k <= 0:
            raise ConfigurationError("index_dimension and top_k must be positive")
        return self


def configure_logging(level: Optional[str] = None):
    """Configure root logging for scripts. Library code only uses loggers."""
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # The vendor SDKs are chatty at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
