"""
Pinecone client for the retrieval core.
All operations are scoped to one namespace and filter on `documentId`.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from pinecone import Pinecone, ServerlessSpec

from .errors import IndexUnavailableError, MetadataError
from .models import ChunkMetadata, IndexStats, Match, VectorRecord

logger = logging.getLogger(__name__)


def document_filter(document_id: str) -> Dict[str, Any]:
    return {"documentId": {"$eq": document_id}}


def _vector_count(summary: Any) -> int:
    if summary is None:
        return 0
    if isinstance(summary, dict):
        count = summary.get("vector_count", 0)
    else:
        count = getattr(summary, "vector_count", 0)
    return int(count or 0)


class PineconeIndex:
    """
    Namespaced view of a Pinecone index

    Features:
    - Lazy connection, so an outage at startup does not break the caller
    - Creates the serverless index on first use when allowed
    - Wraps every SDK failure in IndexUnavailableError (no retries here)
    """

    def __init__(
        self,
        index_name: str = "lang-chain",
        namespace: str = "rag-docs",
        api_key: Optional[str] = None,
        dimension: int = 1024,
        metric: str = "cosine",
        cloud: str = "aws",
        region: str = "us-east-1",
        create_if_missing: bool = True
    ):
        """
        Args:
            index_name: Name of Pinecone index
            namespace: Namespace holding every document's records
            api_key: Pinecone API key (falls back to PINECONE_API_KEY)
            dimension: Dimension used when the index has to be created
            metric: Distance metric (cosine, euclidean, or dotproduct)
            cloud: Serverless cloud for index creation
            region: Serverless region for index creation
            create_if_missing: Create the index when it does not exist
        """
        self.index_name = index_name
        self.namespace = namespace
        self.api_key = api_key
        self.dimension = dimension
        self.metric = metric
        self.cloud = cloud
        self.region = region
        self.create_if_missing = create_if_missing

        self._pc = None
        self._index = None

    @classmethod
    def from_settings(cls, settings) -> "PineconeIndex":
        return cls(
            index_name=settings.index_name,
            namespace=settings.namespace,
            api_key=settings.pinecone_api_key,
            dimension=settings.index_dimension,
            metric=settings.metric,
            cloud=settings.pinecone_cloud,
            region=settings.pinecone_region,
            create_if_missing=settings.create_index_if_missing
        )

    @property
    def index(self):
        """Connected index handle, established on first access."""
        if self._index is None:
            try:
                self._connect()
            except IndexUnavailableError:
                raise
            except Exception as e:
                raise IndexUnavailableError("connect", e) from e
        return self._index

    def _connect(self):
        if self._pc is None:
            self._pc = Pinecone(api_key=self.api_key) if self.api_key else Pinecone()

        existing_indexes = [index.name for index in self._pc.list_indexes()]
        if self.index_name not in existing_indexes:
            if not self.create_if_missing:
                raise IndexUnavailableError(
                    "connect", LookupError(f"index '{self.index_name}' does not exist")
                )
            logger.info("Creating new index: %s (dimension %d)", self.index_name, self.dimension)
            self._pc.create_index(
                name=self.index_name,
                dimension=self.dimension,
                metric=self.metric,
                spec=ServerlessSpec(cloud=self.cloud, region=self.region)
            )
        else:
            logger.info("Using existing index: %s", self.index_name)

        self._index = self._pc.Index(self.index_name)

    def upsert(self, records: Sequence[VectorRecord]) -> int:
        """
        Upsert one batch of records into the namespace.

        Returns:
            Number of records sent
        """
        if not records:
            return 0
        vectors = [record.to_pinecone() for record in records]
        try:
            self.index.upsert(vectors=vectors, namespace=self.namespace)
        except IndexUnavailableError:
            raise
        except Exception as e:
            raise IndexUnavailableError("upsert", e) from e
        return len(vectors)

    def query(
        self,
        vector: Sequence[float],
        top_k: int = 5,
        document_id: Optional[str] = None
    ) -> List[Match]:
        """
        Similarity search, optionally restricted to one document.

        Matches whose metadata fails validation are dropped.
        """
        try:
            results = self.index.query(
                vector=list(vector),
                top_k=top_k,
                filter=document_filter(document_id) if document_id else None,
                include_metadata=True,
                namespace=self.namespace
            )
        except IndexUnavailableError:
            raise
        except Exception as e:
            raise IndexUnavailableError("query", e) from e

        matches = []
        for match in results.matches or []:
            try:
                metadata = ChunkMetadata.from_dict(match.metadata or {})
            except MetadataError as e:
                logger.warning("Dropping match %s with malformed metadata: %s", match.id, e)
                continue
            matches.append(Match(id=match.id, score=float(match.score or 0.0), metadata=metadata))
        return matches

    def delete_by_document(self, document_id: str) -> None:
        """
        Remove every record of a document.

        Indexes that reject metadata-filtered deletes get the ids listed
        under the document's record prefix deleted instead.
        """
        try:
            self.index.delete(filter=document_filter(document_id), namespace=self.namespace)
            return
        except IndexUnavailableError:
            raise
        except Exception as e:
            logger.info("Filtered delete rejected (%s); deleting by id prefix", e)

        try:
            prefix = f"{document_id}-chunk-"
            for ids in self.index.list(prefix=prefix, namespace=self.namespace):
                if ids:
                    self.index.delete(ids=list(ids), namespace=self.namespace)
        except Exception as e:
            raise IndexUnavailableError("delete", e) from e

    def describe_stats(self) -> IndexStats:
        try:
            stats = self.index.describe_index_stats()
        except IndexUnavailableError:
            raise
        except Exception as e:
            raise IndexUnavailableError("describe_index_stats", e) from e

        namespaces = {
            name: _vector_count(summary)
            for name, summary in (stats.namespaces or {}).items()
        }
        dimension = stats.dimension
        return IndexStats(
            dimension=int(dimension) if dimension else None,
            namespaces=namespaces,
            total_vector_count=int(stats.total_vector_count or 0)
        )

    def namespace_count(self) -> int:
        """Records stored under this client's namespace."""
        return self.describe_stats().count(self.namespace)
