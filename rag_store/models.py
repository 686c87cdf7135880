"""
Data model shared by the chunker, the stores and the orchestrator.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import MetadataError

NO_RELEVANT_INFORMATION = "No relevant information found in the document."
QUERY_TIMED_OUT = (
    "The search took too long to complete. Please try again with a more "
    "specific question."
)

BACKEND_REMOTE = "remote"
BACKEND_LOCAL = "local"
SOURCE_NONE = "none"


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def default_document_name(document_id: str) -> str:
    return f"Document-{document_id[:8]}"


def record_id(document_id: str, chunk_index: int) -> str:
    return f"{document_id}-chunk-{chunk_index}"


@dataclass
class Chunk:
    """A bounded, contiguous slice of a document's text"""
    document_id: str
    chunk_index: int
    text: str
    document_name: str = ""

    @property
    def record_id(self) -> str:
        return record_id(self.document_id, self.chunk_index)


@dataclass
class ChunkMetadata:
    """
    Metadata stored with every vector.

    The wire format uses camelCase keys; `documentId` is the filter key for
    per-document queries and deletes.
    """
    document_id: str
    file_name: str
    chunk_index: int
    upload_date: str
    text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "documentId": self.document_id,
            "fileName": self.file_name,
            "chunkIndex": self.chunk_index,
            "uploadDate": self.upload_date,
        }
        if self.text is not None:
            data["text"] = self.text
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "ChunkMetadata":
        """
        Validate a metadata bag returned by the vector index.

        Raises:
            MetadataError: if the bag is not a mapping or lacks a required field
        """
        if not isinstance(data, dict):
            try:
                data = dict(data)
            except (TypeError, ValueError):
                raise MetadataError(f"Metadata must be a mapping, got {type(data).__name__}")

        missing = [
            key for key in ("documentId", "fileName", "chunkIndex", "uploadDate")
            if data.get(key) in (None, "")
        ]
        if missing:
            raise MetadataError(f"Metadata missing required fields: {', '.join(missing)}")

        try:
            chunk_index = int(data["chunkIndex"])
        except (TypeError, ValueError):
            raise MetadataError(f"chunkIndex must be an integer, got {data['chunkIndex']!r}")

        text = data.get("text")
        return cls(
            document_id=str(data["documentId"]),
            file_name=str(data["fileName"]),
            chunk_index=chunk_index,
            upload_date=str(data["uploadDate"]),
            text=str(text) if text else None,
        )


@dataclass
class VectorRecord:
    """One embedded chunk, ready for the vector index"""
    id: str
    values: List[float]
    metadata: ChunkMetadata

    def to_pinecone(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "values": list(self.values),
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class Match:
    """A scored similarity hit"""
    id: str
    score: float
    metadata: ChunkMetadata


@dataclass
class DocumentInfo:
    id: str
    name: str
    upload_date: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "uploadDate": self.upload_date}


@dataclass
class IndexStats:
    """Subset of the index statistics the core relies on"""
    dimension: Optional[int]
    namespaces: Dict[str, int] = field(default_factory=dict)
    total_vector_count: int = 0

    def count(self, namespace: str) -> int:
        return self.namespaces.get(namespace, 0)


@dataclass
class IngestResult:
    document_id: str
    name: str
    upload_date: str
    backend: str
    chunk_count: int
    embedded_count: int
    skipped_chunks: List[int] = field(default_factory=list)

    @property
    def stored_remotely(self) -> bool:
        return self.backend == BACKEND_REMOTE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentId": self.document_id,
            "name": self.name,
            "uploadDate": self.upload_date,
            "backend": self.backend,
            "chunkCount": self.chunk_count,
            "embeddedCount": self.embedded_count,
            "skippedChunks": list(self.skipped_chunks),
        }


@dataclass
class QueryResult:
    context_chunks: List[str]
    source: str = SOURCE_NONE
    degraded: bool = False

    @property
    def found(self) -> bool:
        """False when only the sentinel or a timeout message was returned."""
        return self.source != SOURCE_NONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contextChunks": list(self.context_chunks),
            "source": self.source,
            "degraded": self.degraded,
        }
