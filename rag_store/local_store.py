"""
In-process stand-in for the vector index, used while Pinecone is unreachable.

Nothing here is persisted: a restart loses every fallback record. The remote
index stays the durable store.
"""
import logging
import threading
from typing import Dict, List, Sequence

from .embedding import cosine_similarity
from .models import DocumentInfo, Match, VectorRecord, default_document_name, utc_now_iso

logger = logging.getLogger(__name__)


class LocalVectorStore:
    """Brute-force cosine search over records keyed by document identifier."""

    def __init__(self):
        self._records: Dict[str, List[VectorRecord]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def has(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._records

    def upsert(self, document_id: str, records: Sequence[VectorRecord]) -> None:
        """Replace every record held for `document_id`."""
        with self._lock:
            self._records[document_id] = list(records)
        logger.info("Stored %d vectors locally for document %s", len(records), document_id)

    def records(self, document_id: str) -> List[VectorRecord]:
        with self._lock:
            return list(self._records.get(document_id, []))

    def query(self, vector: Sequence[float], document_id: str, top_k: int = 5) -> List[Match]:
        """
        Rank a document's records by cosine similarity to `vector`.

        Ties keep insertion order.
        """
        scored = [
            Match(
                id=record.id,
                score=cosine_similarity(vector, record.values),
                metadata=record.metadata
            )
            for record in self.records(document_id)
        ]
        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:top_k]

    def delete(self, document_id: str) -> bool:
        """Drop a document. Returns True if it was present."""
        with self._lock:
            removed = self._records.pop(document_id, None)
        return removed is not None

    def list_documents(self) -> List[DocumentInfo]:
        """One summary per stored document, taken from its first record."""
        with self._lock:
            items = [(doc_id, records[:1]) for doc_id, records in self._records.items()]

        documents = []
        for document_id, first in items:
            metadata = first[0].metadata if first else None
            documents.append(DocumentInfo(
                id=document_id,
                name=metadata.file_name if metadata else default_document_name(document_id),
                upload_date=metadata.upload_date if metadata else utc_now_iso()
            ))
        return documents
