"""Lightweight cache of document metadata for cheap listings."""
import threading
from typing import Dict, List, Optional

from .models import DocumentInfo


class DocumentRegistry:
    """
    Maps document identifier to name and upload date.

    A shadow of the vector index metadata, never authoritative: the index
    wins on disagreement.
    """

    def __init__(self):
        self._entries: Dict[str, DocumentInfo] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, document_id: str) -> bool:
        return document_id in self._entries

    def put(self, document_id: str, name: str, upload_date: str) -> DocumentInfo:
        entry = DocumentInfo(id=document_id, name=name, upload_date=upload_date)
        with self._lock:
            self._entries[document_id] = entry
        return entry

    def get(self, document_id: str) -> Optional[DocumentInfo]:
        with self._lock:
            return self._entries.get(document_id)

    def remove(self, document_id: str) -> bool:
        with self._lock:
            return self._entries.pop(document_id, None) is not None

    def all(self) -> List[DocumentInfo]:
        """Every entry, newest upload first."""
        with self._lock:
            entries = list(self._entries.values())
        return sorted(entries, key=lambda entry: entry.upload_date, reverse=True)

    def clear(self):
        with self._lock:
            self._entries.clear()
