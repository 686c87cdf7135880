"""
Split document text into bounded, overlapping chunks for embedding.

Two passes:
- recursive splitting on paragraph, line, sentence and word boundaries
  (single characters as a last resort), greedily merged up to
  `chunk_size` with `chunk_overlap` characters carried into the next chunk
- a coarser pass that joins neighbouring pieces while they stay within the
  embedding provider's input bound, flushing when they would not
"""
import logging
from collections import deque
from typing import List, Optional, Sequence

from .models import Chunk

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]
PIECE_JOINER = "\n\n"


def _split_keeping_separator(text: str, separator: str) -> List[str]:
    """Split text, keeping each separator attached to the piece before it."""
    if separator == "":
        return list(text)
    parts = text.split(separator)
    pieces = [part + separator for part in parts[:-1]]
    pieces.append(parts[-1])
    return [piece for piece in pieces if piece]


class TextChunker:
    """
    Recursive character chunker with overlap.

    Guarantees every chunk is at most `chunk_size` characters, chunks come
    out in document order, and whitespace-only input yields no chunks.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        max_embedding_chars: int = 30000,
        separators: Optional[Sequence[str]] = None
    ):
        """
        Args:
            chunk_size: Maximum characters per chunk
            chunk_overlap: Trailing characters re-included in the next chunk
            max_embedding_chars: Hard input bound of the embedding provider
            separators: Split boundaries, coarsest first
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be in [0, {chunk_size})"
            )
        if max_embedding_chars <= 0:
            raise ValueError("max_embedding_chars must be positive")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_embedding_chars = max_embedding_chars
        self.separators = list(separators or DEFAULT_SEPARATORS)

    @property
    def piece_limit(self) -> int:
        return min(self.chunk_size, self.max_embedding_chars)

    def chunk(self, text: str, document_id: str, document_name: str = "") -> List[Chunk]:
        """
        Chunk a document.

        Args:
            text: Full document text
            document_id: Owning document identifier
            document_name: Display name copied onto each chunk

        Returns:
            Chunks with contiguous indices 0..N-1 (empty for blank text)
        """
        pieces = self.split_text(text)
        chunks = [
            Chunk(
                document_id=document_id,
                chunk_index=i,
                text=piece,
                document_name=document_name
            )
            for i, piece in enumerate(pieces)
        ]
        logger.info("Chunked document %s into %d pieces", document_id, len(chunks))
        return chunks

    def split_text(self, text: str) -> List[str]:
        if not text or not text.strip():
            return []
        pieces = self._split_recursive(text, self.separators)
        return self._enforce_embedding_bound(pieces)

    def _split_recursive(self, text: str, separators: List[str]) -> List[str]:
        separator = separators[-1]
        remaining: List[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                remaining = separators[i + 1:]
                break

        chunks: List[str] = []
        pending: List[str] = []
        for split in _split_keeping_separator(text, separator):
            if len(split) <= self.chunk_size:
                pending.append(split)
                continue

            if pending:
                chunks.extend(self._merge_splits(pending))
                pending = []

            if remaining:
                chunks.extend(self._split_recursive(split, remaining))
            else:
                # No boundary left to try: cut by character
                chunks.extend(self._merge_splits(list(split)))

        if pending:
            chunks.extend(self._merge_splits(pending))
        return chunks

    def _merge_splits(self, splits: List[str]) -> List[str]:
        """Greedily pack splits into chunks, carrying an overlap tail forward."""
        docs: List[str] = []
        current: deque = deque()
        total = 0

        for split in splits:
            if current and total + len(split) > self.chunk_size:
                doc = "".join(current).strip()
                if doc:
                    docs.append(doc)
                # Keep at most `chunk_overlap` characters, and make room for `split`
                while current and (
                    total > self.chunk_overlap or total + len(split) > self.chunk_size
                ):
                    total -= len(current.popleft())

            current.append(split)
            total += len(split)

        doc = "".join(current).strip()
        if doc:
            docs.append(doc)
        return docs

    def _enforce_embedding_bound(self, pieces: List[str]) -> List[str]:
        limit = self.piece_limit
        merged: List[str] = []
        buffer = ""

        for piece in pieces:
            if len(piece) > limit:
                if buffer:
                    merged.append(buffer)
                    buffer = ""
                merged.extend(piece[i:i + limit] for i in range(0, len(piece), limit))
                continue

            candidate = f"{buffer}{PIECE_JOINER}{piece}" if buffer else piece
            if len(candidate) > limit:
                merged.append(buffer)
                buffer = piece
            else:
                buffer = candidate

        if buffer:
            merged.append(buffer)
        return merged
