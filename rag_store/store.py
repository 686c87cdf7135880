"""
Document retrieval orchestrator.

Sequences chunking, embedding, dimension reconciliation and storage, and
picks between the Pinecone index and the in-process fallback store:

- ingest: chunk -> embed each chunk (with retry) -> reconcile -> batch
  upsert to Pinecone, or store every record locally if any batch fails
- query: embed -> reconcile -> Pinecone search, else local search ->
  context snippets (or the "no relevant information" sentinel)
- list: registry, else a zero-vector sample of the index, else local store
- delete: registry, Pinecone and local store, never failing on the remote
"""
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from tqdm import tqdm

from .chunking import TextChunker
from .config import Settings
from .dimensions import needs_reconciliation, reconcile_dimension
from .embedding import EmbeddingClient, EmbeddingProvider
from .errors import (
    EmbeddingError,
    EmptyDocumentError,
    IndexUnavailableError,
    NoEmbeddingsGeneratedError,
    ProviderUnavailableError,
    RateLimitedError,
)
from .indexing import PineconeIndex
from .local_store import LocalVectorStore
from .models import (
    BACKEND_LOCAL,
    BACKEND_REMOTE,
    NO_RELEVANT_INFORMATION,
    QUERY_TIMED_OUT,
    SOURCE_NONE,
    Chunk,
    ChunkMetadata,
    DocumentInfo,
    IngestResult,
    Match,
    QueryResult,
    VectorRecord,
    default_document_name,
    utc_now_iso,
)
from .registry import DocumentRegistry
from .retry import with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROBE_TEXT = "test"
QUERY_WORKERS = 4


def create_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Split items into consecutive batches of at most `batch_size`."""
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


class ChunkState(Enum):
    PENDING = "pending"
    EMBEDDING = "embedding"
    EMBEDDED = "embedded"
    SKIPPED = "skipped"


@dataclass
class ChunkEmbedding:
    """Progress of one chunk through embedding."""
    chunk: Chunk
    state: ChunkState = ChunkState.PENDING
    vector: Optional[List[float]] = None
    error: Optional[Exception] = None


class DocumentStore:
    """
    Entry point for ingesting, querying, listing and deleting documents.

    Collaborators are injected so tests and alternative deployments can
    swap the embedding provider, the index client or the in-memory stores.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        embedder: Optional[EmbeddingProvider] = None,
        index: Optional[PineconeIndex] = None,
        local_store: Optional[LocalVectorStore] = None,
        registry: Optional[DocumentRegistry] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Args:
            settings: Tunables; defaults when omitted
            embedder: Embedding provider (Bedrock Titan client by default)
            index: Vector index client (Pinecone by default)
            local_store: Fallback store owned by this instance
            registry: Document metadata cache owned by this instance
            sleep: Used for rate-limit delays and retry backoff
        """
        self.settings = (settings or Settings()).validate()
        self.embedder = embedder if embedder is not None else EmbeddingClient.from_settings(self.settings)
        self.index = index if index is not None else PineconeIndex.from_settings(self.settings)
        self.local_store = local_store if local_store is not None else LocalVectorStore()
        self.registry = registry if registry is not None else DocumentRegistry()
        self.chunker = TextChunker(
            chunk_size=self.settings.chunk_size,
            chunk_overlap=self.settings.chunk_overlap,
            max_embedding_chars=self.settings.max_embedding_chars
        )
        self._sleep = sleep

        self._target_dimension: Optional[int] = None
        self._embedding_dimension: Optional[int] = None
        self._probed = False
        self._mismatch_logged = False
        self._query_executor = ThreadPoolExecutor(
            max_workers=QUERY_WORKERS, thread_name_prefix="rag-store-query"
        )

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "DocumentStore":
        return cls(Settings.from_env(dotenv_path))

    def close(self):
        self._query_executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _pause(self, seconds: float):
        if seconds > 0:
            self._sleep(seconds)

    def _embed(self, text: str, description: str) -> List[float]:
        """Embed with bounded retry. Non-taxonomy provider errors count as outages."""

        def call() -> List[float]:
            try:
                return list(self.embedder.embed(text))
            except EmbeddingError:
                raise
            except Exception as e:
                raise ProviderUnavailableError(f"Embedding provider failed: {e}") from e

        return with_retry(
            call,
            attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay,
            retry_on=(RateLimitedError, ProviderUnavailableError),
            sleep=self._sleep,
            description=description
        )

    def target_dimension(self) -> int:
        """
        Dimension every stored and queried vector is reconciled to.

        Read from the index once and cached; while the index cannot be
        reached the configured `index_dimension` is used without caching.
        """
        if self._target_dimension is not None:
            return self._target_dimension

        index_dimension = None
        try:
            index_dimension = self.index.describe_stats().dimension
        except IndexUnavailableError as e:
            logger.warning(
                "Could not read index dimension (%s); assuming %d",
                e, self.settings.index_dimension
            )

        target = index_dimension or self.settings.index_dimension
        if index_dimension:
            self._target_dimension = index_dimension

        self._probe_embedding_dimension(target)
        return target

    def _probe_embedding_dimension(self, target: int):
        if not self._probed:
            self._probed = True
            try:
                self._embedding_dimension = len(self._embed(PROBE_TEXT, "dimension probe"))
            except EmbeddingError as e:
                logger.warning("Embedding dimension probe failed: %s", e)

        if (
            self._embedding_dimension is not None
            and needs_reconciliation(self._embedding_dimension, target)
            and not self._mismatch_logged
        ):
            self._mismatch_logged = True
            logger.warning(
                "Embedding dimension %d differs from index dimension %d; "
                "vectors will be %s, which lowers similarity fidelity",
                self._embedding_dimension, target,
                "truncated" if self._embedding_dimension > target else "zero-padded"
            )

    def _reconcile(self, vector: List[float], target: int) -> List[float]:
        if needs_reconciliation(len(vector), target):
            logger.debug("Reconciling vector of length %d to %d", len(vector), target)
        return reconcile_dimension(vector, target)

    # =========================================================================
    # Ingest
    # =========================================================================

    def _embed_chunk(self, item: ChunkEmbedding, target: int):
        item.state = ChunkState.EMBEDDING
        try:
            vector = self._embed(item.chunk.text, f"chunk {item.chunk.chunk_index}")
        except EmbeddingError as e:
            item.state = ChunkState.SKIPPED
            item.error = e
            logger.error(
                "Error generating embedding for chunk %d of %s, skipping: %s",
                item.chunk.chunk_index, item.chunk.document_id, e
            )
            return
        item.vector = self._reconcile(vector, target)
        item.state = ChunkState.EMBEDDED

    def _embed_chunks(self, chunks: List[Chunk], target: int) -> List[ChunkEmbedding]:
        """
        Embed chunks in small groups to respect provider rate limits.

        Within a group, chunks are embedded one after another (with a delay)
        or, when `max_workers > 1`, through a bounded thread pool. Results
        stay attached to their chunk, so indices never depend on completion
        order.
        """
        items = [ChunkEmbedding(chunk=chunk) for chunk in chunks]
        groups = create_batches(items, self.settings.embedding_group_size)

        for group_number, group in enumerate(groups):
            if self.settings.max_workers > 1 and len(group) > 1:
                workers = min(self.settings.max_workers, len(group))
                with ThreadPoolExecutor(max_workers=workers) as executor:
                    futures = [executor.submit(self._embed_chunk, item, target) for item in group]
                    for future in as_completed(futures):
                        future.result()
            else:
                for position, item in enumerate(group):
                    logger.debug(
                        "Generating embedding for chunk %d/%d",
                        item.chunk.chunk_index + 1, len(chunks)
                    )
                    self._embed_chunk(item, target)
                    if position < len(group) - 1:
                        self._pause(self.settings.embedding_delay)

            if group_number < len(groups) - 1:
                self._pause(self.settings.embedding_delay * 2)

        return items

    def _build_record(self, item: ChunkEmbedding, name: str, upload_date: str) -> VectorRecord:
        chunk = item.chunk
        return VectorRecord(
            id=chunk.record_id,
            values=item.vector,
            metadata=ChunkMetadata(
                document_id=chunk.document_id,
                file_name=name,
                chunk_index=chunk.chunk_index,
                upload_date=upload_date,
                text=chunk.text[:self.settings.metadata_text_limit]
            )
        )

    def _store_remote(self, document_id: str, records: List[VectorRecord], deadline: float) -> bool:
        """
        Upsert every record to Pinecone, batch by batch.

        Returns False (after removing any partial writes) if a batch fails
        or the ingest deadline passes, so the caller can store locally.
        """
        batches = create_batches(records, self.settings.upsert_batch_size)
        upserted = 0
        try:
            # Connectivity check before spending any upserts
            self.index.describe_stats()

            for i, batch in enumerate(tqdm(
                batches, desc="Upserting batches", disable=not self.settings.show_progress
            )):
                if time.monotonic() >= deadline:
                    raise IndexUnavailableError(
                        "upsert", TimeoutError("ingest deadline exceeded")
                    )
                logger.info("Upserting batch %d/%d", i + 1, len(batches))
                with_retry(
                    lambda batch=batch: self.index.upsert(batch),
                    attempts=self.settings.retry_attempts,
                    base_delay=self.settings.upsert_retry_delay,
                    retry_on=(IndexUnavailableError,),
                    sleep=self._sleep,
                    description=f"upsert batch {i + 1}/{len(batches)}"
                )
                upserted += len(batch)

                if i < len(batches) - 1:
                    self._pause(self.settings.batch_delay)
        except IndexUnavailableError as e:
            logger.error("Pinecone upsert did not complete, falling back to local storage: %s", e)
            if upserted:
                self._discard_remote(document_id)
            return False

        logger.info("Stored %d vectors for %s in Pinecone", upserted, document_id)
        return True

    def _discard_remote(self, document_id: str):
        try:
            self.index.delete_by_document(document_id)
        except IndexUnavailableError as e:
            logger.warning(
                "Could not remove partial Pinecone writes for %s: %s", document_id, e
            )

    def ingest(
        self,
        text: str,
        name: Optional[str] = None,
        document_id: Optional[str] = None
    ) -> IngestResult:
        """
        Chunk, embed and store a document.

        Args:
            text: Full document text
            name: Display name (derived from the identifier when missing)
            document_id: Identifier to reuse; a UUID4 is generated otherwise

        Returns:
            IngestResult describing where the vectors were stored

        Raises:
            EmptyDocumentError: the text produced no chunks
            NoEmbeddingsGeneratedError: every chunk failed to embed
        """
        document_id = document_id or str(uuid.uuid4())
        name = name or default_document_name(document_id)
        upload_date = utc_now_iso()

        logger.info("Creating vector embeddings for document: %s (%s)", name, document_id)

        chunks = self.chunker.chunk(text or "", document_id, name)
        if not chunks:
            raise EmptyDocumentError(name)

        target = self.target_dimension()
        items = self._embed_chunks(chunks, target)

        records = [
            self._build_record(item, name, upload_date)
            for item in items if item.state is ChunkState.EMBEDDED
        ]
        skipped = [item.chunk.chunk_index for item in items if item.state is ChunkState.SKIPPED]
        if not records:
            raise NoEmbeddingsGeneratedError(name, len(chunks))
        if skipped:
            logger.warning("Skipped %d of %d chunks for %s", len(skipped), len(chunks), name)

        # Embedding time is not charged against the upsert budget
        deadline = time.monotonic() + self.settings.ingest_timeout
        if self._store_remote(document_id, records, deadline):
            backend = BACKEND_REMOTE
            # Drop any copy left by an earlier outage
            self.local_store.delete(document_id)
        else:
            backend = BACKEND_LOCAL
            self.local_store.upsert(document_id, records)

        self.registry.put(document_id, name, upload_date)

        return IngestResult(
            document_id=document_id,
            name=name,
            upload_date=upload_date,
            backend=backend,
            chunk_count=len(chunks),
            embedded_count=len(records),
            skipped_chunks=skipped
        )

    # =========================================================================
    # Query
    # =========================================================================

    def _remote_search(self, vector: List[float], document_id: str) -> Optional[List[Match]]:
        """Pinecone matches, or None when the index cannot answer."""
        try:
            if self.index.namespace_count() == 0:
                logger.info("Namespace %s has no records in Pinecone", self.settings.namespace)
                return None
            return self.index.query(vector, top_k=self.settings.top_k, document_id=document_id)
        except IndexUnavailableError as e:
            logger.warning("Pinecone query error: %s", e)
            return None

    def _remember(self, matches: List[Match]):
        """Refresh registry entries from index metadata; the index wins."""
        for match in matches:
            metadata = match.metadata
            cached = self.registry.get(metadata.document_id)
            if (
                cached is None
                or cached.name != metadata.file_name
                or cached.upload_date != metadata.upload_date
            ):
                self.registry.put(metadata.document_id, metadata.file_name, metadata.upload_date)

    def _search(self, vector: List[float], document_id: str) -> Tuple[List[Match], str]:
        matches = self._remote_search(vector, document_id)

        if matches is None or (not matches and self.local_store.has(document_id)):
            logger.info("Falling back to local storage for query on %s", document_id)
            return self.local_store.query(vector, document_id, self.settings.top_k), BACKEND_LOCAL

        self._remember(matches)
        return matches, BACKEND_REMOTE

    def _query(self, document_id: str, text: str) -> QueryResult:
        vector = self._reconcile(self._embed(text, "query embedding"), self.target_dimension())
        matches, source = self._search(vector, document_id)

        context = [match.metadata.text for match in matches if match.metadata.text]
        logger.info("Found %d context chunks for %s (%s)", len(context), document_id, source)
        if not context:
            return QueryResult(context_chunks=[NO_RELEVANT_INFORMATION], source=SOURCE_NONE)
        return QueryResult(context_chunks=context, source=source)

    def query(self, document_id: str, text: str) -> QueryResult:
        """
        Retrieve ranked context snippets from one document.

        Index outages are absorbed by the local store; a timeout returns a
        degraded result carrying an explanatory message.

        Raises:
            EmbeddingError: the question itself could not be embedded
        """
        logger.info("Searching for %r in document %s", text, document_id)
        timeout = self.settings.query_timeout
        if not timeout or timeout <= 0:
            return self._query(document_id, text)

        future = self._query_executor.submit(self._query, document_id, text)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning("Query on %s timed out after %.1fs", document_id, timeout)
            return QueryResult(context_chunks=[QUERY_TIMED_OUT], source=SOURCE_NONE, degraded=True)

    # =========================================================================
    # List / Delete
    # =========================================================================

    def _list_remote(self) -> List[DocumentInfo]:
        stats = self.index.describe_stats()
        count = stats.count(self.settings.namespace)
        if not count:
            logger.info("No records found in Pinecone namespace")
            return []

        logger.info("Found %d records in Pinecone namespace", count)
        dimension = stats.dimension or self.target_dimension()
        sample = self.index.query([0.0] * dimension, top_k=self.settings.list_sample_size)

        documents: Dict[str, DocumentInfo] = {}
        for match in sample:
            metadata = match.metadata
            if metadata.document_id not in documents:
                documents[metadata.document_id] = DocumentInfo(
                    id=metadata.document_id,
                    name=metadata.file_name,
                    upload_date=metadata.upload_date
                )
        return list(documents.values())

    def list_documents(self) -> List[DocumentInfo]:
        """Known documents, newest first."""
        cached = self.registry.all()
        if cached:
            logger.info("Using %d cached document records", len(cached))
            return cached

        documents: List[DocumentInfo] = []
        try:
            documents = self._list_remote()
        except IndexUnavailableError as e:
            logger.warning("Error listing Pinecone documents: %s", e)

        if not documents:
            documents = self.local_store.list_documents()
            logger.info("Returning %d documents from local storage", len(documents))

        for document in documents:
            self.registry.put(document.id, document.name, document.upload_date)
        return sorted(documents, key=lambda document: document.upload_date, reverse=True)

    def delete(self, document_id: str) -> bool:
        """
        Remove a document everywhere it may live.

        Remote failures are logged, never raised: the local state is always
        made consistent and the call reports success.
        """
        logger.info("Deleting vectors for document %s", document_id)
        self.registry.remove(document_id)

        try:
            with_retry(
                lambda: self.index.delete_by_document(document_id),
                attempts=self.settings.retry_attempts,
                base_delay=self.settings.retry_base_delay,
                retry_on=(IndexUnavailableError,),
                sleep=self._sleep,
                description=f"delete {document_id}"
            )
        except IndexUnavailableError as e:
            logger.warning("Failed to delete %s from Pinecone: %s", document_id, e)

        self.local_store.delete(document_id)
        return True
