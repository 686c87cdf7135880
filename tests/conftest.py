"""Shared pytest fixtures for rag_store tests."""
import json
import re
import zlib
from typing import Dict, List, Optional

import pytest
from unittest.mock import MagicMock, patch

from rag_store.config import Settings
from rag_store.embedding import cosine_similarity
from rag_store.errors import IndexUnavailableError, ProviderUnavailableError
from rag_store.models import IndexStats, Match, VectorRecord


def pytest_addoption(parser):
    """Add command line options for integration tests."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires API credentials)"
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires --run-integration)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is passed."""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="Need --run-integration to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


class FakeEmbedder:
    """
    Deterministic bag-of-words embedder.

    Texts sharing words get similar vectors, which is enough to exercise
    ranking without a real model.
    """

    def __init__(self, dimension: int = 768):
        self.dimension = dimension
        self.calls: List[str] = []
        self.fail_texts = set()
        self.fail_all = False

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail_all or text in self.fail_texts:
            raise ProviderUnavailableError("embedding service down")

        vector = [0.0] * self.dimension
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            vector[zlib.crc32(word.encode()) % self.dimension] += 1.0
        return vector


class FakeIndex:
    """In-memory stand-in for PineconeIndex with switchable failures."""

    def __init__(self, dimension: int = 1024, namespace: str = "rag-docs"):
        self.dimension = dimension
        self.namespace = namespace
        self.records: Dict[str, VectorRecord] = {}
        self.fail_upsert = False
        self.fail_upsert_after: Optional[int] = None
        self.fail_all = False
        self.upsert_calls = 0
        self.delete_calls: List[str] = []

    def _check(self, operation):
        if self.fail_all:
            raise IndexUnavailableError(operation, ConnectionError("pinecone down"))

    def upsert(self, records):
        self._check("upsert")
        self.upsert_calls += 1
        if self.fail_upsert:
            raise IndexUnavailableError("upsert", ConnectionError("quota exceeded"))
        if self.fail_upsert_after is not None and self.upsert_calls > self.fail_upsert_after:
            raise IndexUnavailableError("upsert", ConnectionError("quota exceeded"))
        for record in records:
            self.records[record.id] = record
        return len(records)

    def query(self, vector, top_k=5, document_id=None):
        self._check("query")
        scored = [
            Match(id=r.id, score=cosine_similarity(vector, r.values), metadata=r.metadata)
            for r in self.records.values()
            if document_id is None or r.metadata.document_id == document_id
        ]
        scored.sort(key=lambda m: m.score, reverse=True)
        return scored[:top_k]

    def delete_by_document(self, document_id):
        self._check("delete")
        self.delete_calls.append(document_id)
        self.records = {
            rid: r for rid, r in self.records.items()
            if r.metadata.document_id != document_id
        }

    def describe_stats(self):
        self._check("describe_index_stats")
        namespaces = {self.namespace: len(self.records)} if self.records else {}
        return IndexStats(
            dimension=self.dimension,
            namespaces=namespaces,
            total_vector_count=len(self.records)
        )

    def namespace_count(self):
        return self.describe_stats().count(self.namespace)


@pytest.fixture
def fast_settings():
    """Settings with every delay disabled."""
    return Settings(
        embedding_delay=0.0,
        batch_delay=0.0,
        retry_base_delay=0.0,
        upsert_retry_delay=0.0,
        query_timeout=5.0,
    )


@pytest.fixture
def fake_embedder():
    return FakeEmbedder(dimension=768)


@pytest.fixture
def fake_index():
    return FakeIndex(dimension=1024)


@pytest.fixture
def sleeps():
    """Records requested sleep durations instead of sleeping."""
    recorded: List[float] = []
    return recorded


@pytest.fixture
def store(fast_settings, fake_embedder, fake_index, sleeps):
    """DocumentStore wired to in-memory fakes."""
    from rag_store.store import DocumentStore

    document_store = DocumentStore(
        settings=fast_settings,
        embedder=fake_embedder,
        index=fake_index,
        sleep=sleeps.append
    )
    yield document_store
    document_store.close()


@pytest.fixture
def mock_bedrock_client():
    """Mock AWS Bedrock client for embedding tests."""
    with patch("boto3.client") as mock_client:
        client_instance = MagicMock()
        mock_client.return_value = client_instance
        yield client_instance


@pytest.fixture
def sample_embedding():
    """Sample 1024-dimension embedding vector."""
    return [0.1] * 1024


@pytest.fixture
def mock_embedding_response(sample_embedding):
    """Mock response from Titan embedding API."""
    response_body = MagicMock()
    response_body.read.return_value = json.dumps({"embedding": sample_embedding})
    return {"body": response_body}


@pytest.fixture
def sample_metadata():
    """Metadata bag as Pinecone returns it."""
    return {
        "documentId": "doc-1234abcd",
        "fileName": "notes.txt",
        "chunkIndex": 0.0,
        "uploadDate": "2026-10-19T08:00:00Z",
        "text": "The capital of France is Paris."
    }
