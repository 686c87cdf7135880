"""Tests for the indexing module."""
import pytest
from unittest.mock import MagicMock, patch

from rag_store.errors import IndexUnavailableError
from rag_store.indexing import PineconeIndex, document_filter
from rag_store.models import ChunkMetadata, VectorRecord


def _record(document_id="doc-1", index=0):
    return VectorRecord(
        id=f"{document_id}-chunk-{index}",
        values=[0.1] * 4,
        metadata=ChunkMetadata(
            document_id=document_id,
            file_name="notes.txt",
            chunk_index=index,
            upload_date="2026-10-19T08:00:00Z",
            text="some text"
        )
    )


class TestPineconeIndex:
    """Tests for PineconeIndex class."""

    @pytest.fixture
    def mock_index(self):
        """Create index client with mocked Pinecone."""
        with patch("rag_store.indexing.Pinecone") as mock_pinecone:
            mock_pc_instance = MagicMock()
            mock_pc_instance.list_indexes.return_value = []
            mock_index = MagicMock()
            mock_pc_instance.Index.return_value = mock_index
            mock_pinecone.return_value = mock_pc_instance

            index = PineconeIndex(
                index_name="test-index",
                namespace="rag-docs",
                api_key="key",
                dimension=1024
            )

            index._mock_pinecone = mock_pinecone
            index._mock_pc = mock_pc_instance
            index._mock_index = mock_index

            yield index

    def test_connection_is_lazy(self, mock_index):
        """Nothing is contacted until the first operation."""
        mock_index._mock_pinecone.assert_not_called()

    def test_creates_missing_index(self, mock_index):
        mock_index._mock_index.describe_index_stats.return_value = MagicMock(
            dimension=1024, namespaces={}, total_vector_count=0
        )

        mock_index.describe_stats()

        mock_index._mock_pinecone.assert_called_once_with(api_key="key")
        mock_index._mock_pc.create_index.assert_called_once()
        assert mock_index._mock_pc.create_index.call_args[1]["dimension"] == 1024

    def test_uses_existing_index(self):
        with patch("rag_store.indexing.Pinecone") as mock_pinecone:
            mock_pc_instance = MagicMock()
            mock_existing = MagicMock()
            mock_existing.name = "existing-index"
            mock_pc_instance.list_indexes.return_value = [mock_existing]
            mock_pinecone.return_value = mock_pc_instance

            index = PineconeIndex(index_name="existing-index", api_key="key")
            index.upsert([_record()])

            mock_pc_instance.create_index.assert_not_called()
            mock_pc_instance.Index.assert_called_once_with("existing-index")

    def test_missing_index_without_create(self):
        with patch("rag_store.indexing.Pinecone") as mock_pinecone:
            mock_pc_instance = MagicMock()
            mock_pc_instance.list_indexes.return_value = []
            mock_pinecone.return_value = mock_pc_instance

            index = PineconeIndex(index_name="absent", api_key="key", create_if_missing=False)

            with pytest.raises(IndexUnavailableError):
                index.describe_stats()
            mock_pc_instance.create_index.assert_not_called()

    def test_connect_failure_wrapped(self):
        with patch("rag_store.indexing.Pinecone") as mock_pinecone:
            mock_pinecone.side_effect = RuntimeError("no api key")

            index = PineconeIndex(api_key="key")

            with pytest.raises(IndexUnavailableError) as excinfo:
                index.query([0.1] * 4)
            assert excinfo.value.operation == "connect"

    def test_upsert_wire_format(self, mock_index):
        records = [_record(index=0), _record(index=1)]

        sent = mock_index.upsert(records)

        assert sent == 2
        call_kwargs = mock_index._mock_index.upsert.call_args[1]
        assert call_kwargs["namespace"] == "rag-docs"
        vectors = call_kwargs["vectors"]
        assert vectors[0]["id"] == "doc-1-chunk-0"
        assert vectors[1]["metadata"]["chunkIndex"] == 1
        assert vectors[0]["metadata"]["documentId"] == "doc-1"

    def test_upsert_empty_batch(self, mock_index):
        assert mock_index.upsert([]) == 0
        mock_index._mock_index.upsert.assert_not_called()

    def test_upsert_failure_wrapped(self, mock_index):
        mock_index._mock_index.upsert.side_effect = Exception("quota exceeded")

        with pytest.raises(IndexUnavailableError) as excinfo:
            mock_index.upsert([_record()])
        assert excinfo.value.operation == "upsert"

    def test_query_with_document_filter(self, mock_index, sample_metadata):
        mock_match = MagicMock()
        mock_match.id = "doc-1234abcd-chunk-0"
        mock_match.score = 0.95
        mock_match.metadata = sample_metadata
        mock_index._mock_index.query.return_value = MagicMock(matches=[mock_match])

        matches = mock_index.query([0.1] * 4, top_k=5, document_id="doc-1234abcd")

        assert len(matches) == 1
        assert matches[0].score == 0.95
        assert matches[0].metadata.file_name == "notes.txt"
        assert matches[0].metadata.chunk_index == 0
        call_kwargs = mock_index._mock_index.query.call_args[1]
        assert call_kwargs["filter"] == {"documentId": {"$eq": "doc-1234abcd"}}
        assert call_kwargs["top_k"] == 5
        assert call_kwargs["include_metadata"] is True
        assert call_kwargs["namespace"] == "rag-docs"

    def test_query_without_filter(self, mock_index):
        mock_index._mock_index.query.return_value = MagicMock(matches=[])

        assert mock_index.query([0.0] * 4, top_k=100) == []
        assert mock_index._mock_index.query.call_args[1]["filter"] is None

    def test_query_drops_malformed_metadata(self, mock_index, sample_metadata):
        good = MagicMock(id="a", score=0.9, metadata=sample_metadata)
        bad = MagicMock(id="b", score=0.8, metadata={"text": "orphan"})
        mock_index._mock_index.query.return_value = MagicMock(matches=[good, bad])

        matches = mock_index.query([0.1] * 4)

        assert [m.id for m in matches] == ["a"]

    def test_delete_by_filter(self, mock_index):
        mock_index.delete_by_document("doc-1")

        mock_index._mock_index.delete.assert_called_once_with(
            filter=document_filter("doc-1"), namespace="rag-docs"
        )

    def test_delete_falls_back_to_prefix(self, mock_index):
        """Serverless indexes without filtered delete get ids deleted by prefix."""
        mock_index._mock_index.delete.side_effect = [Exception("unsupported"), None]
        mock_index._mock_index.list.return_value = iter([["doc-1-chunk-0", "doc-1-chunk-1"]])

        mock_index.delete_by_document("doc-1")

        mock_index._mock_index.list.assert_called_once_with(
            prefix="doc-1-chunk-", namespace="rag-docs"
        )
        mock_index._mock_index.delete.assert_called_with(
            ids=["doc-1-chunk-0", "doc-1-chunk-1"], namespace="rag-docs"
        )

    def test_delete_failure_wrapped(self, mock_index):
        mock_index._mock_index.delete.side_effect = Exception("down")
        mock_index._mock_index.list.side_effect = Exception("down")

        with pytest.raises(IndexUnavailableError):
            mock_index.delete_by_document("doc-1")

    def test_describe_stats(self, mock_index):
        namespace_summary = MagicMock()
        namespace_summary.vector_count = 42
        mock_stats = MagicMock()
        mock_stats.dimension = 1024
        mock_stats.namespaces = {"rag-docs": namespace_summary, "other": {"vector_count": 3}}
        mock_stats.total_vector_count = 45
        mock_index._mock_index.describe_index_stats.return_value = mock_stats

        stats = mock_index.describe_stats()

        assert stats.dimension == 1024
        assert stats.count("rag-docs") == 42
        assert stats.count("other") == 3
        assert stats.count("missing") == 0
        assert stats.total_vector_count == 45
        assert mock_index.namespace_count() == 42

    def test_from_settings(self):
        from rag_store.config import Settings

        index = PineconeIndex.from_settings(
            Settings(index_name="idx", namespace="ns", index_dimension=768)
        )

        assert index.index_name == "idx"
        assert index.namespace == "ns"
        assert index.dimension == 768
