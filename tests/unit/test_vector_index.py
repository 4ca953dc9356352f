"""Unit tests for ChromaVectorIndex."""

from unittest.mock import Mock, patch

from repolens.models import ChromaVectorIndex
from tests.fakes import make_settings


class TestChromaVectorIndex:
    """Test cases for ChromaVectorIndex against a mocked chromadb collection."""

    def setup_method(self):
        self.client = Mock()
        self.collection = Mock()
        self.collection.count.return_value = 0
        self.client.get_or_create_collection.return_value = self.collection
        self.index = ChromaVectorIndex(
            make_settings(VECTOR_COLLECTION_NAME="test_collection"), client=self.client
        )

    def test_init_uses_cosine_collection(self):
        kwargs = self.client.get_or_create_collection.call_args[1]
        assert kwargs["name"] == "test_collection"
        assert kwargs["metadata"]["hnsw:space"] == "cosine"

    def test_init_creates_persistent_client(self):
        with patch("repolens.models.vector_index.chromadb.PersistentClient") as client_cls:
            ChromaVectorIndex(make_settings(VECTOR_DB_PATH="/tmp/vectors"))

        assert client_cls.call_args[1]["path"] == "/tmp/vectors"

    def test_upsert_tags_project(self):
        self.index.upsert("rec-1", "proj-1", [0.1, 0.2])

        self.collection.upsert.assert_called_once_with(
            ids=["rec-1"], embeddings=[[0.1, 0.2]], metadatas=[{"project_id": "proj-1"}]
        )

    def test_query_is_scoped_to_project(self):
        self.collection.get.return_value = {"ids": ["rec-1"]}
        self.collection.query.return_value = {
            "ids": [["rec-1", "rec-2"]],
            "distances": [[0.05, 0.4]],
        }

        hits = self.index.query("proj-1", [1.0, 0.0], k=10)

        assert hits == [("rec-1", 0.05), ("rec-2", 0.4)]
        kwargs = self.collection.query.call_args[1]
        assert kwargs["where"] == {"project_id": "proj-1"}
        assert kwargs["n_results"] == 10

    def test_query_on_empty_project_skips_search(self):
        self.collection.get.return_value = {"ids": []}

        assert self.index.query("proj-1", [1.0], k=5) == []
        self.collection.query.assert_not_called()

    def test_delete(self):
        self.index.delete(["a", "b"])
        self.collection.delete.assert_called_once_with(ids=["a", "b"])

    def test_delete_nothing(self):
        self.index.delete([])
        self.collection.delete.assert_not_called()
