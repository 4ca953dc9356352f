import logging
from typing import List, Tuple

import chromadb

from repolens.config.settings import Settings

logger = logging.getLogger(__name__)


class ChromaVectorIndex:
    """Cosine-space vector index keyed by embedding record id.

    Holds only vectors plus a ``project_id`` metadata field used to scope
    similarity queries; the record's text lives in the relational store.
    """

    def __init__(
        self,
        settings: Settings,
        client=None,
    ):
        self.collection_name = settings.VECTOR_COLLECTION_NAME
        self.client = client or chromadb.PersistentClient(
            path=settings.VECTOR_DB_PATH,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self.collection = self.client.get_or_create_collection(
            name=self.collection_name,
            metadata={
                "description": "Source file summary embeddings",
                "hnsw:space": "cosine",
            },
        )
        logger.info(
            "Vector index %s initialized with %d vectors",
            self.collection_name,
            self.collection.count(),
        )

    def upsert(self, record_id: str, project_id: str, vector: List[float]) -> None:
        self.collection.upsert(
            ids=[record_id],
            embeddings=[vector],
            metadatas=[{"project_id": project_id}],
        )

    def query(
        self, project_id: str, vector: List[float], k: int
    ) -> List[Tuple[str, float]]:
        """Nearest-first (record_id, cosine_distance) pairs within one project."""
        where = {"project_id": project_id}
        # Querying a filter that matches nothing is an error on some backends
        if not self.collection.get(where=where, limit=1)["ids"]:
            return []

        results = self.collection.query(
            query_embeddings=[vector],
            n_results=k,
            where=where,
            include=["distances"],
        )
        ids = results["ids"][0] if results["ids"] else []
        distances = results["distances"][0] if results["distances"] else []
        return list(zip(ids, distances))

    def delete(self, record_ids: List[str]) -> None:
        if not record_ids:
            return
        self.collection.delete(ids=list(record_ids))
        logger.info("Removed %d vectors from %s", len(record_ids), self.collection_name)

    def count(self) -> int:
        return self.collection.count()
