"""Repository ingestion and retrieval-augmented question answering."""
