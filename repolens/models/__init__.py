from .commit_store import CommitStore
from .credit_ledger import CreditLedger
from .embedding_store import EmbeddingRecordStore
from .project_store import ProjectStore
from .vector_index import ChromaVectorIndex

__all__ = [
    "ChromaVectorIndex",
    "CommitStore",
    "CreditLedger",
    "EmbeddingRecordStore",
    "ProjectStore",
]
