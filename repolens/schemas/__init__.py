"""Schemas for the application."""

from .answer import (
    AnswerState,
    AskRequest,
    CheckCreditsRequest,
    CredentialRequest,
    CreateProjectRequest,
    RetrievedReference,
)
from .ingestion import (
    CommitInfo,
    CommitIngestReport,
    CommitOutcome,
    CommitRecordCreate,
    FileOutcome,
    IngestReport,
    NewEmbeddingRecord,
    OutcomeStatus,
)
from .repository import ContentEntry, EntryType, FileDocument, RepositoryReference

__all__ = [
    "AnswerState",
    "AskRequest",
    "CheckCreditsRequest",
    "CredentialRequest",
    "CommitInfo",
    "CommitIngestReport",
    "CommitOutcome",
    "CommitRecordCreate",
    "ContentEntry",
    "CreateProjectRequest",
    "EntryType",
    "FileDocument",
    "FileOutcome",
    "IngestReport",
    "NewEmbeddingRecord",
    "OutcomeStatus",
    "RepositoryReference",
    "RetrievedReference",
]
