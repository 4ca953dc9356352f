from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, field_validator

from repolens.exceptions import ValidationError


class OutcomeStatus(str, Enum):
    """Per-file result of an ingestion run."""

    INDEXED = "indexed"  # record persisted and searchable
    UNSEARCHABLE = "unsearchable"  # record persisted, vector missing
    FAILED = "failed"  # nothing persisted


class FileOutcome(BaseModel):
    file_name: str
    status: OutcomeStatus
    record_id: Optional[str] = None
    error: Optional[str] = None


class IngestReport(BaseModel):
    project_id: str
    outcomes: List[FileOutcome] = []
    cache_hits: int = 0

    @property
    def indexed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.INDEXED)

    @property
    def unsearchable(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.UNSEARCHABLE)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.FAILED)

    @property
    def is_partial_failure(self) -> bool:
        return any(o.status != OutcomeStatus.INDEXED for o in self.outcomes)

    def stats(self) -> dict:
        return {
            "processed": len(self.outcomes),
            "indexed": self.indexed,
            "unsearchable": self.unsearchable,
            "failed": self.failed,
            "cache_hits": self.cache_hits,
        }


class NewEmbeddingRecord(BaseModel):
    """Scalar fields of an embedding record, validated at the persistence boundary."""

    project_id: str
    file_name: str
    source_code: str
    summary: str

    @field_validator("source_code", mode="before")
    @classmethod
    def _canonical_source(cls, value):
        # Stored source is always raw text, never bytes or a JSON-encoded payload
        if not isinstance(value, str):
            raise ValidationError(
                f"source_code must be raw text, got {type(value).__name__}"
            )
        if "\x00" in value:
            raise ValidationError("source_code must not contain NUL characters")
        return value


class CommitInfo(BaseModel):
    """Commit metadata as listed by the hosting API."""

    commit_hash: str
    commit_message: str = ""
    commit_author_name: str = ""
    commit_author_avatar: str = ""
    commit_date: Optional[datetime] = None


class CommitRecordCreate(CommitInfo):
    project_id: str
    summary: str


class CommitOutcome(BaseModel):
    commit_hash: str
    summarized: bool
    error: Optional[str] = None


class CommitIngestReport(BaseModel):
    project_id: str
    fetched: int = 0
    skipped_existing: int = 0
    outcomes: List[CommitOutcome] = []

    @property
    def persisted(self) -> int:
        return len(self.outcomes)

    @property
    def fallbacks(self) -> int:
        return sum(1 for o in self.outcomes if not o.summarized)
