from enum import Enum
from typing import Optional

from pydantic import BaseModel


class AnswerState(str, Enum):
    VALIDATING = "validating"
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    CONTEXT_BUILDING = "context_building"
    RATE_GATE = "rate_gate"
    GENERATING = "generating"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


class RetrievedReference(BaseModel):
    """An embedding record returned by similarity search."""

    id: str
    project_id: str
    file_name: str
    source_code: str
    summary: str
    similarity: float


class AskRequest(BaseModel):
    question: str


class CreateProjectRequest(BaseModel):
    user_id: str
    name: str
    repo_url: str
    default_branch: Optional[str] = None
    github_token: Optional[str] = None


class CheckCreditsRequest(BaseModel):
    user_id: str
    repo_url: str
    default_branch: Optional[str] = None
    github_token: Optional[str] = None


class CredentialRequest(BaseModel):
    github_token: Optional[str] = None
