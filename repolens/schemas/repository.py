from enum import Enum
from typing import Optional

from pydantic import BaseModel


class RepositoryReference(BaseModel):
    """Immutable input to a crawl. The credential is never persisted."""

    model_config = {"frozen": True}

    hosting_url: str
    default_branch: str = "main"
    access_credential: Optional[str] = None

    def __repr__(self) -> str:
        # Keep credentials out of logs
        return (
            f"RepositoryReference(hosting_url={self.hosting_url!r}, "
            f"default_branch={self.default_branch!r})"
        )


class EntryType(str, Enum):
    """Directory listing entry kinds reported by the hosting API."""

    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"
    SUBMODULE = "submodule"


class ContentEntry(BaseModel):
    path: str
    name: str
    type: EntryType
    size: int = 0


class FileDocument(BaseModel):
    """A loaded, eligible file. Ephemeral: never persisted directly."""

    path: str
    raw_content: str
    size_bytes: int
