"""Hosting API protocol interface."""

from typing import List, Optional, Protocol, Union, runtime_checkable

from ..schemas import CommitInfo, ContentEntry


@runtime_checkable
class HostingClientProtocol(Protocol):
    """Protocol for the source-control hosting API consumed by the crawler and commit pipeline."""

    async def list_commits(self, owner: str, repo: str) -> List[CommitInfo]:
        """List commit metadata for the repository's default branch."""
        ...

    async def get_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> Union[ContentEntry, List[ContentEntry]]:
        """Return a single file entry or a directory listing."""
        ...

    async def get_file_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> bytes:
        """Return the raw bytes of a file."""
        ...

    async def get_commit_diff(self, owner: str, repo: str, commit_hash: str) -> str:
        """Return the unified diff introduced by one commit."""
        ...

    async def aclose(self) -> None:
        """Release the underlying connection pool."""
        ...
