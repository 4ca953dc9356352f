"""Mock implementation of HostingClientProtocol for development and testing."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Union

from repolens.exceptions import NotFoundError
from repolens.schemas import CommitInfo, ContentEntry, EntryType


class MockHostingClient:
    """Serves dev/mock-repo from the local filesystem as if it were a hosted repository."""

    def __init__(self, root: Optional[Path] = None):
        self._root = root or Path(__file__).parent.parent / "mock-repo"
        now = datetime.now(timezone.utc)
        self._commits = [
            CommitInfo(
                commit_hash=f"{i:040x}",
                commit_message=f"Mock commit #{i}",
                commit_author_name="Mock Author",
                commit_author_avatar="",
                commit_date=now - timedelta(hours=i),
            )
            for i in range(1, 4)
        ]

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if self._root.resolve() not in (target, *target.parents) or not target.exists():
            raise NotFoundError(f"Mock: no such path {path!r}")
        return target

    def _entry(self, target: Path) -> ContentEntry:
        relative = target.relative_to(self._root.resolve()).as_posix()
        if target.is_dir():
            return ContentEntry(path=relative, name=target.name, type=EntryType.DIR)
        return ContentEntry(
            path=relative,
            name=target.name,
            type=EntryType.FILE,
            size=target.stat().st_size,
        )

    async def list_commits(self, owner: str, repo: str) -> List[CommitInfo]:
        return list(self._commits)

    async def get_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> Union[ContentEntry, List[ContentEntry]]:
        target = self._resolve(path)
        if target.is_dir():
            return [self._entry(child) for child in sorted(target.iterdir())]
        return self._entry(target)

    async def get_file_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> bytes:
        return self._resolve(path).read_bytes()

    async def get_commit_diff(self, owner: str, repo: str, commit_hash: str) -> str:
        return (
            "diff --git a/src/app/greeter.py b/src/app/greeter.py\n"
            "--- a/src/app/greeter.py\n"
            "+++ b/src/app/greeter.py\n"
            "@@ -1,2 +1,3 @@\n"
            " def greet(name: str) -> str:\n"
            f"+    # change from {commit_hash[:7]}\n"
        )

    async def aclose(self) -> None:
        return None
