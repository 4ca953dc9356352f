"""Async GitHub REST client used by the crawler and the commit pipeline."""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, urlparse

import httpx

from repolens.exceptions import ValidationError
from repolens.schemas import CommitInfo, ContentEntry, EntryType

from .http_errors import raise_for_provider_status, translate_transport_errors

logger = logging.getLogger(__name__)

_COMMIT_HASH_RE = re.compile(r"^[0-9a-fA-F]{7,64}$")

JSON_MEDIA_TYPE = "application/vnd.github+json"
RAW_MEDIA_TYPE = "application/vnd.github.raw"
DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"


def parse_repository_url(repo_url: str) -> Tuple[str, str]:
    """Extract (owner, repo) from a canonical repository URL.

    Trailing slashes and a ``.git`` suffix are tolerated; anything that does
    not name an owner and a repository is rejected.
    """
    if not repo_url or not repo_url.strip():
        raise ValidationError("Invalid repository URL: empty")

    parsed = urlparse(repo_url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Invalid repository URL: {repo_url!r}")

    segments = [s for s in parsed.path.split("/") if s]
    if len(segments) < 2:
        raise ValidationError(f"Invalid repository URL: {repo_url!r}")

    owner, repo = segments[0], segments[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo:
        raise ValidationError(f"Invalid repository URL: {repo_url!r}")
    return owner, repo


def commit_diff_path(owner: str, repo: str, commit_hash: str) -> str:
    """Hosting-API path for one commit; rejects anything that is not a hex hash."""
    if not owner or not repo:
        raise ValidationError("Invalid repository URL: missing owner or name")
    if not _COMMIT_HASH_RE.match(commit_hash or ""):
        raise ValidationError(f"Invalid commit hash: {commit_hash!r}")
    return f"/repos/{owner}/{repo}/commits/{commit_hash}"


def _to_entry(item: Dict[str, Any]) -> Optional[ContentEntry]:
    try:
        entry_type = EntryType(item.get("type"))
    except ValueError:
        logger.warning("Skipping entry %s with unknown type %r", item.get("path"), item.get("type"))
        return None
    return ContentEntry(
        path=item.get("path", ""),
        name=item.get("name", ""),
        type=entry_type,
        size=item.get("size") or 0,
    )


def _to_commit(item: Dict[str, Any]) -> CommitInfo:
    commit = item.get("commit") or {}
    author = commit.get("author") or {}
    return CommitInfo(
        commit_hash=item["sha"],
        commit_message=commit.get("message") or "",
        commit_author_name=author.get("name") or "",
        commit_author_avatar=(item.get("author") or {}).get("avatar_url") or "",
        commit_date=author.get("date"),
    )


def _is_empty_repository(response: httpx.Response) -> bool:
    # The root listing of a repository without commits is a 404 with this message
    if response.status_code != 404:
        return False
    try:
        message = response.json().get("message", "")
    except (ValueError, AttributeError):
        return False
    return "repository is empty" in str(message).lower()


class GitHubClient:
    """Hosting API client. One instance per request; the token is never stored elsewhere."""

    name = "github"

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        github_token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        headers = {"Accept": JSON_MEDIA_TYPE, "X-GitHub-Api-Version": "2022-11-28"}
        if github_token:
            headers["Authorization"] = f"Bearer {github_token}"
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, path: str, **kwargs) -> httpx.Response:
        async with translate_transport_errors(self.name):
            return await self._client.get(path, **kwargs)

    async def _get(self, path: str, **kwargs) -> httpx.Response:
        response = await self._send(path, **kwargs)
        raise_for_provider_status(response, self.name)
        return response

    async def list_commits(
        self, owner: str, repo: str, per_page: int = 30
    ) -> List[CommitInfo]:
        response = await self._get(
            f"/repos/{owner}/{repo}/commits", params={"per_page": per_page}
        )
        return [_to_commit(item) for item in response.json()]

    async def get_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> Union[ContentEntry, List[ContentEntry]]:
        params = {"ref": ref} if ref else None
        response = await self._send(
            f"/repos/{owner}/{repo}/contents/{quote(path, safe='/')}", params=params
        )
        if not path.strip("/") and _is_empty_repository(response):
            logger.info("Repository %s/%s has no commits yet", owner, repo)
            return []
        raise_for_provider_status(response, self.name)
        data = response.json()
        if isinstance(data, list):
            return [entry for entry in (_to_entry(item) for item in data) if entry]
        entry = _to_entry(data)
        if entry is None:
            raise ValidationError(f"Unsupported content type at {path!r}")
        return entry

    async def get_file_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> bytes:
        params = {"ref": ref} if ref else None
        response = await self._get(
            f"/repos/{owner}/{repo}/contents/{quote(path, safe='/')}",
            params=params,
            headers={"Accept": RAW_MEDIA_TYPE},
        )
        return response.content

    async def get_commit_diff(self, owner: str, repo: str, commit_hash: str) -> str:
        path = commit_diff_path(owner, repo, commit_hash)
        logger.debug("Fetching diff %s%s", self.api_url, path)
        response = await self._get(path, headers={"Accept": DIFF_MEDIA_TYPE})
        return response.text
