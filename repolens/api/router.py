import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from repolens.config.settings import Settings, get_settings
from repolens.dependencies import (
    get_ingestion_coordinator,
    get_onboarding_service,
    get_project_store,
)
from repolens.exceptions import (
    ConfigurationError,
    NotFoundError,
    ProviderError,
    RateLimitError,
    ValidationError,
)
from repolens.models import ProjectStore
from repolens.schemas import (
    AskRequest,
    CheckCreditsRequest,
    CreateProjectRequest,
    CredentialRequest,
    RepositoryReference,
)
from repolens.services import IngestionCoordinator, OnboardingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/repolens", tags=["repolens"])


def _http_error(e: Exception, action: str) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, RateLimitError):
        return HTTPException(status_code=429, detail=str(e))
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=503, detail=f"{action} failed: {str(e)}")
    if isinstance(e, ProviderError):
        return HTTPException(status_code=502, detail=f"{action} failed: {str(e)}")
    logger.exception("%s failed", action)
    return HTTPException(status_code=500, detail=f"{action} failed: {str(e)}")


def _sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


def _repository_reference(
    repo_url: str, default_branch: str, github_token: Any
) -> RepositoryReference:
    return RepositoryReference(
        hosting_url=repo_url,
        default_branch=default_branch,
        access_credential=github_token,
    )


@router.post("/projects/check-credits", response_model=Dict[str, int])
async def check_credits(
    request: CheckCreditsRequest,
    onboarding: OnboardingService = Depends(get_onboarding_service),
    settings: Settings = Depends(get_settings),
):
    """Count eligible files and report the caller's balance."""
    repo = _repository_reference(
        request.repo_url, request.default_branch or settings.DEFAULT_BRANCH, request.github_token
    )
    try:
        return await onboarding.check_credits(request.user_id, repo)
    except Exception as e:
        raise _http_error(e, "Credit check")


@router.post("/projects", response_model=Dict[str, Any])
async def create_project(
    request: CreateProjectRequest,
    onboarding: OnboardingService = Depends(get_onboarding_service),
    settings: Settings = Depends(get_settings),
):
    """Create a project, ingest its files and recent commits, and debit credits."""
    if not request.name.strip():
        raise HTTPException(status_code=400, detail="Project name cannot be empty")

    repo = _repository_reference(
        request.repo_url, request.default_branch or settings.DEFAULT_BRANCH, request.github_token
    )
    try:
        return await onboarding.create_project(request.user_id, request.name, repo)
    except Exception as e:
        raise _http_error(e, "Project creation")


@router.get("/projects/{project_id}", response_model=Dict[str, Any])
async def get_project_status(
    project_id: str,
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
):
    try:
        return await coordinator.get_project_status(project_id)
    except Exception as e:
        raise _http_error(e, "Status")


@router.delete("/projects/{project_id}", response_model=Dict[str, Any])
async def archive_project(
    project_id: str,
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
):
    try:
        return await coordinator.archive_project(project_id)
    except Exception as e:
        raise _http_error(e, "Archive")


@router.post("/projects/{project_id}/index")
async def index_project_stream(
    project_id: str,
    request: CredentialRequest,
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
    projects: ProjectStore = Depends(get_project_store),
):
    """Re-index a project's repository with Server-Sent Events progress."""
    project = await asyncio.to_thread(projects.find, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")

    repo = _repository_reference(project.repo_url, project.default_branch, request.github_token)

    async def event_stream() -> AsyncGenerator[str, None]:
        async for event in coordinator.ingest_repository_stream(project_id, repo):
            yield _sse(event)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/projects/{project_id}/commits", response_model=Dict[str, Any])
async def ingest_commits(
    project_id: str,
    request: CredentialRequest,
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
):
    """Summarize and store the most recent commits not seen before."""
    try:
        report = await coordinator.ingest_recent_commits(project_id, request.github_token)
    except Exception as e:
        raise _http_error(e, "Commit ingestion")
    return {
        "project_id": report.project_id,
        "fetched": report.fetched,
        "skipped_existing": report.skipped_existing,
        "persisted": report.persisted,
        "fallbacks": report.fallbacks,
    }


@router.get("/projects/{project_id}/commits", response_model=List[Dict[str, Any]])
async def list_commits(
    project_id: str,
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
):
    try:
        return await coordinator.list_commits(project_id)
    except Exception as e:
        raise _http_error(e, "Commit listing")


@router.post("/projects/{project_id}/ask")
async def ask_question(
    project_id: str,
    request: AskRequest,
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
):
    """
    Answer a question about the project's code.

    Streams one ``references`` event, then ``delta`` events as the answer is
    generated, then a ``done`` event carrying the final state.
    """
    result = await coordinator.answer(request.question, project_id)

    async def event_stream() -> AsyncGenerator[str, None]:
        yield _sse(
            {
                "type": "references",
                "references": [ref.model_dump() for ref in result.references],
            }
        )
        async with result.stream as stream:
            async for delta in stream:
                yield _sse({"type": "delta", "content": delta})
        yield _sse({"type": "done", "state": result.state.value})

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
