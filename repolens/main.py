import logging
import sys
from pathlib import Path

from fastapi import FastAPI

from repolens.api import router
from repolens.config.settings import get_settings
from repolens.services.hosting_client_factory import mock_hosting_client_available

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# --- Application setup ---

app = FastAPI(
    title="RepoLens API",
    version="0.1.0",
    description="Repository ingestion and retrieval-augmented question answering",
)

# --- DEBUG: serve the local mock repository instead of the hosting API ---

if settings.DEBUG:
    dev_path = Path(__file__).parent.parent / "dev"
    if dev_path.exists():
        if str(dev_path) not in sys.path:
            sys.path.append(str(dev_path))
        logger.info("'dev' directory added to sys.path for mock imports.")
        if not mock_hosting_client_available():
            logger.warning("MockHostingClient not found, falling back to GitHubClient.")
    else:
        logger.warning("'dev' directory not found. Using GitHubClient.")

app.include_router(router.router, prefix="/api")


@app.get("/health")
async def health_check():
    """
    Simple health check endpoint to confirm the API is running.
    """
    return {"status": "ok"}
