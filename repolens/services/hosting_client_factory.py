"""Factory for creating hosting API clients with DEBUG mode support."""

import importlib.util
import logging
from typing import Callable, Optional

from ..config.settings import Settings
from ..protocols.hosting_protocol import HostingClientProtocol
from ..providers import GitHubClient

logger = logging.getLogger(__name__)

HostingClientFactory = Callable[[Optional[str]], HostingClientProtocol]


def mock_hosting_client_available() -> bool:
    """True when the dev mocks directory is on sys.path."""
    if importlib.util.find_spec("mocks") is None:
        return False
    return importlib.util.find_spec("mocks.hosting_client") is not None


def create_hosting_client(
    github_token: Optional[str],
    settings: Settings,
) -> HostingClientProtocol:
    """
    Create a hosting client for one request.

    Args:
        github_token: Per-request credential; falls back to GITHUB_TOKEN
        settings: Application settings

    Returns:
        HostingClientProtocol implementation. In DEBUG mode, a client that
        serves the local mock repository when the dev mocks are importable.
    """
    if settings.DEBUG and mock_hosting_client_available():
        from mocks.hosting_client import MockHostingClient

        logger.info("DEBUG mode: Using MockHostingClient")
        return MockHostingClient()

    return GitHubClient(
        api_url=settings.GITHUB_API_URL,
        github_token=github_token or settings.GITHUB_TOKEN,
        timeout=settings.HOSTING_TIMEOUT_SECONDS,
    )


def hosting_client_factory_from_settings(settings: Settings) -> HostingClientFactory:
    """Bind settings so callers only supply the per-request credential."""

    def factory(github_token: Optional[str] = None) -> HostingClientProtocol:
        return create_hosting_client(github_token, settings)

    return factory
