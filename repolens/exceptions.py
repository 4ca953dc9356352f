"""Error taxonomy shared by the ingestion and answering pipelines."""

from typing import Optional


class RepoLensError(Exception):
    """Base class for every error raised by repolens."""


class ValidationError(RepoLensError):
    """Bad input. Never retried."""


class InsufficientCreditsError(ValidationError):
    """The caller cannot afford the requested ingestion."""

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Not enough credits to create this project: "
            f"requires {required}, {available} available"
        )
        self.required = required
        self.available = available


class ConfigurationError(RepoLensError):
    """Missing or rejected credential / provider key. Fatal."""


class AuthenticationError(ConfigurationError):
    """The provider rejected the configured credential (HTTP 401/403)."""


class NotFoundError(RepoLensError):
    """Repository, project or path does not exist. Surfaced, not retried."""


class ProviderError(RepoLensError):
    """An external provider answered with an error that is not worth retrying."""

    def __init__(
        self,
        message: str,
        provider: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class RateLimitError(ProviderError):
    """Explicit throttling signal from a provider (HTTP 429 and friends)."""

    def __init__(
        self,
        message: str,
        provider: str = "",
        status_code: Optional[int] = 429,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider=provider, status_code=status_code)
        self.retry_after = retry_after


class TransientProviderError(ProviderError):
    """Network failure, timeout or 5xx answer. Retried with backoff."""
