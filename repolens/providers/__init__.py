from .chat_client import ChatCompletionClient, ChatCompletionStream
from .embedding_providers import (
    GeminiEmbeddingProvider,
    SentenceTransformerEmbeddingProvider,
)
from .github_client import GitHubClient, parse_repository_url
from .rate_limiter import RateLimiterRegistry, SlidingWindowRateLimiter
from .retry import ErrorKind, RetryExecutor, classify_error

__all__ = [
    "ChatCompletionClient",
    "ChatCompletionStream",
    "ErrorKind",
    "GeminiEmbeddingProvider",
    "GitHubClient",
    "RateLimiterRegistry",
    "RetryExecutor",
    "SentenceTransformerEmbeddingProvider",
    "SlidingWindowRateLimiter",
    "classify_error",
    "parse_repository_url",
]
