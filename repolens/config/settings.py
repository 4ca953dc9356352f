from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every ceiling used by the ingestion and answering pipelines lives here so it
    can be tuned per deployment. Values are read from the process environment
    and, when present, from a `.env` file in the working directory.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Hosting API
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TOKEN: str = ""  # Fallback credential for public repositories
    DEFAULT_BRANCH: str = "main"
    HOSTING_TIMEOUT_SECONDS: float = 30.0

    # Crawler
    CRAWLER_MAX_CONCURRENCY: int = 5
    CRAWLER_IGNORE_FILES: List[str] = [
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
    ]
    CRAWLER_MAX_FILE_BYTES: int = 1_000_000
    CRAWLER_BINARY_EXTENSIONS: List[str] = [
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp",
        ".pdf", ".zip", ".gz", ".tar", ".tgz", ".jar", ".war",
        ".exe", ".dll", ".so", ".dylib", ".bin", ".class", ".pyc",
        ".woff", ".woff2", ".ttf", ".otf", ".eot",
        ".mp3", ".mp4", ".mov", ".avi", ".wav",
    ]

    # Summarization / embedding worker pool
    INGEST_CONCURRENCY: int = 3
    MAX_PROMPT_CHARS: int = 10_000
    SUMMARY_TEMPERATURE: float = 0.2
    SUMMARY_MAX_TOKENS: int = 300
    EMBEDDING_PATH_POLICY: Literal["append", "replace"] = "append"

    # Commit ingestion
    MAX_COMMITS: int = 10

    # Answering
    ANSWER_TOP_K: int = 10
    ANSWER_TEMPERATURE: float = 0.1
    ANSWER_MAX_TOKENS: int = 4000
    ANSWER_RETRY_ATTEMPTS: int = 3
    STREAM_BUFFER_SIZE: int = 64

    # Retry discipline
    RETRY_MAX_ATTEMPTS: int = 2
    RETRY_BASE_DELAY_SECONDS: float = 1.5
    EMBEDDING_RETRY_BASE_DELAY_SECONDS: float = 1.0
    STREAM_RETRY_BASE_DELAY_SECONDS: float = 2.0

    # Embedding provider
    EMBEDDING_PROVIDER: Literal["gemini", "sentence-transformers"] = "gemini"
    EMBEDDING_MODEL_NAME: str = "text-embedding-004"
    LOCAL_EMBEDDING_MODEL_NAME: str = "sentence-transformers/all-mpnet-base-v2"
    GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_API_KEY: str = ""

    # Chat / completion provider (file summaries and answers)
    CHAT_API_URL: str = "https://api.groq.com/openai/v1"
    CHAT_API_KEY: str = ""
    CHAT_MODEL: str = "meta-llama/llama-4-scout-17b-16e-instruct"

    # Diff summary provider
    DIFF_SUMMARY_API_URL: str = "https://openrouter.ai/api/v1"
    DIFF_SUMMARY_API_KEY: str = ""
    DIFF_SUMMARY_MODEL: str = "deepseek/deepseek-chat-v3-0324:free"

    PROVIDER_TIMEOUT_SECONDS: float = 60.0

    # Per-provider sliding-window ceilings (per 60 seconds)
    CHAT_REQUESTS_PER_MINUTE: int = 30
    CHAT_COST_PER_MINUTE: int = 30_000
    CHAT_AVERAGE_COST_PER_REQUEST: int = 1000
    EMBEDDING_REQUESTS_PER_MINUTE: int = 15
    DIFF_SUMMARY_REQUESTS_PER_MINUTE: int = 15
    HOSTING_REQUESTS_PER_MINUTE: int = 80

    # Storage
    DATABASE_URL: str = "sqlite:///./repolens.db"
    VECTOR_DB_PATH: str = "./chroma_db"
    VECTOR_COLLECTION_NAME: str = "source_code_embeddings"

    # Development and debugging
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
