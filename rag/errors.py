"""Error taxonomy for search, indexing and generation.

Recoverable conditions (namespace fallback, rate-limit backoff, missing
passage text) are handled where they occur; everything defined here is what
reaches the orchestration layer.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ContentLibraryError(Exception):
    """Base class for all errors raised by this project."""


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class ConfigurationError(ContentLibraryError):
    """Missing or unusable credentials / index configuration."""


class EmptyQueryError(ContentLibraryError, ValueError):
    def __init__(self):
        super().__init__("Query must not be empty")


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

class SearchError(ContentLibraryError):
    """A search strategy failed."""

    def __init__(self, message: str, strategy: str = ""):
        super().__init__(message)
        self.strategy = strategy


class NamespaceNotFoundError(SearchError):
    def __init__(self, namespace: str, detail: str = ""):
        message = f"Namespace '{namespace}' not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, strategy="vector_index")
        self.namespace = namespace


class SearchTimeoutError(SearchError):
    pass


# ---------------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------------

class IndexingError(ContentLibraryError):
    pass


class RateLimitExceededError(IndexingError):
    def __init__(self, batch_number: int, attempts: int):
        super().__init__(
            f"Batch {batch_number} still rate limited after {attempts} attempts; aborting run"
        )
        self.batch_number = batch_number
        self.attempts = attempts


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class GenerationError(ContentLibraryError):
    """Text generation failed; `category` tells the caller what to do next."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.category = category
        self.status_code = status_code

    def user_message(self) -> str:
        if self.category == ErrorCategory.AUTH:
            return "The API key was rejected. Please update your API key and try again."
        if self.category == ErrorCategory.RATE_LIMIT:
            return "The AI service is overloaded or rate limited. Please retry in a moment."
        if self.category == ErrorCategory.TIMEOUT:
            return "The AI service took too long to respond. Please retry."
        return f"Failed to generate an answer: {self}"


class AuthenticationFailedError(GenerationError):
    def __init__(self, message: str, status_code: Optional[int] = 401):
        super().__init__(message, ErrorCategory.AUTH, status_code)


class ServiceOverloadedError(GenerationError):
    def __init__(self, message: str, status_code: Optional[int] = 429):
        super().__init__(message, ErrorCategory.RATE_LIMIT, status_code)
