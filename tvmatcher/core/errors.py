"""Error handling framework for tvmatcher.

Provides the exception hierarchy and a context manager for standardized
error handling across the matcher and its collaborators.
"""

import logging

logger = logging.getLogger(__name__)


# Custom Exception Hierarchy
class TVMatcherError(Exception):
    """Base exception for all tvmatcher-specific errors."""

    pass


class InputError(TVMatcherError):
    """Run input is missing or invalid.

    Raised before any probing starts: show name, season, episode range,
    missing credentials, or a show/season the metadata service does not know.
    """

    pass


class UpstreamError(TVMatcherError):
    """A remote service failed.

    Raised for HTTP error statuses, exhausted network retries and
    undecodable payloads. The message carries the endpoint and a response snippet.
    """

    def __init__(self, message: str, *, endpoint: str | None = None, status: int | None = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.status = status


class UnauthorizedError(UpstreamError):
    """A remote service rejected the credentials (HTTP 401)."""

    pass


class ToolError(TVMatcherError):
    """ffprobe or ffmpeg failed for a single file."""

    pass


class CacheError(TVMatcherError):
    """Reading from the subtitle cache failed.

    Never fatal: callers fall back to downloading the payload again.
    """

    pass


# Context Manager for Error Handling
class error_context:
    """Context manager for error handling in specific code blocks.

    Example:
        with error_context(
            error_types=(OSError,),
            default_message="Failed to read cache entry",
            wrap_as=CacheError
        ):
            # ... code that might raise errors ...
    """

    def __init__(
        self,
        *,
        error_types: tuple[type[Exception], ...],
        default_message: str,
        log_level: str = "error",
        wrap_as: type[TVMatcherError] | None = None,
    ):
        self.error_types = error_types
        self.default_message = default_message
        self.log_level = log_level
        self.wrap_as = wrap_as

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and issubclass(exc_type, self.error_types):
            log_func = getattr(logger, self.log_level)
            log_func(
                f"{self.default_message}: {exc_val}",
                exc_info=(self.log_level == "error"),
            )
            if self.wrap_as:
                raise self.wrap_as(f"{self.default_message}: {exc_val}") from exc_val
            return False  # Re-raise the original exception
        return False  # Don't suppress other exceptions
