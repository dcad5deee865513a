"""Shared helpers for the metadata and subtitle HTTP clients."""

import time
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

import requests
from loguru import logger

from tvmatcher.core.errors import UnauthorizedError, UpstreamError

F = TypeVar("F", bound=Callable[..., Any])

REQUEST_TIMEOUT = 30
SNIPPET_LENGTH = 500


def retry_network_operation(max_retries: int = 3, base_delay: float = 1.0) -> Callable[[F], F]:
    """Decorator for retrying network operations.

    Only transport failures are retried; HTTP error statuses surface
    immediately as UpstreamError.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_exception = None
            delay = base_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except (requests.ConnectionError, requests.Timeout, ConnectionError, TimeoutError) as e:
                    last_exception = e
                    if attempt == max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded for {func.__name__}: {e}"
                        )
                        raise UpstreamError(f"{func.__name__} failed after retries: {e}") from e

                    logger.warning(
                        f"Network retry {attempt + 1}/{max_retries + 1} for {func.__name__}: {e}"
                    )
                    time.sleep(delay)
                    delay = min(delay * 2, 30)  # Cap at 30 seconds

            raise UpstreamError(f"{func.__name__} failed: {last_exception}")

        return wrapper  # type: ignore

    return decorator


def check_response(response: requests.Response, endpoint: str, service: str) -> requests.Response:
    """Raise UpstreamError (UnauthorizedError for 401) on an HTTP error status."""
    status = response.status_code
    if status == 401:
        raise UnauthorizedError(
            f"{service} rejected the credentials ({endpoint})", endpoint=endpoint, status=status
        )
    if status >= 400:
        snippet = (response.text or "")[:SNIPPET_LENGTH]
        raise UpstreamError(
            f"{service} HTTP {status} for {endpoint}: {snippet}", endpoint=endpoint, status=status
        )
    return response


def json_body(response: requests.Response, endpoint: str, service: str) -> Any:
    """Decode a JSON response body, mapping malformed payloads to UpstreamError."""
    try:
        return response.json()
    except ValueError as e:
        snippet = (response.text or "")[:SNIPPET_LENGTH]
        raise UpstreamError(
            f"{service} returned invalid JSON for {endpoint}: {snippet}", endpoint=endpoint
        ) from e
