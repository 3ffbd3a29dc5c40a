"""Error classification and the auth-invalidation retry."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

import httpx

from syncbridge.outbound.credentials import TokenLifecycle
from syncbridge.outbound.exceptions import (
    AuthInvalidationError,
    ConfigError,
    ErrorKind,
    NetworkError,
    OutboundError,
    VendorHTTPError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MessageExtractor = Callable[[httpx.Response], str | None]


def response_details(response: httpx.Response) -> Any:
    """Decoded response body, falling back to text for non-JSON bodies."""
    try:
        return response.json()
    except ValueError:
        return response.text or None


@contextmanager
def parsing_response(response: httpx.Response) -> Iterator[None]:
    """Turn lookup and decode failures on a successful response into VendorHTTPError.

    Example:
        with parsing_response(response):
            return str(response.json()["id"])
    """
    try:
        yield
    except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
        raise VendorHTTPError(
            f"Malformed response body: {e.__class__.__name__}: {e}",
            status=response.status_code,
            details=response_details(response),
        ) from e


def classify_error(
    exc: BaseException,
    context: str = "",
    extract_message: MessageExtractor | None = None,
) -> OutboundError:
    """Map an exception raised by a vendor call into the OutboundError taxonomy.

    Args:
        exc: The exception to classify.
        context: Operation description prefixed to the message.
        extract_message: Vendor hook pulling a readable message out of an
            error response.

    Returns:
        The classified error. OutboundError instances are returned unchanged.
    """
    if isinstance(exc, OutboundError):
        return exc
    prefix = f"{context}: " if context else ""

    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        message = extract_message(response) if extract_message else None
        message = message or response.reason_phrase or f"HTTP {response.status_code}"
        error_class = (
            AuthInvalidationError if response.status_code == 401 else VendorHTTPError
        )
        return error_class(
            f"{prefix}{message}",
            status=response.status_code,
            details=response_details(response),
        )

    if isinstance(exc, httpx.RequestError):
        return NetworkError(f"{prefix}{exc.__class__.__name__}: {exc}")

    if isinstance(exc, json.JSONDecodeError):
        return VendorHTTPError(f"{prefix}Malformed response body: {exc}")

    return ConfigError(f"{prefix}{exc}")


class RetryExecutor:
    """Runs vendor operations with one retry after a rejected credential.

    Only auth-invalidation (HTTP 401) is retried: the cached token is
    cleared, a new one is fetched and the operation runs once more. Every
    other failure propagates after classification. Rate-limit and server
    errors are not retried.

    Example:
        executor = RetryExecutor(lifecycle, classify)
        record = await executor.execute_with_retry(
            lambda: adapter._get(f"/sobjects/Account/{id}"), "fetch Account"
        )
    """

    # Maximum number of retries after an auth invalidation
    MAX_AUTH_RETRIES = 1

    def __init__(
        self,
        lifecycle: TokenLifecycle,
        classify: Callable[[BaseException, str], OutboundError] = classify_error,
    ):
        self.lifecycle = lifecycle
        self._classify = classify

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "API call",
    ) -> T:
        """Execute an operation, re-authenticating once on a 401.

        Raises:
            OutboundError: The classified failure of the last attempt.
        """
        retries = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                error = self._classify(e, operation_name)
                if (
                    error.kind == ErrorKind.AUTH_INVALIDATION
                    and retries < self.MAX_AUTH_RETRIES
                ):
                    retries += 1
                    logger.warning(
                        f"{operation_name} received 401 Unauthorized. Refreshing token "
                        f"(attempt {retries}/{self.MAX_AUTH_RETRIES})..."
                    )
                    self.lifecycle.invalidate()
                    await self.lifecycle.authenticate()
                    continue
                if error is e:
                    raise
                raise error from e
