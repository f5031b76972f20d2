"""AWS API error taxonomy.

Every failure coming out of the AWS SDK is translated into one of these
types before it leaves a handler:

- ``NotFoundError``: the remote object does not exist (terminal)
- ``TransientAPIError``: throttling, 5xx, network trouble (retryable)
- ``ConflictError``: object busy or still propagating (bounded retry)
- ``FatalAPIError``: anything else, surfaced verbatim
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError,
    EndpointConnectionError,
    ReadTimeoutError,
)

if TYPE_CHECKING:
    from collections.abc import Mapping


class APIError(Exception):
    """Base exception for AWS API failures."""

    def __init__(self, message: str, *, code: str | None = None, operation: str | None = None):
        super().__init__(message)
        self.code = code
        self.operation = operation


class NotFoundError(APIError):
    """The remote object does not exist."""


class TransientAPIError(APIError):
    """A retryable failure (throttling, service unavailable, network)."""


class ConflictError(APIError):
    """The object is busy or not yet visible; retry with backoff."""


class FatalAPIError(APIError):
    """An unexpected API failure that must not be retried."""


class WaitTimeoutError(APIError):
    """A bounded wait for a remote state expired."""

    def __init__(self, message: str, *, last_state: Any = None) -> None:
        super().__init__(message)
        self.last_state = last_state


class OperationCanceled(APIError):
    """An in-flight operation observed the cancellation signal."""


class PartialUpdateError(APIError):
    """An update failed after some attribute calls already succeeded.

    ``applied`` holds the attribute values that reached AWS, so the caller
    can record partial progress instead of pretending nothing happened.
    """

    def __init__(self, *, applied: Mapping[str, Any], failed: str, cause: Exception) -> None:
        super().__init__(f"Update of '{failed}' failed: {cause}")
        self.applied = dict(applied)
        self.failed = failed


_THROTTLING_CODES: frozenset[str] = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "RequestLimitExceeded",
        "TooManyRequestsException",
        "RequestThrottled",
        "RateExceeded",
        "ServiceUnavailable",
        "ServiceUnavailableException",
        "InternalFailure",
        "InternalServerException",
        "KMSInternalException",
        "ServerInternalException",
        "DependencyTimeoutException",
    }
)

_CONFLICT_CODES: frozenset[str] = frozenset(
    {
        "ConflictException",
        "ResourceInUseException",
        "ConcurrentModificationException",
        "KMSInvalidStateException",
        "ResourceLimitExceededException",
    }
)

_NOT_FOUND_CODES: frozenset[str] = frozenset(
    {
        "NotFoundException",
        "ResourceNotFoundException",
        "NoSuchEntity",
    }
)


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def error_message(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Message", "")


def classify_client_error(
    exc: ClientError,
    *,
    not_found_codes: frozenset[str] = _NOT_FOUND_CODES,
    conflict_codes: frozenset[str] = frozenset(),
) -> APIError:
    """Map a botocore ``ClientError`` onto the taxonomy.

    Callers can widen the not-found and conflict sets for one call, e.g.
    ``ReplicateKey`` treats ``NotFoundException`` as a conflict while the
    primary key propagates.
    """
    code = error_code(exc)
    message = f"{code}: {error_message(exc)}" if code else str(exc)
    operation = getattr(exc, "operation_name", None)
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)

    if code in conflict_codes:
        return ConflictError(message, code=code, operation=operation)
    if code in not_found_codes:
        return NotFoundError(message, code=code, operation=operation)
    if code in _THROTTLING_CODES or status >= 500:
        return TransientAPIError(message, code=code, operation=operation)
    if code in _CONFLICT_CODES:
        return ConflictError(message, code=code, operation=operation)
    return FatalAPIError(message, code=code, operation=operation)


def classify_error(exc: Exception, **kwargs: Any) -> APIError:
    """Classify any SDK exception (client or transport level)."""
    if isinstance(exc, APIError):
        return exc
    if isinstance(exc, ClientError):
        return classify_client_error(exc, **kwargs)
    if isinstance(exc, (EndpointConnectionError, ConnectionError, ReadTimeoutError)):
        return TransientAPIError(str(exc))
    if isinstance(exc, BotoCoreError):
        return FatalAPIError(str(exc))
    return FatalAPIError(str(exc))
