"""Typed failures shared by every outbound call and by the index.

Hierarchy:
  RAGError
    ClientError              — request rejected for reasons retrying cannot fix
      RebuildInProgressError — a corpus re-embedding is already running
    TransientError           — network failure, timeout, server overload
      RateLimited            — explicit throttling signal (HTTP 429)
    ProtocolError            — remote response violates the expected shape
      DimensionMismatchError — vector length differs from the expected dimensions

classify_error() turns arbitrary exceptions (httpx, asyncio, builtins) into
one of these types so the retry executor only has to reason about them.
"""

import asyncio

import httpx


class RAGError(Exception):
    """Base class of every typed failure raised by the core.

    Attributes:
        message:     Human-readable description of the failure.
        context:     Caller-supplied label of the operation (e.g. "embed batch 1/3").
        attempts:    Number of attempts made before the error became terminal.
        status_code: HTTP status of the remote response, if any.
    """

    code = "rag_error"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        context: str | None = None,
        attempts: int = 0,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context
        self.attempts = attempts
        self.status_code = status_code

    def __str__(self) -> str:
        text = self.message
        if self.context:
            text = f"{self.context}: {text}"
        if self.attempts > 1:
            text = f"{text} (after {self.attempts} attempts)"
        return text


class ClientError(RAGError):
    code = "client_error"


class RebuildInProgressError(ClientError):
    code = "rebuild_in_progress"


class TransientError(RAGError):
    code = "transient_error"
    retryable = True


class RateLimited(TransientError):
    code = "rate_limited"

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ProtocolError(RAGError):
    code = "protocol_error"


class DimensionMismatchError(ProtocolError):
    code = "dimension_mismatch"

    def __init__(self, expected: int, actual: int, message: str | None = None, **kwargs) -> None:
        super().__init__(
            message or f"Expected a vector with {expected} dimensions, got {actual}.",
            **kwargs,
        )
        self.expected = expected
        self.actual = actual


def _parse_retry_after(response: httpx.Response) -> float | None:
    """Read a numeric Retry-After header. HTTP-date values are ignored."""
    raw = response.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None


def classify_status(response: httpx.Response) -> RAGError:
    """Map a non-success HTTP response to a typed failure.

    Args:
        response (httpx.Response): The failed response.

    Returns:
        RAGError: RateLimited for 429, TransientError for 408 and 5xx, ClientError otherwise.
    """
    status = response.status_code
    message = f"Request to {response.request.url} failed with status {status}"
    if status == 429:
        return RateLimited(message, retry_after=_parse_retry_after(response), status_code=status)
    if status == 408 or status >= 500:
        return TransientError(message, status_code=status)
    return ClientError(message, status_code=status)


def classify_error(error: BaseException) -> RAGError:
    """Classify an arbitrary exception into the core's error taxonomy.

    Already typed errors are returned unchanged.

    Args:
        error (BaseException): The exception raised by an operation.

    Returns:
        RAGError: The typed failure. The original exception is kept as __cause__.
    """
    if isinstance(error, RAGError):
        return error

    if isinstance(error, httpx.HTTPStatusError):
        typed = classify_status(error.response)
    elif isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        typed = TransientError(f"Request timed out: {error or type(error).__name__}")
    elif isinstance(error, (httpx.TransportError, ConnectionError)):
        typed = TransientError(f"Network failure: {error or type(error).__name__}")
    else:
        typed = ClientError(f"{type(error).__name__}: {error}")
    typed.__cause__ = error
    return typed
