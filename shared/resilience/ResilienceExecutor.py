"""Retry-with-backoff executor used by every outbound call.

execute() runs an async operation, classifies failures via classify_error()
and retries TransientError / RateLimited with linear backoff
(base_delay * attempt). ClientError, ProtocolError and DimensionMismatchError
are raised on the first occurrence. Terminal failures are tagged with the
caller's context and attempt count, logged, and appended to the ErrorLog.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

from shared.helper.HelperConfig import HelperConfig
from shared.resilience.ErrorLog import ErrorLog, error_log as default_error_log
from shared.resilience.RetryPolicy import RetryPolicy
from shared.resilience.errors import RAGError, RateLimited, classify_error


class ResilienceExecutor:
    """Runs operations under a RetryPolicy."""

    def __init__(
        self,
        helper_config: HelperConfig,
        error_log: ErrorLog | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._error_log = error_log if error_log is not None else default_error_log
        self._sleep = sleep
        self._clock = clock

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_error_log(self) -> ErrorLog:
        return self._error_log

    ##########################################
    ################ CORE ####################
    ##########################################

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        context: str,
        policy: RetryPolicy | None = None,
    ) -> Any:
        """Run `operation` until it succeeds or the retry budget is spent.

        Args:
            operation (Callable[[], Awaitable[Any]]): Zero-argument coroutine factory.
                It is called once per attempt.
            context (str): Label attached to errors and log lines (e.g. "embed batch 1/3").
            policy (RetryPolicy | None): Retry budget; defaults to RetryPolicy().

        Returns:
            Any: Whatever the operation returns.

        Raises:
            RAGError: The terminal, typed failure tagged with context and attempts.
        """
        policy = policy or RetryPolicy()
        started = self._clock()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._run_attempt(operation, policy, started)
            except Exception as exc:
                error = classify_error(exc)

            if not self._should_retry(error, attempt, policy):
                raise self._fail(error, context, attempt)

            delay = self._get_delay(error, attempt, policy)
            if policy.deadline is not None and (self._clock() - started) + delay >= policy.deadline:
                self.logging.warning(
                    "%s: deadline of %.2fs reached after %d attempt(s), giving up.",
                    context, policy.deadline, attempt,
                )
                raise self._fail(error, context, attempt)

            self.logging.warning(
                "%s: attempt %d of %d failed (%s: %s). Retrying in %.2fs.",
                context, attempt, policy.max_retries + 1, error.code, error.message, delay,
            )
            await self._sleep(delay)

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _run_attempt(self, operation: Callable[[], Awaitable[Any]], policy: RetryPolicy, started: float) -> Any:
        """Run one attempt, bounded by the attempt timeout and the remaining deadline."""
        timeout = policy.attempt_timeout
        if policy.deadline is not None:
            remaining = policy.deadline - (self._clock() - started)
            timeout = remaining if timeout is None else min(timeout, remaining)
        if timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=max(timeout, 0.0))

    def _should_retry(self, error: RAGError, attempt: int, policy: RetryPolicy) -> bool:
        if not error.retryable or attempt > policy.max_retries:
            return False
        if policy.retry_predicate is not None:
            return bool(policy.retry_predicate(error))
        return True

    def _get_delay(self, error: RAGError, attempt: int, policy: RetryPolicy) -> float:
        """Linear backoff; a rate limit hint can only lengthen the wait."""
        delay = policy.base_delay * attempt
        if isinstance(error, RateLimited) and error.retry_after is not None:
            delay = max(delay, error.retry_after)
        return delay

    def _fail(self, error: RAGError, context: str, attempts: int) -> RAGError:
        """Tag, log and record a terminal failure."""
        error.context = context
        error.attempts = attempts
        self.logging.error("%s failed terminally: %s", context, error)
        self._error_log.record(error, context=context)
        return error
