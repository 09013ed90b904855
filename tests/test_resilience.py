import asyncio

import httpx
import pytest

from shared.resilience.ErrorLog import ErrorLog
from shared.resilience.ResilienceExecutor import ResilienceExecutor
from shared.resilience.RetryPolicy import RetryPolicy
from shared.resilience.errors import (
    ClientError,
    DimensionMismatchError,
    ProtocolError,
    RAGError,
    RateLimited,
    TransientError,
    classify_error,
    classify_status,
)


class FlakyOperation:
    """Raises the queued errors in order, then returns "ok"."""

    def __init__(self, *errors: Exception) -> None:
        self._errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return "ok"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def executor(helper_config, error_log, clock):
    return ResilienceExecutor(helper_config=helper_config, error_log=error_log, sleep=clock.sleep, clock=clock)


class TestResilienceExecutor:
    """Retry, backoff and terminal failure handling."""

    @pytest.mark.asyncio
    async def test_fail_fail_succeed_takes_three_attempts(self, executor, clock):
        operation = FlakyOperation(TransientError("down"), TransientError("still down"))

        result = await executor.execute(operation, context="op", policy=RetryPolicy(max_retries=2, base_delay=1.0))

        assert result == "ok"
        assert operation.calls == 3
        assert clock.sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, executor, error_log):
        operation = FlakyOperation(ClientError("bad key", status_code=401))

        with pytest.raises(ClientError) as exc_info:
            await executor.execute(operation, context="embed batch 1/1", policy=RetryPolicy(max_retries=2))

        assert operation.calls == 1
        assert exc_info.value.attempts == 1
        assert exc_info.value.context == "embed batch 1/1"
        assert len(error_log) == 1
        assert error_log.recent(1)[0].status_code == 401

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [ProtocolError("bad shape"), DimensionMismatchError(expected=3, actual=4)])
    async def test_non_transient_errors_fail_on_first_attempt(self, executor, error):
        operation = FlakyOperation(error)

        with pytest.raises(RAGError):
            await executor.execute(operation, context="op", policy=RetryPolicy(max_retries=5, base_delay=0))

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_the_last_error(self, executor, error_log):
        operation = FlakyOperation(TransientError("1"), TransientError("2"), TransientError("3"))

        with pytest.raises(TransientError) as exc_info:
            await executor.execute(operation, context="generate", policy=RetryPolicy(max_retries=2, base_delay=0))

        assert operation.calls == 3
        assert exc_info.value.message == "3"
        assert exc_info.value.attempts == 3
        entry = error_log.recent(1)[0]
        assert entry.code == "transient_error"
        assert entry.context == "generate"
        assert entry.attempts == 3

    @pytest.mark.asyncio
    async def test_rate_limit_hint_lengthens_the_wait(self, executor, clock):
        operation = FlakyOperation(RateLimited("slow down", retry_after=5.0))

        await executor.execute(operation, context="op", policy=RetryPolicy(max_retries=1, base_delay=1.0))

        assert clock.sleeps == [5.0]

    @pytest.mark.asyncio
    async def test_rate_limit_hint_never_shortens_the_wait(self, executor, clock):
        operation = FlakyOperation(TransientError("down"), RateLimited("slow down", retry_after=0.5))

        await executor.execute(operation, context="op", policy=RetryPolicy(max_retries=2, base_delay=1.0))

        assert clock.sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retry_predicate_can_veto_a_retry(self, executor):
        operation = FlakyOperation(TransientError("down", status_code=503))
        policy = RetryPolicy(max_retries=3, base_delay=0, retry_predicate=lambda error: error.status_code != 503)

        with pytest.raises(TransientError):
            await executor.execute(operation, context="op", policy=policy)

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_retry_predicate_cannot_make_client_errors_retryable(self, executor):
        operation = FlakyOperation(ClientError("rejected"))
        policy = RetryPolicy(max_retries=3, base_delay=0, retry_predicate=lambda error: True)

        with pytest.raises(ClientError):
            await executor.execute(operation, context="op", policy=policy)

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_deadline_stops_retrying_before_sleeping_past_it(self, executor, clock):
        operation = FlakyOperation(TransientError("1"), TransientError("2"), TransientError("3"))
        policy = RetryPolicy(max_retries=5, base_delay=1.0, deadline=2.5)

        with pytest.raises(TransientError) as exc_info:
            await executor.execute(operation, context="op", policy=policy)

        # waits 1s, then 1s elapsed + 2s backoff would cross the deadline
        assert clock.sleeps == [1.0]
        assert operation.calls == 2
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_attempt_timeout_is_a_transient_failure(self, helper_config, error_log):
        executor = ResilienceExecutor(helper_config=helper_config, error_log=error_log)

        async def hang():
            await asyncio.sleep(5)

        with pytest.raises(TransientError):
            await executor.execute(hang, context="op", policy=RetryPolicy(max_retries=0, attempt_timeout=0.01))

    @pytest.mark.asyncio
    async def test_unknown_exceptions_are_classified_as_client_errors(self, executor):
        async def broken():
            raise KeyError("missing")

        with pytest.raises(ClientError) as exc_info:
            await executor.execute(broken, context="op", policy=RetryPolicy(max_retries=2, base_delay=0))

        assert isinstance(exc_info.value.__cause__, KeyError)

    def test_default_error_log_is_shared(self, helper_config):
        from shared.resilience.ErrorLog import error_log as process_error_log

        assert ResilienceExecutor(helper_config=helper_config).get_error_log() is process_error_log


class TestClassification:
    """Mapping of HTTP statuses and raw exceptions onto the error taxonomy."""

    @staticmethod
    def _response(status_code: int, headers: dict | None = None) -> httpx.Response:
        return httpx.Response(status_code, headers=headers, request=httpx.Request("POST", "http://backend/api"))

    def test_429_is_rate_limited_with_retry_after(self):
        error = classify_status(self._response(429, {"Retry-After": "3"}))

        assert isinstance(error, RateLimited)
        assert error.retryable
        assert error.retry_after == 3.0
        assert error.status_code == 429

    def test_http_date_retry_after_is_ignored(self):
        error = classify_status(self._response(429, {"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}))

        assert error.retry_after is None

    @pytest.mark.parametrize("status_code", [408, 500, 502, 503, 504])
    def test_server_errors_are_transient(self, status_code):
        error = classify_status(self._response(status_code))

        assert type(error) is TransientError
        assert error.retryable

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 422])
    def test_rejections_are_client_errors(self, status_code):
        error = classify_status(self._response(status_code))

        assert isinstance(error, ClientError)
        assert not error.retryable

    def test_network_failures_are_transient(self):
        cause = httpx.ConnectError("connection refused")

        error = classify_error(cause)

        assert isinstance(error, TransientError)
        assert error.__cause__ is cause

    def test_timeouts_are_transient(self):
        assert isinstance(classify_error(httpx.ReadTimeout("slow")), TransientError)
        assert isinstance(classify_error(asyncio.TimeoutError()), TransientError)

    def test_typed_errors_pass_through(self):
        error = ProtocolError("bad shape")

        assert classify_error(error) is error

    def test_str_includes_context_and_attempts(self):
        error = TransientError("down", context="embed batch 2/3", attempts=3)

        assert str(error) == "embed batch 2/3: down (after 3 attempts)"


class TestErrorLog:
    def test_recent_is_newest_first(self):
        log = ErrorLog()
        for number in range(3):
            log.record(TransientError(f"failure {number}"))

        assert [entry.message for entry in log.recent(2)] == ["failure 2", "failure 1"]

    def test_log_is_bounded(self):
        log = ErrorLog(max_entries=2)
        for number in range(5):
            log.record(ClientError(f"failure {number}"))

        assert len(log) == 2
        assert [entry.message for entry in log.recent(10)] == ["failure 4", "failure 3"]

    def test_clear_and_non_positive_limit(self):
        log = ErrorLog()
        log.record(ProtocolError("bad"))

        assert log.recent(0) == []
        log.clear()
        assert len(log) == 0

    def test_rejects_empty_capacity(self):
        with pytest.raises(ValueError):
            ErrorLog(max_entries=0)


class TestRetryPolicy:
    def test_defaults(self, helper_config):
        policy = RetryPolicy.from_config(helper_config, "embed")

        assert policy.max_retries == 2
        assert policy.base_delay == 1.0
        assert policy.attempt_timeout == 30.0
        assert policy.deadline == 120.0

    def test_reads_prefixed_env(self, helper_config, monkeypatch):
        monkeypatch.setenv("LLM_MAX_RETRIES", "4")
        monkeypatch.setenv("LLM_RETRY_BASE_DELAY", "0.5")
        monkeypatch.setenv("LLM_TIMEOUT", "10")
        monkeypatch.setenv("LLM_DEADLINE", "60")

        policy = RetryPolicy.from_config(helper_config, "llm")

        assert (policy.max_retries, policy.base_delay, policy.attempt_timeout, policy.deadline) == (4, 0.5, 10.0, 60.0)

    def test_min_retries_is_a_lower_bound(self, helper_config, monkeypatch):
        monkeypatch.setenv("EMBED_MAX_RETRIES", "0")

        assert RetryPolicy.from_config(helper_config, "embed", min_retries=1).max_retries == 1

    def test_negative_values_are_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)
