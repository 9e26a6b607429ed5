#!/usr/bin/env python3
"""Tests for failure classification and the retry/backoff state machine."""

import httpx
import pytest

from repair_assistant.config import RetryConfig
from repair_assistant.errors import (
    AuthorizationError,
    MaxRetriesExceededError,
    ServiceCallError,
    TransientServiceError,
    UnclassifiedServiceError,
)
from repair_assistant.invoker import (
    FailureKind,
    ResilientInvoker,
    RetryPhase,
    classify_failure,
    on_failure,
    on_success,
    on_wait_elapsed,
    start,
)


class SleepRecorder:
    """Stands in for asyncio.sleep and records every requested delay."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class ScriptedCall:
    """Call factory that raises or returns the scripted outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def _run(self):
        outcome = self.outcomes[self.calls]
        self.calls += 1
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def __call__(self):
        return self._run()


def transient():
    return ServiceCallError("Gemini API error: 503 UNAVAILABLE", status_code=503, status="UNAVAILABLE")


def unauthorized():
    return ServiceCallError(
        "Gemini API error: 400 INVALID_ARGUMENT - API key not valid. Please pass a valid API key.",
        status_code=400,
        status="INVALID_ARGUMENT",
    )


@pytest.fixture
def config():
    return RetryConfig(max_attempts=4, initial_delay=2.0)


@pytest.mark.asyncio
async def test_succeeds_after_two_transient_failures_with_doubling_delays(config):
    """Test recovery after two transient failures with doubling delays."""
    sleep = SleepRecorder()
    call = ScriptedCall(transient(), transient(), "report")

    result = await ResilientInvoker(config, sleep=sleep).invoke(call)

    assert result == "report"
    assert call.calls == 3
    assert sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_authorization_failure_is_not_retried(config):
    """Test that authorization failures are never retried."""
    sleep = SleepRecorder()
    call = ScriptedCall(unauthorized(), "never reached")

    with pytest.raises(AuthorizationError) as excinfo:
        await ResilientInvoker(config, sleep=sleep).invoke(call)

    assert call.calls == 1
    assert sleep.delays == []
    assert excinfo.value.attempts == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("max_attempts", [1, 3, 4])
async def test_gives_up_after_max_attempts(max_attempts):
    """Test giving up after exactly the configured number of attempts."""
    sleep = SleepRecorder()
    call = ScriptedCall(*[transient() for _ in range(max_attempts)])
    invoker = ResilientInvoker(
        RetryConfig(max_attempts=max_attempts, initial_delay=1.0), sleep=sleep
    )

    with pytest.raises(MaxRetriesExceededError) as excinfo:
        await invoker.invoke(call)

    assert call.calls == max_attempts
    assert excinfo.value.attempts == max_attempts
    assert isinstance(excinfo.value, TransientServiceError)
    assert isinstance(excinfo.value.__cause__, ServiceCallError)
    assert sleep.delays == [2.0 ** i for i in range(max_attempts - 1)]


@pytest.mark.asyncio
async def test_unclassified_failure_is_surfaced_immediately(config):
    """Test that unknown failures are raised without retrying."""
    sleep = SleepRecorder()
    call = ScriptedCall(ValueError("unexpected response shape"), "never reached")

    with pytest.raises(UnclassifiedServiceError):
        await ResilientInvoker(config, sleep=sleep).invoke(call)

    assert call.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_transport_error_is_retried(config):
    """Test that httpx transport errors are retried."""
    sleep = SleepRecorder()
    request = httpx.Request("POST", "https://example.invalid")
    call = ScriptedCall(httpx.ConnectError("connection reset", request=request), "ok")

    assert await ResilientInvoker(config, sleep=sleep).invoke(call) == "ok"
    assert sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_each_invocation_starts_with_a_fresh_policy(config):
    """Test that backoff does not carry over between invocations."""
    sleep = SleepRecorder()
    invoker = ResilientInvoker(config, sleep=sleep)

    await invoker.invoke(ScriptedCall(transient(), "first"))
    await invoker.invoke(ScriptedCall(transient(), "second"))

    assert sleep.delays == [2.0, 2.0]


@pytest.mark.asyncio
async def test_jitter_only_lengthens_the_wait():
    """Test that jitter adds to the base delay and never shortens it."""
    sleep = SleepRecorder()
    invoker = ResilientInvoker(
        RetryConfig(max_attempts=2, initial_delay=1.0, jitter=0.5), sleep=sleep
    )

    await invoker.invoke(ScriptedCall(transient(), "ok"))

    assert 1.0 <= sleep.delays[0] <= 1.5


@pytest.mark.parametrize(
    "error",
    [
        ServiceCallError("Gemini API error: 403 PERMISSION_DENIED", status_code=403, status="PERMISSION_DENIED"),
        ServiceCallError("Gemini API error: 401", status_code=401),
        ServiceCallError("Requested entity was not found.", status_code=404, status="NOT_FOUND"),
        ServiceCallError("API key not valid: no Gemini API key selected"),
        # credential text wins over the transient "500" signature
        ServiceCallError("500 API_KEY_INVALID"),
    ],
)
def test_authorization_signatures(error):
    """Test errors classified as authorization failures."""
    assert classify_failure(error, RetryConfig()) is FailureKind.AUTHORIZATION


@pytest.mark.parametrize(
    "error",
    [
        ServiceCallError("Gemini API error: 500 INTERNAL", status_code=500, status="INTERNAL"),
        ServiceCallError("Gemini API error: 503", status_code=503),
        ServiceCallError("Gemini API error: 429 RESOURCE_EXHAUSTED", status_code=429, status="RESOURCE_EXHAUSTED"),
        ServiceCallError("something odd", status="UNKNOWN"),
        ServiceCallError("Network error calling Gemini", transport=True),
        RuntimeError("Rpc failed due to xhr error"),
        RuntimeError("TypeError: Failed to fetch"),
        httpx.ReadTimeout("read timed out"),
    ],
)
def test_transient_signatures(error):
    """Test errors classified as transient failures."""
    assert classify_failure(error, RetryConfig()) is FailureKind.TRANSIENT


@pytest.mark.parametrize(
    "error",
    [
        ServiceCallError("Gemini API error: 400 INVALID_ARGUMENT", status_code=400, status="INVALID_ARGUMENT"),
        ServiceCallError("Gemini API error: 404 NOT_FOUND - model gemini-x is not found", status_code=404, status="NOT_FOUND"),
        KeyError("candidates"),
    ],
)
def test_unclassified_failures(error):
    """Test errors that match no failure signature."""
    assert classify_failure(error, RetryConfig()) is FailureKind.UNCLASSIFIED


def test_signatures_match_whole_words_only():
    """Test that a number merely containing a signature is not retryable."""
    config = RetryConfig()

    assert (
        classify_failure(ServiceCallError("Prompt of 1500 tokens exceeds the limit", status_code=400), config)
        is FailureKind.UNCLASSIFIED
    )
    assert classify_failure(RuntimeError("Rpc failed, error code: 500"), config) is FailureKind.TRANSIENT
    assert classify_failure(RuntimeError("prefetch cache miss"), config) is FailureKind.UNCLASSIFIED


def test_signature_tables_are_configurable():
    """Test overriding the transient signature table."""
    config = RetryConfig(transient_signatures=["model is overloaded"])
    error = ServiceCallError("The model is overloaded. Please try again later.", status_code=400)

    assert classify_failure(error, config) is FailureKind.TRANSIENT
    assert classify_failure(ServiceCallError("network down"), config) is FailureKind.UNCLASSIFIED


def test_state_transitions():
    """Test the retry state machine transitions one step at a time."""
    config = RetryConfig(max_attempts=2, initial_delay=3.0)

    state = start(config)
    assert state.phase is RetryPhase.ATTEMPTING
    assert state.attempts_made == 0

    state = on_failure(state, FailureKind.TRANSIENT, config)
    assert state.phase is RetryPhase.WAITING
    assert state.attempts_made == 1

    state = on_wait_elapsed(state, config)
    assert state.phase is RetryPhase.ATTEMPTING
    assert state.current_delay == 6.0

    failed = on_failure(state, FailureKind.TRANSIENT, config)
    assert failed.phase is RetryPhase.FAILED
    assert failed.failure is FailureKind.TRANSIENT
    assert failed.finished

    succeeded = on_success(state)
    assert succeeded.phase is RetryPhase.SUCCEEDED
    assert succeeded.attempts_made == 2


def test_non_transient_failure_ends_even_with_attempts_left():
    """Test that non-transient failures end the invocation at once."""
    config = RetryConfig(max_attempts=5)

    state = on_failure(start(config), FailureKind.AUTHORIZATION, config)

    assert state.phase is RetryPhase.FAILED
    assert state.failure is FailureKind.AUTHORIZATION
