"""Resilient invocation of the analysis service.

Wraps exactly one logical call to the analysis service with failure
classification and bounded exponential backoff. Progress through a call is
modelled as a small state machine (``RetryState``) whose transitions are pure
functions; ``ResilientInvoker`` only drives it, performing the call in the
ATTEMPTING phase and the sleep in the WAITING phase.

Failures are classified in precedence order:

1. AUTHORIZATION - bad or missing credential. Surfaced at once, never retried.
2. TRANSIENT - transport errors, 5xx/429, recognizable network text. Retried.
3. UNCLASSIFIED - anything else. Surfaced at once.
"""

import asyncio
import logging
import random
import re
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict

from .config import RetryConfig
from .errors import (
    AuthorizationError,
    MaxRetriesExceededError,
    ServiceError,
    UnclassifiedServiceError,
)

logger = logging.getLogger("repair-assistant.invoker")

T = TypeVar("T")


class FailureKind(Enum):
    AUTHORIZATION = "authorization"
    TRANSIENT = "transient"
    UNCLASSIFIED = "unclassified"


class RetryPhase(Enum):
    ATTEMPTING = "attempting"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RetryState(BaseModel):
    """Progress of one invocation.

    Attributes:
        phase: Current phase of the invocation.
        attempts_made: Attempts completed so far.
        current_delay: Seconds to wait on the next WAITING phase.
        failure: Kind of the failure that ended the invocation, if any.
    """

    model_config = ConfigDict(frozen=True)

    phase: RetryPhase = RetryPhase.ATTEMPTING
    attempts_made: int = 0
    current_delay: float
    failure: Optional[FailureKind] = None

    @property
    def finished(self) -> bool:
        return self.phase in (RetryPhase.SUCCEEDED, RetryPhase.FAILED)


def start(config: RetryConfig) -> RetryState:
    return RetryState(current_delay=config.initial_delay)


def on_success(state: RetryState) -> RetryState:
    return state.model_copy(
        update={"phase": RetryPhase.SUCCEEDED, "attempts_made": state.attempts_made + 1}
    )


def on_failure(state: RetryState, kind: FailureKind, config: RetryConfig) -> RetryState:
    """Transition after a failed attempt.

    Only a transient failure with attempts left leads to WAITING; every other
    combination ends the invocation.
    """
    attempts = state.attempts_made + 1
    if kind is FailureKind.TRANSIENT and attempts < config.max_attempts:
        return state.model_copy(
            update={"phase": RetryPhase.WAITING, "attempts_made": attempts}
        )
    return state.model_copy(
        update={"phase": RetryPhase.FAILED, "attempts_made": attempts, "failure": kind}
    )


def on_wait_elapsed(state: RetryState, config: RetryConfig) -> RetryState:
    return state.model_copy(
        update={
            "phase": RetryPhase.ATTEMPTING,
            "current_delay": state.current_delay * config.backoff_multiplier,
        }
    )


def _contains_any(message: str, signatures) -> bool:
    return any(
        re.search(rf"\b{re.escape(signature.lower())}\b", message)
        for signature in signatures
    )


def classify_failure(error: BaseException, config: RetryConfig) -> FailureKind:
    """Classify an exception raised by the analysis call.

    Looks at ``status_code`` / ``status`` / ``transport`` attributes when the
    error carries them (``ServiceCallError`` does) and at the message text.
    """
    status_code = getattr(error, "status_code", None)
    status = (getattr(error, "status", None) or "").upper()
    message = str(error).lower()

    if (
        status_code in config.auth_status_codes
        or status in config.auth_statuses
        or _contains_any(message, config.auth_signatures)
    ):
        return FailureKind.AUTHORIZATION

    if (
        isinstance(error, (httpx.TransportError, asyncio.TimeoutError))
        or getattr(error, "transport", False)
        or (isinstance(status_code, int) and status_code >= 500)
        or status_code in config.transient_status_codes
        or status in config.transient_statuses
        or _contains_any(message, config.transient_signatures)
    ):
        return FailureKind.TRANSIENT

    return FailureKind.UNCLASSIFIED


class ResilientInvoker:
    """Executes one analysis call with classification-aware retries.

    No state is kept between ``invoke`` calls; each one starts a fresh
    ``RetryState``.

    Attributes:
        config: Backoff policy and failure signature tables.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep

    def _wait_time(self, delay: float) -> float:
        if self.config.jitter > 0:
            return delay + random.uniform(0, delay * self.config.jitter)
        return delay

    async def invoke(self, call: Callable[[], Awaitable[T]]) -> T:
        """Run ``call`` until it succeeds or the policy gives up.

        Args:
            call: Zero-argument factory returning a fresh awaitable per attempt.

        Returns:
            Whatever ``call`` returns on its first successful attempt.

        Raises:
            AuthorizationError: The credential was rejected.
            MaxRetriesExceededError: Every attempt failed transiently.
            UnclassifiedServiceError: Any other failure.
        """
        state = start(self.config)
        last_error: Optional[BaseException] = None
        result = None

        while not state.finished:
            if state.phase is RetryPhase.WAITING:
                wait = self._wait_time(state.current_delay)
                logger.warning(
                    f"Analysis attempt {state.attempts_made} failed (transient): "
                    f"{last_error}. Retrying in {wait:.1f}s..."
                )
                await self._sleep(wait)
                state = on_wait_elapsed(state, self.config)
                continue

            try:
                result = await call()
            except ServiceError:
                raise
            except Exception as e:
                last_error = e
                state = on_failure(state, classify_failure(e, self.config), self.config)
            else:
                state = on_success(state)

        if state.phase is RetryPhase.SUCCEEDED:
            if state.attempts_made > 1:
                logger.info(f"Analysis succeeded after {state.attempts_made} attempts")
            return result

        raise self._final_error(state, last_error) from last_error

    def _final_error(self, state: RetryState, error: Optional[BaseException]) -> ServiceError:
        attempts = state.attempts_made
        if state.failure is FailureKind.AUTHORIZATION:
            logger.error(f"Analysis rejected, credential invalid: {error}")
            return AuthorizationError(
                f"API key rejected or missing permission: {error}", attempts=attempts
            )
        if state.failure is FailureKind.TRANSIENT:
            logger.error(f"Analysis failed after {attempts} attempts: {error}")
            return MaxRetriesExceededError(
                f"Max retries reached ({attempts} attempts), last error: {error}",
                attempts=attempts,
            )
        logger.error(f"Analysis failed: {error}")
        return UnclassifiedServiceError(f"Analysis failed: {error}", attempts=attempts)
