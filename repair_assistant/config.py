"""Configuration module for the Gemini connection, retry policy and session.

This module defines the configuration structures for the repair assistant.
Values default to environment variables so the same code runs unchanged on a
technician's laptop and in a shared deployment, and every table used to
classify service failures can be overridden without touching the invoker.
"""

import os
from typing import List

from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """Configuration for the Gemini model used for analysis.

    Attributes:
        model: Gemini model identifier used for generateContent calls.
        api_base: Base URL of the Generative Language REST API.
        temperature: Sampling temperature for responses (0.0-1.0).
        max_output_tokens: Maximum tokens generated per request.
        timeout: Request timeout in seconds for a single call.
        web_search: Whether Google Search grounding is enabled.
        response_language: Language the repair report is written in.
    """

    model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    api_base: str = os.getenv(
        "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
    )
    temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.4"))
    max_output_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "4096"))
    timeout: float = float(os.getenv("LLM_TIMEOUT", "120.0"))
    web_search: bool = True
    response_language: str = os.getenv("REPAIR_LANGUAGE", "Chinese (Simplified)")


class RetryConfig(BaseModel):
    """Backoff policy and failure signatures for the resilient invoker.

    The signature tables are matched case-insensitively against whole words
    of the error message, so "500" matches "error code: 500" but not
    "1500 tokens". They reflect the error text the Generative Language API
    and httpx actually produce and are meant to be tuned when that text
    changes.

    Attributes:
        max_attempts: Total number of attempts, including the first one.
        initial_delay: Seconds to wait before the first retry.
        backoff_multiplier: Factor applied to the delay after each wait.
        jitter: Fraction of the current delay added at random to each wait.
        auth_status_codes: HTTP codes that mean the credential is bad.
        auth_statuses: RPC status names that mean the credential is bad.
        auth_signatures: Message fragments that mean the credential is bad.
        transient_status_codes: HTTP codes below 500 that are still retryable.
        transient_statuses: RPC status names that are retryable.
        transient_signatures: Message fragments that are retryable.
    """

    max_attempts: int = Field(
        default=int(os.getenv("REPAIR_MAX_ATTEMPTS", "4")), ge=1
    )
    initial_delay: float = Field(
        default=float(os.getenv("REPAIR_INITIAL_DELAY", "2.0")), ge=0.0
    )
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    jitter: float = Field(default=0.0, ge=0.0)

    auth_status_codes: List[int] = [401, 403]
    auth_statuses: List[str] = ["UNAUTHENTICATED", "PERMISSION_DENIED"]
    auth_signatures: List[str] = [
        "API key not valid",
        "API_KEY_INVALID",
        "Requested entity was not found",
        "PERMISSION_DENIED",
        "UNAUTHENTICATED",
    ]

    transient_status_codes: List[int] = [429]
    transient_statuses: List[str] = [
        "UNKNOWN",
        "UNAVAILABLE",
        "INTERNAL",
        "DEADLINE_EXCEEDED",
        "RESOURCE_EXHAUSTED",
    ]
    transient_signatures: List[str] = [
        "Rpc failed",
        "xhr error",
        "500",
        "fetch",
        "network",
        "timed out",
    ]


class AssistantConfig(BaseModel):
    """Top-level configuration for a repair assistant session.

    Attributes:
        llm: Gemini model settings.
        retry: Retry policy for the outbound analysis call.
        require_credentials: Refuse to submit when no API key is selected.
        log_level: Root logging level applied by the CLI.
    """

    llm: LLMConfig = LLMConfig()
    retry: RetryConfig = RetryConfig()
    require_credentials: bool = True
    log_level: str = os.getenv("REPAIR_LOG_LEVEL", "WARNING")
