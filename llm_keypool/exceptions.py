# llm_keypool/exceptions.py
"""
Custom exceptions for llm-keypool.

All public exceptions inherit from KeyPoolError so callers can catch
the whole family with a single except clause if preferred.

Routing failures are raised *inside* the Dispatcher and converted into a
RoutingResult at the Router.route() boundary; they never reach the caller
as exceptions. Each one carries the FailureKind it maps to.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Classification attached to every unsuccessful RoutingResult."""

    NO_CREDENTIAL = "no_credential_available"
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"
    RETRY_BUDGET_EXHAUSTED = "retry_budget_exhausted"
    TIMEOUT = "timeout"


class KeyPoolError(Exception):
    """Base exception for all llm-keypool errors."""

    kind: FailureKind = FailureKind.PROVIDER_ERROR


class NoCredentialAvailable(KeyPoolError):
    """Raised when a (provider, model) bucket is missing or has nothing eligible."""

    kind = FailureKind.NO_CREDENTIAL

    def __init__(self, provider: str, model: str, last_error: str | None = None) -> None:
        self.provider = provider
        self.model = model
        self.last_error = last_error
        message = f"No API key available for {provider}/{model}"
        if last_error:
            message = f"{message}. Last error: {last_error}"
        super().__init__(message)


class RateLimited(KeyPoolError):
    """
    A provider failure whose message contains the rate-limit marker, raised
    when fallback is disabled so the attempt cannot be retried.
    """

    kind = FailureKind.RATE_LIMITED


class ProviderError(KeyPoolError):
    """Any other collaborator failure. Never retried."""

    kind = FailureKind.PROVIDER_ERROR


class ProviderTimeout(KeyPoolError):
    """Raised when a provider call exceeds request_timeout_seconds."""

    kind = FailureKind.TIMEOUT

    def __init__(self, credential_id: str, timeout: float) -> None:
        self.credential_id = credential_id
        self.timeout = timeout
        super().__init__(
            f"Provider call with credential '{credential_id}' timed out after {timeout}s"
        )


class RetryBudgetExhausted(KeyPoolError):
    """
    Raised when every allowed attempt hit a rate limit.

    Attributes
    ----------
    attempts:
        Number of attempts that were made.
    last_error:
        Error text of the final attempt.
    """

    kind = FailureKind.RETRY_BUDGET_EXHAUSTED

    def __init__(self, attempts: int, last_error: str | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Max retry attempts reached. Last error: {last_error}")
