# llm_keypool/models.py
"""
Pydantic v2 data models used throughout llm-keypool.

These are part of the public API surface — changes here require a major
version bump once the library reaches 1.0.
"""

from __future__ import annotations

import time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from .exceptions import FailureKind


class Message(BaseModel):
    """A single chat message. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str
    kind: Literal["message", "system"] = Field(
        default="message",
        description="'system' for injected/synthetic messages, 'message' otherwise.",
    )


class Credential(BaseModel):
    """
    One API key bound to a (provider, model) pair.

    Owned by its bucket in the CredentialPool. Only the pool mutates
    usage_count, last_used_at and rate_limit_reset_at.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str
    provider: str
    model: str
    secret: SecretStr = Field(..., description="Opaque secret handle. Never logged or rendered.")
    usage_count: int = Field(default=0, ge=0)
    last_used_at: float | None = Field(default=None, description="Epoch seconds of last selection.")
    rate_limit_reset_at: float | None = Field(
        default=None,
        description="Epoch seconds until which the credential is considered rate limited.",
    )

    def is_cooling_down(self, now: float) -> bool:
        return self.rate_limit_reset_at is not None and self.rate_limit_reset_at > now


class CredentialView(BaseModel):
    """Diagnostic projection of a Credential. Deliberately excludes the secret."""

    id: str
    usage_count: int
    last_used_at: float | None


class CompressedContext(BaseModel):
    """Result of running a message history through the ContextCompressor."""

    original_messages: list[Message]
    compressed_messages: list[Message]
    summary: str | None = None
    estimated_token_count: float


class ProviderReply(BaseModel):
    """What a provider collaborator returns on success."""

    content: str
    token_count: float | None = None


class RoutingRequest(BaseModel):
    """A routing request submitted by the caller."""

    provider: str = Field(..., description="Provider identifier, e.g. 'openai'.")
    model: str = Field(..., description="Model identifier, e.g. 'gpt-4'.")
    messages: list[Message] = Field(..., description="Ordered conversation history.")
    metadata: dict[str, Any] = Field(default_factory=dict)


class RoutingResult(BaseModel):
    """
    Normalised outcome of one Router.route() call. Exactly one per call.
    """

    success: bool
    provider: str
    model: str
    content: str | None = None
    error: str | None = None
    failure: FailureKind | None = Field(default=None, description="Set only when success is False.")
    token_count: float | None = Field(default=None, description="Tokens reported by the provider.")
    estimated_token_count: float | None = Field(
        default=None,
        description="Estimate over the compressed messages actually sent.",
    )
    credential_id: str | None = None
    attempts: int = 0
    rate_limit_hits: int = Field(default=0, description="Rate-limited attempts seen in this flow.")


class ProviderMetrics(BaseModel):
    """Monotonic counters for one (provider, model) pair."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_tokens_used: float = 0
    rate_limit_hits: int = 0


class RouteEvent(BaseModel):
    """
    Fired after every terminal routing outcome via the optional on_route callback.
    Developers can forward this to Datadog, Sentry, Slack, or any internal system.
    """

    provider: str
    model: str
    success: bool
    credential_id: str | None
    attempts: int
    rate_limit_hits: int
    failure: FailureKind | None
    estimated_token_count: float | None
    timestamp: float = Field(default_factory=time.time)
