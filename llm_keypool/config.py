# llm_keypool/config.py
"""
RouterConfig and related sub-configs.

Supports construction from:
  - Python dict   → RouterConfig.from_dict(data)
  - YAML file     → RouterConfig.from_yaml("router.yaml")
  - Environment   → RouterConfig.from_env()
"""

from __future__ import annotations

import os
import re
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field, SecretStr

from .constants import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_SUMMARY_THRESHOLD,
    ENV_PREFIX,
    KNOWN_PROVIDERS,
    MAX_ENV_KEYS_PER_PROVIDER,
    RATE_LIMIT_COOLDOWN_SECONDS,
)


class RotationStrategy(str, Enum):
    """How a credential is picked from its bucket."""

    ROUND_ROBIN = "round-robin"
    LEAST_USED = "least-used"
    RANDOM = "random"


class CompressionStrategy(str, Enum):
    """How an over-budget message history is shrunk."""

    TRUNCATE = "truncate"
    SUMMARIZE = "summarize"
    HYBRID = "hybrid"


class CompressionConfig(BaseModel):
    """
    Token budget for outgoing message histories.

    summary_threshold is expected to be <= max_tokens; this is the caller's
    responsibility and is not validated.
    """

    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=0)
    summary_threshold: int = Field(default=DEFAULT_SUMMARY_THRESHOLD, ge=0)
    compression_strategy: CompressionStrategy = CompressionStrategy.HYBRID


class CredentialConfig(BaseModel):
    """A credential declared in configuration rather than registered at runtime."""

    provider: str
    model: str
    secret: SecretStr
    id: str | None = None


class RouterConfig(BaseModel):
    """
    Top-level configuration for the Router.

    Instantiate directly or use one of the factory class methods:
      RouterConfig.from_dict(data)
      RouterConfig.from_yaml(path)
      RouterConfig.from_env()
    """

    model_config = {"arbitrary_types_allowed": True}

    rotation_strategy: RotationStrategy = RotationStrategy.ROUND_ROBIN
    message_compression: CompressionConfig = Field(default_factory=CompressionConfig)
    fallback_enabled: bool = Field(
        default=True,
        description="Retry through the pool when a provider reports a rate limit.",
    )
    retry_attempts: int = Field(
        default=DEFAULT_RETRY_ATTEMPTS,
        ge=0,
        description="Extra attempts after the first. Total attempts = retry_attempts + 1.",
    )
    rate_limit_cooldown_seconds: float = Field(
        default=RATE_LIMIT_COOLDOWN_SECONDS,
        ge=0,
        description="Cooldown stamped on a credential after a rate-limited attempt.",
    )
    skip_rate_limited: bool = Field(
        default=False,
        description=(
            "Exclude credentials whose rate_limit_reset_at is in the future from selection. "
            "Off by default: a just-rate-limited credential may be picked again on retry."
        ),
    )
    request_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Per-attempt provider call timeout. A timeout is a terminal failure.",
    )
    credentials: list[CredentialConfig] = Field(default_factory=list)
    on_route: Callable | None = Field(
        default=None,
        description="Optional async callback fired after every routing outcome. Receives a RouteEvent.",
        exclude=True,
    )

    # ------------------------------------------------------------------
    # Factory methods
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> "RouterConfig":
        """Build config from a plain Python dictionary."""
        merged = {**data, **kwargs}
        return cls.model_validate(merged)

    @classmethod
    def from_yaml(cls, path: str, **kwargs: Any) -> "RouterConfig":
        """
        Build config from a YAML file.

        Environment variable interpolation is supported:
          secret: "${OPENAI_API_KEY_1}"
        """
        import yaml

        with open(path) as f:
            raw = f.read()

        def _replace(match: re.Match) -> str:  # type: ignore[type-arg]
            var = match.group(1)
            value = os.environ.get(var)
            if value is None:
                raise EnvironmentError(
                    f"Environment variable '{var}' referenced in '{path}' is not set."
                )
            return value

        raw = re.sub(r"\$\{([^}]+)\}", _replace, raw)
        data = yaml.safe_load(raw) or {}
        return cls.from_dict(data, **kwargs)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "RouterConfig":
        """
        Build a config from environment variables.

        Credentials are read from numbered keys for each known provider:
          OPENAI_API_KEY_1 .. OPENAI_API_KEY_9       → openai/gpt-4o
          ANTHROPIC_API_KEY_1 .. ANTHROPIC_API_KEY_9 → anthropic/claude-sonnet-4-5
          GEMINI_API_KEY_N, GROQ_API_KEY_N           → likewise

        Optional overrides:
          LLM_KEYPOOL_ROTATION_STRATEGY → rotation_strategy
          LLM_KEYPOOL_RETRY_ATTEMPTS    → retry_attempts
          LLM_KEYPOOL_FALLBACK_ENABLED  → fallback_enabled ("true"/"false")
        """
        credentials: list[dict[str, Any]] = []
        for provider, model in KNOWN_PROVIDERS.items():
            for n in range(1, MAX_ENV_KEYS_PER_PROVIDER + 1):
                secret = os.environ.get(f"{provider.upper()}_API_KEY_{n}")
                if secret:
                    credentials.append(
                        {
                            "id": f"{provider}-{n}",
                            "provider": provider,
                            "model": model,
                            "secret": secret,
                        }
                    )

        data: dict[str, Any] = {"credentials": credentials}

        strategy = os.environ.get(f"{ENV_PREFIX}ROTATION_STRATEGY")
        if strategy:
            data["rotation_strategy"] = strategy

        retries = os.environ.get(f"{ENV_PREFIX}RETRY_ATTEMPTS")
        if retries:
            data["retry_attempts"] = int(retries)

        fallback = os.environ.get(f"{ENV_PREFIX}FALLBACK_ENABLED")
        if fallback:
            data["fallback_enabled"] = fallback.strip().lower() in ("1", "true", "yes", "on")

        data.update(kwargs)
        return cls.from_dict(data)
