# llm_keypool/router.py
"""
Router — the primary class the developer interacts with.

Owns one CredentialPool, one MetricsCollector and one ProviderRegistry,
built from a RouterConfig. There is no module-level state: two Router
instances never share credentials or counters.

Typical use:

    router = Router.from_dict({"rotation_strategy": "least-used"}, provider=call_llm)
    await router.register_credential("openai", "gpt-4", "sk-...")
    result = await router.route({"provider": "openai", "model": "gpt-4", "messages": [...]})
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Callable

from pydantic import ValidationError

from .config import RouterConfig
from .dispatcher import Dispatcher
from .exceptions import FailureKind
from .metrics.collector import MetricsCollector
from .models import Credential, CredentialView, ProviderMetrics, RoutingRequest, RoutingResult
from .pool.credentials import CredentialPool
from .pool.selector import Selector
from .providers.base import BaseProvider
from .providers.registry import ProviderRegistry

logger = logging.getLogger("llm_keypool")


class Router:
    """
    Credential-pooling LLM request router.

    Parameters
    ----------
    config:
        Full router configuration. Use one of the factory class methods
        (from_dict, from_yaml, from_env) for convenient construction.
    provider:
        Default collaborator that performs the provider call. Either a
        BaseProvider or an async callable ``(credential, messages)``.
        Defaults to a SimulatedProvider.
    clock:
        Epoch-seconds clock used for last_used_at and rate-limit cooldowns.
    rng:
        Random source for the random rotation strategy.
    """

    def __init__(
        self,
        config: RouterConfig | None = None,
        provider: BaseProvider | Callable | None = None,
        *,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or RouterConfig()
        self._pool = CredentialPool(selector=Selector(rng), clock=clock)
        self._metrics = MetricsCollector()
        self._providers = ProviderRegistry()
        if provider is not None:
            self._providers.set_default(provider)
        self._dispatcher = Dispatcher(self._pool, self._metrics, self._providers)
        self._initialized = False
        self._init_lock = asyncio.Lock()
        logger.info(
            "Router initialised (rotation=%s, compression=%s, fallback=%s, retries=%d)",
            self._config.rotation_strategy.value,
            self._config.message_compression.compression_strategy.value,
            self._config.fallback_enabled,
            self._config.retry_attempts,
        )

    # ------------------------------------------------------------------
    # Factory methods
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> "Router":
        """Construct from a plain Python dictionary."""
        provider = kwargs.pop("provider", None)
        on_route = kwargs.pop("on_route", None)
        cfg = RouterConfig.from_dict(data)
        if on_route is not None:
            cfg = cfg.model_copy(update={"on_route": on_route})
        return cls(cfg, provider, **kwargs)

    @classmethod
    def from_yaml(cls, path: str, **kwargs: Any) -> "Router":
        """Construct from a YAML config file."""
        provider = kwargs.pop("provider", None)
        on_route = kwargs.pop("on_route", None)
        cfg = RouterConfig.from_yaml(path)
        if on_route is not None:
            cfg = cfg.model_copy(update={"on_route": on_route})
        return cls(cfg, provider, **kwargs)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "Router":
        """Construct from environment variables."""
        provider = kwargs.pop("provider", None)
        on_route = kwargs.pop("on_route", None)
        cfg = RouterConfig.from_env()
        if on_route is not None:
            cfg = cfg.model_copy(update={"on_route": on_route})
        return cls(cfg, provider, **kwargs)

    # ------------------------------------------------------------------
    # Lazy async initialisation
    # ------------------------------------------------------------------

    async def _ensure_initialized(self) -> None:
        """Register credentials declared in the config on first use."""
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            for cred in self._config.credentials:
                await self.register_credential(
                    cred.provider,
                    cred.model,
                    cred.secret.get_secret_value(),
                    credential_id=cred.id,
                )
            self._initialized = True

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register_credential(
        self,
        provider: str,
        model: str,
        secret: str,
        credential_id: str | None = None,
    ) -> None:
        """
        Add a credential to the (provider, model) bucket.

        Parameters
        ----------
        provider, model:
            Bucket key.
        secret:
            API key or other opaque secret handle.
        credential_id:
            Identifier used in logs, results and snapshots. Defaults to
            ``"{provider}-{n}"`` where n is the credential's 1-based
            position in its bucket. Duplicates are not rejected.
        """
        if credential_id is None:
            credential_id = f"{provider}-{self._pool.bucket_size(provider, model) + 1}"
        await self._pool.add_credential(
            Credential(id=credential_id, provider=provider, model=model, secret=secret)
        )

    def register_provider(self, name: str, adapter: BaseProvider | Callable) -> None:
        """Use *adapter* for every request whose provider is *name*."""
        self._providers.register(name, adapter)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def route(self, request: RoutingRequest | dict[str, Any]) -> RoutingResult:
        """
        Route one request through the pool.

        Never raises: every outcome, including an unknown (provider, model)
        or a request dict that fails validation, comes back as a
        RoutingResult and is recorded in the metrics.
        """
        await self._ensure_initialized()
        if not isinstance(request, RoutingRequest):
            try:
                request = RoutingRequest.model_validate(request)
            except ValidationError as exc:
                return await self._reject(request, exc)
        return await self._dispatcher.run(request, self._config)

    async def _reject(self, raw: Any, exc: ValidationError) -> RoutingResult:
        """Turn an invalid request into a recorded provider_error result."""
        fields = raw if isinstance(raw, dict) else {}
        provider = fields.get("provider")
        model = fields.get("model")
        result = RoutingResult(
            success=False,
            provider=provider if isinstance(provider, str) else "",
            model=model if isinstance(model, str) else "",
            error=str(exc),
            failure=FailureKind.PROVIDER_ERROR,
        )
        logger.warning("Rejected invalid routing request: %s", exc.errors(include_url=False))
        await self._metrics.record(result)
        return result

    async def get_metrics(self) -> dict[str, dict[str, ProviderMetrics]]:
        """Return {provider: {model: ProviderMetrics}} copies."""
        return self._metrics.snapshot()

    async def get_aggregate_metrics(self) -> ProviderMetrics:
        """Return the counters summed across every (provider, model)."""
        return self._metrics.aggregate()

    async def get_pool_snapshot(self) -> dict[str, dict[str, list[CredentialView]]]:
        """Return ids, usage counts and last-used times per bucket. No secrets."""
        await self._ensure_initialized()
        return self._pool.snapshot()

    @property
    def config(self) -> RouterConfig:
        return self._config

    def update_config(self, **changes: Any) -> RouterConfig:
        """
        Apply a partial configuration update and return the new config.

        Nested ``message_compression`` dicts are merged field by field. The
        update is validated as a whole; on error the current config is kept.
        Credentials listed in the update are not registered; use
        register_credential() for that.
        """
        data = self._config.model_dump(exclude={"credentials"})
        compression = changes.pop("message_compression", None)
        if compression is not None:
            if hasattr(compression, "model_dump"):
                compression = compression.model_dump()
            data["message_compression"] = {**data["message_compression"], **compression}
        data.update(changes)
        data["credentials"] = self._config.credentials
        data.setdefault("on_route", self._config.on_route)
        self._config = RouterConfig.model_validate(data)
        logger.info("Router configuration updated")
        return self._config

    async def close(self) -> None:
        """Release all provider adapter resources."""
        await self._providers.close_all()

    async def __aenter__(self) -> "Router":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
