# llm_keypool/dispatcher.py
"""
Dispatcher — runs one logical request through the pool.

State machine
-------------
  Compressing → SelectingCredential → Invoking → Success
                       ↑                  │
                       └── RateLimited ←──┤
                                          └→ TerminalFailure

  1. Compress the history once.
  2. Select a credential from the whole bucket with the configured
     strategy. A credential rate limited on the previous attempt may be
     picked again unless skip_rate_limited is set.
  3. No credential → NoCredentialAvailable, never retried.
  4. Invoke the provider with the compressed messages.
  5. Error text containing the rate-limit marker while fallback is enabled
     → stamp the credential with a fixed cooldown and loop, up to
     retry_attempts + 1 attempts in total.
  6. Any other error, a timeout, or a rate limit with fallback disabled is
     terminal. Running out of attempts raises RetryBudgetExhausted.

Every terminal outcome, success or failure, is recorded exactly once in
the MetricsCollector and returned as a RoutingResult. Nothing raised by the
provider escapes run().
"""

from __future__ import annotations

import asyncio
import logging

from .config import RouterConfig
from .constants import RATE_LIMIT_MARKER
from .engine.compressor import ContextCompressor
from .exceptions import (
    KeyPoolError,
    NoCredentialAvailable,
    ProviderError,
    ProviderTimeout,
    RateLimited,
    RetryBudgetExhausted,
)
from .metrics.collector import MetricsCollector
from .models import (
    CompressedContext,
    Credential,
    Message,
    ProviderReply,
    RouteEvent,
    RoutingRequest,
    RoutingResult,
)
from .pool.credentials import CredentialPool
from .providers.base import BaseProvider
from .providers.registry import ProviderRegistry

logger = logging.getLogger("llm_keypool")


def is_rate_limit_error(message: str | None) -> bool:
    """Substring heuristic. The only rate-limit signal the router understands."""
    return bool(message) and RATE_LIMIT_MARKER in message  # type: ignore[operator]


class _Flow:
    """Mutable bookkeeping for one run()."""

    def __init__(self) -> None:
        self.attempts = 0
        self.rate_limit_hits = 0
        self.credential: Credential | None = None
        self.context: CompressedContext | None = None


class Dispatcher:
    """
    Orchestrates compress → select → invoke → retry → record.

    Parameters
    ----------
    pool:
        Credential pool shared with the owning Router.
    metrics:
        Collector receiving every terminal outcome.
    providers:
        Adapter registry used to reach the external provider.
    """

    def __init__(
        self,
        pool: CredentialPool,
        metrics: MetricsCollector,
        providers: ProviderRegistry,
    ) -> None:
        self._pool = pool
        self._metrics = metrics
        self._providers = providers

    async def run(self, request: RoutingRequest, config: RouterConfig) -> RoutingResult:
        """Route *request* under *config*. Never raises for routing failures."""
        flow = _Flow()
        try:
            reply, credential, context = await self._attempt_loop(request, config, flow)
        except KeyPoolError as exc:
            result = self._failure(request, flow, str(exc), exc)
        except Exception as exc:  # anything raised outside the provider call
            logger.exception("Unexpected error while routing %s/%s", request.provider, request.model)
            result = self._failure(request, flow, str(exc), ProviderError(str(exc)))
        else:
            result = RoutingResult(
                success=True,
                provider=request.provider,
                model=request.model,
                content=reply.content,
                token_count=reply.token_count,
                estimated_token_count=context.estimated_token_count,
                credential_id=credential.id,
                attempts=flow.attempts,
                rate_limit_hits=flow.rate_limit_hits,
            )
            logger.info(
                "Routed %s/%s with credential %s (attempts=%d)",
                request.provider,
                request.model,
                credential.id,
                flow.attempts,
            )

        await self._metrics.record(result)
        await self._fire_on_route(result, config)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _attempt_loop(
        self, request: RoutingRequest, config: RouterConfig, flow: _Flow
    ) -> tuple[ProviderReply, Credential, CompressedContext]:
        context = ContextCompressor(config.message_compression).compress(request.messages)
        flow.context = context
        messages = context.compressed_messages
        adapter = self._providers.get(request.provider)
        last_error: str | None = None

        while flow.attempts < config.retry_attempts + 1:
            credential = await self._pool.select(
                request.provider,
                request.model,
                config.rotation_strategy,
                skip_rate_limited=config.skip_rate_limited,
            )
            if credential is None:
                raise NoCredentialAvailable(request.provider, request.model, last_error)
            flow.credential = credential
            flow.attempts += 1

            try:
                logger.debug("Using credential %s for request", credential.id)
                reply = await self._invoke(adapter, credential, messages, config)
            except ProviderTimeout:
                raise
            except Exception as exc:
                last_error = str(exc)
                if not is_rate_limit_error(last_error):
                    logger.error("Request failed with credential %s: %s", credential.id, last_error)
                    raise ProviderError(last_error) from exc

                flow.rate_limit_hits += 1
                if not config.fallback_enabled:
                    logger.warning("Credential %s rate limited; fallback disabled", credential.id)
                    raise RateLimited(last_error) from exc

                await self._pool.mark_rate_limited(credential, config.rate_limit_cooldown_seconds)
                logger.warning(
                    "Credential %s rate limited (attempt %d/%d); cooling down for %ss",
                    credential.id,
                    flow.attempts,
                    config.retry_attempts + 1,
                    config.rate_limit_cooldown_seconds,
                )
            else:
                return reply, credential, context

        raise RetryBudgetExhausted(flow.attempts, last_error)

    async def _invoke(
        self,
        adapter: BaseProvider,
        credential: Credential,
        messages: list[Message],
        config: RouterConfig,
    ) -> ProviderReply:
        timeout = config.request_timeout_seconds
        if timeout is None:
            return await adapter.invoke(credential, messages)
        try:
            return await asyncio.wait_for(adapter.invoke(credential, messages), timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderTimeout(credential.id, timeout) from exc

    def _failure(
        self,
        request: RoutingRequest,
        flow: _Flow,
        message: str,
        exc: KeyPoolError,
    ) -> RoutingResult:
        logger.info(
            "Routing %s/%s failed (%s): %s", request.provider, request.model, exc.kind.value, message
        )
        return RoutingResult(
            success=False,
            provider=request.provider,
            model=request.model,
            error=message,
            failure=exc.kind,
            estimated_token_count=flow.context.estimated_token_count if flow.context else None,
            credential_id=flow.credential.id if flow.credential else None,
            attempts=flow.attempts,
            rate_limit_hits=flow.rate_limit_hits,
        )

    async def _fire_on_route(self, result: RoutingResult, config: RouterConfig) -> None:
        if not config.on_route:
            return
        event = RouteEvent(
            provider=result.provider,
            model=result.model,
            success=result.success,
            credential_id=result.credential_id,
            attempts=result.attempts,
            rate_limit_hits=result.rate_limit_hits,
            failure=result.failure,
            estimated_token_count=result.estimated_token_count,
        )
        try:
            await config.on_route(event)
        except Exception:
            # Callback errors must not affect routing
            logger.exception("on_route callback failed")
