# tests/test_router.py
"""
Integration tests for Router and the Dispatcher retry loop.

Uses scripted in-memory providers so no real API calls are made. Tests cover:
  - Round-robin rotation across successful requests.
  - Rate-limit retry with fixed cooldown and bounded attempts.
  - Terminal failures: provider error, no credential, timeout.
  - Metrics recorded exactly once per route().
  - Compression applied before the provider call.
  - on_route callback.
  - Live configuration updates.
"""

from __future__ import annotations

import asyncio
import time

import pytest

from llm_keypool import FailureKind, Message, Router, RouterConfig, RoutingRequest, RoutingResult
from llm_keypool.config import CompressionConfig, RotationStrategy
from llm_keypool.models import Credential, ProviderReply
from llm_keypool.providers.base import BaseProvider
from llm_keypool.providers.simulated import SimulatedProvider

RATE_LIMITED = "429 Too Many Requests: rate limit exceeded"


class ScriptedProvider(BaseProvider):
    """
    Provider whose outcomes are scripted per call.

    Each entry in *script* is either an Exception (raised) or a string
    (returned as content). Once the script runs out, *default* is used.
    """

    def __init__(self, script=None, default="ok", token_count=42) -> None:
        self.script = list(script or [])
        self.default = default
        self.token_count = token_count
        self.calls: list[tuple[str, list[Message]]] = []

    async def invoke(self, credential: Credential, messages: list[Message]) -> ProviderReply:
        self.calls.append((credential.id, list(messages)))
        outcome = self.script.pop(0) if self.script else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return ProviderReply(content=outcome, token_count=self.token_count)

    @property
    def credential_ids(self) -> list[str]:
        return [cid for cid, _ in self.calls]


async def make_router(
    ids=("A", "B", "C"),
    provider=None,
    clock=time.time,
    provider_name="openai",
    model="gpt-4",
    **config_kwargs,
) -> Router:
    router = Router(RouterConfig(**config_kwargs), provider, clock=clock)
    for cid in ids:
        await router.register_credential(provider_name, model, f"sk-{cid}", credential_id=cid)
    return router


def make_request(messages=None, provider="openai", model="gpt-4") -> RoutingRequest:
    if messages is None:
        messages = [Message(role="user", content="Hello")]
    return RoutingRequest(provider=provider, model=model, messages=messages)


@pytest.mark.asyncio
class TestBasicRouting:
    async def test_round_robin_scenario(self):
        provider = ScriptedProvider()
        router = await make_router(provider=provider)

        results = [await router.route(make_request()) for _ in range(3)]

        assert all(r.success for r in results)
        assert [r.credential_id for r in results] == ["A", "B", "C"]
        snapshot = await router.get_pool_snapshot()
        assert [v.usage_count for v in snapshot["openai"]["gpt-4"]] == [1, 1, 1]

    async def test_success_result_fields(self):
        router = await make_router(provider=ScriptedProvider(default="answer", token_count=17))
        result = await router.route(make_request())
        assert isinstance(result, RoutingResult)
        assert result.success is True
        assert result.content == "answer"
        assert result.token_count == 17
        assert result.estimated_token_count == 1.25
        assert result.provider == "openai"
        assert result.model == "gpt-4"
        assert result.attempts == 1
        assert result.error is None
        assert result.failure is None

    async def test_accepts_plain_dict_request(self):
        router = await make_router(provider=ScriptedProvider())
        result = await router.route(
            {"provider": "openai", "model": "gpt-4", "messages": [{"role": "user", "content": "hi"}]}
        )
        assert result.success

    async def test_default_provider_is_simulated(self):
        router = await make_router()
        result = await router.route(make_request())
        assert result.success
        assert result.content == "Simulated response"
        assert result.token_count == result.estimated_token_count

    async def test_function_provider(self):
        async def call_llm(credential, messages):
            return {"content": f"via {credential.id}", "token_count": 3}

        router = await make_router(provider=call_llm)
        result = await router.route(make_request())
        assert result.content == "via A"
        assert (await router.get_metrics())["openai"]["gpt-4"].total_tokens_used == 3

    async def test_default_credential_ids(self):
        router = Router()
        await router.register_credential("anthropic", "claude-2", "sk-1")
        await router.register_credential("anthropic", "claude-2", "sk-2")
        snapshot = await router.get_pool_snapshot()
        assert [v.id for v in snapshot["anthropic"]["claude-2"]] == ["anthropic-1", "anthropic-2"]


@pytest.mark.asyncio
class TestRateLimitRetry:
    async def test_always_rate_limited_exhausts_budget(self, clock):
        clock.now = 1000.0
        provider = ScriptedProvider(default=RuntimeError(RATE_LIMITED))
        router = await make_router(provider=provider, clock=clock, retry_attempts=3)

        result = await router.route(make_request())

        assert result.success is False
        assert result.failure == FailureKind.RETRY_BUDGET_EXHAUSTED
        assert result.attempts == 4
        assert len(provider.calls) == 4
        assert result.error == f"Max retry attempts reached. Last error: {RATE_LIMITED}"

        m = (await router.get_metrics())["openai"]["gpt-4"]
        assert m.rate_limit_hits == 4
        assert m.total_requests == 1
        assert m.failed_requests == 1

    async def test_zero_retries_means_one_attempt(self):
        provider = ScriptedProvider(default=RuntimeError(RATE_LIMITED))
        router = await make_router(provider=provider, retry_attempts=0)
        result = await router.route(make_request())
        assert result.attempts == 1
        assert (await router.get_metrics())["openai"]["gpt-4"].rate_limit_hits == 1

    async def test_cooldown_stamped_on_rate_limited_credential(self, clock):
        clock.now = 1000.0
        provider = ScriptedProvider(script=[RuntimeError(RATE_LIMITED)])
        router = await make_router(provider=provider, clock=clock)

        result = await router.route(make_request())

        assert result.success
        assert result.attempts == 2
        assert provider.credential_ids == ["A", "B"]
        bucket = router._pool._buckets[("openai", "gpt-4")].credentials
        assert bucket[0].rate_limit_reset_at == 1060.0
        assert bucket[1].rate_limit_reset_at is None

    async def test_rate_limited_credential_can_be_reselected(self):
        provider = ScriptedProvider(script=[RuntimeError(RATE_LIMITED)])
        router = await make_router(ids=("solo",), provider=provider)

        result = await router.route(make_request())

        assert result.success
        assert provider.credential_ids == ["solo", "solo"]
        snapshot = await router.get_pool_snapshot()
        assert snapshot["openai"]["gpt-4"][0].usage_count == 2

    async def test_skip_rate_limited_stops_with_no_credential(self):
        provider = ScriptedProvider(script=[RuntimeError(RATE_LIMITED)])
        router = await make_router(ids=("solo",), provider=provider, skip_rate_limited=True)

        result = await router.route(make_request())

        assert result.success is False
        assert result.failure == FailureKind.NO_CREDENTIAL
        assert RATE_LIMITED in result.error
        assert len(provider.calls) == 1
        assert (await router.get_metrics())["openai"]["gpt-4"].rate_limit_hits == 1

    async def test_fallback_disabled_is_terminal(self):
        provider = ScriptedProvider(script=[RuntimeError(RATE_LIMITED)])
        router = await make_router(provider=provider, fallback_enabled=False)

        result = await router.route(make_request())

        assert result.success is False
        assert result.failure == FailureKind.RATE_LIMITED
        assert result.error == RATE_LIMITED
        assert result.attempts == 1
        bucket = router._pool._buckets[("openai", "gpt-4")].credentials
        assert bucket[0].rate_limit_reset_at is None

    async def test_attempts_match_provider_calls(self):
        provider = ScriptedProvider(script=[RuntimeError(RATE_LIMITED), RuntimeError(RATE_LIMITED)])
        router = await make_router(provider=provider, retry_attempts=2)

        result = await router.route(make_request())

        assert result.success
        assert result.attempts == 3
        assert len(provider.calls) == 3
        assert result.credential_id == "C"

    async def test_first_try_success_is_one_attempt(self):
        events = []

        async def on_route(event):
            events.append(event)

        provider = ScriptedProvider()
        router = await make_router(provider=provider, on_route=on_route)
        result = await router.route(make_request())

        assert result.attempts == 1
        assert events[0].attempts == 1
        assert len(provider.calls) == 1

    async def test_success_after_rate_limit_counts_no_hit(self):
        provider = ScriptedProvider(script=[RuntimeError(RATE_LIMITED)])
        router = await make_router(provider=provider)
        result = await router.route(make_request())
        assert result.rate_limit_hits == 1
        m = (await router.get_metrics())["openai"]["gpt-4"]
        assert m.successful_requests == 1
        assert m.rate_limit_hits == 0


@pytest.mark.asyncio
class TestTerminalFailures:
    async def test_provider_error_not_retried(self):
        provider = ScriptedProvider(default=ValueError("invalid api key"))
        router = await make_router(provider=provider, retry_attempts=5)

        result = await router.route(make_request())

        assert result.success is False
        assert result.failure == FailureKind.PROVIDER_ERROR
        assert result.error == "invalid api key"
        assert len(provider.calls) == 1
        m = (await router.get_metrics())["openai"]["gpt-4"]
        assert m.failed_requests == 1
        assert m.rate_limit_hits == 0

    async def test_unregistered_bucket(self):
        router = await make_router(provider=ScriptedProvider())
        await router.route(make_request())

        result = await router.route(make_request(model="gpt-5"))

        assert result.success is False
        assert result.failure == FailureKind.NO_CREDENTIAL
        assert "No API key available for openai/gpt-5" in result.error
        m = (await router.get_metrics())["openai"]["gpt-5"]
        assert m.total_requests == 1
        assert m.failed_requests == 1
        assert m.total_tokens_used == 0
        assert (await router.get_metrics())["openai"]["gpt-4"].total_tokens_used == 42

    async def test_timeout_is_terminal(self):
        class SlowProvider(ScriptedProvider):
            async def invoke(self, credential, messages):
                self.calls.append((credential.id, messages))
                await asyncio.sleep(1)
                return ProviderReply(content="late")

        provider = SlowProvider()
        router = await make_router(provider=provider, request_timeout_seconds=0.05)

        result = await router.route(make_request())

        assert result.success is False
        assert result.failure == FailureKind.TIMEOUT
        assert result.attempts == 1
        assert len(provider.calls) == 1

    async def test_invalid_request_dict_returns_failure(self):
        provider = ScriptedProvider()
        router = await make_router(provider=provider)

        result = await router.route(
            {"provider": "openai", "model": "gpt-4", "messages": [{"role": "tool", "content": "x"}]}
        )

        assert result.success is False
        assert result.failure == FailureKind.PROVIDER_ERROR
        assert "role" in result.error
        assert result.provider == "openai"
        assert result.model == "gpt-4"
        assert provider.calls == []
        m = (await router.get_metrics())["openai"]["gpt-4"]
        assert m.total_requests == 1
        assert m.failed_requests == 1

    async def test_request_without_bucket_fields_is_recorded(self):
        router = await make_router(provider=ScriptedProvider())
        result = await router.route({"messages": "not a list"})
        assert result.success is False
        assert result.failure == FailureKind.PROVIDER_ERROR
        assert (await router.get_metrics())[""][""].failed_requests == 1

    async def test_usage_counted_even_when_call_fails(self):
        provider = ScriptedProvider(default=RuntimeError("boom"))
        router = await make_router(provider=provider)
        await router.route(make_request())
        snapshot = await router.get_pool_snapshot()
        assert [v.usage_count for v in snapshot["openai"]["gpt-4"]] == [1, 0, 0]


@pytest.mark.asyncio
class TestCompressionIntegration:
    async def test_provider_receives_compressed_history(self, make_messages):
        provider = ScriptedProvider()
        router = await make_router(
            provider=provider,
            message_compression=CompressionConfig(max_tokens=200, compression_strategy="truncate"),
        )
        messages = make_messages(10, size=100)  # 250 tokens

        result = await router.route(make_request(messages))

        _, sent = provider.calls[0]
        assert sent == messages[-2:]
        assert result.estimated_token_count == 50.0

    async def test_failure_result_carries_estimate(self):
        router = await make_router(ids=(), provider=ScriptedProvider())
        result = await router.route(make_request())
        assert result.estimated_token_count == 1.25


@pytest.mark.asyncio
class TestOnRouteCallback:
    async def test_callback_fired_once_per_route(self):
        events = []

        async def on_route(event):
            events.append(event)

        router = await make_router(provider=ScriptedProvider(script=[RuntimeError(RATE_LIMITED)]), on_route=on_route)
        await router.route(make_request())

        assert len(events) == 1
        assert events[0].success is True
        assert events[0].credential_id == "B"
        assert events[0].attempts == 2

    async def test_callback_error_does_not_propagate(self):
        async def bad_callback(event):
            raise RuntimeError("callback failed")

        router = await make_router(provider=ScriptedProvider(), on_route=bad_callback)
        result = await router.route(make_request())
        assert result.success


@pytest.mark.asyncio
class TestProviderRegistry:
    async def test_per_provider_adapter(self):
        default = ScriptedProvider(default="default")
        special = ScriptedProvider(default="special")
        router = await make_router(provider=default)
        await router.register_credential("anthropic", "claude-2", "sk-ant")
        router.register_provider("anthropic", special)

        a = await router.route(make_request())
        b = await router.route(make_request(provider="anthropic", model="claude-2"))

        assert a.content == "default"
        assert b.content == "special"

    async def test_close_closes_adapters(self):
        closed = []

        class Closing(SimulatedProvider):
            async def close(self):
                closed.append(True)

        async with await make_router(provider=Closing()):
            pass
        assert closed == [True]


@pytest.mark.asyncio
class TestConfiguration:
    async def test_update_config_switches_strategy(self):
        provider = ScriptedProvider()
        router = await make_router(provider=provider)
        await router.route(make_request())  # A

        router.update_config(rotation_strategy="least-used")
        assert router.config.rotation_strategy is RotationStrategy.LEAST_USED

        await router.route(make_request())
        assert provider.credential_ids == ["A", "B"]

    async def test_update_config_merges_compression(self):
        router = await make_router()
        router.update_config(message_compression={"max_tokens": 500})
        assert router.config.message_compression.max_tokens == 500
        assert router.config.message_compression.summary_threshold == 6000

    async def test_update_config_keeps_callback(self):
        async def on_route(event):
            pass

        router = await make_router(on_route=on_route)
        router.update_config(retry_attempts=5)
        assert router.config.on_route is on_route
        assert router.config.retry_attempts == 5

    async def test_credentials_from_config_registered_lazily(self):
        router = Router.from_dict(
            {
                "credentials": [
                    {"provider": "openai", "model": "gpt-4", "secret": "sk-1", "id": "first"},
                    {"provider": "openai", "model": "gpt-4", "secret": "sk-2"},
                ]
            },
            provider=ScriptedProvider(),
        )
        result = await router.route(make_request())
        assert result.credential_id == "first"
        snapshot = await router.get_pool_snapshot()
        assert [v.id for v in snapshot["openai"]["gpt-4"]] == ["first", "openai-2"]


@pytest.mark.asyncio
class TestConcurrency:
    async def test_100_concurrent_routes_no_race(self):
        router = await make_router(ids=("A", "B", "C", "D"), provider=ScriptedProvider(token_count=1))
        results = await asyncio.gather(*[router.route(make_request()) for _ in range(100)])

        assert all(r.success for r in results)
        snapshot = await router.get_pool_snapshot()
        assert [v.usage_count for v in snapshot["openai"]["gpt-4"]] == [25, 25, 25, 25]
        m = (await router.get_metrics())["openai"]["gpt-4"]
        assert m.total_requests == 100
        assert m.total_tokens_used == 100

    async def test_routers_do_not_share_state(self):
        first = await make_router(provider=ScriptedProvider())
        second = Router(provider=ScriptedProvider())
        await first.route(make_request())
        result = await second.route(make_request())
        assert result.failure == FailureKind.NO_CREDENTIAL
        assert await second.get_pool_snapshot() == {}
