# llm_keypool/providers/registry.py
"""
ProviderRegistry — maps provider names to the adapter that calls them.

Requests for a provider with no dedicated adapter go to the default
adapter. The adapter is resolved once per route() call, so every retry of
one request goes through the same adapter.
"""

from __future__ import annotations

import asyncio

from .base import BaseProvider, FunctionProvider
from .simulated import SimulatedProvider


def as_provider(adapter: BaseProvider | object) -> BaseProvider:
    """Wrap a bare async callable in a FunctionProvider."""
    if isinstance(adapter, BaseProvider):
        return adapter
    if callable(adapter):
        return FunctionProvider(adapter)  # type: ignore[arg-type]
    raise TypeError(
        f"Expected a BaseProvider or an async callable, got {type(adapter).__name__}"
    )


class ProviderRegistry:
    """Holds the default adapter plus any per-provider overrides."""

    def __init__(self, default: BaseProvider | None = None) -> None:
        self._default: BaseProvider = default or SimulatedProvider()
        self._providers: dict[str, BaseProvider] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, name: str, adapter: BaseProvider | object) -> None:
        """Route every request for provider *name* through *adapter*."""
        self._providers[name] = as_provider(adapter)

    def set_default(self, adapter: BaseProvider | object) -> None:
        self._default = as_provider(adapter)

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    def get(self, name: str) -> BaseProvider:
        """Return the adapter for *name*, or the default adapter."""
        return self._providers.get(name, self._default)

    def names(self) -> list[str]:
        """Return names of all providers with a dedicated adapter."""
        return list(self._providers.keys())

    async def close_all(self) -> None:
        """Call close() on every adapter exactly once."""
        async with self._lock:
            seen: set[int] = set()
            for adapter in [self._default, *self._providers.values()]:
                if id(adapter) in seen:
                    continue
                seen.add(id(adapter))
                await adapter.close()
