# llm_keypool/metrics/collector.py
"""
In-process usage metrics.

Uses asyncio.Lock for safe concurrent access within a single event loop.
All state is lost when the process exits.

Counters are kept per (provider, model) and only ever increase:
  - total_requests      one per routing outcome
  - successful_requests / failed_requests
  - total_tokens_used   provider-reported tokens, successes only
  - rate_limit_hits     failures whose error text contains the rate-limit
                        marker; a flow that burned N rate-limited attempts
                        counts N

No response-time average is tracked.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict

from ..constants import RATE_LIMIT_MARKER
from ..models import ProviderMetrics, RoutingResult


class MetricsCollector:
    """Accumulates ProviderMetrics from every routing outcome."""

    def __init__(self, rate_limit_marker: str = RATE_LIMIT_MARKER) -> None:
        self._marker = rate_limit_marker
        # (provider, model) → counters
        self._metrics: dict[tuple[str, str], ProviderMetrics] = defaultdict(ProviderMetrics)
        self._lock = asyncio.Lock()

    async def record(self, result: RoutingResult) -> None:
        """Fold one terminal RoutingResult into the counters."""
        async with self._lock:
            metrics = self._metrics[(result.provider, result.model)]
            metrics.total_requests += 1

            if result.success:
                metrics.successful_requests += 1
                if result.token_count:
                    metrics.total_tokens_used += result.token_count
                return

            metrics.failed_requests += 1
            if result.error and self._marker in result.error:
                metrics.rate_limit_hits += max(1, result.rate_limit_hits)

    def get(self, provider: str, model: str) -> ProviderMetrics:
        """Return a copy of the counters for one pair (zeros if never seen)."""
        metrics = self._metrics.get((provider, model))
        return metrics.model_copy() if metrics else ProviderMetrics()

    def snapshot(self) -> dict[str, dict[str, ProviderMetrics]]:
        """Return {provider: {model: ProviderMetrics}} as independent copies."""
        result: dict[str, dict[str, ProviderMetrics]] = {}
        for (provider, model), metrics in self._metrics.items():
            result.setdefault(provider, {})[model] = metrics.model_copy()
        return result

    def aggregate(self) -> ProviderMetrics:
        """Sum every pair's counters into one ProviderMetrics."""
        total = ProviderMetrics()
        for metrics in self._metrics.values():
            total.total_requests += metrics.total_requests
            total.successful_requests += metrics.successful_requests
            total.failed_requests += metrics.failed_requests
            total.total_tokens_used += metrics.total_tokens_used
            total.rate_limit_hits += metrics.rate_limit_hits
        return total

    async def reset(self) -> None:
        """Drop every counter. Intended for external maintenance only."""
        async with self._lock:
            self._metrics.clear()
