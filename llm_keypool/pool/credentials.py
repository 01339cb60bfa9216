# llm_keypool/pool/credentials.py
"""
In-process credential pool.

Architecture note
-----------------
Credentials are grouped into buckets keyed by (provider, model). Each bucket
holds the credentials in registration order plus its own round-robin cursor
and an asyncio.Lock. Selecting a credential and applying its side effects
(usage_count, last_used_at, cursor) happen under that lock as one unit, so
concurrent route() calls never observe a stale cursor or lose an increment.

Buckets are created lazily on first add and never removed. All state is
lost when the process exits.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable

from ..config import RotationStrategy
from ..models import Credential, CredentialView
from .selector import Selector

logger = logging.getLogger("llm_keypool")

BucketKey = tuple[str, str]


@dataclass
class _Bucket:
    credentials: list[Credential] = field(default_factory=list)
    cursor: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class CredentialPool:
    """
    Owns every registered credential.

    Parameters
    ----------
    selector:
        Strategy dispatcher. A default Selector is created if omitted.
    clock:
        Returns the current epoch time in seconds. Defaults to time.time.
    """

    def __init__(
        self,
        selector: Selector | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._selector = selector or Selector()
        self._clock = clock
        self._buckets: dict[BucketKey, _Bucket] = {}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_bucket(self, provider: str, model: str) -> _Bucket:
        key = (provider, model)
        if key not in self._buckets:
            self._buckets[key] = _Bucket()
        return self._buckets[key]

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def add_credential(self, credential: Credential) -> None:
        """Append *credential* to its bucket. Duplicate ids are accepted."""
        bucket = self._get_bucket(credential.provider, credential.model)
        async with bucket.lock:
            bucket.credentials.append(credential)
        logger.info(
            "Credential added: %s for %s/%s", credential.id, credential.provider, credential.model
        )

    def bucket_size(self, provider: str, model: str) -> int:
        bucket = self._buckets.get((provider, model))
        return len(bucket.credentials) if bucket else 0

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def select(
        self,
        provider: str,
        model: str,
        strategy: RotationStrategy,
        *,
        skip_rate_limited: bool = False,
    ) -> Credential | None:
        """
        Pick a credential from the (provider, model) bucket.

        Returns None if the bucket is missing or empty, or if
        skip_rate_limited is set and every credential is cooling down.
        On success the credential's usage_count is incremented and
        last_used_at is stamped.
        """
        bucket = self._buckets.get((provider, model))
        if bucket is None:
            return None

        async with bucket.lock:
            now = self._clock()
            eligible = None
            if skip_rate_limited:
                eligible = [not c.is_cooling_down(now) for c in bucket.credentials]

            choice = self._selector.choose(bucket.credentials, bucket.cursor, strategy, eligible)
            if choice is None:
                return None

            idx, bucket.cursor = choice
            credential = bucket.credentials[idx]
            credential.usage_count += 1
            credential.last_used_at = now

        logger.debug(
            "Selected credential %s for %s/%s (strategy=%s, usage=%d)",
            credential.id,
            provider,
            model,
            RotationStrategy(strategy).value,
            credential.usage_count,
        )
        return credential

    async def mark_rate_limited(self, credential: Credential, cooldown_seconds: float) -> None:
        """Stamp *credential* as rate limited until now + cooldown_seconds."""
        bucket = self._get_bucket(credential.provider, credential.model)
        async with bucket.lock:
            credential.rate_limit_reset_at = self._clock() + cooldown_seconds

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def cursor(self, provider: str, model: str) -> int:
        bucket = self._buckets.get((provider, model))
        return bucket.cursor if bucket else 0

    def snapshot(self) -> dict[str, dict[str, list[CredentialView]]]:
        """
        Return {provider: {model: [CredentialView, ...]}}.

        Only ids, usage counts and last-used timestamps are exposed; the
        secret handle never leaves the pool.
        """
        result: dict[str, dict[str, list[CredentialView]]] = {}
        for (provider, model), bucket in self._buckets.items():
            result.setdefault(provider, {})[model] = [
                CredentialView(id=c.id, usage_count=c.usage_count, last_used_at=c.last_used_at)
                for c in bucket.credentials
            ]
        return result
