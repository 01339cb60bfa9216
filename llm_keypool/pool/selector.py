# llm_keypool/pool/selector.py
"""
Credential selection strategies.

Each strategy receives the bucket's credentials, its rotation cursor and the
set of eligible positions, and returns (index, next_cursor). None means
nothing could be selected.

The selector does not mutate anything and makes no I/O calls. The pool
applies the side effects (usage_count, last_used_at, cursor) under its
bucket lock, so the selector can be tested in isolation.

  round-robin → bucket[cursor]; cursor advances by one (mod length)
  least-used  → lowest usage_count, first one wins ties
  random      → uniform index in [0, length)
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import Callable

from ..config import RotationStrategy
from ..models import Credential

Selection = tuple[int, int]


def _round_robin(
    credentials: Sequence[Credential],
    cursor: int,
    eligible: Sequence[bool],
    rng: random.Random,
) -> Selection | None:
    n = len(credentials)
    # With every position eligible this returns on the first iteration,
    # so the cursor advances by exactly one.
    for step in range(n):
        idx = (cursor + step) % n
        if eligible[idx]:
            return idx, (idx + 1) % n
    return None


def _least_used(
    credentials: Sequence[Credential],
    cursor: int,
    eligible: Sequence[bool],
    rng: random.Random,
) -> Selection | None:
    best: int | None = None
    for idx, cred in enumerate(credentials):
        if not eligible[idx]:
            continue
        if best is None or cred.usage_count < credentials[best].usage_count:
            best = idx
    if best is None:
        return None
    return best, cursor


def _random(
    credentials: Sequence[Credential],
    cursor: int,
    eligible: Sequence[bool],
    rng: random.Random,
) -> Selection | None:
    candidates = [idx for idx in range(len(credentials)) if eligible[idx]]
    if not candidates:
        return None
    return candidates[rng.randrange(len(candidates))], cursor


_STRATEGIES: dict[RotationStrategy, Callable[..., Selection | None]] = {
    RotationStrategy.ROUND_ROBIN: _round_robin,
    RotationStrategy.LEAST_USED: _least_used,
    RotationStrategy.RANDOM: _random,
}


class Selector:
    """
    Stateless strategy dispatcher.

    Parameters
    ----------
    rng:
        Random source for the random strategy. Inject a seeded
        random.Random in tests.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def choose(
        self,
        credentials: Sequence[Credential],
        cursor: int,
        strategy: RotationStrategy,
        eligible: Sequence[bool] | None = None,
    ) -> Selection | None:
        """
        Pick a credential position.

        Parameters
        ----------
        credentials:
            The bucket, in registration order.
        cursor:
            Current round-robin cursor for the bucket.
        strategy:
            Which rotation strategy to apply.
        eligible:
            Per-position eligibility mask. Defaults to every position.

        Returns
        -------
        (index, next_cursor) or None if the bucket is empty or nothing is eligible.
        """
        if not credentials:
            return None
        if eligible is None:
            eligible = [True] * len(credentials)
        try:
            fn = _STRATEGIES[RotationStrategy(strategy)]
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown rotation strategy: {strategy!r}") from exc
        return fn(credentials, cursor, eligible, self._rng)
