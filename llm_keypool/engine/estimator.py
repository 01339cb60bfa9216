# llm_keypool/engine/estimator.py
"""
Pre-flight token count estimation.

Uses a fixed characters-per-token ratio rather than a real tokenizer. The
ratio drives both the compression budget and the token count reported by
the simulated provider, so changing it changes observable compression
behaviour. Keep it at CHARS_PER_TOKEN.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..constants import CHARS_PER_TOKEN
from ..models import Message


def estimate_tokens(messages: Iterable[Message]) -> float:
    """
    Estimate the total number of tokens for a list of chat messages.

    Parameters
    ----------
    messages:
        Chat messages. Only ``content`` is counted.

    Returns
    -------
    float
        Sum of len(content) / CHARS_PER_TOKEN. Not rounded.
    """
    return sum((len(m.content) / CHARS_PER_TOKEN for m in messages), 0.0)
