# llm_keypool/engine/compressor.py
"""
Context compression.

Shrinks a conversation history that exceeds the configured token budget.

Strategies
----------
  truncate  → keep the last floor(max_tokens / 100) messages. The count does
              not depend on message size, and a leading system message may
              be dropped.
  summarize → keep the first system message, fold everything between the
              first message and the last three into one synthetic system
              message, then append the last three verbatim.
  hybrid    → summarize when the estimate exceeds summary_threshold,
              truncate otherwise.

The "summary" is a mechanical concatenation of the folded messages, not an
LLM-generated summary.

The compressor makes no I/O calls and holds no mutable state.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..config import CompressionConfig, CompressionStrategy
from ..constants import SUMMARY_LABEL, SUMMARY_RECENT_MESSAGES, TRUNCATE_TOKENS_PER_MESSAGE
from ..models import CompressedContext, Message
from .estimator import estimate_tokens

logger = logging.getLogger("llm_keypool")


def truncate(messages: Sequence[Message], max_tokens: int) -> list[Message]:
    """Return the last floor(max_tokens / 100) messages."""
    keep = max_tokens // TRUNCATE_TOKENS_PER_MESSAGE
    if keep <= 0:
        return []
    return list(messages[-keep:])


def summarize(messages: Sequence[Message]) -> tuple[list[Message], str | None]:
    """
    Fold older messages into one synthetic system message.

    Returns (messages, summary_text). When there is nothing between the
    first message and the trailing window, the input is returned unchanged
    with no summary.
    """
    system_message = next((m for m in messages if m.role == "system"), None)
    recent = list(messages[-SUMMARY_RECENT_MESSAGES:])
    old = list(messages[1:-SUMMARY_RECENT_MESSAGES])

    if not old:
        return list(messages), None

    summary = SUMMARY_LABEL + " ".join(m.content for m in old)
    compressed: list[Message] = []
    if system_message is not None:
        compressed.append(system_message)
    compressed.append(Message(role="system", kind="system", content=summary))
    compressed.extend(recent)
    return compressed, summary


class ContextCompressor:
    """
    Applies a CompressionConfig to message histories.

    Parameters
    ----------
    config:
        Token budget and strategy.
    """

    def __init__(self, config: CompressionConfig) -> None:
        self._config = config

    @property
    def config(self) -> CompressionConfig:
        return self._config

    def compress(self, messages: Sequence[Message]) -> CompressedContext:
        """
        Compress *messages* to fit the configured budget.

        The returned estimated_token_count is always computed over the
        compressed messages.
        """
        original = list(messages)
        estimate = estimate_tokens(original)
        cfg = self._config

        if estimate <= cfg.max_tokens:
            return CompressedContext(
                original_messages=original,
                compressed_messages=original,
                estimated_token_count=estimate,
            )

        summary: str | None = None
        strategy = CompressionStrategy(cfg.compression_strategy)

        if strategy is CompressionStrategy.TRUNCATE:
            compressed = truncate(original, cfg.max_tokens)
        elif strategy is CompressionStrategy.SUMMARIZE:
            compressed, summary = summarize(original)
        elif strategy is CompressionStrategy.HYBRID:
            if estimate > cfg.summary_threshold:
                compressed, summary = summarize(original)
            else:
                compressed = truncate(original, cfg.max_tokens)
        else:  # pragma: no cover
            raise ValueError(f"Unknown compression strategy: {strategy!r}")

        new_estimate = estimate_tokens(compressed)
        logger.debug(
            "Compressed %d → %d messages (%s, ~%.1f → ~%.1f tokens)",
            len(original),
            len(compressed),
            strategy.value,
            estimate,
            new_estimate,
        )
        return CompressedContext(
            original_messages=original,
            compressed_messages=compressed,
            summary=summary,
            estimated_token_count=new_estimate,
        )
