# tests/conftest.py
"""
Shared pytest fixtures for llm-keypool tests.
"""

from __future__ import annotations

import pytest

from llm_keypool.config import CompressionConfig, RouterConfig
from llm_keypool.models import Credential, Message


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_credential():
    def _make(cid: str, provider: str = "openai", model: str = "gpt-4", usage: int = 0) -> Credential:
        return Credential(id=cid, provider=provider, model=model, secret=f"sk-{cid}", usage_count=usage)

    return _make


@pytest.fixture
def make_messages():
    """n user/assistant turns of *size* characters, optionally led by a system message."""

    def _make(n: int, size: int = 20, system: bool = False) -> list[Message]:
        messages: list[Message] = []
        if system:
            messages.append(Message(role="system", kind="system", content="S" * size))
        for i in range(n):
            role = "user" if i % 2 == 0 else "assistant"
            messages.append(Message(role=role, content=f"{i:02d}" + "x" * (size - 2)))
        return messages

    return _make


@pytest.fixture
def router_config():
    return RouterConfig(
        rotation_strategy="round-robin",
        message_compression=CompressionConfig(max_tokens=8000, summary_threshold=6000),
        fallback_enabled=True,
        retry_attempts=2,
    )
