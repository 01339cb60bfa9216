# llm_keypool/providers/base.py
"""
BaseProvider — abstract contract every provider adapter must implement.

An adapter performs the actual call to an LLM vendor using the credential
the pool selected. The router never talks to vendor SDKs directly; it always
goes through an adapter.

This design means:
  - Vendor SDKs and network code stay outside the routing core.
  - The router only needs the error *message*: any exception whose text
    contains "rate limit" is treated as a rate limit, everything else as a
    terminal provider error.
  - Adding a new provider requires only implementing this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import Any, Callable

from ..models import Credential, Message, ProviderReply


class BaseProvider(ABC):
    """Abstract base class for all provider adapters."""

    @abstractmethod
    async def invoke(self, credential: Credential, messages: list[Message]) -> ProviderReply:
        """
        Send the (already compressed) messages using *credential*.

        Parameters
        ----------
        credential:
            The credential selected for this attempt. Read the secret with
            ``credential.secret.get_secret_value()``.
        messages:
            Compressed chat history.

        Returns
        -------
        ProviderReply
            Completion text and, if the vendor reports it, the token count.

        Raises
        ------
        Any exception. Its message decides whether the attempt is retried.
        """

    async def close(self) -> None:
        """Release any resources held by this adapter (HTTP clients, etc.)."""

    def __repr__(self) -> str:  # pragma: no cover
        return f"{self.__class__.__name__}()"


ProviderCallable = Callable[[Credential, list[Message]], Awaitable[Any]]


class FunctionProvider(BaseProvider):
    """
    Adapter around a plain async callable.

    The callable may return a ProviderReply, a dict with ``content`` and an
    optional ``token_count``, or a bare string.
    """

    def __init__(self, fn: ProviderCallable) -> None:
        self._fn = fn

    async def invoke(self, credential: Credential, messages: list[Message]) -> ProviderReply:
        reply = await self._fn(credential, messages)
        if isinstance(reply, ProviderReply):
            return reply
        if isinstance(reply, str):
            return ProviderReply(content=reply)
        return ProviderReply.model_validate(reply)

    def __repr__(self) -> str:  # pragma: no cover
        name = getattr(self._fn, "__qualname__", repr(self._fn))
        return f"FunctionProvider({name})"
