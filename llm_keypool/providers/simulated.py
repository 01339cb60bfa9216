# llm_keypool/providers/simulated.py
"""
Simulated provider adapter.

Returns a canned completion without any network I/O. The reported token
count is the estimate over the messages it received, so metrics still
move. Used as the router's default collaborator and by the CLI.
"""

from __future__ import annotations

from ..constants import SIMULATED_RESPONSE
from ..engine.estimator import estimate_tokens
from ..models import Credential, Message, ProviderReply
from .base import BaseProvider


class SimulatedProvider(BaseProvider):
    """Adapter that answers every request locally."""

    def __init__(self, content: str = SIMULATED_RESPONSE) -> None:
        self._content = content

    async def invoke(self, credential: Credential, messages: list[Message]) -> ProviderReply:
        return ProviderReply(content=self._content, token_count=estimate_tokens(messages))
