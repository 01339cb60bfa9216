# llm_keypool/__init__.py
"""
llm-keypool — credential pooling, context compression and rate-limit retry
in front of LLM provider calls.

Public API surface:
  Router               — main class; register credentials, call route()
  RouterConfig         — top-level configuration model
  CompressionConfig    — token budget and compression strategy
  RotationStrategy     — round-robin | least-used | random
  CompressionStrategy  — truncate | summarize | hybrid
  Message              — one chat message
  RoutingRequest       — request model passed to route()
  RoutingResult        — structured outcome returned by route()
  ProviderMetrics      — per (provider, model) counters
  ProviderReply        — what a provider adapter returns
  BaseProvider         — subclass to plug in a real provider call
  FailureKind          — classification of unsuccessful results
"""

import logging

from .config import CompressionConfig, CompressionStrategy, RotationStrategy, RouterConfig
from .exceptions import FailureKind, KeyPoolError
from .models import (
    CompressedContext,
    Credential,
    CredentialView,
    Message,
    ProviderMetrics,
    ProviderReply,
    RouteEvent,
    RoutingRequest,
    RoutingResult,
)
from .providers import BaseProvider, FunctionProvider, SimulatedProvider
from .router import Router

logging.getLogger("llm_keypool").addHandler(logging.NullHandler())

__all__ = [
    "Router",
    "RouterConfig",
    "CompressionConfig",
    "RotationStrategy",
    "CompressionStrategy",
    "Message",
    "Credential",
    "CredentialView",
    "CompressedContext",
    "RoutingRequest",
    "RoutingResult",
    "ProviderMetrics",
    "ProviderReply",
    "RouteEvent",
    "BaseProvider",
    "FunctionProvider",
    "SimulatedProvider",
    "FailureKind",
    "KeyPoolError",
]

__version__ = "0.1.0"
