from .base import BaseProvider, FunctionProvider
from .registry import ProviderRegistry
from .simulated import SimulatedProvider

__all__ = [
    "BaseProvider",
    "FunctionProvider",
    "ProviderRegistry",
    "SimulatedProvider",
]
