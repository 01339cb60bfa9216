from .compressor import ContextCompressor, summarize, truncate
from .estimator import estimate_tokens

__all__ = [
    "ContextCompressor",
    "estimate_tokens",
    "summarize",
    "truncate",
]
