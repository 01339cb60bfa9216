# llm_keypool/constants.py
"""
Default constants for llm-keypool.
All tunable values are centralised here so they can be overridden via RouterConfig
without touching internal logic.
"""

# ---------------------------------------------------------------------------
# Token estimation
# ---------------------------------------------------------------------------
CHARS_PER_TOKEN: int = 4
"""Approximate characters per token. Not a tokenizer."""

# ---------------------------------------------------------------------------
# Compression
# ---------------------------------------------------------------------------
DEFAULT_MAX_TOKENS: int = 8000
DEFAULT_SUMMARY_THRESHOLD: int = 6000

TRUNCATE_TOKENS_PER_MESSAGE: int = 100
"""truncate keeps the last floor(max_tokens / TRUNCATE_TOKENS_PER_MESSAGE) messages."""

SUMMARY_RECENT_MESSAGES: int = 3
"""Number of trailing messages summarize carries over verbatim."""

SUMMARY_LABEL: str = "Summary of earlier context: "

# ---------------------------------------------------------------------------
# Retry / rate limiting
# ---------------------------------------------------------------------------
RATE_LIMIT_MARKER: str = "rate limit"
"""Case-sensitive substring that classifies a provider error as a rate limit."""

RATE_LIMIT_COOLDOWN_SECONDS: int = 60
"""Fixed cooldown stamped on a credential after a rate-limited attempt."""

DEFAULT_RETRY_ATTEMPTS: int = 2

# ---------------------------------------------------------------------------
# Simulated provider
# ---------------------------------------------------------------------------
SIMULATED_RESPONSE: str = "Simulated response"

# ---------------------------------------------------------------------------
# Environment configuration
# ---------------------------------------------------------------------------
ENV_PREFIX: str = "LLM_KEYPOOL_"
MAX_ENV_KEYS_PER_PROVIDER: int = 9

DEFAULT_OPENAI_MODEL: str = "gpt-4o"
DEFAULT_ANTHROPIC_MODEL: str = "claude-sonnet-4-5"
DEFAULT_GEMINI_MODEL: str = "gemini-1.5-pro"
DEFAULT_GROQ_MODEL: str = "llama-3.1-70b-versatile"

KNOWN_PROVIDERS: dict[str, str] = {
    "openai": DEFAULT_OPENAI_MODEL,
    "anthropic": DEFAULT_ANTHROPIC_MODEL,
    "gemini": DEFAULT_GEMINI_MODEL,
    "groq": DEFAULT_GROQ_MODEL,
}
