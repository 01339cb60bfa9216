# examples/quickstart.py
"""
Quickstart — pool three keys and route through a flaky provider.

The provider below rate-limits every other call, so you can watch the
router rotate to the next key and retry.

Run with:
  python examples/quickstart.py
"""

import asyncio
import logging

from llm_keypool import Message, ProviderReply, Router

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

calls = 0


async def call_llm(credential, messages):
    """Stand-in for a real SDK call made with credential.secret."""
    global calls
    calls += 1
    if calls % 2 == 0:
        raise RuntimeError("429: rate limit exceeded")
    return ProviderReply(content=f"Hello from {credential.id}", token_count=12)


async def main():
    router = Router.from_dict(
        {
            "rotation_strategy": "round-robin",
            "retry_attempts": 2,
            "message_compression": {"max_tokens": 8000, "summary_threshold": 6000},
        },
        provider=call_llm,
    )
    for n in range(1, 4):
        await router.register_credential("anthropic", "claude-sonnet-4-5", f"sk-ant-{n}")

    async with router:
        for _ in range(3):
            result = await router.route(
                {
                    "provider": "anthropic",
                    "model": "claude-sonnet-4-5",
                    "messages": [Message(role="user", content="Say hello.")],
                }
            )
            print(f"{result.credential_id}: {result.content or result.error} (attempts={result.attempts})")

        metrics = await router.get_metrics()
        print(metrics["anthropic"]["claude-sonnet-4-5"].model_dump())

        for view in (await router.get_pool_snapshot())["anthropic"]["claude-sonnet-4-5"]:
            print(f"{view.id}: used {view.usage_count}x")


if __name__ == "__main__":
    asyncio.run(main())
