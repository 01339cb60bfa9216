# llm_keypool/cli.py
"""
CLI entry point for llm-keypool.

Available commands:
  llm-keypool status [--config router.yaml]
  llm-keypool route "Hello" --provider openai --model gpt-4o [--config router.yaml] [--repeat N]

Both commands use the SimulatedProvider, so no request leaves the machine.
Credentials come from the YAML config or, without one, from
<PROVIDER>_API_KEY_<N> environment variables.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .models import Message, ProviderMetrics, RoutingResult
from .router import Router

app = typer.Typer(
    name="llm-keypool",
    help="Credential pooling and rate-limit retry for LLM provider calls.",
    add_completion=False,
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_router(config_path: Optional[str]) -> Router:
    if config_path:
        return Router.from_yaml(config_path)
    return Router.from_env()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "never"
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")


def _build_pool_table(snapshot: dict) -> Table:
    """Render the credential pool as a Rich table."""
    table = Table(title="Credential Pool", show_lines=True)
    table.add_column("Provider", style="bold cyan", no_wrap=True)
    table.add_column("Model")
    table.add_column("Credential")
    table.add_column("Uses", justify="right")
    table.add_column("Last used")

    for provider, models in snapshot.items():
        for model, views in models.items():
            for view in views:
                table.add_row(provider, model, view.id, str(view.usage_count), _fmt_ts(view.last_used_at))
    return table


def _build_metrics_table(metrics: dict[str, dict[str, ProviderMetrics]]) -> Table:
    """Render per (provider, model) counters as a Rich table."""
    table = Table(title="Metrics", show_lines=True)
    table.add_column("Provider", style="bold cyan", no_wrap=True)
    table.add_column("Model")
    table.add_column("Requests", justify="right")
    table.add_column("OK", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Rate limits", justify="right")

    for provider, models in metrics.items():
        for model, m in models.items():
            failed = f"[red]{m.failed_requests}[/red]" if m.failed_requests else "0"
            table.add_row(
                provider,
                model,
                str(m.total_requests),
                str(m.successful_requests),
                failed,
                f"{m.total_tokens_used:,.1f}",
                str(m.rate_limit_hits),
            )
    return table


def _render_result(result: RoutingResult) -> None:
    if result.success:
        console.print(
            f"[green]✓[/green] {result.provider}/{result.model} via "
            f"[bold]{result.credential_id}[/bold] "
            f"(~{result.estimated_token_count:.1f} tokens, attempts={result.attempts})"
        )
        console.print(result.content)
    else:
        console.print(f"[red]✗[/red] {result.provider}/{result.model}: {result.error}")


async def _status(config_path: Optional[str]) -> tuple[dict, dict]:
    async with _load_router(config_path) as router:
        return await router.get_pool_snapshot(), await router.get_metrics()


async def _route(
    config_path: Optional[str], provider: str, model: str, text: str, repeat: int
) -> tuple[list[RoutingResult], dict, dict]:
    async with _load_router(config_path) as router:
        results = []
        for _ in range(repeat):
            results.append(
                await router.route(
                    {
                        "provider": provider,
                        "model": model,
                        "messages": [Message(role="user", content=text)],
                    }
                )
            )
        return results, await router.get_pool_snapshot(), await router.get_metrics()


@app.command()
def status(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to router.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """Show registered credentials and their usage."""
    _configure_logging(verbose)
    snapshot, metrics = asyncio.run(_status(config))
    console.print(_build_pool_table(snapshot))
    console.print(_build_metrics_table(metrics))


@app.command()
def route(
    text: str = typer.Argument(..., help="User message to send"),
    provider: str = typer.Option(..., "--provider", "-p"),
    model: str = typer.Option(..., "--model", "-m"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to router.yaml"),
    repeat: int = typer.Option(1, "--repeat", "-n", min=1, help="Send the message N times"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """Route a message through the pool using the simulated provider."""
    _configure_logging(verbose)
    results, snapshot, metrics = asyncio.run(_route(config, provider, model, text, repeat))
    for result in results:
        _render_result(result)
    console.print(_build_pool_table(snapshot))
    console.print(_build_metrics_table(metrics))
    if not all(r.success for r in results):
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    app()
