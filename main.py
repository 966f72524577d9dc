"""Command-line entrypoint for the ImageLingo generation service.

Usage:
    uv run python main.py serve [--host 0.0.0.0] [--port 8000]
    uv run python main.py watch <generation_id> --user <user_id> [--average-ms 15000]

`watch` polls a generation until it settles while animating the same seeded
progress bar a browser client would show for it. Exit code 0 on completion,
1 on failure or timeout.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from config import settings
from imagelingo.errors import PollingTimeoutError
from imagelingo.generations.polling import GenerationPoller, PollingOptions
from imagelingo.generations.source import HttpGenerationSource
from imagelingo.progress.animation import animate_progress
from imagelingo.progress.controller import ProgressBarConfig
from imagelingo.schemas import Generation
from imagelingo.utils.logger import bind_context
from imagelingo.utils.time_utils import format_processing_time

console = Console()


async def watch_generation(
    generation_id: str,
    user_id: str | None,
    average_ms: float,
    base_url: str | None = None,
) -> bool:
    """Poll one generation with a live progress bar. Returns True on success."""
    bind_context(generation=generation_id, component="cli")
    outcome: dict[str, object] = {}

    def on_complete(generation: Generation, output_url: str | None) -> None:
        outcome["generation"] = generation
        outcome["output_url"] = output_url

    def on_error(message: str) -> None:
        outcome["error"] = message

    with Progress(
        TextColumn("[bold cyan]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>5.1f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(f"Generation {generation_id[:8]}", total=100)
        cancel = animate_progress(
            lambda pct: progress.update(task, completed=pct),
            ProgressBarConfig(average_time=average_ms, seed=generation_id),
        )
        try:
            async with HttpGenerationSource(base_url, user_id=user_id) as source:
                async with GenerationPoller(
                    source,
                    options=PollingOptions(),
                    on_complete=on_complete,
                    on_error=on_error,
                ) as poller:
                    poller.watch(generation_id)
                    await poller.wait()
                    outcome["exception"] = poller.exception
        finally:
            cancel()
        if "generation" in outcome:
            progress.update(task, completed=100)

    if "error" in outcome:
        label = "Timed out" if isinstance(outcome.get("exception"), PollingTimeoutError) else "Failed"
        console.print(f"[bold red]{label}:[/] {outcome['error']}")
        return False

    generation = outcome.get("generation")
    if not isinstance(generation, Generation):
        console.print("[bold red]Polling stopped without a result[/]")
        return False

    elapsed = format_processing_time(generation.processing_ms)
    console.print(f"[bold green]Completed[/] {generation.id} {elapsed}".rstrip())
    if outcome.get("output_url"):
        console.print(f"[cyan]Output:[/] {outcome['output_url']}")
    if generation.output_text:
        console.print(generation.output_text)
    return True


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("api.server:app", host=host, port=port)


def main() -> None:
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="ImageLingo generation service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve_parser = sub.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=settings.host)
    serve_parser.add_argument("--port", type=int, default=settings.port)

    watch_parser = sub.add_parser("watch", help="Follow a generation until it settles")
    watch_parser.add_argument("generation_id", type=str)
    watch_parser.add_argument("--user", type=str, default=None, help="User id sent as X-User-Id")
    watch_parser.add_argument(
        "--average-ms",
        type=float,
        default=settings.average_processing_ms,
        help="Average processing time driving the progress bar",
    )
    watch_parser.add_argument("--base-url", type=str, default=None)

    args = parser.parse_args()

    if args.command == "serve":
        serve(args.host, args.port)
        return

    ok = asyncio.run(
        watch_generation(args.generation_id, args.user, args.average_ms, args.base_url)
    )
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
