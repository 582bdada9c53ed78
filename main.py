"""CLI entrypoint: run a research workflow or serve the HTTP API."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
from typing import List, Optional

from rich.markdown import Markdown
from rich.panel import Panel

from core import LogEntry, Phase, Report
from intelligence.service import ResearchService
from orchestrator import ResearchController, ResearchObserver
from utils.exceptions import ConfigurationError
from utils.logger import console, setup_from_settings


_PHASE_STYLES = {
    Phase.ERROR: "bold red",
    Phase.COMPLETED: "bold green",
    Phase.REVIEWING: "yellow",
    Phase.REWRITING: "magenta",
}


class ConsoleObserver(ResearchObserver):
    """Streams log entries to the terminal."""

    def __init__(self, *, quiet: bool = False) -> None:
        self.quiet = quiet

    def on_log(self, entry: LogEntry) -> None:
        if self.quiet:
            return
        style = _PHASE_STYLES.get(entry.phase, "cyan")
        stamp = entry.timestamp.strftime("%H:%M:%S")
        console.print(f"[dim]{stamp}[/dim] [{style}]{entry.phase.value:<13}[/{style}] {entry.message}")
        if entry.phase == Phase.ERROR and entry.details:
            console.print(f"    [red]{entry.details}[/red]")


def _print_report(report: Optional[Report]) -> None:
    if report is None:
        console.print("[yellow]No report produced.[/yellow]")
        return
    score = f"{report.score}/5" if report.score is not None else "n/a"
    console.print(Panel(f"{report.topic}\nversion {report.version} | score {score}", title="Research report"))
    console.print(Markdown(report.markdown))
    if report.sources:
        console.print("\n[bold]Sources[/bold]")
        for idx, source in enumerate(report.sources, 1):
            console.print(f"  [{idx}] {source.title} - {source.uri}")


async def _wait_or_stop(controller: ResearchController, task: asyncio.Task) -> None:
    """Await a run; when the caller is cancelled (Ctrl-C), stop the run and let it settle first."""
    try:
        await asyncio.shield(task)
    except asyncio.CancelledError:
        controller.stop()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise


def _emit(controller: ResearchController, as_json: bool) -> int:
    snapshot = controller.snapshot()
    if as_json:
        print(json.dumps(snapshot.model_dump(mode="json"), ensure_ascii=False, indent=2))
    else:
        _print_report(snapshot.report)
    return 1 if snapshot.phase == Phase.ERROR else 0


async def _run_research(
    topic: str,
    follow_ups: List[str],
    *,
    max_retries: Optional[int],
    as_json: bool,
) -> int:
    controller = ResearchController(ResearchService(), max_retries=max_retries)
    controller.add_observer(ConsoleObserver(quiet=as_json))

    try:
        await _wait_or_stop(controller, controller.start(topic))
        for question in follow_ups:
            if controller.phase != Phase.COMPLETED:
                break
            await _wait_or_stop(controller, controller.follow_up(question))
    except asyncio.CancelledError:
        _emit(controller, as_json)
        raise

    return _emit(controller, as_json)


def main() -> int:
    parser = argparse.ArgumentParser(description="Research Report Agent CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    research = sub.add_parser("research", help="run a research workflow")
    research.add_argument("--topic", required=True)
    research.add_argument("--follow-up", action="append", default=[], dest="follow_ups")
    research.add_argument("--max-retries", type=int, default=None)
    research.add_argument("--json", action="store_true", dest="as_json")

    serve = sub.add_parser("serve", help="serve the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")

    args = parser.parse_args()
    setup_from_settings()

    if args.command == "serve":
        import uvicorn

        uvicorn.run("webapp.app:app", host=args.host, port=args.port, reload=args.reload)
        return 0

    try:
        return asyncio.run(
            _run_research(
                args.topic,
                [q for q in args.follow_ups if str(q).strip()],
                max_retries=args.max_retries,
                as_json=args.as_json,
            )
        )
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        return 2
    except ValueError as exc:
        console.print(f"[red]Invalid input:[/red] {exc}")
        return 2
    except KeyboardInterrupt:
        console.print("[yellow]Research stopped by user.[/yellow]")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
