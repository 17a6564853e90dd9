"""Command line entry point: ask a question, watch the research run stream by.

Usage:
    better-perplexity "How do heat pumps work?" --mode reliability --trace
"""

import argparse
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from .errors import PipelineError, ValidationError
from .log import setup_logging, get_logger
from .pipeline.orchestrator import build_orchestrator
from .schemas.progress import ProgressEvent

console = Console()

LABEL_STYLES = {"supported": "green", "weak": "yellow", "unsupported": "red"}


def render_event(event: ProgressEvent):
    if event.type == "status":
        console.print(f"[dim]\\[{event.step}/{event.total}] {event.message}[/dim]")
    elif event.type == "token":
        console.print(event.chunk, end="", markup=False, highlight=False)
    elif event.type == "claims":
        table = Table(title="Verified claims")
        table.add_column("Label")
        table.add_column("Score", justify="right")
        table.add_column("Claim")
        for c in event.claims:
            style = LABEL_STYLES.get(c.label, "")
            table.add_row(Text(c.label, style=style), f"{c.score:.2f}", Text(c.claim))
        console.print(table)
    elif event.type == "trace":
        console.print()
        for t in event.trace:
            console.print(f"trace {t.model_dump_json()}", style="dim", markup=False, highlight=False)
    elif event.type == "error":
        console.print(f"\n[red]Error:[/red] {escape(event.message)}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Answer a question from cited web evidence.")
    parser.add_argument("question", help="The question to research")
    parser.add_argument("--mode", choices=["normal", "reliability"], default="normal")
    parser.add_argument("--trace", action="store_true", help="Print the run trace at the end")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    load_dotenv()
    setup_logging("DEBUG" if args.verbose else None)
    logger = get_logger("cli")

    try:
        orchestrator = build_orchestrator()
    except Exception as e:
        logger.debug("Startup failed", exc_info=True)
        console.print(f"[red]Startup failed:[/red] {escape(str(e) or type(e).__name__)}")
        return 1

    try:
        result = orchestrator.run(args.question, mode=args.mode, on_event=render_event, include_trace=args.trace)
    except ValidationError as e:
        console.print(f"[red]Invalid input:[/red] {escape(str(e))}")
        return 2
    except PipelineError:
        # Already reported through the error event
        return 1
    except Exception:
        # Reported through the error event and logged by the orchestrator
        logger.debug("Run aborted by an unexpected error", exc_info=True)
        return 1

    console.print()
    if result.sources:
        console.rule("Sources")
        for i, s in enumerate(result.sources, start=1):
            console.print(f"[{i}] {s.title} - {s.url}", markup=False)
    logger.debug(f"Run {result.run_id} finished (cached={result.cached})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
