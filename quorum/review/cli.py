"""CLI command for running a review session from the command line."""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from quorum.review.constants import get_context_dir, get_reports_dir
from quorum.review.contracts import AggregatedReport, SessionOutcome, SessionStatus, Severity
from quorum.review.errors import ActionPostFailed, ReviewSessionError
from quorum.review.gate import ConfirmationSignal, Confirmer, StaticConfirmer

console = Console()
logger = logging.getLogger(__name__)

SEVERITY_STYLES = {
    Severity.MAJOR: "red",
    Severity.MINOR: "yellow",
    Severity.NIT: "dim",
}


def format_terminal_progress(focus: str, status: str, data: dict) -> None:
    """Format and print progress events to terminal.

    Args:
        focus: Reviewer focus
        status: started, completed, failed or timed_out
        data: Additional data from the progress event
    """
    if status == "started":
        console.print(f"[cyan][{focus}][/cyan] [dim]Started review...[/dim]")
    elif status == "completed":
        console.print(f"[green][{focus}][/green] [dim]Completed with {data.get('findings', 0)} finding(s)[/dim]")
    elif status == "timed_out":
        console.print(f"[yellow][{focus}][/yellow] [dim]Timed out ({data.get('error', '')})[/dim]")
    elif status == "failed":
        console.print(f"[red][{focus}][/red] [dim]Failed: {data.get('error', 'Unknown error')}[/dim]")


async def _print_progress(focus: str, status: str, data: dict) -> None:
    format_terminal_progress(focus, status, data)


def print_report(report: AggregatedReport) -> None:
    """Print the aggregated report as a rich table."""
    verdict_style = {
        "approve": "green",
        "comment": "yellow",
        "request_changes": "red",
    }[report.verdict.value]
    console.print(f"\nVerdict: [bold {verdict_style}]{report.verdict.value}[/bold {verdict_style}]")

    if not report.findings:
        console.print("[green]No issues found.[/green]")
        return

    table = Table(show_lines=False)
    table.add_column("Severity")
    table.add_column("Location")
    table.add_column("Message")
    table.add_column("Source", style="dim")
    for finding in report.findings:
        style = SEVERITY_STYLES[finding.severity]
        sources = ", ".join((finding.source_task_id,) + finding.merged_from)
        table.add_row(
            f"[{style}]{finding.severity.value}[/{style}]",
            str(finding.location),
            finding.message + (f"\n[dim]fix: {finding.suggested_fix}[/dim]" if finding.suggested_fix else ""),
            sources,
        )
    console.print(table)


class ConsoleConfirmer(Confirmer):
    """Ask the human at the terminal to approve, edit or cancel.

    The blocking prompt runs on a daemon thread rather than the loop's default
    executor: a cancelled session returns at once even while the thread is
    still blocked reading stdin.
    """

    async def ask(self, report: AggregatedReport, body: str) -> ConfirmationSignal:
        loop = asyncio.get_running_loop()
        answer: asyncio.Future = loop.create_future()

        def worker() -> None:
            try:
                decision = self._ask_sync(report, body)
            except BaseException as e:
                _deliver(loop, answer, error=e)
            else:
                _deliver(loop, answer, result=decision)

        threading.Thread(target=worker, name="quorum-confirm", daemon=True).start()
        return await answer

    def _ask_sync(self, report: AggregatedReport, body: str) -> ConfirmationSignal:
        print_report(report)
        console.print(Panel(Markdown(body), title="Review body"))

        while True:
            choice = Prompt.ask(
                "Post this review?",
                choices=["approve", "edit", "cancel"],
                default="approve",
                console=console,
            )
            if choice == "approve":
                return ConfirmationSignal.approve()
            if choice == "cancel":
                return ConfirmationSignal.cancel()

            edited = click.edit(body, extension=".md")
            if edited is not None and edited.strip():
                return ConfirmationSignal.edit(edited)
            console.print("[yellow]Edit was empty or unchanged; choose again.[/yellow]")


def _deliver(loop: asyncio.AbstractEventLoop, answer: asyncio.Future, result=None, error=None) -> None:
    """Hand a worker thread's outcome to ``answer`` on its loop.

    Dropped when the loop has already closed or the wait was cancelled.
    """

    def settle() -> None:
        if answer.done():
            return
        if error is not None:
            answer.set_exception(error)
        else:
            answer.set_result(result)

    try:
        loop.call_soon_threadsafe(settle)
    except RuntimeError:
        logger.debug("Confirmation arrived after the session ended; ignoring")


def print_outcome(outcome: SessionOutcome) -> None:
    if outcome.status == SessionStatus.CANCELLED:
        console.print(f"[yellow]{outcome.notice}[/yellow]")
        return
    console.print(f"[green]{outcome.notice}[/green]")


@click.group()
def cli() -> None:
    """Multi-reviewer code review sessions."""


@cli.command()
@click.option(
    "--repo-root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path.cwd,
    help="Repository root directory (default: current directory)",
)
@click.option("--base-ref", default="main", help="Base git reference (default: main)")
@click.option("--head-ref", default="HEAD", help="Head git reference (default: HEAD)")
@click.option("--ticket", "ticket_ref", default=None, help="Ticket reference for context lookup")
@click.option("--change-id", default=None, help="Change/PR identifier on the review host (default: head ref)")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: quorum.toml or [tool.quorum] in pyproject.toml)",
)
@click.option("--focus", "foci", multiple=True, help="Reviewer focus; repeat for each (overrides config)")
@click.option(
    "--reviewer-command",
    envvar="QUORUM_REVIEWER_COMMAND",
    required=True,
    help="External analysis command; receives the prompt on stdin",
)
@click.option(
    "--context-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory of context notes (default: .quorum/context)",
)
@click.option("--claim-ticket", is_flag=True, help="Mark the ticket in progress before reviewing")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Approve the drafted review without prompting")
@click.option("--json", "as_json", is_flag=True, help="Print the session outcome as JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def review(
    repo_root: Path,
    base_ref: str,
    head_ref: str,
    ticket_ref: Optional[str],
    change_id: Optional[str],
    config_path: Optional[Path],
    foci: Tuple[str, ...],
    reviewer_command: str,
    context_dir: Optional[Path],
    claim_ticket: bool,
    assume_yes: bool,
    as_json: bool,
    verbose: bool,
) -> None:
    """Review the change between base-ref and head-ref.

    One reviewer runs per focus in parallel; findings are merged into a
    single report that you approve, edit or cancel before it is posted.
    """
    from quorum.review.config import load_session_config
    from quorum.review.context_gatherer import LocalContextStore
    from quorum.review.executor import ActionExecutor, FileReviewHost
    from quorum.review.logging_utils import setup_logging
    from quorum.review.orchestrator import ReviewOrchestrator
    from quorum.review.reviewers import CommandReviewer
    from quorum.review.utils.git import read_change

    setup_logging(verbose)
    repo_root = repo_root.resolve()

    try:
        config = load_session_config(
            repo_root, config_path, overrides={"foci": list(foci) if foci else None}
        )
    except ReviewSessionError as e:
        raise click.ClickException(str(e)) from e

    orchestrator = ReviewOrchestrator(
        config=config,
        reviewer=CommandReviewer(reviewer_command, cwd=str(repo_root)),
        executor=ActionExecutor(
            FileReviewHost(get_reports_dir(repo_root)),
            change_id=change_id or head_ref,
            max_attempts=config.post_max_attempts,
            backoff_seconds=config.post_backoff_seconds,
        ),
        confirmer=StaticConfirmer(ConfirmationSignal.approve()) if assume_yes else ConsoleConfirmer(),
        context_client=LocalContextStore(context_dir or get_context_dir(repo_root)),
        progress_callback=None if as_json else _print_progress,
    )

    async def run() -> SessionOutcome:
        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers unavailable; Ctrl-C will abort instead of cancel")

        change = await read_change(str(repo_root), base_ref, head_ref)
        if not change.changed_files:
            console.print("[yellow]No changes between refs; reviewing an empty diff.[/yellow]")
        return await orchestrator.run_session(
            diff=change.diff,
            changed_files=change.changed_files,
            ticket_ref=ticket_ref,
            cancel_event=cancel_event,
            claim_ticket=claim_ticket,
        )

    try:
        outcome = asyncio.run(run())
    except ActionPostFailed as e:
        console.print("[red]Posting failed; the review below was not posted:[/red]")
        console.print(e.body, markup=False)
        raise click.ClickException(str(e)) from e
    except ReviewSessionError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(outcome.model_dump_json(indent=2))
    else:
        print_outcome(outcome)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
