"""Subprocess-backed reviewer for external analysis commands."""

from __future__ import annotations

import asyncio
import logging
import shlex
from typing import List

from quorum.review.base import BaseReviewer, parse_finding_lines
from quorum.review.contracts import ContextBundle, Finding
from quorum.review.errors import ReviewerFailed

logger = logging.getLogger(__name__)

FINDING_FORMAT_INSTRUCTIONS = """Report each issue on its own line using exactly this format:

[MAJOR|MINOR|NIT] <file>:<line>[-<end_line>] <message> || fix: <suggested fix>

The "|| fix: ..." suffix is optional. Output nothing else; an empty response means no issues."""


def build_review_prompt(focus: str, diff: str, bundle: ContextBundle) -> str:
    """Build the prompt handed to an external reviewer command.

    Args:
        focus: Area of concern for this reviewer
        diff: Unified diff under review
        bundle: Shared context

    Returns:
        Prompt text
    """
    parts = [
        f"You are reviewing a code change. Focus ONLY on: {focus}.",
        "",
    ]

    if bundle.ticket is not None:
        parts.append(f"## Ticket {bundle.ticket.ref}")
        if bundle.ticket.title:
            parts.append(bundle.ticket.title)
        if bundle.ticket.description:
            parts.append("")
            parts.append(bundle.ticket.description)
        parts.append("")

    if bundle.summaries:
        parts.append("## Historical context")
        parts.extend(f"- {summary}" for summary in bundle.summaries)
        parts.append("")
    elif bundle.degraded:
        parts.append("(Historical context was unavailable for this review.)")
        parts.append("")

    if bundle.changed_files:
        parts.append("## Changed files")
        parts.extend(f"- {path}" for path in bundle.changed_files)
        parts.append("")

    parts.append("## Diff")
    parts.append("```diff")
    parts.append(diff)
    parts.append("```")
    parts.append("")
    parts.append(FINDING_FORMAT_INSTRUCTIONS)

    return "\n".join(parts)


class CommandReviewer(BaseReviewer):
    """Run an external command per focus and parse its stdout into findings.

    The command is split with shlex and executed without a shell. The prompt
    goes to stdin. ``{focus}`` in the command is replaced with the focus name.

    Example:
        >>> reviewer = CommandReviewer("llm -s 'code reviewer'")
    """

    def __init__(self, command: str, cwd: str | None = None) -> None:
        if not command.strip():
            raise ValueError("reviewer command must not be empty")
        self.command = command
        self.cwd = cwd

    def get_reviewer_name(self) -> str:
        return shlex.split(self.command)[0]

    async def analyze(self, focus: str, diff: str, bundle: ContextBundle) -> List[Finding]:
        command_parts = [part.replace("{focus}", focus) for part in shlex.split(self.command)]
        prompt = build_review_prompt(focus, diff, bundle)

        logger.debug(f"[{focus}] Running reviewer command: {command_parts[0]}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command_parts,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            raise ReviewerFailed(f"could not start {command_parts[0]}: {e}") from e

        try:
            stdout, stderr = await process.communicate(prompt.encode("utf-8"))
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="ignore").strip()[:500]
            raise ReviewerFailed(
                f"{command_parts[0]} exited with status {process.returncode}: {detail}"
            )

        return parse_finding_lines(stdout.decode("utf-8", errors="ignore"), focus)
