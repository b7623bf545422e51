"""Context gathering stage: one sequential lookup before the fan-out.

The gatherer queries a context store client for ticket metadata and
historical summaries and freezes the answer into a ContextBundle. Lookup is
best effort: an unreachable or slow store yields an empty, degraded bundle
instead of aborting the session.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from quorum.review.contracts import ContextBundle, ContextQueryResult, TicketInfo
from quorum.review.errors import ContextUnavailable

logger = logging.getLogger(__name__)

NOTE_SUFFIXES = {".md", ".txt"}
MAX_SUMMARY_CHARS = 500
STATUS_LINE_RE = re.compile(r"^status:\s*(.+)$", re.IGNORECASE | re.MULTILINE)


class ContextStoreClient(ABC):
    """Read-only lookup of ticket and historical context.

    Ticket mutations ("assign to me", "set in progress") are explicit calls
    on this interface, never implicit side effects of a query.
    """

    @abstractmethod
    async def query(self, ticket_ref: Optional[str], file_list: List[str]) -> ContextQueryResult:
        """Look up context for a ticket and a set of touched files.

        Raises:
            ContextUnavailable: If the store cannot be reached.
        """
        pass

    async def start_work(self, ticket_ref: str) -> None:
        """Mark the ticket as being worked on. Default: no-op."""
        return None


class LocalContextStore(ContextStoreClient):
    """Context store over a directory of markdown/text notes.

    A note matches when it mentions the ticket reference or the basename of a
    changed file. ``<ticket_ref>.md`` holds the ticket itself: first heading
    is the title, an optional ``Status:`` line the status.
    """

    def __init__(self, notes_dir: Path) -> None:
        self.notes_dir = Path(notes_dir)

    async def query(self, ticket_ref: Optional[str], file_list: List[str]) -> ContextQueryResult:
        return await asyncio.to_thread(self._query_sync, ticket_ref, list(file_list))

    async def start_work(self, ticket_ref: str) -> None:
        await asyncio.to_thread(self._set_status, ticket_ref, "in progress")

    def _note_paths(self) -> List[Path]:
        if not self.notes_dir.is_dir():
            raise ContextUnavailable(f"Context directory not found: {self.notes_dir}")
        return sorted(
            p for p in self.notes_dir.iterdir() if p.is_file() and p.suffix in NOTE_SUFFIXES
        )

    def _query_sync(self, ticket_ref: Optional[str], file_list: List[str]) -> ContextQueryResult:
        paths = self._note_paths()

        ticket: Optional[TicketInfo] = None
        ticket_path = self._ticket_path(ticket_ref, paths)
        if ticket_ref and ticket_path is not None:
            ticket = _parse_ticket_note(ticket_ref, _read_note(ticket_path))

        keywords = {Path(f).name.lower() for f in file_list if f}
        if ticket_ref:
            keywords.add(ticket_ref.lower())

        summaries: List[str] = []
        for path in paths:
            if path == ticket_path:
                continue
            text = _read_note(path)
            lowered = text.lower()
            if any(keyword in lowered for keyword in keywords):
                summary = _first_paragraph(text)
                if summary:
                    summaries.append(f"{path.name}: {summary}")

        logger.debug(
            f"[context] {len(summaries)} matching notes in {self.notes_dir} "
            f"(ticket={'found' if ticket else 'none'})"
        )
        return ContextQueryResult(summaries=summaries, ticket=ticket)

    def _ticket_path(self, ticket_ref: Optional[str], paths: Sequence[Path]) -> Optional[Path]:
        if not ticket_ref:
            return None
        for path in paths:
            if path.stem == ticket_ref:
                return path
        return None

    def _set_status(self, ticket_ref: str, status: str) -> None:
        path = self._ticket_path(ticket_ref, self._note_paths())
        if path is None:
            logger.info(f"[context] No ticket note for {ticket_ref}; status not updated")
            return

        text = _read_note(path)
        if STATUS_LINE_RE.search(text):
            text = STATUS_LINE_RE.sub(f"Status: {status}", text, count=1)
        else:
            text = text.rstrip("\n") + f"\n\nStatus: {status}\n"
        path.write_text(text, encoding="utf-8")


def _read_note(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ContextUnavailable(f"Failed to read context note {path}: {e}") from e


def _first_paragraph(text: str) -> str:
    for block in re.split(r"\n\s*\n", text):
        lines = [ln.strip().lstrip("#").strip() for ln in block.strip().splitlines()]
        paragraph = " ".join(ln for ln in lines if ln)
        if paragraph:
            return paragraph[:MAX_SUMMARY_CHARS]
    return ""


def _parse_ticket_note(ticket_ref: str, text: str) -> TicketInfo:
    title = ""
    body_lines: List[str] = []
    for line in text.splitlines():
        if not title and line.startswith("#"):
            title = line.lstrip("#").strip()
            continue
        if STATUS_LINE_RE.match(line):
            continue
        body_lines.append(line)

    status_match = STATUS_LINE_RE.search(text)
    return TicketInfo(
        ref=ticket_ref,
        title=title,
        status=status_match.group(1).strip() if status_match else "",
        description="\n".join(body_lines).strip(),
    )


class ContextGatherer:
    """Sequential preparation stage producing the shared ContextBundle."""

    def __init__(self, client: ContextStoreClient | None, timeout_seconds: float) -> None:
        """Initialize the gatherer.

        Args:
            client: Context store client; None always yields a degraded bundle
            timeout_seconds: Upper bound on the store query
        """
        self.client = client
        self.timeout_seconds = timeout_seconds

    async def gather(self, ticket_ref: Optional[str], changed_files: Sequence[str]) -> ContextBundle:
        """Query the context store and freeze the answer.

        Never raises for store failures: an unreachable, failing or slow store
        yields ``ContextBundle.empty(degraded=True)``.

        Args:
            ticket_ref: Ticket reference, possibly absent
            changed_files: Files touched by the change

        Returns:
            Immutable ContextBundle
        """
        files = tuple(changed_files)

        if self.client is None:
            logger.warning("[context] No context store configured; continuing without context")
            return ContextBundle.empty(files)

        try:
            result = await asyncio.wait_for(
                self.client.query(ticket_ref, list(files)), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"[context] Context store timed out after {self.timeout_seconds}s; "
                "continuing with degraded context"
            )
            return ContextBundle.empty(files)
        except ContextUnavailable as e:
            logger.warning(f"[context] Context unavailable: {e}; continuing with degraded context")
            return ContextBundle.empty(files)
        except Exception as e:
            logger.warning(
                f"[context] Context store error: {e}; continuing with degraded context",
                exc_info=True,
            )
            return ContextBundle.empty(files)

        bundle = ContextBundle(
            ticket=result.ticket,
            summaries=tuple(result.summaries),
            changed_files=files,
            degraded=result.degraded,
        )
        logger.info(
            f"[context] Gathered {len(bundle.summaries)} summaries for {len(files)} files"
            f"{' (degraded)' if bundle.degraded else ''}"
        )
        return bundle

    async def claim_ticket(self, ticket_ref: Optional[str]) -> bool:
        """Best-effort explicit ticket mutation ("start work").

        Returns:
            True if the client accepted the call
        """
        if self.client is None or not ticket_ref:
            return False
        try:
            await asyncio.wait_for(self.client.start_work(ticket_ref), timeout=self.timeout_seconds)
        except Exception as e:
            logger.warning(f"[context] Could not mark ticket {ticket_ref} in progress: {e}")
            return False
        logger.info(f"[context] Marked ticket {ticket_ref} in progress")
        return True
