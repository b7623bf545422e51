"""Tests for ContextGatherer degradation and LocalContextStore."""

import asyncio

import pytest

from quorum.review.context_gatherer import ContextGatherer, ContextStoreClient, LocalContextStore
from quorum.review.contracts import ContextQueryResult, TicketInfo
from quorum.review.errors import ContextUnavailable


class StubStore(ContextStoreClient):
    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result or ContextQueryResult()
        self.error = error
        self.delay = delay
        self.queries = []

    async def query(self, ticket_ref, file_list):
        self.queries.append((ticket_ref, file_list))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class TestGather:
    @pytest.mark.asyncio
    async def test_builds_bundle_from_store(self):
        store = StubStore(
            ContextQueryResult(summaries=["a.md: note"], ticket=TicketInfo(ref="PROJ-1", title="T"))
        )

        bundle = await ContextGatherer(store, 1.0).gather("PROJ-1", ["app/a.rb"])

        assert store.queries == [("PROJ-1", ["app/a.rb"])]
        assert bundle.summaries == ("a.md: note",)
        assert bundle.ticket.title == "T"
        assert bundle.changed_files == ("app/a.rb",)
        assert not bundle.degraded

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [ContextUnavailable("connection refused"), RuntimeError("unexpected payload")],
    )
    async def test_store_errors_degrade(self, error):
        bundle = await ContextGatherer(StubStore(error=error), 1.0).gather("PROJ-1", ["a.rb"])

        assert bundle.degraded
        assert bundle.summaries == ()
        assert bundle.ticket is None
        assert bundle.changed_files == ("a.rb",)

    @pytest.mark.asyncio
    async def test_slow_store_degrades(self):
        bundle = await ContextGatherer(StubStore(delay=5.0), 0.05).gather(None, [])

        assert bundle.degraded

    @pytest.mark.asyncio
    async def test_absent_ticket_is_valid(self):
        store = StubStore(ContextQueryResult(summaries=["x"]))

        bundle = await ContextGatherer(store, 1.0).gather(None, ["a.rb"])

        assert store.queries == [(None, ["a.rb"])]
        assert bundle.ticket is None
        assert not bundle.degraded

    @pytest.mark.asyncio
    async def test_no_client_degrades(self):
        bundle = await ContextGatherer(None, 1.0).gather("PROJ-1", ["a.rb"])

        assert bundle.degraded

    @pytest.mark.asyncio
    async def test_bundle_is_immutable(self):
        bundle = await ContextGatherer(StubStore(), 1.0).gather(None, [])

        with pytest.raises(Exception):
            bundle.summaries = ("changed",)


class TestClaimTicket:
    @pytest.mark.asyncio
    async def test_default_start_work_is_noop(self):
        assert await ContextGatherer(StubStore(), 1.0).claim_ticket("PROJ-1")

    @pytest.mark.asyncio
    async def test_without_ticket(self):
        assert not await ContextGatherer(StubStore(), 1.0).claim_ticket(None)

    @pytest.mark.asyncio
    async def test_failure_is_not_fatal(self):
        class Failing(StubStore):
            async def start_work(self, ticket_ref):
                raise ContextUnavailable("read-only token")

        assert not await ContextGatherer(Failing(), 1.0).claim_ticket("PROJ-1")


@pytest.fixture
def notes_dir(tmp_path):
    notes = tmp_path / "context"
    notes.mkdir()
    (notes / "PROJ-42.md").write_text(
        "# Add user avatars\n\nStatus: todo\n\nUsers upload a profile picture.\n", encoding="utf-8"
    )
    (notes / "avatars.md").write_text(
        "Avatars are stored on S3 behind a signed URL.\nSee user.rb for the attachment.\n\nMore detail.\n",
        encoding="utf-8",
    )
    (notes / "billing.txt").write_text("Invoices are generated nightly.\n", encoding="utf-8")
    (notes / "image.png").write_bytes(b"\x89PNG")
    return notes


class TestLocalContextStore:
    @pytest.mark.asyncio
    async def test_query_matches_changed_files_and_ticket(self, notes_dir):
        result = await LocalContextStore(notes_dir).query("PROJ-42", ["app/models/user.rb"])

        assert result.ticket.ref == "PROJ-42"
        assert result.ticket.title == "Add user avatars"
        assert result.ticket.status == "todo"
        assert "profile picture" in result.ticket.description
        assert result.summaries == [
            "avatars.md: Avatars are stored on S3 behind a signed URL. See user.rb for the attachment."
        ]

    @pytest.mark.asyncio
    async def test_missing_directory_is_unavailable(self, tmp_path):
        with pytest.raises(ContextUnavailable):
            await LocalContextStore(tmp_path / "missing").query(None, [])

    @pytest.mark.asyncio
    async def test_start_work_updates_status(self, notes_dir):
        store = LocalContextStore(notes_dir)

        await store.start_work("PROJ-42")
        result = await store.query("PROJ-42", [])

        assert result.ticket.status == "in progress"

    @pytest.mark.asyncio
    async def test_gatherer_over_missing_directory_degrades(self, tmp_path):
        bundle = await ContextGatherer(LocalContextStore(tmp_path / "missing"), 1.0).gather("X", [])

        assert bundle.degraded
