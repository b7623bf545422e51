"""Tests for reviewer output parsing, prompt building and CommandReviewer."""

import sys

import pytest

from quorum.review.base import parse_finding_line, parse_finding_lines
from quorum.review.contracts import ContextBundle, Severity
from quorum.review.errors import ReviewerFailed
from quorum.review.reviewers import CommandReviewer, build_review_prompt


class TestParseFindingLine:
    def test_full_line(self):
        finding = parse_finding_line(
            "[MAJOR] app/models/user.rb:10-14 Transaction is never committed || fix: call commit!",
            "review_correctness_0",
        )

        assert finding.severity == Severity.MAJOR
        assert finding.location.file == "app/models/user.rb"
        assert (finding.location.line, finding.location.end_line) == (10, 14)
        assert finding.message == "Transaction is never committed"
        assert finding.suggested_fix == "call commit!"
        assert finding.source_task_id == "review_correctness_0"

    def test_lowercase_bullet_without_brackets(self):
        finding = parse_finding_line("- nit lib/util.py:3 Trailing whitespace", "t")

        assert finding.severity == Severity.NIT
        assert finding.location.end_line is None
        assert finding.suggested_fix is None

    @pytest.mark.parametrize(
        "line",
        [
            "Looks good to me!",
            "[CRITICAL] a.py:1 Unknown severity",
            "[MAJOR] a.py Missing line number",
            "[MINOR] a.py:9-3 Range runs backwards",
        ],
    )
    def test_rejects_malformed(self, line):
        assert parse_finding_line(line, "t") is None

    def test_lines_skip_blanks_comments_and_noise(self):
        text = "\n".join([
            "# security review",
            "",
            "[MINOR] a.rb:1 First",
            "Some chatter from the model",
            "[NIT] b.rb:2 Second",
        ])

        findings = parse_finding_lines(text, "t")

        assert [f.message for f in findings] == ["First", "Second"]


class TestPrompt:
    def test_includes_focus_context_and_diff(self, context_bundle, sample_diff):
        prompt = build_review_prompt("security", sample_diff, context_bundle)

        assert "Focus ONLY on: security" in prompt
        assert "PROJ-42" in prompt
        assert "Avatars are stored on S3" in prompt
        assert "- app/models/user.rb" in prompt
        assert "has_one_attached :avatar" in prompt
        assert "[MAJOR|MINOR|NIT]" in prompt

    def test_notes_degraded_context(self, sample_diff):
        prompt = build_review_prompt("security", sample_diff, ContextBundle.empty(["a.rb"]))

        assert "unavailable" in prompt


class TestCommandReviewer:
    @pytest.mark.asyncio
    async def test_parses_stdout(self, context_bundle, sample_diff):
        script = "import sys; sys.stdin.read(); print('[MAJOR] a.rb:1 Found {focus} issue')"
        reviewer = CommandReviewer(f'"{sys.executable}" -c "{script}"')

        findings = await reviewer.analyze("security", sample_diff, context_bundle)

        assert [f.message for f in findings] == ["Found security issue"]

    @pytest.mark.asyncio
    async def test_receives_prompt_on_stdin(self, context_bundle, sample_diff):
        script = (
            "import sys; data = sys.stdin.read(); "
            "print('[NIT] a.rb:1 saw diff' if 'has_one_attached' in data else '')"
        )
        reviewer = CommandReviewer(f'"{sys.executable}" -c "{script}"')

        findings = await reviewer.analyze("style", sample_diff, context_bundle)

        assert len(findings) == 1

    @pytest.mark.asyncio
    async def test_non_zero_exit_fails(self, context_bundle, sample_diff):
        script = "import sys; sys.stderr.write('quota exceeded'); sys.exit(3)"
        reviewer = CommandReviewer(f'"{sys.executable}" -c "{script}"')

        with pytest.raises(ReviewerFailed, match="quota exceeded"):
            await reviewer.analyze("security", sample_diff, context_bundle)

    @pytest.mark.asyncio
    async def test_missing_executable_fails(self, context_bundle, sample_diff):
        reviewer = CommandReviewer("definitely-not-a-real-reviewer-binary")

        with pytest.raises(ReviewerFailed, match="could not start"):
            await reviewer.analyze("security", sample_diff, context_bundle)

    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            CommandReviewer("  ")
