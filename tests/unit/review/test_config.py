"""Tests for session configuration discovery and validation."""

import pytest

from quorum.review.config import discover_config_table, load_session_config
from quorum.review.errors import ConfigError

FULL_CONFIG = """
foci = ["correctness", "security"]
task_timeout_seconds = 60
session_timeout_seconds = 180
context_timeout_seconds = 5
similarity_threshold = 0.8
post_max_attempts = 4
post_backoff_seconds = 1.5
"""


def pyproject_with(table: str) -> str:
    return '[project]\nname = "app"\n\n[tool.quorum]\n' + table


class TestDiscovery:
    def test_quorum_toml(self, tmp_path):
        (tmp_path / "quorum.toml").write_text(FULL_CONFIG)

        config = load_session_config(tmp_path)

        assert config.foci == ["correctness", "security"]
        assert config.similarity_threshold == 0.8
        assert config.post_max_attempts == 4

    def test_pyproject_table(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text(pyproject_with(FULL_CONFIG))

        assert load_session_config(tmp_path).task_timeout_seconds == 60

    def test_quorum_toml_wins_over_pyproject(self, tmp_path):
        (tmp_path / "quorum.toml").write_text(FULL_CONFIG)
        (tmp_path / "pyproject.toml").write_text(pyproject_with(FULL_CONFIG.replace("0.8", "0.5")))

        assert load_session_config(tmp_path).similarity_threshold == 0.8

    def test_explicit_file_with_tool_table(self, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text(pyproject_with(FULL_CONFIG))

        assert load_session_config(tmp_path, config_path=path).foci == ["correctness", "security"]

    def test_pyproject_without_table(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "app"\n')

        assert discover_config_table(tmp_path) == {}

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            discover_config_table(tmp_path, tmp_path / "nope.toml")

    def test_malformed_toml(self, tmp_path):
        (tmp_path / "quorum.toml").write_text("foci = [")

        with pytest.raises(ConfigError, match="Failed to parse"):
            load_session_config(tmp_path)


class TestValidation:
    def test_no_config_is_an_error(self, tmp_path):
        with pytest.raises(ConfigError, match="similarity_threshold"):
            load_session_config(tmp_path)

    def test_missing_single_field(self, tmp_path):
        (tmp_path / "quorum.toml").write_text(FULL_CONFIG.replace("similarity_threshold = 0.8\n", ""))

        with pytest.raises(ConfigError, match="similarity_threshold"):
            load_session_config(tmp_path)

    @pytest.mark.parametrize(
        "line, replacement",
        [
            ("similarity_threshold = 0.8", "similarity_threshold = 1.5"),
            ("post_max_attempts = 4", "post_max_attempts = 0"),
            ("task_timeout_seconds = 60", "task_timeout_seconds = 0"),
            ('foci = ["correctness", "security"]', 'foci = ["security", "security"]'),
        ],
    )
    def test_invalid_values(self, tmp_path, line, replacement):
        (tmp_path / "quorum.toml").write_text(FULL_CONFIG.replace(line, replacement))

        with pytest.raises(ConfigError):
            load_session_config(tmp_path)

    def test_unknown_key_is_rejected(self, tmp_path):
        (tmp_path / "quorum.toml").write_text(FULL_CONFIG + "max_reviewers = 9\n")

        with pytest.raises(ConfigError, match="max_reviewers"):
            load_session_config(tmp_path)


class TestOverrides:
    def test_overrides_replace_file_values(self, tmp_path):
        (tmp_path / "quorum.toml").write_text(FULL_CONFIG)

        config = load_session_config(tmp_path, overrides={"foci": ["style"]})

        assert config.foci == ["style"]

    def test_none_overrides_are_ignored(self, tmp_path):
        (tmp_path / "quorum.toml").write_text(FULL_CONFIG)

        config = load_session_config(tmp_path, overrides={"foci": None})

        assert config.foci == ["correctness", "security"]

    def test_empty_foci_is_allowed(self, tmp_path):
        (tmp_path / "quorum.toml").write_text(FULL_CONFIG)

        assert load_session_config(tmp_path, overrides={"foci": []}).foci == []
