"""Constants for .quorum directory structure."""

from pathlib import Path

QUORUM_DIR = ".quorum"
REPORTS_DIR = "reports"
CONTEXT_DIR = "context"

DISCARD_NOTICE = "Review discarded; nothing was posted."


def get_quorum_dir(repo_root: Path) -> Path:
    """Get the .quorum directory path."""
    return repo_root / QUORUM_DIR


def get_reports_dir(repo_root: Path) -> Path:
    """Get the reports directory path."""
    return get_quorum_dir(repo_root) / REPORTS_DIR


def get_context_dir(repo_root: Path) -> Path:
    """Get the context notes directory path."""
    return get_quorum_dir(repo_root) / CONTEXT_DIR
