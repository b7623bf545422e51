"""Read the change under review from a local git repository."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Tuple

import pydantic as pd
from git import Repo as GitRepo
from git.exc import BadName, InvalidGitRepositoryError, NoSuchPathError

from quorum.review.errors import ReviewSessionError


class GitError(ReviewSessionError):
    """Base exception for Git-related errors."""


class InvalidRefError(GitError):
    """Raised when an invalid Git reference is provided."""


class RepositoryNotFoundError(GitError):
    """Raised when a Git repository is not found at the specified path."""


BINARY_EXTENSIONS = {
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp", ".svg",
    ".pdf", ".zip", ".tar", ".gz", ".exe", ".dll", ".so", ".dylib",
    ".bin", ".dat", ".pkl", ".parquet", ".xls", ".xlsx", ".doc", ".docx",
    ".mp3", ".mp4", ".wav", ".mov", ".ttf", ".otf", ".woff", ".woff2",
}


class ChangeSet(pd.BaseModel):
    """Changed files and unified diff between two refs."""

    base_ref: str
    head_ref: str
    changed_files: Tuple[str, ...] = ()
    diff: str = ""

    model_config = pd.ConfigDict(extra="forbid", frozen=True)


def _open_repo(repo_root: str) -> GitRepo:
    try:
        return GitRepo(repo_root)
    except InvalidGitRepositoryError as e:
        raise RepositoryNotFoundError(f"Not a git repository: {repo_root}") from e
    except NoSuchPathError as e:
        raise RepositoryNotFoundError(f"Path does not exist: {repo_root}") from e


def _is_binary_file(file_path: str) -> bool:
    return Path(file_path).suffix.lower() in BINARY_EXTENSIONS


def _read_change_sync(repo_root: str, base_ref: str, head_ref: str) -> ChangeSet:
    repo = _open_repo(repo_root)
    try:
        base_commit = repo.commit(base_ref)
        head_commit = repo.commit(head_ref)
    except (BadName, ValueError) as e:
        raise InvalidRefError(f"Invalid Git reference: {e}") from e

    changed_files: List[str] = []
    diff_parts: List[str] = []
    for diff_item in base_commit.diff(head_commit, create_patch=True):
        file_path = diff_item.b_path or diff_item.a_path
        if not file_path or _is_binary_file(file_path):
            continue
        changed_files.append(file_path)
        if diff_item.diff:
            patch = diff_item.diff
            if isinstance(patch, bytes):
                patch = patch.decode("utf-8", errors="ignore")
            diff_parts.append(
                f"--- a/{diff_item.a_path or file_path}\n+++ b/{file_path}\n{patch}"
            )

    return ChangeSet(
        base_ref=base_ref,
        head_ref=head_ref,
        changed_files=tuple(changed_files),
        diff="".join(diff_parts),
    )


async def read_change(repo_root: str, base_ref: str, head_ref: str) -> ChangeSet:
    """
    Get changed files and unified diff between two refs.

    Args:
        repo_root: Path to the Git repository
        base_ref: Base git reference (e.g., 'main', 'origin/main')
        head_ref: Head git reference (e.g., 'feature-branch', 'HEAD')

    Returns:
        ChangeSet with non-binary changed files and their patches

    Raises:
        RepositoryNotFoundError: If the repository is not found
        InvalidRefError: If an invalid reference is provided
    """
    return await asyncio.to_thread(_read_change_sync, repo_root, base_ref, head_ref)
