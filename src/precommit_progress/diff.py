"""Version-control diff checks using GitPython.

A task only runs when its diff path has outstanding changes. The check
shells out to ``git diff --exit-code`` and reads the answer from the exit
status: 1 means the path differs, 0 means it does not.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol, Union

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .config import PreCommitError

logger = logging.getLogger(__name__)

# git diff --exit-code: 0 = no differences, 1 = differences, anything else = error
_EXIT_NO_DIFF = 0
_EXIT_HAS_DIFF = 1


class DiffCheckError(PreCommitError):
    """Exception raised when git cannot answer a diff query."""

    pass


class DiffChecker(Protocol):
    """Anything that can tell whether a path has changes."""

    def has_diff(self, path: str, staged_check: bool = True, diff_ref: Optional[str] = None) -> bool:
        ...


def build_diff_command(path: str, staged_check: bool = True, diff_ref: Optional[str] = None) -> list[str]:
    """Build the git command line used by the diff check.

    Args:
        path: Path to restrict the diff to.
        staged_check: Only consider staged changes (``--cached``).
        diff_ref: Optional revision to compare against.

    Returns:
        Argument list starting with ``git``.
    """
    command = ["git", "diff"]
    if staged_check:
        command.append("--cached")
    command.append("--exit-code")
    if diff_ref:
        command.append(diff_ref)
    command.extend(["--", path])
    return command


def path_has_diff(
    path: str,
    staged_check: bool = True,
    diff_ref: Optional[str] = None,
    repo_path: Union[str, Path] = ".",
) -> bool:
    """Check whether a path has changes according to git.

    Args:
        path: Path to check (relative to ``repo_path`` or absolute).
        staged_check: Only consider staged changes.
        diff_ref: Optional revision to compare against.
        repo_path: Directory git runs from.

    Returns:
        True if the diff is non-empty.

    Raises:
        DiffCheckError: If git is missing or exits with an unexpected status.
    """
    command = build_diff_command(path, staged_check, diff_ref)
    logger.debug(f"Diff check: {' '.join(command)} (from {repo_path})")

    try:
        status, _stdout, stderr = git.Git(str(repo_path)).execute(
            command,
            with_extended_output=True,
            with_exceptions=False,
        )
    except GitCommandError as exc:
        raise DiffCheckError(f"Failed to run git diff for {path}: {exc}") from exc

    if status == _EXIT_HAS_DIFF:
        logger.debug(f"Diff found for {path}")
        return True
    if status == _EXIT_NO_DIFF:
        logger.debug(f"No diff for {path}")
        return False

    raise DiffCheckError(
        f"git diff failed for {path} (exit code {status}): {stderr.strip() if stderr else 'no output'}"
    )


def resolve_merge_base(branch: str, repo_path: Union[str, Path] = ".") -> str:
    """Return the merge base of ``branch`` and HEAD as a commit sha.

    Useful as a diff reference when checking everything a feature branch
    changed rather than only what is staged.

    Raises:
        DiffCheckError: If the repository or branch cannot be resolved.
    """
    try:
        repo = git.Repo(repo_path, search_parent_directories=True)
        bases = repo.merge_base(branch, "HEAD")
    except (InvalidGitRepositoryError, NoSuchPathError) as exc:
        raise DiffCheckError(f"Not a git repository: {repo_path}") from exc
    except GitCommandError as exc:
        raise DiffCheckError(f"Cannot compute merge base with {branch}: {exc}") from exc

    if not bases:
        raise DiffCheckError(f"No merge base between {branch} and HEAD")

    sha = bases[0].hexsha
    logger.debug(f"Merge base of {branch} and HEAD: {sha}")
    return sha


class GitDiffChecker:
    """Diff checker backed by the git executable."""

    def __init__(self, repo_path: Union[str, Path] = "."):
        self.repo_path = Path(repo_path)

    def has_diff(self, path: str, staged_check: bool = True, diff_ref: Optional[str] = None) -> bool:
        return path_has_diff(path, staged_check, diff_ref, repo_path=self.repo_path)


class MockDiffChecker:
    """Diff checker for testing without a git repository."""

    def __init__(self, dirty_paths: Optional[set[str]] = None, error: Optional[Exception] = None):
        """Initialize mock checker.

        Args:
            dirty_paths: Paths reported as having a diff.
            error: If set, raised from every call.
        """
        self.dirty_paths = set(dirty_paths or ())
        self.error = error
        self.calls: list[tuple[str, bool, Optional[str]]] = []

    def has_diff(self, path: str, staged_check: bool = True, diff_ref: Optional[str] = None) -> bool:
        """Mock diff check."""
        self.calls.append((path, staged_check, diff_ref))
        if self.error is not None:
            raise self.error
        return path in self.dirty_paths
