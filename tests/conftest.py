"""Shared test fixtures for precommit-progress tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import git
import pytest

from precommit_progress.renderer import SnapshotRenderer


@pytest.fixture
def python_cmd() -> Callable[[str], list[str]]:
    """Build an argument list running code in an unbuffered Python interpreter."""

    def build(code: str) -> list[str]:
        return [sys.executable, "-u", "-c", code]

    return build


@pytest.fixture
def renderer() -> SnapshotRenderer:
    """A renderer that records snapshots instead of drawing them."""
    return SnapshotRenderer()


@pytest.fixture
def git_repo(tmp_path: Path) -> git.Repo:
    """Create a temporary git repository with one commit touching two directories."""
    repo = git.Repo.init(tmp_path)

    # Configure git user for commits
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    (tmp_path / "backend").mkdir()
    (tmp_path / "frontend").mkdir()
    (tmp_path / "backend" / "app.py").write_text("print('backend')\n")
    (tmp_path / "frontend" / "app.js").write_text("console.log('frontend');\n")
    repo.index.add(["backend/app.py", "frontend/app.js"])
    repo.index.commit("Initial commit")

    return repo
