"""Main entry point for running precommit-progress as a module.

Usage:
    python -m precommit_progress --help
    python -m precommit_progress run --config .precommit-progress.yaml
    python -m precommit_progress check "ruff check ." "pytest -q" --all
"""

from __future__ import annotations

from .cli import app

if __name__ == "__main__":
    app()
