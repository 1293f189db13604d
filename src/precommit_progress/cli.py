"""CLI entrypoint for precommit-progress.

Two ways to describe the checks:
1. ``run`` reads them from a YAML file (``.precommit-progress.yaml`` by default).
2. ``check`` takes command lines straight from the command line.

Both print a live status view and exit with 0 when every check passed,
1 when any failed.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import CheckConfig, ConfigError, RunOptions, TaskDescriptor
from .diff import DiffCheckError, resolve_merge_base
from .orchestrator import run_pre_commit

app = typer.Typer(
    name="precommit-progress",
    help="Run pre-commit checks on changed directories with live progress.",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False, level: str = "WARNING") -> None:
    """Configure logging with Rich handler.

    Args:
        verbose: If True, set DEBUG level; otherwise use ``level``.
        level: Level name used when not verbose.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"precommit-progress version {__version__}")
        raise typer.Exit()


def apply_overrides(
    options: RunOptions,
    diff_only: Optional[bool] = None,
    staged: Optional[bool] = None,
    diff_ref: Optional[str] = None,
    merge_base: Optional[str] = None,
    max_parallel: Optional[int] = None,
) -> RunOptions:
    """Apply command line overrides on top of configured options.

    ``merge_base`` wins over ``diff_ref`` when both are given.

    Raises:
        ConfigError: If ``max_parallel`` is below 1.
        DiffCheckError: If the merge base cannot be resolved.
    """
    changes: dict = {}
    if diff_only is not None:
        changes["check_git_diff"] = diff_only
    if staged is not None:
        changes["staged_check"] = staged
    if diff_ref:
        changes["diff_ref"] = diff_ref
    if merge_base:
        changes["diff_ref"] = resolve_merge_base(merge_base, options.repo_path)
    if max_parallel is not None:
        changes["max_parallel"] = max_parallel
    return replace(options, **changes)


def _execute(tasks: list[TaskDescriptor], options: RunOptions) -> None:
    try:
        result = run_pre_commit(tasks, options)
    except DiffCheckError as e:
        err_console.print(f"[red]Diff check failed:[/red] {e}")
        raise typer.Exit(code=2)

    raise typer.Exit(code=result.exit_code)


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Run pre-commit checks on changed directories with live progress."""
    pass


@app.command()
def run(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the task file (default: .precommit-progress.yaml in the current directory).",
    ),
    diff_only: bool = typer.Option(
        None,
        "--diff-only/--all",
        help="Only run tasks whose path has changes, or run everything (default from config).",
    ),
    staged: bool = typer.Option(
        None,
        "--staged/--unstaged",
        help="Look at staged changes only, or at unstaged changes too (default from config).",
    ),
    diff_ref: Optional[str] = typer.Option(
        None,
        "--diff-ref",
        help="Revision to diff against.",
    ),
    merge_base: Optional[str] = typer.Option(
        None,
        "--merge-base",
        help="Diff against the merge base of this branch and HEAD (e.g. origin/develop).",
    ),
    max_parallel: Optional[int] = typer.Option(
        None,
        "--max-parallel",
        "-j",
        min=1,
        help="Maximum number of checks running at once (default: unbounded).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable debug logging.",
    ),
) -> None:
    """Run the checks listed in a task file."""
    try:
        config = CheckConfig.from_env(config_file)
    except ConfigError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    setup_logging(verbose, config.log_level)

    errors = config.validate()
    if errors:
        for error in errors:
            err_console.print(f"[red]Error:[/red] {error}")
        raise typer.Exit(code=1)

    try:
        options = apply_overrides(
            config.options, diff_only, staged, diff_ref, merge_base, max_parallel
        )
    except (ConfigError, DiffCheckError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=2 if isinstance(e, DiffCheckError) else 1)

    _execute(config.tasks, options)


@app.command()
def check(
    commands: List[str] = typer.Argument(
        ...,
        help="Command lines to run, one argument each (quote them).",
    ),
    cwd: Path = typer.Option(
        Path("."),
        "--cwd",
        help="Working directory for every command.",
    ),
    diff_path: Optional[Path] = typer.Option(
        None,
        "--diff-path",
        help="Path whose changes gate the commands (default: --cwd).",
    ),
    diff_only: bool = typer.Option(
        True,
        "--diff-only/--all",
        help="Only run if the path has changes, or run unconditionally.",
    ),
    staged: bool = typer.Option(
        True,
        "--staged/--unstaged",
        help="Look at staged changes only, or at unstaged changes too.",
    ),
    diff_ref: Optional[str] = typer.Option(
        None,
        "--diff-ref",
        help="Revision to diff against.",
    ),
    merge_base: Optional[str] = typer.Option(
        None,
        "--merge-base",
        help="Diff against the merge base of this branch and HEAD.",
    ),
    max_parallel: Optional[int] = typer.Option(
        None,
        "--max-parallel",
        "-j",
        min=1,
        help="Maximum number of commands running at once (default: unbounded).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable debug logging.",
    ),
) -> None:
    """Run ad-hoc commands without a task file."""
    setup_logging(verbose)

    if not cwd.is_dir():
        err_console.print(f"[red]Error:[/red] Directory does not exist: {cwd}")
        raise typer.Exit(code=1)

    try:
        tasks = [
            TaskDescriptor(
                cmd=command,
                cwd=str(cwd),
                diff_path=str(diff_path) if diff_path else None,
            )
            for command in commands
        ]
    except ConfigError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    try:
        options = apply_overrides(
            RunOptions(), diff_only, staged, diff_ref, merge_base, max_parallel
        )
    except DiffCheckError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=2)

    _execute(tasks, options)


@app.command("list-tasks")
def list_tasks(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the task file (default: .precommit-progress.yaml in the current directory).",
    ),
) -> None:
    """List the tasks configured in a task file."""
    try:
        config = CheckConfig.from_env(config_file)
    except ConfigError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if not config.tasks:
        err_console.print("[yellow]No tasks configured.[/yellow]")
        raise typer.Exit(code=1)

    table = Table(title="Configured Tasks")
    table.add_column("#", style="dim")
    table.add_column("Command", style="cyan")
    table.add_column("Directory", style="green")
    table.add_column("Diff Path")

    for index, task in enumerate(config.tasks, start=1):
        table.add_row(str(index), task.command_line, task.cwd, task.check_path)

    console.print(table)

    options = config.options
    console.print(
        f"\nDiff check: {'on' if options.check_git_diff else 'off'}"
        f" ({'staged' if options.staged_check else 'staged + unstaged'})"
        f", max parallel: {options.max_parallel or 'unbounded'}"
        + (f", diff ref: {options.diff_ref}" if options.diff_ref else "")
    )


if __name__ == "__main__":
    app()
