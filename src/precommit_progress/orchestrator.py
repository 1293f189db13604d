"""Run orchestration for pre-commit checks.

The orchestrator ties the pieces together:

1. Diff filter: keep only tasks whose diff path has changes (unless the
   check is disabled).
2. Executor: run the kept tasks with at most ``max_parallel`` processes
   alive at once, admitting them in task list order.
3. Status reporting: redraw the status view after every lifecycle event.
4. Aggregation: report OK or the logs of every failed task, and return
   the exit code for the caller to act on.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from .config import Command, RunOptions, TaskDescriptor
from .diff import DiffChecker, GitDiffChecker
from .renderer import Renderer, StatusSnapshot, TerminalRenderer
from .runner import Observer, ProcessRunner, RunEvent, RunInstance, SkippedTask

logger = logging.getLogger(__name__)

TaskLike = Union[TaskDescriptor, dict, Command]


@dataclass
class OrchestrationResult:
    """Outcome of an orchestration run."""

    instances: list[RunInstance] = field(default_factory=list)
    skipped: list[SkippedTask] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        # No instances at all counts as success.
        return all(instance.success for instance in self.instances)

    @property
    def failures(self) -> list[RunInstance]:
        return [instance for instance in self.instances if not instance.success]

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


def coerce_task(task: TaskLike) -> TaskDescriptor:
    """Build a TaskDescriptor from a descriptor, a mapping, or a bare command."""
    if isinstance(task, TaskDescriptor):
        return task
    if isinstance(task, dict):
        return TaskDescriptor.from_dict(task)
    return TaskDescriptor(cmd=task)


class Orchestrator:
    """Runs a list of tasks with diff filtering and bounded parallelism."""

    def __init__(
        self,
        tasks: Iterable[TaskLike],
        options: Optional[RunOptions] = None,
        *,
        renderer: Optional[Renderer] = None,
        diff_checker: Optional[DiffChecker] = None,
        runner: Optional[ProcessRunner] = None,
        observers: Optional[Iterable[Observer]] = None,
    ):
        """Initialize the orchestrator.

        Args:
            tasks: Tasks in the order they should be admitted.
            options: Run options. Defaults to RunOptions().
            renderer: Where status updates go. Defaults to the terminal.
            diff_checker: Diff predicate. Defaults to git in ``options.repo_path``.
            runner: Process runner. A fresh one is created if omitted.
            observers: Extra callbacks notified of every RunEvent.
        """
        self.tasks = [coerce_task(task) for task in tasks]
        self.options = options or RunOptions()
        self.renderer = renderer or TerminalRenderer()
        self.diff_checker = diff_checker or GitDiffChecker(self.options.repo_path)
        self.runner = runner or ProcessRunner()
        self.runner.subscribe(self._on_event)
        for observer in observers or []:
            self.runner.subscribe(observer)

        self.instances: list[RunInstance] = []
        self.skipped: list[SkippedTask] = []
        # Instances and skipped tasks, in task list order, for display.
        self._entries: list[Union[RunInstance, SkippedTask]] = []

    @property
    def parallelism(self) -> int:
        """Number of worker slots for the current instance list."""
        count = len(self.instances)
        if self.options.max_parallel is None:
            return count
        return min(self.options.max_parallel, count)

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot.from_entries(self._entries)

    def _on_event(self, event: RunEvent) -> None:
        self.renderer.render(self.snapshot())

    async def select_tasks(self) -> list[RunInstance]:
        """Apply the diff filter and build a RunInstance per kept task.

        Raises:
            DiffCheckError: If the diff predicate fails; nothing has run yet.
        """
        self.instances = []
        self.skipped = []
        self._entries = []

        for task in self.tasks:
            if self.options.check_git_diff:
                include = await asyncio.to_thread(
                    self.diff_checker.has_diff,
                    task.check_path,
                    self.options.staged_check,
                    self.options.diff_ref,
                )
            else:
                include = True

            if include:
                instance = RunInstance(task)
                self.instances.append(instance)
                self._entries.append(instance)
            else:
                logger.debug(f"Skipping {task.command_line}: no diff in {task.check_path}")
                skipped = SkippedTask(task)
                self.skipped.append(skipped)
                self._entries.append(skipped)

        logger.info(
            f"{len(self.instances)} task(s) selected, {len(self.skipped)} skipped without changes"
        )
        return self.instances

    async def execute(self) -> None:
        """Run all selected instances, ``parallelism`` at a time."""
        queue: asyncio.Queue[RunInstance] = asyncio.Queue()
        for instance in self.instances:
            queue.put_nowait(instance)

        async def worker() -> None:
            while True:
                try:
                    instance = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await self.runner.run(instance)

        workers = self.parallelism
        logger.debug(f"Running {len(self.instances)} task(s) with {workers} worker(s)")
        if workers:
            await asyncio.gather(*(worker() for _ in range(workers)))

    async def run(self) -> OrchestrationResult:
        """Filter, execute and report.

        Returns:
            OrchestrationResult; ``exit_code`` is 1 if any task failed.

        Raises:
            DiffCheckError: If the diff filter fails.
        """
        start = time.monotonic()
        self.renderer.hide_cursor()
        try:
            await self.select_tasks()
            self.runner.reset_process_count()
            self.renderer.render(self.snapshot())
            await self.execute()
        finally:
            self.renderer.show_cursor()
            self.runner.sanitize()

        result = OrchestrationResult(
            instances=list(self.instances),
            skipped=list(self.skipped),
            elapsed=time.monotonic() - start,
        )

        if result.success:
            self.renderer.report_success()
        else:
            self.renderer.report_failure(self.snapshot(), result.failures)

        logger.info(
            f"Finished in {result.elapsed:.2f}s: "
            f"{len(result.instances) - len(result.failures)} passed, {len(result.failures)} failed"
        )
        return result


def run_pre_commit(
    tasks: Iterable[TaskLike],
    options: Optional[RunOptions] = None,
    *,
    renderer: Optional[Renderer] = None,
    diff_checker: Optional[DiffChecker] = None,
    runner: Optional[ProcessRunner] = None,
    observers: Optional[Iterable[Observer]] = None,
) -> OrchestrationResult:
    """Run tasks to completion from synchronous code.

    Example:
        result = run_pre_commit(
            [{"cmd": "ruff check ."}, {"cmd": "pytest -q", "cwd": "backend"}],
            RunOptions(max_parallel=2),
        )
    """
    orchestrator = Orchestrator(
        tasks,
        options,
        renderer=renderer,
        diff_checker=diff_checker,
        runner=runner,
        observers=observers,
    )
    return asyncio.run(orchestrator.run())


def run_and_exit(tasks: Iterable[TaskLike], options: Optional[RunOptions] = None) -> None:
    """Run tasks and terminate the process with status 1 if any failed."""
    result = run_pre_commit(tasks, options)
    if result.exit_code:
        sys.exit(result.exit_code)
