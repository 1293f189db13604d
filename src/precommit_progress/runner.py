"""Subprocess execution with merged, timestamped output.

Each task becomes a RunInstance. The ProcessRunner spawns it, reads stdout
and stderr line by line as they arrive, prefixes every line with a wall
clock timestamp, and tells its observers about every status change.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional

from .config import TaskDescriptor

logger = logging.getLogger(__name__)

# Largest single output line accepted from a child process.
STREAM_LIMIT = 1024 * 1024


class TaskStatus(str, Enum):
    """Lifecycle of a task."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.SKIPPED)


class EventKind(str, Enum):
    """Process lifecycle transitions reported to observers."""

    STARTED = "started"
    FINISHED = "finished"


@dataclass
class RunEvent:
    """A status change of one RunInstance."""

    kind: EventKind
    instance: RunInstance


Observer = Callable[[RunEvent], None]


def get_time_str(now: Optional[datetime] = None) -> str:
    """Format a UTC timestamp as HH:MM:SS.mmm."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%H:%M:%S.%f")[:-3]


@dataclass
class OutputLine:
    """One captured line of child process output."""

    stream: str  # "stdout" or "stderr"
    timestamp: str
    text: str

    @property
    def is_stderr(self) -> bool:
        return self.stream == "stderr"

    def __str__(self) -> str:
        return f"[{self.timestamp}] {self.text}"


class RunInstance:
    """A task that passed the diff filter and is scheduled to run."""

    def __init__(self, task: TaskDescriptor):
        self.task = task
        self.cwd = task.cwd
        self.argv = task.argv
        self.status = TaskStatus.PENDING
        self.lines: list[OutputLine] = []
        self.returncode: Optional[int] = None

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)

    @property
    def success(self) -> bool:
        return self.status is TaskStatus.SUCCEEDED

    @property
    def output(self) -> str:
        """Merged output as text, trimmed."""
        return "\n".join(str(line) for line in self.lines).strip()

    def append(self, stream: str, text: str) -> OutputLine:
        line = OutputLine(stream=stream, timestamp=get_time_str(), text=text)
        self.lines.append(line)
        return line

    def __repr__(self) -> str:
        return f"RunInstance({self.command_line!r}, cwd={self.cwd!r}, status={self.status.value})"


@dataclass
class SkippedTask:
    """A task left out by the diff filter, kept only for display."""

    task: TaskDescriptor
    status: TaskStatus = TaskStatus.SKIPPED

    @property
    def cwd(self) -> str:
        return self.task.cwd

    @property
    def command_line(self) -> str:
        return self.task.command_line


class ProcessRunner:
    """Spawns RunInstances and reports their lifecycle to observers.

    A non-zero exit marks the instance as failed and never raises, so one
    failing task cannot abort its siblings.
    """

    def __init__(self, observers: Optional[Iterable[Observer]] = None):
        """Initialize the runner.

        Args:
            observers: Callbacks invoked synchronously after every status change.
        """
        self.observers: list[Observer] = list(observers or [])
        self.process_count = 0
        self._live: list[tuple[RunInstance, asyncio.subprocess.Process]] = []

    def subscribe(self, observer: Observer) -> None:
        self.observers.append(observer)

    def reset_process_count(self) -> None:
        self.process_count = 0

    @property
    def running_count(self) -> int:
        return len(self._live)

    def _notify(self, kind: EventKind, instance: RunInstance) -> None:
        event = RunEvent(kind=kind, instance=instance)
        for observer in self.observers:
            observer(event)

    async def run(self, instance: RunInstance) -> RunInstance:
        """Run one instance to completion.

        Args:
            instance: A pending RunInstance.

        Returns:
            The same instance, in a terminal state.
        """
        logger.debug(f"Spawning {instance.command_line} in {instance.cwd}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *instance.argv,
                cwd=instance.cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            # Launch failures (missing executable or directory) count as task failures.
            logger.debug(f"Failed to start {instance.command_line}: {exc}")
            instance.append("stderr", f"Failed to start command: {exc}")
            instance.status = TaskStatus.FAILED
            self._notify(EventKind.FINISHED, instance)
            return instance

        self.process_count += 1
        entry = (instance, proc)
        self._live.append(entry)
        instance.status = TaskStatus.RUNNING
        self._notify(EventKind.STARTED, instance)

        try:
            await asyncio.gather(
                self._read_stream(proc.stdout, instance, "stdout"),
                self._read_stream(proc.stderr, instance, "stderr"),
            )
            instance.returncode = await proc.wait()
        finally:
            if entry in self._live:
                self._live.remove(entry)

        instance.status = TaskStatus.SUCCEEDED if instance.returncode == 0 else TaskStatus.FAILED
        logger.debug(f"{instance.command_line} exited with code {instance.returncode}")
        self._notify(EventKind.FINISHED, instance)
        return instance

    async def _read_stream(
        self, stream: Optional[asyncio.StreamReader], instance: RunInstance, name: str
    ) -> None:
        if stream is None:
            return
        while True:
            try:
                line_bytes = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as exc:
                line_bytes = exc.partial
            except asyncio.LimitOverrunError as exc:
                # Lines longer than STREAM_LIMIT are captured in pieces.
                line_bytes = await stream.read(exc.consumed)
            if not line_bytes:
                break
            instance.append(name, line_bytes.decode("utf-8", errors="replace").rstrip("\r\n"))

    def sanitize(self) -> None:
        """Kill any process still attached to this runner."""
        for instance, proc in list(self._live):
            if proc.returncode is None:
                logger.warning(f"Killing leftover process: {instance.command_line}")
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
        self._live.clear()
