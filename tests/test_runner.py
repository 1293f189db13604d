"""Tests for the process runner."""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from pathlib import Path

from precommit_progress.config import TaskDescriptor
from precommit_progress.runner import (
    STREAM_LIMIT,
    EventKind,
    OutputLine,
    ProcessRunner,
    RunEvent,
    RunInstance,
    SkippedTask,
    TaskStatus,
    get_time_str,
)

TIMESTAMPED = re.compile(r"^\[\d{2}:\d{2}:\d{2}\.\d{3}\] ")


def _run(runner: ProcessRunner, instance: RunInstance) -> RunInstance:
    return asyncio.run(runner.run(instance))


class TestTimestamps:
    """Tests for timestamp formatting."""

    def test_get_time_str_format(self) -> None:
        """Test HH:MM:SS.mmm formatting."""
        now = datetime(2024, 5, 1, 13, 4, 5, 678901, tzinfo=timezone.utc)

        assert get_time_str(now) == "13:04:05.678"

    def test_output_line_str(self) -> None:
        """Test a captured line renders with its timestamp."""
        line = OutputLine(stream="stderr", timestamp="01:02:03.004", text="oops")

        assert str(line) == "[01:02:03.004] oops"
        assert line.is_stderr is True


class TestTaskStatus:
    """Tests for TaskStatus."""

    def test_terminal_states(self) -> None:
        """Test which states are terminal."""
        assert not TaskStatus.PENDING.is_terminal
        assert not TaskStatus.RUNNING.is_terminal
        assert TaskStatus.SUCCEEDED.is_terminal
        assert TaskStatus.FAILED.is_terminal
        assert TaskStatus.SKIPPED.is_terminal


class TestRunInstance:
    """Tests for RunInstance."""

    def test_new_instance_is_pending(self) -> None:
        """Test a new instance resolves its command and waits."""
        instance = RunInstance(TaskDescriptor(cmd="ruff check .", cwd="backend"))

        assert instance.status is TaskStatus.PENDING
        assert instance.argv == ["ruff", "check", "."]
        assert instance.cwd == "backend"
        assert instance.command_line == "ruff check ."
        assert instance.output == ""

    def test_output_is_trimmed(self) -> None:
        """Test merged output joins lines and trims surrounding whitespace."""
        instance = RunInstance(TaskDescriptor(cmd="true"))
        instance.append("stdout", "hello")
        instance.append("stderr", "world   ")

        lines = instance.output.splitlines()
        assert len(lines) == 2
        assert TIMESTAMPED.match(lines[0])
        assert lines[0].endswith("] hello")
        assert lines[1].endswith("] world")

    def test_skipped_task(self) -> None:
        """Test a skipped task exposes the display fields."""
        skipped = SkippedTask(TaskDescriptor(cmd="pytest -q", cwd="api"))

        assert skipped.status is TaskStatus.SKIPPED
        assert skipped.cwd == "api"
        assert skipped.command_line == "pytest -q"


class TestProcessRunner:
    """Tests for ProcessRunner with real subprocesses."""

    def test_success_captures_both_streams(self, tmp_path: Path, python_cmd) -> None:
        """Test stdout and stderr are both captured with timestamps."""
        code = "import sys; print('to stdout'); print('to stderr', file=sys.stderr)"
        instance = RunInstance(TaskDescriptor(cmd=python_cmd(code), cwd=str(tmp_path)))

        _run(ProcessRunner(), instance)

        assert instance.status is TaskStatus.SUCCEEDED
        assert instance.returncode == 0
        by_stream = {line.stream: line.text for line in instance.lines}
        assert by_stream == {"stdout": "to stdout", "stderr": "to stderr"}
        assert all(TIMESTAMPED.match(line) for line in instance.output.splitlines())

    def test_merged_output_keeps_arrival_order(self, tmp_path: Path, python_cmd) -> None:
        """Test interleaved writes stay in the order they were produced."""
        code = (
            "import sys, time\n"
            "print('first')\n"
            "time.sleep(0.2)\n"
            "print('second', file=sys.stderr)\n"
            "time.sleep(0.2)\n"
            "print('third')\n"
        )
        instance = RunInstance(TaskDescriptor(cmd=python_cmd(code), cwd=str(tmp_path)))

        _run(ProcessRunner(), instance)

        assert [line.text for line in instance.lines] == ["first", "second", "third"]
        assert [line.stream for line in instance.lines] == ["stdout", "stderr", "stdout"]

    def test_failure_is_recorded_not_raised(self, tmp_path: Path, python_cmd) -> None:
        """Test a non-zero exit marks the instance failed."""
        code = "import sys; print('boom', file=sys.stderr); sys.exit(3)"
        instance = RunInstance(TaskDescriptor(cmd=python_cmd(code), cwd=str(tmp_path)))

        _run(ProcessRunner(), instance)

        assert instance.status is TaskStatus.FAILED
        assert instance.returncode == 3
        assert "boom" in instance.output

    def test_missing_executable(self, tmp_path: Path) -> None:
        """Test a command that cannot start counts as a failure."""
        instance = RunInstance(
            TaskDescriptor(cmd="definitely-not-a-real-command-xyz", cwd=str(tmp_path))
        )

        _run(ProcessRunner(), instance)

        assert instance.status is TaskStatus.FAILED
        assert instance.returncode is None
        assert "Failed to start command" in instance.output

    def test_missing_cwd(self, tmp_path: Path, python_cmd) -> None:
        """Test a working directory that does not exist counts as a failure."""
        instance = RunInstance(
            TaskDescriptor(cmd=python_cmd("print(1)"), cwd=str(tmp_path / "missing"))
        )

        _run(ProcessRunner(), instance)

        assert instance.status is TaskStatus.FAILED

    def test_runs_in_cwd(self, tmp_path: Path, python_cmd) -> None:
        """Test the process starts in the task's working directory."""
        code = "import os; print(os.getcwd())"
        instance = RunInstance(TaskDescriptor(cmd=python_cmd(code), cwd=str(tmp_path)))

        _run(ProcessRunner(), instance)

        assert Path(instance.lines[0].text).resolve() == tmp_path.resolve()

    def test_observers_see_lifecycle(self, tmp_path: Path, python_cmd) -> None:
        """Test observers are told about start and finish, with status already updated."""
        events: list[tuple[EventKind, TaskStatus]] = []

        def observer(event: RunEvent) -> None:
            events.append((event.kind, event.instance.status))

        runner = ProcessRunner(observers=[observer])
        instance = RunInstance(TaskDescriptor(cmd=python_cmd("print(1)"), cwd=str(tmp_path)))

        _run(runner, instance)

        assert events == [
            (EventKind.STARTED, TaskStatus.RUNNING),
            (EventKind.FINISHED, TaskStatus.SUCCEEDED),
        ]

    def test_launch_failure_emits_finished_only(self, tmp_path: Path) -> None:
        """Test a command that never starts still reports its final state."""
        events: list[EventKind] = []
        runner = ProcessRunner()
        runner.subscribe(lambda event: events.append(event.kind))

        _run(runner, RunInstance(TaskDescriptor(cmd="no-such-binary-xyz", cwd=str(tmp_path))))

        assert events == [EventKind.FINISHED]

    def test_process_count_and_reset(self, tmp_path: Path, python_cmd) -> None:
        """Test spawned processes are counted and the count can be reset."""
        runner = ProcessRunner()

        _run(runner, RunInstance(TaskDescriptor(cmd=python_cmd("pass"), cwd=str(tmp_path))))
        _run(runner, RunInstance(TaskDescriptor(cmd=python_cmd("pass"), cwd=str(tmp_path))))

        assert runner.process_count == 2
        runner.reset_process_count()
        assert runner.process_count == 0
        assert runner.running_count == 0

    def test_line_longer_than_stream_limit(self, tmp_path: Path, python_cmd) -> None:
        """Test output without newlines beyond the stream limit is captured, not raised."""
        size = 2 * STREAM_LIMIT
        code = f"import sys; sys.stdout.write('x' * {size}); print(); print('end')"
        instance = RunInstance(TaskDescriptor(cmd=python_cmd(code), cwd=str(tmp_path)))

        _run(ProcessRunner(), instance)

        assert instance.status is TaskStatus.SUCCEEDED
        assert instance.returncode == 0
        assert "".join(line.text for line in instance.lines) == "x" * size + "end"
        assert instance.lines[-1].text == "end"

    def test_long_line_keeps_exit_status(self, tmp_path: Path, python_cmd) -> None:
        """Test a failing task with an oversized line still ends failed."""
        code = f"import sys; sys.stdout.write('x' * {2 * STREAM_LIMIT}); sys.exit(5)"
        instance = RunInstance(TaskDescriptor(cmd=python_cmd(code), cwd=str(tmp_path)))

        _run(ProcessRunner(), instance)

        assert instance.status is TaskStatus.FAILED
        assert instance.returncode == 5

    def test_sanitize_without_processes(self) -> None:
        """Test sanitize is safe when nothing is running."""
        runner = ProcessRunner()

        runner.sanitize()

        assert runner.running_count == 0
