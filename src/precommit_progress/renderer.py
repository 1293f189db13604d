"""Live status rendering.

The orchestrator hands a StatusSnapshot to a Renderer after every status
change. TerminalRenderer redraws the whole screen with rich; it clears and
reprints rather than diffing, which is fine for the handful of tasks a
pre-commit check runs.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

from rich.console import Console
from rich.text import Text

from .runner import OutputLine, RunInstance, TaskStatus

logger = logging.getLogger(__name__)

BANNER_WIDTH = 65

# status -> (icon, highlight style for the command text)
STATUS_STYLES: dict[TaskStatus, tuple[str, str]] = {
    TaskStatus.SUCCEEDED: ("✅", "black on green"),
    TaskStatus.FAILED: ("❌", "on red"),
    TaskStatus.PENDING: ("⏳", "on bright_blue"),
    TaskStatus.RUNNING: ("🔄", "black on bright_yellow"),
    TaskStatus.SKIPPED: ("⏩", "black on grey50"),
}

STDERR_TIMESTAMP_STYLE = "on red"


class StatusEntry(Protocol):
    """Anything shown as a row of the status view."""

    cwd: str
    command_line: str
    status: TaskStatus


def status_icon(status: TaskStatus) -> str:
    return STATUS_STYLES[status][0]


def status_style(status: TaskStatus) -> str:
    return STATUS_STYLES[status][1]


@dataclass
class StatusRow:
    """One command line in the status view."""

    command: str
    status: TaskStatus

    def to_text(self) -> Text:
        text = Text(f"  {status_icon(self.status)} ")
        text.append(self.command, style=status_style(self.status))
        return text


@dataclass
class StatusGroup:
    """Rows sharing a working directory."""

    cwd: str
    rows: list[StatusRow] = field(default_factory=list)

    def to_text(self) -> Text:
        lines = [Text(f"📂 {self.cwd}")] + [row.to_text() for row in self.rows]
        return Text("\n").join(lines)


@dataclass
class StatusSnapshot:
    """Point-in-time view of every task, grouped by working directory.

    Groups appear in order of first appearance in the task list, and rows
    keep task list order within their group.
    """

    groups: list[StatusGroup] = field(default_factory=list)

    @classmethod
    def from_entries(cls, entries: Iterable[StatusEntry]) -> StatusSnapshot:
        groups: dict[str, StatusGroup] = {}
        for entry in entries:
            group = groups.setdefault(entry.cwd, StatusGroup(cwd=entry.cwd))
            group.rows.append(StatusRow(command=entry.command_line, status=entry.status))
        return cls(groups=list(groups.values()))

    @property
    def rows(self) -> list[StatusRow]:
        return [row for group in self.groups for row in group.rows]

    def count(self, status: TaskStatus) -> int:
        return sum(1 for row in self.rows if row.status is status)

    def to_text(self) -> Text:
        return Text("\n").join(group.to_text() for group in self.groups)

    @property
    def plain(self) -> str:
        return self.to_text().plain


def format_output_line(line: OutputLine) -> Text:
    """Render a captured line, highlighting stderr timestamps."""
    text = Text("[")
    text.append(line.timestamp, style=STDERR_TIMESTAMP_STYLE if line.is_stderr else "")
    text.append(f"] {line.text}")
    return text


def format_output(instance: RunInstance) -> Text:
    """Render an instance's captured output, trimmed like ``instance.output``."""
    lines = [format_output_line(line) for line in instance.lines]
    text = Text("\n").join(lines)
    text.rstrip()
    return text


class Renderer(ABC):
    """Receives status snapshots and the final outcome of a run."""

    @abstractmethod
    def render(self, snapshot: StatusSnapshot) -> None:
        """Show the current status of every task."""
        pass

    def hide_cursor(self) -> None:
        pass

    def show_cursor(self) -> None:
        pass

    def report_success(self) -> None:
        pass

    def report_failure(self, snapshot: StatusSnapshot, failures: list[RunInstance]) -> None:
        pass


class TerminalRenderer(Renderer):
    """Full-screen redraw on an ANSI terminal."""

    def __init__(self, console: Optional[Console] = None, err_console: Optional[Console] = None):
        """Initialize the terminal renderer.

        Args:
            console: Console for the status view. Defaults to stdout.
            err_console: Console for banners and logs. Defaults to stderr.
        """
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def hide_cursor(self) -> None:
        self.console.show_cursor(False)

    def show_cursor(self) -> None:
        self.console.show_cursor(True)

    def render(self, snapshot: StatusSnapshot) -> None:
        self.console.clear()
        self.console.print(snapshot.to_text())

    def _banner(self, label: str, style: str) -> None:
        blank = " " * BANNER_WIDTH
        self.err_console.print("")
        for line in (blank, blank, label.center(BANNER_WIDTH), blank, blank):
            self.err_console.print(Text(line, style=style))
        self.err_console.print("")

    def report_success(self) -> None:
        self._banner("OK", "black on green")

    def report_failure(self, snapshot: StatusSnapshot, failures: list[RunInstance]) -> None:
        logger.debug(f"Reporting {len(failures)} failed task(s)")
        self.console.clear()
        self.console.print("\n" * 30, end="")
        self.err_console.print(Text("↓" * BANNER_WIDTH, style="black on red"))
        self.console.print(snapshot.to_text())

        for instance in failures:
            self.err_console.print(
                f"------------\nLog of : {instance.command_line}\nFrom   : {instance.cwd}\n",
                markup=False,
            )
            self.err_console.print(format_output(instance))

        self.err_console.print()
        self.console.print(snapshot.to_text())
        self._banner("ERROR", "black on red")


class SnapshotRenderer(Renderer):
    """Renderer that records everything it is given, for tests."""

    def __init__(self) -> None:
        self.snapshots: list[StatusSnapshot] = []
        self.cursor_events: list[str] = []
        self.banners: list[str] = []
        self.failure_reports: list[tuple[StatusSnapshot, list[RunInstance]]] = []

    def render(self, snapshot: StatusSnapshot) -> None:
        self.snapshots.append(snapshot)

    def hide_cursor(self) -> None:
        self.cursor_events.append("hide")

    def show_cursor(self) -> None:
        self.cursor_events.append("show")

    def report_success(self) -> None:
        self.banners.append("OK")

    def report_failure(self, snapshot: StatusSnapshot, failures: list[RunInstance]) -> None:
        self.failure_reports.append((snapshot, list(failures)))
        self.banners.append("ERROR")

    @property
    def last(self) -> Optional[StatusSnapshot]:
        return self.snapshots[-1] if self.snapshots else None
