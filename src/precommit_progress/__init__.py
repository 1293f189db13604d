"""Run pre-commit checks on changed directories with live progress."""

__version__ = "0.1.0"

from .config import CheckConfig, ConfigError, PreCommitError, RunOptions, TaskDescriptor
from .diff import DiffCheckError, path_has_diff
from .orchestrator import OrchestrationResult, Orchestrator, run_and_exit, run_pre_commit
from .renderer import Renderer, SnapshotRenderer, StatusSnapshot, TerminalRenderer
from .runner import ProcessRunner, RunEvent, RunInstance, TaskStatus

__all__ = [
    "CheckConfig",
    "ConfigError",
    "DiffCheckError",
    "OrchestrationResult",
    "Orchestrator",
    "PreCommitError",
    "ProcessRunner",
    "Renderer",
    "RunEvent",
    "RunInstance",
    "RunOptions",
    "SnapshotRenderer",
    "StatusSnapshot",
    "TaskDescriptor",
    "TaskStatus",
    "TerminalRenderer",
    "path_has_diff",
    "run_and_exit",
    "run_pre_commit",
]
