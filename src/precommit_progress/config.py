"""Configuration management for precommit-progress."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import yaml
from dotenv import load_dotenv


DEFAULT_CONFIG_FILE = ".precommit-progress.yaml"

Command = Union[str, Sequence[str]]

_TRUTHY = ("true", "1", "yes")


class PreCommitError(Exception):
    """Base exception for precommit-progress."""

    pass


class ConfigError(PreCommitError):
    """Exception raised for invalid or unreadable configuration."""

    pass


@dataclass(frozen=True)
class TaskDescriptor:
    """A command to run, where to run it, and which path gates it."""

    cmd: Command
    cwd: str = "."
    diff_path: Optional[str] = None

    def __post_init__(self) -> None:
        # Lists are frozen into tuples so descriptors stay hashable.
        if not isinstance(self.cmd, str):
            object.__setattr__(self, "cmd", tuple(str(part) for part in self.cmd))
        try:
            argv = self.argv
        except ValueError as exc:
            raise ConfigError(f"Cannot parse command {self.cmd!r}: {exc}") from exc
        if not argv:
            raise ConfigError(f"Command is empty: {self.cmd!r}")

    @property
    def argv(self) -> list[str]:
        """Command as an argument list."""
        if isinstance(self.cmd, str):
            return shlex.split(self.cmd, posix=True)
        return list(self.cmd)

    @property
    def check_path(self) -> str:
        """Path whose diff decides whether the task runs."""
        return self.diff_path if self.diff_path is not None else self.cwd

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)

    @classmethod
    def from_dict(cls, data: dict) -> TaskDescriptor:
        """Create a TaskDescriptor from a mapping.

        Accepts ``diff_path`` as well as the camel-cased ``diffPath``.

        Raises:
            ConfigError: If ``cmd`` is missing or does not parse to a command.
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Task entry must be a mapping, got: {data!r}")

        cmd = data.get("cmd")
        if not cmd:
            raise ConfigError(f"Task entry is missing 'cmd': {data!r}")
        if not isinstance(cmd, (str, list, tuple)):
            raise ConfigError(f"Task 'cmd' must be a string or a list: {cmd!r}")

        diff_path = data.get("diff_path", data.get("diffPath"))
        return cls(
            cmd=cmd,
            cwd=str(data.get("cwd") or "."),
            diff_path=str(diff_path) if diff_path is not None else None,
        )


@dataclass
class RunOptions:
    """Settings for a single orchestration run."""

    check_git_diff: bool = True
    staged_check: bool = True
    diff_ref: Optional[str] = None
    max_parallel: Optional[int] = None
    repo_path: Path = field(default_factory=lambda: Path("."))

    def __post_init__(self) -> None:
        if self.max_parallel is not None and self.max_parallel < 1:
            raise ConfigError(
                f"max_parallel must be at least 1, got {self.max_parallel}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> RunOptions:
        """Create RunOptions from a mapping (camel-cased keys accepted)."""
        max_parallel = data.get("max_parallel", data.get("maxParallel"))
        return cls(
            check_git_diff=bool(data.get("check_git_diff", data.get("checkGitDiff", True))),
            staged_check=bool(data.get("staged_check", data.get("stagedCheck", True))),
            diff_ref=data.get("diff_ref", data.get("diffRef")) or None,
            max_parallel=(
                _parse_int(max_parallel, "max_parallel") if max_parallel is not None else None
            ),
        )


@dataclass
class CheckConfig:
    """Task list and run options loaded from a config file and the environment."""

    tasks: list[TaskDescriptor] = field(default_factory=list)
    options: RunOptions = field(default_factory=RunOptions)
    log_level: str = "WARNING"
    config_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: dict) -> CheckConfig:
        """Create CheckConfig from a parsed YAML document."""
        raw_tasks = data.get("tasks") or []
        if not isinstance(raw_tasks, list):
            raise ConfigError("'tasks' must be a list")

        return cls(
            tasks=[TaskDescriptor.from_dict(entry) for entry in raw_tasks],
            options=RunOptions.from_dict(data),
            log_level=str(data.get("log_level", "WARNING")).upper(),
        )

    @classmethod
    def load_from_file(cls, path: Path) -> CheckConfig:
        """Load tasks and options from a YAML file.

        Raises:
            ConfigError: If the file does not exist or cannot be parsed.
        """
        if not path.exists():
            raise ConfigError(f"Config file does not exist: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

        config = cls.from_dict(data)
        config.config_path = path
        # Relative cwd entries are resolved against the config file's directory.
        config.options.repo_path = path.parent
        config.tasks = [_rebase(task, path.parent) for task in config.tasks]
        return config

    @classmethod
    def from_env(cls, config_path: Optional[Path] = None) -> CheckConfig:
        """Load configuration from a YAML file plus environment overrides.

        Args:
            config_path: Config file to read. Defaults to
                ``.precommit-progress.yaml`` in the current directory; a
                missing default file yields an empty task list.

        Returns:
            CheckConfig with environment overrides applied.
        """
        load_dotenv()

        if config_path is not None:
            config = cls.load_from_file(config_path)
        else:
            default_path = Path.cwd() / DEFAULT_CONFIG_FILE
            config = cls.load_from_file(default_path) if default_path.exists() else cls()

        options = config.options
        if os.getenv("PRECOMMIT_PROGRESS_MAX_PARALLEL"):
            options.max_parallel = _parse_int(
                os.environ["PRECOMMIT_PROGRESS_MAX_PARALLEL"],
                "PRECOMMIT_PROGRESS_MAX_PARALLEL",
            )
        if os.getenv("PRECOMMIT_PROGRESS_DIFF_REF"):
            options.diff_ref = os.environ["PRECOMMIT_PROGRESS_DIFF_REF"]
        if os.getenv("PRECOMMIT_PROGRESS_CHECK_GIT_DIFF"):
            options.check_git_diff = (
                os.environ["PRECOMMIT_PROGRESS_CHECK_GIT_DIFF"].lower() in _TRUTHY
            )
        if os.getenv("PRECOMMIT_PROGRESS_STAGED_CHECK"):
            options.staged_check = (
                os.environ["PRECOMMIT_PROGRESS_STAGED_CHECK"].lower() in _TRUTHY
            )
        config.log_level = os.getenv("PRECOMMIT_PROGRESS_LOG_LEVEL", config.log_level).upper()

        return config

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of validation error messages. Empty if valid.
        """
        errors = []

        if not self.tasks:
            errors.append("No tasks configured")

        if self.options.max_parallel is not None and self.options.max_parallel < 1:
            errors.append(f"max_parallel must be at least 1, got {self.options.max_parallel}")

        for task in self.tasks:
            if not Path(task.cwd).is_dir():
                errors.append(f"Task directory does not exist: {task.cwd}")

        return errors


def _rebase(task: TaskDescriptor, base: Path) -> TaskDescriptor:
    if base == Path("."):
        return task

    def resolve(value: str) -> str:
        if Path(value).is_absolute():
            return value
        return str((base / value).resolve())

    return TaskDescriptor(
        cmd=task.cmd,
        cwd=resolve(task.cwd),
        diff_path=resolve(task.diff_path) if task.diff_path is not None else None,
    )


def _parse_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
