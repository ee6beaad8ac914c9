"""Task executor interface and the registry that maps task names to executors."""

from __future__ import annotations

import importlib
import inspect
import logging
import os
import shlex
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from automation_hub.orchestrator.registry import TaskConfig, TaskRegistry
from automation_hub.state.models import TaskState

logger = logging.getLogger(__name__)

_OUTPUT_TAIL_CHARS = 2_000


class ExecutorResolutionError(RuntimeError):
    """Raised when a task's executor reference cannot be turned into an executor."""


@dataclass(slots=True)
class TaskOutcome:
    """Discriminated result every executor returns."""

    success: bool
    output: str | None = None
    url: str | None = None
    error: str | None = None
    content_type: str | None = None

    @classmethod
    def ok(
        cls,
        output: str | None = None,
        *,
        url: str | None = None,
        content_type: str | None = None,
    ) -> TaskOutcome:
        return cls(success=True, output=output, url=url, content_type=content_type)

    @classmethod
    def err(cls, reason: str, *, output: str | None = None) -> TaskOutcome:
        return cls(success=False, error=reason, output=output)


@dataclass(slots=True)
class TaskContext:
    """Everything an executor receives for one run."""

    task_name: str
    config: TaskConfig
    logger: logging.LoggerAdapter
    task_state: TaskState


class TaskExecutor(Protocol):
    """Single-capability interface implemented by task executors."""

    def execute(self, context: TaskContext) -> TaskOutcome:
        """Run the task once and report the outcome."""


class TaskLoggerAdapter(logging.LoggerAdapter):
    """Prefix every record with the task name."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        return f"[{self.extra['task']}] {msg}", kwargs


def task_logger(task_name: str) -> TaskLoggerAdapter:
    return TaskLoggerAdapter(logging.getLogger("automation_hub.tasks"), {"task": task_name})


class ShellCommandExecutor:
    """Run a shell command; exit code 0 is success, last stdout line is the output."""

    def __init__(self, command: str, *, timeout_seconds: float | None = None) -> None:
        self.command = command
        self.timeout_seconds = timeout_seconds

    def execute(self, context: TaskContext) -> TaskOutcome:
        argv = shlex.split(self.command)
        if not argv:
            return TaskOutcome.err("Task command is empty")

        env = os.environ.copy()
        env["AUTOMATION_HUB_TASK_NAME"] = context.task_name
        if context.config.category:
            env["AUTOMATION_HUB_TASK_CATEGORY"] = context.config.category

        context.logger.info("Running command: %s", argv[0])
        try:
            completed = subprocess.run(  # noqa: S603
                argv,
                capture_output=True,
                text=True,
                env=env,
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError:
            return TaskOutcome.err(f"Command not found: {argv[0]}")
        except subprocess.TimeoutExpired:
            return TaskOutcome.err(f"Command timed out after {self.timeout_seconds}s")
        except OSError as error:
            return TaskOutcome.err(f"Command failed to start: {error}")

        stdout = completed.stdout.strip()
        output = stdout.splitlines()[-1] if stdout else None
        if completed.returncode == 0:
            return TaskOutcome.ok(output)
        stderr = completed.stderr.strip()[-_OUTPUT_TAIL_CHARS:]
        return TaskOutcome.err(
            stderr or f"Command exited with code {completed.returncode}",
            output=output,
        )


class _CallableExecutor:
    def __init__(self, func: Callable[[TaskContext], TaskOutcome]) -> None:
        self._func = func

    def execute(self, context: TaskContext) -> TaskOutcome:
        return self._func(context)


def resolve_executor(config: TaskConfig) -> TaskExecutor:
    """Build the executor configured for one registry entry."""

    if config.executor:
        return _import_executor(config.executor)
    if config.command:
        return ShellCommandExecutor(config.command, timeout_seconds=config.timeout_seconds)
    raise ExecutorResolutionError(f"Task {config.name!r} defines neither executor nor command")


def _import_executor(reference: str) -> TaskExecutor:
    module_name, _, attr = reference.partition(":")
    if not module_name or not attr:
        raise ExecutorResolutionError(
            f"Invalid executor reference {reference!r}. Expected 'package.module:attr'.",
        )
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attr)
    except Exception as error:  # noqa: BLE001
        raise ExecutorResolutionError(f"Cannot import executor {reference!r}: {error}") from error

    if inspect.isclass(target):
        try:
            target = target()
        except Exception as error:  # noqa: BLE001
            raise ExecutorResolutionError(
                f"Cannot instantiate executor {reference!r}: {error}",
            ) from error
    if callable(getattr(target, "execute", None)):
        return target
    if callable(target):
        return _CallableExecutor(target)
    raise ExecutorResolutionError(f"Executor {reference!r} is neither callable nor has execute()")


class ExecutorRegistry:
    """Task name to executor mapping, resolved once at startup."""

    def __init__(self) -> None:
        self._executors: dict[str, TaskExecutor] = {}
        self.errors: dict[str, str] = {}

    @classmethod
    def from_registry(cls, registry: TaskRegistry) -> ExecutorRegistry:
        executors = cls()
        for config in registry.enabled():
            try:
                executors.register(config.name, resolve_executor(config))
            except ExecutorResolutionError as error:
                logger.error("Task %s has no usable executor: %s", config.name, error)
                executors.errors[config.name] = str(error)
        return executors

    def register(self, name: str, executor: TaskExecutor) -> None:
        self._executors[name] = executor
        self.errors.pop(name, None)

    def get(self, name: str) -> TaskExecutor | None:
        return self._executors.get(name)

    def validate(self, registry: TaskRegistry) -> dict[str, str]:
        """Enabled tasks that cannot run, mapped to the reason."""

        problems: dict[str, str] = {}
        for config in registry.enabled():
            if config.name in self._executors:
                continue
            problems[config.name] = self.errors.get(config.name, "No executor registered")
        return problems
