"""multiexec - run one or many external commands from asyncio.

Runs commands sequentially or in parallel across working directories,
captures and/or streams their output with per-command labels, and
reports exit code, captured text and duration for each of them.

Quick Start:
    from multiexec import Executor, many, one

    result = await one("echo hi", {"interactive": "silent"})
    results = await many(["npm ci", "npm test"], ["app", "lib"], True, {"parallel": True})

    executor = Executor.create(command_wrapper='docker exec app sh -c "{{commandEscaped}}"')
    await executor.one(["ls", "-la"])
"""

__version__ = "0.1.0"

from multiexec.exceptions import (
    CommandFailed,
    ConfigError,
    ExecError,
    InvalidArgument,
    SpawnFailure,
)
from multiexec.executor import Executor, many, one
from multiexec.types import (
    BatchOptions,
    ExecOptions,
    ExecResult,
    ExecutorConfig,
    InteractiveMode,
)

__all__ = [
    "__version__",
    "BatchOptions",
    "CommandFailed",
    "ConfigError",
    "ExecError",
    "ExecOptions",
    "ExecResult",
    "Executor",
    "ExecutorConfig",
    "InteractiveMode",
    "InvalidArgument",
    "SpawnFailure",
    "many",
    "one",
]
