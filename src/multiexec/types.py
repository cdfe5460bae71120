"""Type definitions for multiexec.

This module defines the core data types used throughout multiexec: the
interaction modes, the per-invocation and batch option records, the
executor-wide defaults and the result record. Option records use ``None``
for "not specified" so that they can be overlaid on each other and on the
executor defaults in a well-defined order.
"""

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Callable, Iterable, Union

from multiexec.exceptions import InvalidArgument

Command = Union[str, list[str]]
Commands = Union[str, list[Union[str, list[str]]]]
Cwds = Union[str, list[str]]
LogSink = Callable[..., None]


class InteractiveMode(str, Enum):
    """How the child process is attached to the terminal.

    Attributes:
        INHERIT: stdio connected to ours, nothing captured
        TEE: stdin inherited, stdout/stderr captured and echoed with a label
        SILENT: stdin closed, stdout/stderr captured, nothing echoed
        REAL_SHELL: run through the user's interactive login shell
    """

    INHERIT = "inherit"
    TEE = "tee"
    SILENT = "silent"
    REAL_SHELL = "real_shell"

    @property
    def captures(self) -> bool:
        """Whether stdout/stderr are piped back to us."""
        return self in (InteractiveMode.TEE, InteractiveMode.SILENT)

    @classmethod
    def coerce(cls, value: Any) -> "InteractiveMode":
        """Convert user-facing shapes into a mode.

        Besides the enum itself and its string values, ``True`` means a fully
        interactive terminal (INHERIT) and ``False`` means silent capture.

        Raises:
            InvalidArgument: If the value matches no mode
        """
        if isinstance(value, cls):
            return value
        if value is True:
            return cls.INHERIT
        if value is False:
            return cls.SILENT
        if isinstance(value, str):
            try:
                return cls(value.lower().replace("-", "_"))
            except ValueError:
                pass
        valid = ", ".join(m.value for m in cls)
        raise InvalidArgument(f"Invalid interactive mode: {value!r}. Valid modes: {valid}", value=value)


# Option fields shared by ExecOptions and BatchOptions (everything except
# command and cwd).
SHARED_FIELDS = (
    "interactive",
    "env",
    "timeout_ms",
    "throw_on_non_zero",
    "prefer_local",
    "prefix",
    "prefix_suffix",
    "colors",
    "log",
    "quiet",
)


BOOL_FIELDS = (
    "throw_on_non_zero",
    "prefer_local",
    "colors",
    "quiet",
    "parallel",
    "fix_prefixes_length",
)
STR_FIELDS = ("prefix", "prefix_suffix")


def _is_cwd(value: Any) -> bool:
    return isinstance(value, (str, os.PathLike))


def _invalid(name: str, expected: str, value: Any) -> InvalidArgument:
    return InvalidArgument(
        f"Invalid {name}: expected {expected}, got {type(value).__name__} {value!r}",
        option=name,
    )


def _check_fields(record: Any) -> None:
    """Validate and normalize the shared option fields of a record in place.

    Raises:
        InvalidArgument: If a field holds a value of the wrong type
    """
    for name in BOOL_FIELDS:
        value = getattr(record, name, None)
        if value is not None and not isinstance(value, bool):
            raise _invalid(name, "a bool", value)
    for name in STR_FIELDS:
        value = getattr(record, name)
        if value is not None and not isinstance(value, str):
            raise _invalid(name, "a string", value)

    if record.interactive is not None:
        record.interactive = InteractiveMode.coerce(record.interactive)

    timeout_ms = record.timeout_ms
    if timeout_ms is not None and (
        isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms < 0
    ):
        raise _invalid("timeout_ms", "a non-negative int", timeout_ms)

    if record.env is not None:
        env = record.env
        if not isinstance(env, Mapping) or not all(
            isinstance(key, str) and (value is None or isinstance(value, str)) for key, value in env.items()
        ):
            raise _invalid("env", "a mapping of str to str or None", env)
        record.env = dict(env)

    if record.log is not None and not callable(record.log):
        raise _invalid("log", "a callable", record.log)


def _overlay(target: Any, source: Any, names: Iterable[str], protected: Iterable[str] = ()) -> Any:
    """Copy every non-None field in ``names`` from source onto target."""
    skip = set(protected)
    changes = {}
    for name in names:
        if name in skip:
            continue
        value = getattr(source, name, None)
        if value is not None:
            changes[name] = value
    return replace(target, **changes) if changes else target


@dataclass
class ExecOptions:
    """Options for a single invocation.

    A string command is handed to a shell, so pipes, redirects and globs
    work. A list command is an argv: the first element is the executable and
    the rest are passed literally, without a shell.

    Attributes:
        command: Shell string or argv list
        cwd: Working directory (default: executor cwd, else process cwd)
        interactive: Interaction mode (see InteractiveMode)
        env: Variables overlaid on the inherited environment; None unsets
        timeout_ms: Terminate the child after this many milliseconds
        throw_on_non_zero: Raise CommandFailed on a non-zero exit
        prefer_local: Put project-local bin directories ahead of PATH
        prefix: Label printed before every log and output line
        prefix_suffix: Separator between label and line
        colors: Force ANSI colors on (True) or off (False) for the child
        log: Callable receiving the banner and status lines
        quiet: Suppress the log sink entirely

    Example:
        >>> opts = ExecOptions("echo hi", cwd="/tmp", interactive="silent")
        >>> opts.interactive
        <InteractiveMode.SILENT: 'silent'>
    """

    command: Command | None = None
    cwd: str | None = None
    interactive: InteractiveMode | None = None
    env: dict[str, str | None] | None = None
    timeout_ms: int | None = None
    throw_on_non_zero: bool | None = None
    prefer_local: bool | None = None
    prefix: str | None = None
    prefix_suffix: str | None = None
    colors: bool | None = None
    log: LogSink | None = None
    quiet: bool | None = None

    def __post_init__(self) -> None:
        _check_fields(self)
        if isinstance(self.command, tuple):
            self.command = list(self.command)
        if self.cwd is not None:
            if not _is_cwd(self.cwd):
                raise _invalid("cwd", "a path", self.cwd)
            self.cwd = os.fspath(self.cwd)

    def merged(self, other: "ExecOptions", protected: Iterable[str] = ()) -> "ExecOptions":
        """Return a copy with every field set on ``other`` overlaid.

        Args:
            other: Options whose non-None fields win
            protected: Field names that keep their current value if already set
        """
        kept = [name for name in protected if getattr(self, name) is not None]
        return _overlay(self, other, [f.name for f in fields(self)], kept)


@dataclass
class BatchOptions:
    """Options for a batch of invocations.

    Attributes:
        command: One shell command, or a list of commands where each item is
            a shell string or an argv list
        cwd: One working directory or a list of them
        parallel: Run every invocation concurrently
        names: Explicit labels, or True to derive them from the cwd basename
        options: Explicit per-invocation records (bypasses fan-out)
        fix_prefixes_length: Pad labels to the longest one

    The remaining fields are shared defaults for every invocation and have
    the same meaning as on ExecOptions.
    """

    command: Commands | None = None
    cwd: Cwds | None = None
    parallel: bool | None = None
    names: list[str] | bool | None = None
    options: list[ExecOptions] | None = None
    fix_prefixes_length: bool | None = None
    interactive: InteractiveMode | None = None
    env: dict[str, str | None] | None = None
    timeout_ms: int | None = None
    throw_on_non_zero: bool | None = None
    prefer_local: bool | None = None
    prefix: str | None = None
    prefix_suffix: str | None = None
    colors: bool | None = None
    log: LogSink | None = None
    quiet: bool | None = None

    def __post_init__(self) -> None:
        _check_fields(self)
        # Tuples are accepted wherever a list is; store lists
        if isinstance(self.command, tuple):
            self.command = list(self.command)
        if isinstance(self.options, tuple):
            self.options = list(self.options)
        if self.cwd is not None:
            if _is_cwd(self.cwd):
                self.cwd = os.fspath(self.cwd)
            elif isinstance(self.cwd, (list, tuple)) and all(_is_cwd(item) for item in self.cwd):
                self.cwd = [os.fspath(item) for item in self.cwd]
            else:
                raise _invalid("cwd", "a path or a list of paths", self.cwd)
        if self.names is not None and not isinstance(self.names, bool):
            if not isinstance(self.names, (list, tuple)) or not all(isinstance(n, str) for n in self.names):
                raise _invalid("names", "a bool or a list of strings", self.names)
            self.names = list(self.names)

    def merged(self, other: "BatchOptions", protected: Iterable[str] = ()) -> "BatchOptions":
        """Return a copy with every field set on ``other`` overlaid."""
        kept = [name for name in protected if getattr(self, name) is not None]
        return _overlay(self, other, [f.name for f in fields(self)], kept)

    def shared(self) -> ExecOptions:
        """The per-invocation defaults carried by this batch."""
        return ExecOptions(**{name: getattr(self, name) for name in SHARED_FIELDS})


@dataclass(frozen=True)
class ExecResult:
    """Result of one finished invocation.

    Attributes:
        cwd: Directory the command ran in
        command: Final composed command, human-readable
        code: Exit status (negative signal number when killed on POSIX)
        stdout: Captured standard output ("" unless capturing)
        stderr: Captured standard error ("" unless capturing)
        output: stdout and stderr interleaved in arrival order
        duration_ms: Wall time from spawn to exit
        timed_out: Whether the child was terminated after timeout_ms

    Example:
        >>> result = ExecResult(cwd="/tmp", command="echo hi", code=0,
        ...                     stdout="hi\\n", stderr="", output="hi\\n",
        ...                     duration_ms=3)
        >>> result.ok
        True
    """

    cwd: str
    command: str
    code: int
    stdout: str = ""
    stderr: str = ""
    output: str = ""
    duration_ms: int = 0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        """Check if the command exited with status 0."""
        return self.code == 0 and not self.timed_out

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def _same_path(cwd: str) -> str:
    return cwd


# ExecutorConfig keys that can be read from and written to a config file.
SERIALIZABLE_CONFIG_FIELDS = (
    "cwd",
    "prefix_suffix",
    "fix_prefixes_length",
    "prefer_local",
    "throw_on_non_zero",
    "interactive",
    "quiet",
    "colors",
    "env",
    "command_prefix",
    "command_wrapper",
    "concurrent_runner",
)


@dataclass(frozen=True)
class ExecutorConfig:
    """Process-wide defaults for an Executor.

    An ExecutorConfig is an immutable snapshot: every invocation reads it,
    none modifies it, so one instance can back any number of concurrent
    invocations.

    Attributes:
        normalize_cwd: Applied to every cwd before spawning
        cwd: Default working directory (None: the process cwd at call time)
        prefix_suffix: Separator between label and line
        fix_prefixes_length: Pad batch labels to the same width
        prefer_local: Put project-local bin directories ahead of PATH
        throw_on_non_zero: Raise CommandFailed on a non-zero exit
        interactive: Default interaction mode
        quiet: Suppress banner and status lines
        colors: Color policy (True/False force, None leaves env untouched)
        env: Variables overlaid on the inherited environment
        command_prefix: Prepended to every command (string or argv)
        command_wrapper: Template wrapping every command; may contain
            ``{{command}}`` or ``{{commandEscaped}}``
        concurrent_runner: argv of the tool used to render parallel batches
            as a single command line
    """

    normalize_cwd: Callable[[str], str] = _same_path
    cwd: str | None = None
    prefix_suffix: str = " | "
    fix_prefixes_length: bool = True
    prefer_local: bool = False
    throw_on_non_zero: bool = True
    interactive: InteractiveMode = InteractiveMode.TEE
    quiet: bool = False
    colors: bool | None = True
    env: dict[str, str | None] = field(default_factory=dict)
    command_prefix: str | list[str] | None = None
    command_wrapper: str | None = None
    concurrent_runner: list[str] = field(default_factory=lambda: ["npx", "concurrently"])

    def __post_init__(self) -> None:
        object.__setattr__(self, "interactive", InteractiveMode.coerce(self.interactive))
        object.__setattr__(self, "env", dict(self.env))

    def to_dict(self) -> dict[str, Any]:
        """Convert the serializable fields to a plain dictionary."""
        result: dict[str, Any] = {}
        for name in SERIALIZABLE_CONFIG_FIELDS:
            value = getattr(self, name)
            if isinstance(value, InteractiveMode):
                value = value.value
            result[name] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any], **overrides: Any) -> "ExecutorConfig":
        """Create from a dictionary of serializable fields plus overrides."""
        values = {name: data[name] for name in SERIALIZABLE_CONFIG_FIELDS if name in data}
        values.update(overrides)
        return cls(**values)
