"""multiexec exceptions."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from multiexec.types import ExecResult


class ExecError(Exception):
    """Base class for every error raised by multiexec.

    Attributes:
        msg: Human-readable error message
        details: Failure record with the message and any additional fields

    Example:
        raise ExecError("Something broke", command="ls")
        # details: {"failed": True, "msg": "Something broke", "command": "ls"}
    """

    def __init__(self, msg: str, **details: Any) -> None:
        super().__init__(msg)
        self.msg = msg
        self.details: dict[str, Any] = {
            "failed": True,
            "msg": msg,
            **details,
        }

    def __str__(self) -> str:
        return self.msg


class InvalidArgument(ExecError, ValueError):
    """Raised when a call shape cannot be normalized into options.

    Always raised before any process is spawned.
    """


class CommandFailed(ExecError):
    """Raised when a command exits non-zero (or times out) and the
    effective ``throw_on_non_zero`` policy is true.

    Attributes:
        code: Exit status of the child
        command: Composed command text
        cause: Why it failed beyond the exit code, e.g. a timeout
        result: The full ExecResult, captured output included
    """

    def __init__(
        self,
        command: str,
        code: int,
        cause: str | None = None,
        result: "ExecResult | None" = None,
    ) -> None:
        msg = f"Command failed: {command} (code {code})"
        if cause:
            msg += f": {cause}"
        super().__init__(msg, command=command, code=code, cause=cause)
        self.command = command
        self.code = code
        self.cause = cause
        self.result = result


class SpawnFailure(ExecError):
    """Raised when the OS could not start the process at all.

    The originating OSError is chained as ``__cause__``.
    """

    def __init__(self, command: str, cwd: str, error: OSError) -> None:
        super().__init__(
            f"Could not start {command}: {error.strerror or error}",
            command=command,
            cwd=cwd,
            errno=error.errno,
        )
        self.command = command
        self.cwd = cwd
        self.errno = error.errno


class ConfigError(ExecError):
    """Raised when an executor configuration file is invalid."""
