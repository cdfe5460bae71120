"""Normalization of call shapes into option records.

``one()`` and ``many()`` accept several call shapes, for example::

    one("make test")
    one("make test", "/src/app")
    one(["pytest", "-x"], {"interactive": "silent"})
    one("make", "/src/app", ExecOptions(timeout_ms=5000))
    one({"command": "make", "cwd": "/src/app"})

The functions here classify each positional argument by its shape and
produce one canonical record. Precedence is positional command/cwd, then
later option objects, then earlier ones; executor defaults are applied
later by the executor itself.
"""

import os
from collections.abc import Mapping
from dataclasses import fields, replace
from typing import Any

from multiexec.exceptions import InvalidArgument
from multiexec.types import BatchOptions, ExecOptions


def _is_argv(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value)


def _is_command(value: Any) -> bool:
    return isinstance(value, str) or _is_argv(value)


def _is_command_list(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and all(_is_command(item) for item in value)


def _is_options(value: Any) -> bool:
    return isinstance(value, (ExecOptions, BatchOptions, Mapping))


def _is_options_list(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) > 0
        and all(isinstance(item, (ExecOptions, Mapping)) for item in value)
    )


def _is_path(value: Any) -> bool:
    return isinstance(value, (str, os.PathLike))


def _from_mapping(cls: type, data: Mapping[str, Any]) -> Any:
    """Build an options dataclass from a mapping of field names."""
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise InvalidArgument(f"Unknown option(s): {', '.join(unknown)}", unknown=unknown)
    return cls(**data)


def to_exec_options(value: Any) -> ExecOptions:
    """Convert an ExecOptions or a mapping into ExecOptions.

    Raises:
        InvalidArgument: If the value is neither, or carries unknown keys
    """
    if isinstance(value, ExecOptions):
        return value
    if isinstance(value, BatchOptions):
        return value.shared()
    if isinstance(value, Mapping):
        return _from_mapping(ExecOptions, value)
    raise InvalidArgument(f"Expected options, got {type(value).__name__}")


def to_batch_options(value: Any) -> BatchOptions:
    """Convert a BatchOptions, an ExecOptions or a mapping into BatchOptions.

    Raises:
        InvalidArgument: If the value is none of these, or carries unknown keys
    """
    if isinstance(value, BatchOptions):
        batch = value
    elif isinstance(value, ExecOptions):
        batch = BatchOptions(**{f.name: getattr(value, f.name) for f in fields(value)})
    elif isinstance(value, Mapping):
        batch = _from_mapping(BatchOptions, value)
    else:
        raise InvalidArgument(f"Expected options, got {type(value).__name__}")
    if batch.options is not None:
        batch = replace(batch, options=[to_exec_options(item) for item in batch.options])
    return batch


def check_command(command: Any) -> None:
    """Validate a single shell string or argv list.

    Raises:
        InvalidArgument: If the command is missing, empty or malformed
    """
    if command is None or (isinstance(command, (str, list, tuple)) and len(command) == 0):
        raise InvalidArgument("No command provided")
    if isinstance(command, str):
        return
    if not _is_argv(command):
        raise InvalidArgument(f"Invalid command: {command!r}")
    if not command[0]:
        raise InvalidArgument("The first argv element must name an executable")


def _check_batch_command(command: Any) -> None:
    if command is None or isinstance(command, str):
        check_command(command)
        return
    if not isinstance(command, (list, tuple)):
        raise InvalidArgument(f"Invalid command: {command!r}")
    if len(command) == 0:
        raise InvalidArgument("No command provided")
    for item in command:
        check_command(item)


def normalize_one_options(*args: Any) -> ExecOptions:
    """Normalize the arguments of ``one()`` into an ExecOptions.

    Accepted shapes: ``(command)``, ``(command, cwd)``, ``(command, options)``,
    ``(command, cwd, options)`` and ``(options)``.

    Raises:
        InvalidArgument: If no command is given or an argument has an
            unexpected shape for its position
    """
    if not args:
        raise InvalidArgument("No command provided")
    if len(args) > 3:
        raise InvalidArgument(f"Expected at most 3 arguments, got {len(args)}")

    positional: list[str] = []
    first = args[0]
    if _is_options(first):
        options = to_exec_options(first)
    elif _is_command(first):
        options = ExecOptions(command=first)
        positional.append("command")
    else:
        raise InvalidArgument(f"Invalid first argument: {first!r}")

    if len(args) > 1:
        second = args[1]
        if second is None:
            pass
        elif _is_path(second):
            options = replace(options, cwd=os.fspath(second))
            positional.append("cwd")
        elif _is_options(second):
            options = options.merged(to_exec_options(second), protected=positional)
        else:
            raise InvalidArgument(f"Invalid second argument: {second!r}")

    if len(args) > 2:
        third = args[2]
        if third is None:
            pass
        elif _is_options(third):
            options = options.merged(to_exec_options(third), protected=positional)
        else:
            raise InvalidArgument(f"Invalid third argument: {third!r}")

    check_command(options.command)
    return options


def normalize_many_options(*args: Any) -> BatchOptions:
    """Normalize the arguments of ``many()`` into a BatchOptions.

    Accepted shapes: ``(commands)``, ``(commands, cwds)``,
    ``(commands, options)``, ``(commands, cwds, options)``,
    ``(commands, cwds, names)``, ``(commands, cwds, names, options)``,
    ``(options_list)`` and ``(batch_options)``. ``commands`` is a string, a
    list of strings (one shell command each) or a list of argv lists;
    ``names`` is a list of labels or a bool.

    Raises:
        InvalidArgument: If neither commands nor an options list is given,
            or an argument has an unexpected shape for its position
    """
    if not args:
        raise InvalidArgument("No command provided")
    if len(args) > 4:
        raise InvalidArgument(f"Expected at most 4 arguments, got {len(args)}")

    positional: list[str] = []
    first = args[0]
    if _is_options(first):
        batch = to_batch_options(first)
    elif _is_options_list(first):
        batch = BatchOptions(options=[to_exec_options(item) for item in first])
        positional.append("options")
    elif isinstance(first, str):
        batch = BatchOptions(command=first)
        positional.append("command")
    elif _is_command_list(first):
        batch = BatchOptions(command=[item if isinstance(item, str) else list(item) for item in first])
        positional.append("command")
    else:
        raise InvalidArgument(f"Invalid first argument: {first!r}")

    if len(args) > 1:
        second = args[1]
        if second is None:
            pass
        elif _is_path(second):
            batch = replace(batch, cwd=os.fspath(second))
            positional.append("cwd")
        elif isinstance(second, (list, tuple)) and all(_is_path(item) for item in second):
            batch = replace(batch, cwd=[os.fspath(item) for item in second])
            positional.append("cwd")
        elif _is_options(second):
            batch = batch.merged(to_batch_options(second), protected=positional)
        else:
            raise InvalidArgument(f"Invalid second argument: {second!r}")

    if len(args) > 2:
        third = args[2]
        if third is None:
            pass
        elif isinstance(third, bool):
            batch = replace(batch, names=third)
            positional.append("names")
        elif _is_argv(third):
            batch = replace(batch, names=list(third))
            positional.append("names")
        elif _is_options(third):
            batch = batch.merged(to_batch_options(third), protected=positional)
        else:
            raise InvalidArgument(f"Invalid third argument: {third!r}")

    if len(args) > 3:
        fourth = args[3]
        if fourth is None:
            pass
        elif _is_options(fourth):
            batch = batch.merged(to_batch_options(fourth), protected=positional)
        else:
            raise InvalidArgument(f"Invalid fourth argument: {fourth!r}")

    if batch.options is None:
        _check_batch_command(batch.command)
    else:
        for item in batch.options:
            check_command(item.command)
    return batch
