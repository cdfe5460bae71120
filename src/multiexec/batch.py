"""Batch fan-out: turning one BatchOptions into per-invocation records.

A batch is either an explicit list of ExecOptions, or the cross product
of a command set and a cwd set. Fan-out is cwd-major: every command for
the first cwd, then every command for the second, and so on.
"""

import logging
import shlex
from dataclasses import replace
from itertools import cycle
from pathlib import Path

from multiexec.compose import in_directory
from multiexec.logging import TRACE
from multiexec.types import BatchOptions, Command, ExecOptions

logger = logging.getLogger(__name__)

# Label colors handed to the concurrent runner in dry-run renderings.
PREFIX_COLORS = ("blue", "green", "magenta", "cyan", "yellow", "red")


def _basename(cwd: str) -> str:
    return Path(cwd).name or cwd


def _name_at(names: list[str] | bool | None, index: int) -> str | None:
    if isinstance(names, list):
        return names[index] if index < len(names) else None
    return None


def _commands(batch: BatchOptions) -> list[Command]:
    if isinstance(batch.command, str):
        return [batch.command]
    return list(batch.command or [])


def _cwds(batch: BatchOptions, default_cwd: str) -> list[str]:
    if batch.cwd is None:
        return [default_cwd]
    if isinstance(batch.cwd, str):
        return [batch.cwd]
    return list(batch.cwd) or [default_cwd]


def expand_batch(batch: BatchOptions, default_cwd: str) -> list[ExecOptions]:
    """Expand a batch into the ordered list of invocations to run.

    Args:
        batch: Normalized batch options
        default_cwd: Directory used where no cwd is given

    Returns:
        One ExecOptions per invocation, in dispatch order. Shared batch
        fields are filled in wherever an invocation leaves them unset.
    """
    shared = batch.shared()
    expanded: list[ExecOptions] = []

    if batch.options is not None:
        for index, record in enumerate(batch.options):
            options = shared.merged(record)
            cwd = options.cwd or default_cwd
            prefix = options.prefix
            if prefix is None:
                prefix = _name_at(batch.names, index)
            if prefix is None and batch.names is True:
                prefix = _basename(cwd)
            expanded.append(replace(options, cwd=cwd, prefix=prefix))
    else:
        commands = _commands(batch)
        for cwd_index, cwd in enumerate(_cwds(batch, default_cwd)):
            for command_index, command in enumerate(commands):
                prefix = _name_at(batch.names, cwd_index * len(commands) + command_index)
                if prefix is None and batch.names is True:
                    prefix = _basename(cwd)
                    if len(commands) > 1:
                        prefix = f"{prefix}.{command_index}"
                if prefix is None:
                    prefix = batch.prefix
                expanded.append(replace(shared, command=command, cwd=cwd, prefix=prefix))

    logger.log(TRACE, f"Expanded batch into {len(expanded)} invocation(s)")
    return expanded


def align_prefixes(invocations: list[ExecOptions]) -> list[ExecOptions]:
    """Right-pad every prefix to the longest one.

    Nothing changes unless at least one prefix is a non-empty string;
    otherwise missing prefixes become padding so that columns line up.
    """
    prefixes = [options.prefix or "" for options in invocations]
    width = max((len(prefix) for prefix in prefixes), default=0)
    if width == 0:
        return invocations
    return [replace(options, prefix=prefix.ljust(width)) for options, prefix in zip(invocations, prefixes)]


def render_sequential(invocations: list[tuple[str, Command]]) -> str:
    """Render (cwd, command) pairs as one ``&&``-chained command line."""
    return " && ".join(f"({in_directory(cwd, command)})" for cwd, command in invocations)


def render_parallel(
    invocations: list[tuple[str, Command]],
    labels: list[str | None],
    runner: list[str],
) -> str:
    """Render (cwd, command) pairs as a call into a concurrent runner.

    Labels fall back to the 1-based position; colors cycle through
    PREFIX_COLORS.
    """
    names = [(label or "").strip() or str(index) for index, label in enumerate(labels, start=1)]
    colors = [color for color, _ in zip(cycle(PREFIX_COLORS), invocations)]
    argv = [
        *runner,
        "--names",
        ",".join(names),
        "--prefix-colors",
        ",".join(colors),
        *(in_directory(cwd, command) for cwd, command in invocations),
    ]
    return shlex.join(argv)
