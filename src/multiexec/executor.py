"""Command execution for multiexec.

``Executor.one`` runs a single command in one of four interaction modes
and returns an ExecResult. ``Executor.many`` expands a batch into
invocations and runs them one after another (fail-fast) or concurrently
(every invocation runs to completion, the first failure is re-raised
afterwards).

Example:
    >>> executor = Executor.create(interactive="silent")
    >>> result = await executor.one("echo hi")
    >>> result.stdout
    'hi\\n'
    >>> results = await executor.many(["make lint", "make test"], ["app", "lib"], True)
"""

import asyncio
import logging
import os
import shutil
import time
from contextlib import suppress
from dataclasses import replace
from pathlib import Path
from typing import Any

from multiexec.batch import align_prefixes, expand_batch, render_parallel, render_sequential
from multiexec.compose import compose_command, in_directory, join_command
from multiexec.config import load_executor_config
from multiexec.environment import (
    build_env,
    local_bin_dirs,
    prepend_path,
    real_shell_argv,
    resolve_login_shell,
)
from multiexec.exceptions import CommandFailed, ExecError, SpawnFailure
from multiexec.logging import batch_scope, console_sink, console_streams
from multiexec.multiplexer import LinePrefixer, OutputCapture, pump_stream
from multiexec.normalize import normalize_many_options, normalize_one_options
from multiexec.progress import ProgressReporter
from multiexec.style import colorize, colors_enabled
from multiexec.types import (
    BatchOptions,
    Command,
    ExecOptions,
    ExecResult,
    ExecutorConfig,
    InteractiveMode,
    LogSink,
)

logger = logging.getLogger(__name__)

# Seconds between SIGTERM and SIGKILL for a timed-out child
KILL_GRACE_S = 2.0
# Seconds to keep reading pipes after a timed-out child is gone
DRAIN_TIMEOUT_S = 1.0


def _no_log(*parts: Any) -> None:
    pass


def _pick(value: Any, default: Any) -> Any:
    return default if value is None else value


async def _consume(
    reader: asyncio.StreamReader,
    stream: str,
    capture: OutputCapture,
    prefixer: LinePrefixer | None,
) -> None:
    """Capture one pipe and, when teeing, echo it line by line."""

    def on_text(text: str) -> None:
        capture.feed(stream, text)
        if prefixer is not None:
            prefixer.push(text)

    try:
        await pump_stream(reader, on_text)
    finally:
        if prefixer is not None:
            prefixer.end()


async def _wait_for_exit(process: asyncio.subprocess.Process, timeout_ms: int | None) -> tuple[int, bool]:
    """Wait for the child, terminating it after timeout_ms.

    Returns:
        Tuple of (return code, whether the timeout fired)
    """
    if timeout_ms is None:
        return await process.wait(), False
    try:
        return await asyncio.wait_for(process.wait(), timeout_ms / 1000), False
    except asyncio.TimeoutError:
        logger.warning(f"Timed out after {timeout_ms}ms, terminating pid {process.pid}")
        with suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), KILL_GRACE_S)
        except asyncio.TimeoutError:
            logger.warning(f"pid {process.pid} ignored SIGTERM, killing it")
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
        return process.returncode, True


async def _drain(readers: list[asyncio.Task], timed_out: bool) -> None:
    """Wait for the pipe readers to reach EOF.

    After a timeout a grandchild may still hold the pipes open, so readers
    get DRAIN_TIMEOUT_S and are then cancelled.
    """
    if not readers:
        return
    if not timed_out:
        await asyncio.gather(*readers)
        return
    _, pending = await asyncio.wait(readers, timeout=DRAIN_TIMEOUT_S)
    for task in pending:
        task.cancel()
    await asyncio.gather(*readers, return_exceptions=True)


class Executor:
    """Runs commands with a shared, immutable set of defaults.

    Attributes:
        config: Executor-wide defaults, read by every invocation
        reporter: Receives batch progress events from ``many``
        reserve_stdout: Send banner, status and teed output to stderr,
            leaving stdout to the caller (e.g. for JSON results)

    Example:
        >>> executor = Executor.create(command_wrapper='ssh box "{{commandEscaped}}"')
        >>> executor.compose_one(["ls", "my dir"])
        'ssh box "ls \\'my dir\\'"'
    """

    def __init__(
        self,
        config: ExecutorConfig | None = None,
        reporter: ProgressReporter | None = None,
        reserve_stdout: bool = False,
    ) -> None:
        self.config = config or ExecutorConfig()
        self.reporter = reporter or ProgressReporter()
        self.reserve_stdout = reserve_stdout

    @classmethod
    def create(
        cls,
        reporter: ProgressReporter | None = None,
        reserve_stdout: bool = False,
        **settings: Any,
    ) -> "Executor":
        """Create an executor from ExecutorConfig keyword arguments."""
        return cls(ExecutorConfig(**settings), reporter=reporter, reserve_stdout=reserve_stdout)

    @classmethod
    def from_config_file(
        cls,
        path: str | Path,
        reporter: ProgressReporter | None = None,
        reserve_stdout: bool = False,
        **overrides: Any,
    ) -> "Executor":
        """Create an executor from a YAML file; keyword overrides win."""
        data = load_executor_config(path)
        return cls(ExecutorConfig.from_dict(data, **overrides), reporter=reporter, reserve_stdout=reserve_stdout)

    def configure(self, **changes: Any) -> "Executor":
        """Return a new executor whose config has the given fields replaced."""
        return Executor(replace(self.config, **changes), reporter=self.reporter, reserve_stdout=self.reserve_stdout)

    # Composition

    def _resolve_cwd(self, options: ExecOptions) -> str:
        cwd = options.cwd or self.config.cwd or os.getcwd()
        return self.config.normalize_cwd(cwd)

    def _compose(self, command: Command) -> Command:
        return compose_command(command, self.config.command_prefix, self.config.command_wrapper)

    def compose_one(self, *args: Any) -> str:
        """Return the fully composed command text without running it."""
        options = normalize_one_options(*args)
        return join_command(self._compose(options.command))

    def compose_one_in_cwd(self, *args: Any) -> str:
        """Return ``cd <cwd> && <composed command>`` without running it."""
        options = normalize_one_options(*args)
        return in_directory(self._resolve_cwd(options), self._compose(options.command))

    def compose_many(self, *args: Any) -> str:
        """Render a whole batch as one command line without running it.

        Sequential batches are chained with ``&&``; parallel batches become
        a call into the configured concurrent runner.
        """
        batch = normalize_many_options(*args)
        invocations = self._expand(batch)
        pairs = [(self._resolve_cwd(o), self._compose(o.command)) for o in invocations]
        if batch.parallel:
            return render_parallel(pairs, [o.prefix for o in invocations], self.config.concurrent_runner)
        return render_sequential(pairs)

    # Single invocation

    async def one(self, *args: Any) -> ExecResult:
        """Run one command.

        Accepts ``(command)``, ``(command, cwd)``, ``(command, options)``,
        ``(command, cwd, options)`` or ``(options)``, where options is an
        ExecOptions or a mapping of its field names.

        Returns:
            ExecResult of the finished command

        Raises:
            InvalidArgument: If the arguments cannot be normalized
            SpawnFailure: If the process could not be started
            CommandFailed: If it exited non-zero or timed out and
                throw_on_non_zero is in effect
        """
        options = normalize_one_options(*args)
        return await self._run(options)

    async def _run(self, options: ExecOptions) -> ExecResult:
        config = self.config
        mode = _pick(options.interactive, config.interactive)
        throw_on_non_zero = _pick(options.throw_on_non_zero, config.throw_on_non_zero)
        colors = _pick(options.colors, config.colors)
        prefix_suffix = _pick(options.prefix_suffix, config.prefix_suffix)
        out, err = console_streams(self.reserve_stdout)
        log: LogSink = _no_log if _pick(options.quiet, config.quiet) else (options.log or console_sink(out))

        cwd = self._resolve_cwd(options)
        command = self._compose(options.command)
        command_text = join_command(command)

        env = build_env(os.environ, config.env, options.env, colors)
        if _pick(options.prefer_local, config.prefer_local):
            env = prepend_path(env, local_bin_dirs(cwd))

        # Our own lines follow the TTY unless the caller forced colors on
        # this invocation or turned them off executor-wide.
        banner_policy = options.colors if options.colors is not None else (False if config.colors is False else None)
        decorate = colors_enabled(banner_policy, out)
        label = colorize(f"{options.prefix}{prefix_suffix}", "bold", decorate) if options.prefix else ""
        log(
            f"{label}{colorize(cwd, 'bright_black', decorate)} "
            f"{colorize('$', 'bold', decorate)} {colorize(command_text, 'cyan', decorate)}"
        )

        started = time.perf_counter()
        try:
            process = await self._spawn(command, mode, cwd, env)
        except OSError as e:
            log(colorize("✗", "red", decorate), str(e))
            logger.error(f"Could not start {command_text} in {cwd}: {e}")
            raise SpawnFailure(command_text, cwd, e) from e

        capture = OutputCapture()
        readers: list[asyncio.Task] = []
        if mode.captures:
            echo = mode is InteractiveMode.TEE
            for stream, reader, dest in (
                ("stdout", process.stdout, out),
                ("stderr", process.stderr, err),
            ):
                prefixer = LinePrefixer(dest, label) if echo else None
                readers.append(asyncio.create_task(_consume(reader, stream, capture, prefixer)))

        try:
            code, timed_out = await _wait_for_exit(process, options.timeout_ms)
            await _drain(readers, timed_out)
        finally:
            if process.returncode is None:
                with suppress(ProcessLookupError):
                    process.kill()
            for task in readers:
                task.cancel()

        result = ExecResult(
            cwd=cwd,
            command=command_text,
            code=code,
            stdout=capture.stdout,
            stderr=capture.stderr,
            output=capture.output,
            duration_ms=int((time.perf_counter() - started) * 1000),
            timed_out=timed_out,
        )

        cause = f"timed out after {options.timeout_ms}ms" if timed_out else None
        if result.ok:
            log(colorize("✓", "green", decorate), colorize(f"{result.duration_ms}ms", "bright_black", decorate))
        else:
            status = f"code {code}" + (f" ({cause})" if cause else "")
            log(colorize("✗", "red", decorate), status)
            if throw_on_non_zero:
                raise CommandFailed(command_text, code, cause=cause, result=result)
        return result

    async def _spawn(
        self,
        command: Command,
        mode: InteractiveMode,
        cwd: str,
        env: dict[str, str],
    ) -> asyncio.subprocess.Process:
        """Start the child process for the given interaction mode."""
        pipe = asyncio.subprocess.PIPE if mode.captures else None
        stdin = asyncio.subprocess.DEVNULL if mode is InteractiveMode.SILENT else None

        if mode is InteractiveMode.REAL_SHELL:
            argv = real_shell_argv(resolve_login_shell(env), join_command(command))
            logger.debug(f"Spawning {argv} in {cwd} (mode={mode.value})")
            return await asyncio.create_subprocess_exec(*argv, cwd=cwd, env=env)

        if isinstance(command, str):
            logger.debug(f"Spawning shell command {command!r} in {cwd} (mode={mode.value})")
            return await asyncio.create_subprocess_shell(
                command, cwd=cwd, env=env, stdin=stdin, stdout=pipe, stderr=pipe
            )

        file, *args = command
        executable = shutil.which(file, path=env.get("PATH")) or file
        logger.debug(f"Spawning {[executable, *args]} in {cwd} (mode={mode.value})")
        return await asyncio.create_subprocess_exec(
            executable, *args, cwd=cwd, env=env, stdin=stdin, stdout=pipe, stderr=pipe
        )

    # Batches

    def _expand(self, batch: BatchOptions) -> list[ExecOptions]:
        invocations = expand_batch(batch, self.config.cwd or os.getcwd())
        if _pick(batch.fix_prefixes_length, self.config.fix_prefixes_length):
            invocations = align_prefixes(invocations)
        return invocations

    async def many(self, *args: Any) -> list[ExecResult]:
        """Run a batch of commands.

        Accepts ``(commands)``, ``(commands, cwds)``, ``(commands, options)``,
        ``(commands, cwds, options)``, ``(commands, cwds, names)``,
        ``(commands, cwds, names, options)``, ``(options_list)`` or
        ``(batch_options)``.

        Returns:
            One ExecResult per invocation, in declaration order

        Raises:
            InvalidArgument: If the arguments cannot be normalized
            CommandFailed: Sequential: as soon as one invocation fails.
                Parallel: the first failure in declaration order, once every
                invocation has finished
            SpawnFailure: Like CommandFailed, for processes that never started
        """
        batch = normalize_many_options(*args)
        invocations = self._expand(batch)
        parallel = bool(batch.parallel)
        tally = {"succeeded": 0, "failed": 0}

        async def run(index: int, options: ExecOptions) -> ExecResult:
            label = (options.prefix or "").strip()
            command_text = join_command(self._compose(options.command))
            self.reporter.on_invocation_start(index, label, command_text)
            started = time.perf_counter()

            def done(code: int | None, error: str | None) -> None:
                ok = code == 0 and error is None
                tally["succeeded" if ok else "failed"] += 1
                self.reporter.on_invocation_done(
                    index, label, command_text, time.perf_counter() - started, code=code, error=error
                )

            try:
                result = await self._run(options)
            except CommandFailed as e:
                done(e.code, e.cause)
                raise
            except ExecError as e:
                done(None, str(e))
                raise
            done(result.code, f"timed out after {options.timeout_ms}ms" if result.timed_out else None)
            return result

        total = len(invocations)
        with batch_scope(logger, total, parallel):
            self.reporter.on_batch_start(total, parallel)
            started = time.perf_counter()
            try:
                if parallel:
                    outcomes = await asyncio.gather(
                        *(run(index, o) for index, o in enumerate(invocations, 1)), return_exceptions=True
                    )
                    for outcome in outcomes:
                        if isinstance(outcome, BaseException):
                            raise outcome
                    return list(outcomes)

                results: list[ExecResult] = []
                for index, options in enumerate(invocations, 1):
                    results.append(await run(index, options))
                return results
            finally:
                self.reporter.on_batch_done(
                    total, tally["succeeded"], tally["failed"], time.perf_counter() - started
                )


async def one(*args: Any) -> ExecResult:
    """Run one command with a default Executor. See ``Executor.one``."""
    return await Executor.create().one(*args)


async def many(*args: Any) -> list[ExecResult]:
    """Run a batch with a default Executor. See ``Executor.many``."""
    return await Executor.create().many(*args)
