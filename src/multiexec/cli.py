"""Command-line interface for multiexec."""

import asyncio
import json
from typing import Any, Optional

import click

from multiexec import __version__
from multiexec.exceptions import CommandFailed, ConfigError, InvalidArgument, SpawnFailure
from multiexec.executor import Executor
from multiexec.logging import configure_logging, resolve_level
from multiexec.progress import create_progress_reporter
from multiexec.types import ExecResult, InteractiveMode

# Exit status when the process could not be started (as a shell does)
SPAWN_FAILURE_EXIT = 127

MODE_CHOICES = ["inherit", "tee", "silent", "real-shell"]


def _setup_logging(verbose: int, log_level: Optional[str], log_file: Optional[str]) -> None:
    configure_logging(level=resolve_level(verbose, log_level), log_file=log_file)


def _build_executor(config_file: Optional[str], progress: bool = False, output_format: str = "text") -> Executor:
    json_output = output_format == "json"
    reporter = create_progress_reporter(progress, json_format=json_output)
    try:
        if config_file:
            return Executor.from_config_file(config_file, reporter=reporter, reserve_stdout=json_output)
        return Executor.create(reporter=reporter, reserve_stdout=json_output)
    except ConfigError as e:
        raise click.ClickException(str(e))


def _exec_options(
    mode: Optional[str],
    timeout_ms: Optional[int],
    no_throw: bool,
    prefer_local: bool,
    no_colors: bool,
) -> dict[str, Any]:
    """Only flags the user actually passed, so config-file defaults survive."""
    options: dict[str, Any] = {}
    if mode:
        options["interactive"] = InteractiveMode.coerce(mode)
    if timeout_ms is not None:
        options["timeout_ms"] = timeout_ms
    if no_throw:
        options["throw_on_non_zero"] = False
    if prefer_local:
        options["prefer_local"] = True
    if no_colors:
        options["colors"] = False
    return options


def _run(coro: Any) -> Any:
    """Run a coroutine, mapping multiexec errors to exit statuses."""
    try:
        return asyncio.run(coro)
    except InvalidArgument as e:
        raise click.UsageError(str(e))
    except CommandFailed as e:
        code = e.code if e.code > 0 else 1
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(code)
    except SpawnFailure as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(SPAWN_FAILURE_EXIT)


def format_results_json(results: list[ExecResult]) -> str:
    """Format results as JSON."""
    return json.dumps([r.to_dict() for r in results], indent=2)


def _common_options(func: Any) -> Any:
    decorators = [
        click.option("--mode", type=click.Choice(MODE_CHOICES), default=None,
                     help="Interaction mode (default: tee)"),
        click.option("--timeout-ms", type=int, default=None,
                     help="Terminate each command after this many milliseconds"),
        click.option("--no-throw", is_flag=True,
                     help="Report non-zero exits instead of failing"),
        click.option("--prefer-local", is_flag=True,
                     help="Prefer project-local executables (node_modules/.bin, .venv/bin)"),
        click.option("--no-colors", is_flag=True,
                     help="Force colors off for the commands"),
        click.option("--dry-run", is_flag=True,
                     help="Print the composed command line without running it"),
        click.option("--config", "config_file", type=click.Path(exists=True), default=None,
                     help="YAML file with executor defaults"),
        click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text",
                     help="Output format for results"),
        click.option("--log-file", type=click.Path(), default=None,
                     help="Write logs to file (in addition to console)"),
        click.option("--log-level", type=click.Choice(["trace", "debug", "info", "warning", "error"]),
                     default=None, help="Set log level explicitly (overrides -v)"),
        click.option("-v", "--verbose", count=True,
                     help="Increase verbosity: -v=info, -vv=debug, -vvv=trace"),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


# Main CLI group
@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """multiexec - run commands across directories, sequentially or in parallel."""
    if version:
        click.echo(f"multiexec {__version__}")
        ctx.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("one")
@click.argument("command", nargs=-1, required=True)
@click.option("--cwd", type=click.Path(file_okay=False), default=None, help="Working directory")
@click.option("--prefix", type=str, default=None, help="Label for every output line")
@_common_options
def run_one(
    command: tuple[str, ...],
    cwd: Optional[str],
    prefix: Optional[str],
    mode: Optional[str],
    timeout_ms: Optional[int],
    no_throw: bool,
    prefer_local: bool,
    no_colors: bool,
    dry_run: bool,
    config_file: Optional[str],
    output_format: str,
    log_file: Optional[str],
    log_level: Optional[str],
    verbose: int,
) -> None:
    """Run a single command.

    One COMMAND argument is run through a shell; several are run as an argv
    without a shell.

    Examples:
        multiexec one "ls -la | wc -l"

        multiexec one --cwd ./app -- npm test -- --watch=false

        multiexec one --mode silent --format json "git status --short"
    """
    _setup_logging(verbose, log_level, log_file)
    executor = _build_executor(config_file, output_format=output_format)
    cmd: Any = command[0] if len(command) == 1 else list(command)
    options = _exec_options(mode, timeout_ms, no_throw, prefer_local, no_colors)
    if prefix:
        options["prefix"] = prefix

    if dry_run:
        try:
            click.echo(executor.compose_one_in_cwd(cmd, cwd, options))
        except InvalidArgument as e:
            raise click.UsageError(str(e))
        return

    result = _run(executor.one(cmd, cwd, options))
    if output_format == "json":
        click.echo(format_results_json([result]))
    if not result.ok:
        raise SystemExit(result.code if result.code > 0 else 1)


@cli.command("many")
@click.argument("commands", nargs=-1, required=True)
@click.option("--cwd", "cwds", multiple=True, type=click.Path(file_okay=False),
              help="Working directory (repeatable; every command runs in each)")
@click.option("--parallel", "-p", is_flag=True, help="Run all commands concurrently")
@click.option("--name", "names", multiple=True, help="Label for each invocation (repeatable)")
@click.option("--auto-names", is_flag=True, help="Label invocations by cwd basename")
@click.option("--no-fix-prefixes", is_flag=True, help="Do not pad labels to the same width")
@click.option("--progress", is_flag=True, help="Report progress as invocations complete")
@_common_options
def run_many(
    commands: tuple[str, ...],
    cwds: tuple[str, ...],
    parallel: bool,
    names: tuple[str, ...],
    auto_names: bool,
    no_fix_prefixes: bool,
    progress: bool,
    mode: Optional[str],
    timeout_ms: Optional[int],
    no_throw: bool,
    prefer_local: bool,
    no_colors: bool,
    dry_run: bool,
    config_file: Optional[str],
    output_format: str,
    log_file: Optional[str],
    log_level: Optional[str],
    verbose: int,
) -> None:
    """Run several shell commands in one or more directories.

    Every COMMAND runs in every --cwd, directory by directory.

    Examples:
        multiexec many "npm ci" "npm test" --cwd app --cwd lib --auto-names

        multiexec many "make lint" "make test" --parallel --name lint --name test

        multiexec many "git pull" --cwd a --cwd b --dry-run --parallel
    """
    if names and auto_names:
        raise click.UsageError("--name and --auto-names are mutually exclusive")

    _setup_logging(verbose, log_level, log_file)
    executor = _build_executor(config_file, progress=progress, output_format=output_format)
    options = _exec_options(mode, timeout_ms, no_throw, prefer_local, no_colors)
    options["parallel"] = parallel
    if no_fix_prefixes:
        options["fix_prefixes_length"] = False
    label_arg: Any = list(names) if names else (True if auto_names else None)
    cwd_arg: Any = list(cwds) if cwds else None

    if dry_run:
        try:
            click.echo(executor.compose_many(list(commands), cwd_arg, label_arg, options))
        except InvalidArgument as e:
            raise click.UsageError(str(e))
        return

    results = _run(executor.many(list(commands), cwd_arg, label_arg, options))
    if output_format == "json":
        click.echo(format_results_json(results))
    failed = [r for r in results if not r.ok]
    if failed:
        raise click.ClickException(f"{len(failed)} of {len(results)} command(s) failed")


def main() -> None:
    """Package entry point for the multiexec command-line interface."""
    cli()


if __name__ == "__main__":
    cli()
